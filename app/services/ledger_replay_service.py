# app/services/ledger_replay_service.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.location_stock import LocationStock
from app.models.stock_ledger import StockLedgerEntry


class LedgerReplayService:
    """
    Ledger Replay Engine
    --------------------
    Replays stock_ledger entry by entry (created_at, id order) and rebuilds the
    running quantity per (product, location). The ledger is the source of
    truth; location_stocks is a cache of it.
    """

    @staticmethod
    async def replay(
        session: AsyncSession,
        *,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = sa.select(
            StockLedgerEntry.id,
            StockLedgerEntry.created_at,
            StockLedgerEntry.product_id,
            StockLedgerEntry.location_id,
            StockLedgerEntry.delta,
            StockLedgerEntry.after_qty,
            StockLedgerEntry.log_type,
            StockLedgerEntry.ref,
            StockLedgerEntry.batch_id,
        ).order_by(StockLedgerEntry.id.asc())
        if product_id is not None:
            stmt = stmt.where(StockLedgerEntry.product_id == int(product_id))
        if location_id is not None:
            stmt = stmt.where(StockLedgerEntry.location_id == int(location_id))

        rows = (await session.execute(stmt)).mappings().all()

        # in-memory replay: key = (product, location)
        slot: Dict[Tuple[int, int], int] = {}
        timeline: List[Dict[str, Any]] = []

        for e in rows:
            k = (int(e["product_id"]), int(e["location_id"]))
            before = slot.get(k, 0)
            after = before + int(e["delta"])
            slot[k] = after

            timeline.append(
                {
                    "id": e["id"],
                    "created_at": e["created_at"],
                    "log_type": e["log_type"],
                    "delta": e["delta"],
                    "before": before,
                    "after": after,
                    "recorded_after": e["after_qty"],
                    "product_id": k[0],
                    "location_id": k[1],
                    "ref": e["ref"],
                    "batch_id": e["batch_id"],
                }
            )

        return timeline

    @staticmethod
    async def find_inconsistencies(session: AsyncSession) -> List[Dict[str, Any]]:
        """
        (product, location) pairs whose cached quantity differs from the sum of
        their ledger deltas. A pair with ledger entries but no cache row counts
        as cached 0.
        """
        ledger_sum = (
            sa.select(
                StockLedgerEntry.product_id.label("product_id"),
                StockLedgerEntry.location_id.label("location_id"),
                sa.func.sum(StockLedgerEntry.delta).label("ledger_qty"),
            )
            .group_by(StockLedgerEntry.product_id, StockLedgerEntry.location_id)
            .subquery()
        )

        cached = (await session.execute(
            sa.select(LocationStock.product_id, LocationStock.location_id, LocationStock.quantity)
        )).all()
        sums = (await session.execute(sa.select(ledger_sum))).mappings().all()

        ledger_map = {
            (int(r["product_id"]), int(r["location_id"])): int(r["ledger_qty"] or 0) for r in sums
        }
        cache_map = {(int(p), int(l)): int(q) for p, l, q in cached}

        out: List[Dict[str, Any]] = []
        for key in sorted(set(ledger_map) | set(cache_map)):
            lq = ledger_map.get(key, 0)
            cq = cache_map.get(key, 0)
            if lq != cq:
                out.append(
                    {
                        "product_id": key[0],
                        "location_id": key[1],
                        "ledger_quantity": lq,
                        "cached_quantity": cq,
                        "diff": cq - lq,
                    }
                )
        return out


async def replay(
    session: AsyncSession,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    return await LedgerReplayService.replay(session, product_id=product_id, location_id=location_id)


async def find_inconsistencies(session: AsyncSession) -> List[Dict[str, Any]]:
    return await LedgerReplayService.find_inconsistencies(session)


__all__ = ["LedgerReplayService", "replay", "find_inconsistencies"]
