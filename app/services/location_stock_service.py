# app/services/location_stock_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditBatch
from app.core.tx import tx_atomic
from app.models.enums import LedgerLogType
from app.models.location import Location
from app.models.location_stock import LocationStock
from app.services.ledger_writer import write_ledger
from app.services.stock_errors import VersionConflict

log = logging.getLogger("stockcore.stock")


@dataclass(frozen=True)
class StockLevel:
    """Point read of one location_stocks row."""

    product_id: int
    location_id: int
    quantity: int
    version: int
    min_quantity: int


@dataclass(frozen=True)
class StockDelta:
    """Outcome of one apply_delta call."""

    product_id: int
    location_id: int
    delta: int
    before_quantity: int
    new_quantity: int
    new_version: int
    ledger_id: int
    created: bool


async def get_location_stock(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
) -> Optional[StockLevel]:
    """
    Column read (not an ORM entity) so a value bumped by a Core UPDATE is never
    served stale from the identity map.
    """
    row = (
        (
            await session.execute(
                sa.select(
                    LocationStock.quantity,
                    LocationStock.version,
                    LocationStock.min_quantity,
                ).where(
                    LocationStock.product_id == int(product_id),
                    LocationStock.location_id == int(location_id),
                )
            )
        )
        .mappings()
        .first()
    )
    if row is None:
        return None
    return StockLevel(
        product_id=int(product_id),
        location_id=int(location_id),
        quantity=int(row["quantity"]),
        version=int(row["version"]),
        min_quantity=int(row["min_quantity"]),
    )


async def get_quantity(session: AsyncSession, *, product_id: int, location_id: int) -> int:
    level = await get_location_stock(session, product_id=product_id, location_id=location_id)
    return level.quantity if level is not None else 0


async def get_total_quantity(session: AsyncSession, *, product_id: int) -> int:
    total = (
        await session.execute(
            sa.select(sa.func.coalesce(sa.func.sum(LocationStock.quantity), 0)).where(
                LocationStock.product_id == int(product_id)
            )
        )
    ).scalar_one()
    return int(total or 0)


async def get_product_locations(session: AsyncSession, *, product_id: int) -> List[Dict[str, Any]]:
    """
    Quantity + version of a product at every location, ordered by location name.
    Locations without a row report quantity 0 / version 0 (0 is also the
    expected_version that matches a row that does not exist yet).
    """
    stmt = (
        sa.select(
            Location.id.label("location_id"),
            Location.name.label("location_name"),
            LocationStock.quantity,
            LocationStock.version,
            LocationStock.min_quantity,
        )
        .select_from(Location)
        .outerjoin(
            LocationStock,
            sa.and_(
                LocationStock.location_id == Location.id,
                LocationStock.product_id == int(product_id),
            ),
        )
        .order_by(Location.name.asc(), Location.id.asc())
    )
    rows = (await session.execute(stmt)).mappings().all()
    return [
        {
            "location_id": int(r["location_id"]),
            "location_name": r["location_name"],
            "quantity": int(r["quantity"] or 0),
            "version": int(r["version"] or 0),
            "min_quantity": int(r["min_quantity"] or 0),
        }
        for r in rows
    ]


async def apply_delta(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
    delta: int,
    user_id: Optional[int] = None,
    log_type: Union[str, LedgerLogType] = LedgerLogType.ADJUSTMENT,
    expected_version: Optional[int] = None,
    ref: Optional[str] = None,
    note: Optional[str] = None,
    batch: Optional[AuditBatch] = None,
) -> StockDelta:
    """
    The only writer of location_stocks.quantity / version.

    - missing row: created with quantity=delta, version=1 (expected_version must
      be None or 0)
    - expected_version given: compare-and-swap on version; mismatch raises
      VersionConflict and nothing is written (no internal retry)
    - expected_version None: atomic in-place increment
    - exactly one stock_ledger row per call, in the same atomic unit
    - no sufficiency check here; the result may be negative
    """
    pid, lid, d = int(product_id), int(location_id), int(delta)
    if batch is not None:
        batch.require_open()

    async with tx_atomic(session):
        current = await get_location_stock(session, product_id=pid, location_id=lid)

        if current is None:
            if expected_version not in (None, 0):
                raise VersionConflict(
                    product_id=pid,
                    location_id=lid,
                    expected_version=expected_version,
                    current_version=0,
                )
            try:
                async with session.begin_nested():
                    await session.execute(
                        sa.insert(LocationStock).values(
                            product_id=pid,
                            location_id=lid,
                            quantity=d,
                            min_quantity=0,
                            version=1,
                        )
                    )
            except IntegrityError:
                # another writer created the row between our read and insert
                raced = await get_location_stock(session, product_id=pid, location_id=lid)
                raise VersionConflict(
                    product_id=pid,
                    location_id=lid,
                    expected_version=expected_version,
                    current_version=raced.version if raced is not None else None,
                )
            before, new_qty, new_version, created = 0, d, 1, True

        elif expected_version is not None:
            if int(expected_version) != current.version:
                raise VersionConflict(
                    product_id=pid,
                    location_id=lid,
                    expected_version=int(expected_version),
                    current_version=current.version,
                )
            res = await session.execute(
                sa.update(LocationStock)
                .where(
                    LocationStock.product_id == pid,
                    LocationStock.location_id == lid,
                    LocationStock.version == int(expected_version),
                )
                .values(
                    quantity=LocationStock.quantity + d,
                    version=LocationStock.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                latest = await get_location_stock(session, product_id=pid, location_id=lid)
                raise VersionConflict(
                    product_id=pid,
                    location_id=lid,
                    expected_version=int(expected_version),
                    current_version=latest.version if latest is not None else None,
                )
            before = current.quantity
            new_qty, new_version, created = current.quantity + d, current.version + 1, False

        else:
            res = await session.execute(
                sa.update(LocationStock)
                .where(
                    LocationStock.product_id == pid,
                    LocationStock.location_id == lid,
                )
                .values(
                    quantity=LocationStock.quantity + d,
                    version=LocationStock.version + 1,
                )
                .returning(LocationStock.quantity, LocationStock.version)
                .execution_options(synchronize_session=False)
            )
            after = res.mappings().one()
            new_qty, new_version, created = int(after["quantity"]), int(after["version"]), False
            before = new_qty - d

        ledger_id = await write_ledger(
            session,
            product_id=pid,
            location_id=lid,
            delta=d,
            after_qty=new_qty,
            log_type=log_type,
            user_id=user_id,
            ref=ref,
            note=note,
            batch=batch,
        )

    log.debug(
        "apply_delta product=%s location=%s delta=%s %s->%s v%s ledger=%s",
        pid,
        lid,
        d,
        before,
        new_qty,
        new_version,
        ledger_id,
    )
    return StockDelta(
        product_id=pid,
        location_id=lid,
        delta=d,
        before_quantity=before,
        new_quantity=new_qty,
        new_version=new_version,
        ledger_id=ledger_id,
        created=created,
    )


__all__ = [
    "StockLevel",
    "StockDelta",
    "get_location_stock",
    "get_quantity",
    "get_total_quantity",
    "get_product_locations",
    "apply_delta",
]
