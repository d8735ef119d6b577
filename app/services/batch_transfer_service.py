# app/services/batch_transfer_service.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import audit_batch
from app.core.tx import tx_commit
from app.services.master_data import MasterDataService
from app.services.stock_availability_service import validate_stock_availability
from app.services.stock_errors import (
    InsufficientStock,
    InvalidRequest,
    NotFound,
    StockError,
    VersionConflict,
)
from app.services.transfer_service import transfer_stock

log = logging.getLogger("stockcore.transfer")

BATCH_OK = "ok"
BATCH_PARTIAL = "partial"
BATCH_FAILED = "failed"


@dataclass(frozen=True)
class TransferLine:
    from_location_id: int
    quantity: int
    expected_version: Optional[int] = None


@dataclass
class TransferLineResult:
    from_location_id: int
    from_location_name: str
    quantity: int
    success: bool
    ref: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    expected_version: Optional[int] = None
    current_version: Optional[int] = None


@dataclass
class BatchTransferResult:
    success: bool
    status: str
    batch_id: str
    product_id: int
    to_location_id: int
    total_transferred: int
    results: List[TransferLineResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce_line(raw: Any) -> TransferLine:
    if isinstance(raw, TransferLine):
        return raw
    if isinstance(raw, dict):
        return TransferLine(
            from_location_id=int(raw["from_location_id"]),
            quantity=int(raw["quantity"]),
            expected_version=raw.get("expected_version"),
        )
    return TransferLine(
        from_location_id=int(raw.from_location_id),
        quantity=int(raw.quantity),
        expected_version=getattr(raw, "expected_version", None),
    )


async def batch_transfer(
    session: AsyncSession,
    *,
    product_id: int,
    to_location_id: int,
    transfers: Sequence[Any],
    user_id: Optional[int] = None,
    source: Optional[str] = None,
) -> BatchTransferResult:
    """
    Replenish one destination from several sources ("Stock In").

    Up-front, all or nothing (no transfer attempted on failure):
      - empty list / non-positive quantity / source == destination -> InvalidRequest
      - product, destination or any source missing                 -> NotFound
      - any source short                                            -> InsufficientStock
        with one details entry per short source

    Execution: every line is its own transaction, committed (or rolled back)
    before the next line starts, all under one audit batch. A failing line is
    recorded and the rest continue; the result reports it as data
    (status ok / partial / failed), never as an exception.

    Owns its transactions: work pending on the session when the prechecks pass
    is committed together with them, and the session is left outside any
    transaction on return.
    """
    lines = [_coerce_line(t) for t in transfers]
    dst = int(to_location_id)

    if not lines:
        raise InvalidRequest("transfers must not be empty")

    invalid = [ln.from_location_id for ln in lines if ln.from_location_id == dst]
    if invalid:
        raise InvalidRequest(
            "Source and destination locations must differ",
            context={"invalid_locations": invalid, "to_location_id": dst},
        )
    bad_qty = [ln.from_location_id for ln in lines if ln.quantity <= 0]
    if bad_qty:
        raise InvalidRequest(
            "quantity must be positive",
            context={"invalid_locations": bad_qty},
        )

    product = await MasterDataService.get_product(session, product_id)
    try:
        locations = await MasterDataService.get_locations(
            session, [dst, *(ln.from_location_id for ln in lines)]
        )
    except NotFound as e:
        log.warning("batch transfer rejected: missing locations %s", e.context.get("missing_locations"))
        raise

    shortages: List[Dict[str, Any]] = []
    for ln in lines:
        avail = await validate_stock_availability(
            session,
            product_id=product.id,
            location_id=ln.from_location_id,
            required_qty=ln.quantity,
        )
        if not avail.is_valid:
            shortages.append(
                {
                    "from_location_id": ln.from_location_id,
                    "from_location_name": locations[ln.from_location_id].name,
                    "current_quantity": avail.current_quantity,
                    "requested_quantity": avail.requested_quantity,
                    "shortfall": avail.shortfall,
                }
            )
    if shortages:
        log.warning(
            "batch transfer rejected product=%s to=%s short_sources=%s",
            product.id,
            dst,
            [s["from_location_id"] for s in shortages],
        )
        raise InsufficientStock(
            "Insufficient stock in one or more source locations",
            product_id=product.id,
            details=shortages,
        )

    pid = product.id
    names = {lid: loc.name for lid, loc in locations.items()}
    if session.in_transaction():
        await session.commit()

    results: List[TransferLineResult] = []
    with audit_batch(source=source or "batch_transfer") as batch:
        for ln in lines:
            line = TransferLineResult(
                from_location_id=ln.from_location_id,
                from_location_name=names[ln.from_location_id],
                quantity=ln.quantity,
                success=False,
                expected_version=ln.expected_version,
            )
            try:
                async with tx_commit(session):
                    res = await transfer_stock(
                        session,
                        product_id=pid,
                        from_location_id=ln.from_location_id,
                        to_location_id=dst,
                        quantity=ln.quantity,
                        user_id=user_id,
                        expected_from_version=ln.expected_version,
                        batch=batch,
                    )
            except VersionConflict as e:
                line.error_code = e.error_code
                line.error = e.message
                line.current_version = e.current_version
            except StockError as e:
                log.warning("batch line failed from=%s: %s", ln.from_location_id, e.message)
                line.error_code = e.error_code
                line.error = e.message
            except Exception as e:
                log.exception("batch line crashed from=%s", ln.from_location_id)
                line.error_code = "INTERNAL_ERROR"
                line.error = str(e)
            else:
                line.success = True
                line.ref = res.ref
            results.append(line)
        batch_id = batch.batch_id

    total = sum(r.quantity for r in results if r.success)
    ok_count = sum(1 for r in results if r.success)
    if ok_count == len(results):
        status = BATCH_OK
    elif ok_count == 0:
        status = BATCH_FAILED
    else:
        status = BATCH_PARTIAL

    log.info(
        "batch transfer %s product=%s to=%s status=%s total=%s (%d/%d)",
        batch_id,
        pid,
        dst,
        status,
        total,
        ok_count,
        len(results),
    )
    return BatchTransferResult(
        success=status == BATCH_OK,
        status=status,
        batch_id=batch_id,
        product_id=pid,
        to_location_id=dst,
        total_transferred=total,
        results=results,
    )


__all__ = [
    "BATCH_OK",
    "BATCH_PARTIAL",
    "BATCH_FAILED",
    "TransferLine",
    "TransferLineResult",
    "BatchTransferResult",
    "batch_transfer",
]
