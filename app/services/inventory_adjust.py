# app/services/inventory_adjust.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditBatch
from app.core.config import get_settings
from app.models.enums import LedgerLogType
from app.services.location_stock_service import StockDelta, apply_delta
from app.services.master_data import MasterDataService
from app.services.stock_availability_service import validate_stock_availability
from app.services.stock_errors import InsufficientStock, InvalidRequest

log = logging.getLogger("stockcore.stock")

AUTO_ADD_NOTE = "auto-add for transfer"


async def adjust_stock(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
    delta: int,
    user_id: Optional[int] = None,
    expected_version: Optional[int] = None,
    allow_negative: Optional[bool] = None,
    note: Optional[str] = None,
    batch: Optional[AuditBatch] = None,
) -> StockDelta:
    """
    Single-location manual change.

    Order of checks (nothing is written until all pass):
      1) delta == 0                              -> InvalidRequest
      2) product (not soft-deleted) / location   -> NotFound
      3) delta < 0 and result < 0, policy denies -> InsufficientStock
         (the write is then guarded by the version this check saw, so a
         concurrent change surfaces as VersionConflict)
    Then apply_delta with log_type ADJUSTMENT.

    allow_negative None falls back to settings.ALLOW_NEGATIVE_ADJUSTMENT.
    """
    d = int(delta)
    if d == 0:
        raise InvalidRequest("delta must be non-zero", context={"delta": d})

    await MasterDataService.get_product(session, product_id)
    await MasterDataService.get_location(session, location_id)

    if allow_negative is None:
        allow_negative = get_settings().ALLOW_NEGATIVE_ADJUSTMENT

    guard = expected_version
    if d < 0 and not allow_negative:
        avail = await validate_stock_availability(
            session, product_id=product_id, location_id=location_id, required_qty=-d
        )
        if not avail.is_valid:
            log.warning(
                "adjust rejected product=%s location=%s delta=%s on_hand=%s",
                product_id,
                location_id,
                d,
                avail.current_quantity,
            )
            raise InsufficientStock(
                "Insufficient stock for adjustment",
                product_id=int(product_id),
                location_id=int(location_id),
                current_quantity=avail.current_quantity,
                requested_quantity=avail.requested_quantity,
            )
        if guard is None:
            guard = avail.version

    result = await apply_delta(
        session,
        product_id=product_id,
        location_id=location_id,
        delta=d,
        user_id=user_id,
        log_type=LedgerLogType.ADJUSTMENT,
        expected_version=guard,
        note=note,
        batch=batch,
    )
    log.info(
        "adjust product=%s location=%s delta=%s -> %s (v%s)",
        product_id,
        location_id,
        d,
        result.new_quantity,
        result.new_version,
    )
    return result


async def stock_in(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
    quantity: int,
    user_id: Optional[int] = None,
    note: Optional[str] = None,
    batch: Optional[AuditBatch] = None,
) -> StockDelta:
    """Receive goods at one location (positive-only adjustment)."""
    if int(quantity) <= 0:
        raise InvalidRequest("quantity must be positive", context={"quantity": int(quantity)})
    return await adjust_stock(
        session,
        product_id=product_id,
        location_id=location_id,
        delta=int(quantity),
        user_id=user_id,
        note=note,
        batch=batch,
    )


async def top_up_shortfall(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
    required_qty: int,
    user_id: Optional[int] = None,
    batch: Optional[AuditBatch] = None,
) -> Optional[StockDelta]:
    """
    Compensating "auto-add": raise the source quantity by exactly its shortfall
    against required_qty so a following transfer can proceed. Returns None
    when there is no shortfall.
    """
    avail = await validate_stock_availability(
        session, product_id=product_id, location_id=location_id, required_qty=required_qty
    )
    if avail.is_valid:
        return None
    return await adjust_stock(
        session,
        product_id=product_id,
        location_id=location_id,
        delta=avail.shortfall,
        user_id=user_id,
        expected_version=avail.version,
        note=AUTO_ADD_NOTE,
        batch=batch,
    )


__all__ = ["AUTO_ADD_NOTE", "adjust_stock", "stock_in", "top_up_shortfall"]
