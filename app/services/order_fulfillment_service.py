# app/services/order_fulfillment_service.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditBatch, audit_batch
from app.core.config import get_settings
from app.core.tx import tx_atomic
from app.models.enums import ORDER_STATUS_RANK, LedgerLogType, OrderStatus, SkipReason
from app.models.external_order import ExternalOrder, ExternalOrderItem
from app.models.product import Product
from app.services.audit_writer import AuditEventWriter
from app.services.location_stock_service import apply_delta
from app.services.master_data import MasterDataService
from app.services.order_fulfillment_validate import load_order, mapped_products
from app.services.stock_availability_service import validate_stock_availability
from app.services.stock_errors import (
    FulfillmentTimeout,
    InvalidRequest,
    OverFulfillment,
    StockError,
)

log = logging.getLogger("stockcore.fulfillment")


@dataclass(frozen=True)
class FulfillmentItem:
    item_id: str
    quantity: int
    product_id: Optional[int] = None
    skip_unmapped: bool = False


@dataclass
class FulfilledLine:
    item_id: str
    product_id: int
    product_name: str
    location_id: int
    quantity: int
    ledger_entry_id: int


@dataclass
class SkippedLine:
    item_id: str
    reason: str
    details: str


@dataclass
class FailedLine:
    item_id: str
    error: str
    error_code: Optional[str] = None


@dataclass
class FulfillmentResult:
    order_id: str
    order_status: str
    batch_id: Optional[str] = None
    fulfilled: List[FulfilledLine] = field(default_factory=list)
    skipped: List[SkippedLine] = field(default_factory=list)
    failed: List[FailedLine] = field(default_factory=list)
    ledger_entry_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce_item(raw: Any) -> FulfillmentItem:
    if isinstance(raw, FulfillmentItem):
        return raw
    if isinstance(raw, dict):
        return FulfillmentItem(
            item_id=str(raw["item_id"]),
            quantity=int(raw["quantity"]),
            product_id=raw.get("product_id"),
            skip_unmapped=bool(raw.get("skip_unmapped", False)),
        )
    return FulfillmentItem(
        item_id=str(raw.item_id),
        quantity=int(raw.quantity),
        product_id=getattr(raw, "product_id", None),
        skip_unmapped=bool(getattr(raw, "skip_unmapped", False)),
    )


async def _read_item_qty(session: AsyncSession, item_id: str) -> tuple[int, int]:
    row = (
        await session.execute(
            sa.select(ExternalOrderItem.quantity, ExternalOrderItem.fulfilled_qty).where(
                ExternalOrderItem.id == item_id
            )
        )
    ).one()
    return int(row[0]), int(row[1])


async def _bump_fulfilled_qty(session: AsyncSession, *, item_id: str, qty: int) -> None:
    res = await session.execute(
        sa.update(ExternalOrderItem)
        .where(
            ExternalOrderItem.id == item_id,
            ExternalOrderItem.fulfilled_qty + qty <= ExternalOrderItem.quantity,
        )
        .values(fulfilled_qty=ExternalOrderItem.fulfilled_qty + qty)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise OverFulfillment(
            "Item would be fulfilled beyond its ordered quantity",
            context={"item_id": item_id, "quantity": qty},
        )


async def _fulfill_line(
    session: AsyncSession,
    *,
    order: ExternalOrder,
    req: FulfillmentItem,
    item: ExternalOrderItem,
    mapped: Optional[Product],
    location_id: int,
    user_id: Optional[int],
    notes: Optional[str],
    batch: AuditBatch,
    result: FulfillmentResult,
) -> None:
    quantity, fulfilled_qty = await _read_item_qty(session, item.id)
    remaining = quantity - fulfilled_qty
    if remaining <= 0:
        result.skipped.append(
            SkippedLine(req.item_id, SkipReason.ALREADY_FULFILLED.value, "Item is already fully fulfilled")
        )
        return

    qty = min(int(req.quantity), remaining)

    if req.product_id is not None:
        product = await MasterDataService.get_product(session, req.product_id)
    elif mapped is not None:
        product = mapped
    else:
        details = (
            "Item is unmapped and was skipped on request"
            if req.skip_unmapped
            else "Item is not mapped to an internal product"
        )
        result.skipped.append(SkippedLine(req.item_id, SkipReason.UNMAPPED.value, details))
        return

    avail = await validate_stock_availability(
        session, product_id=product.id, location_id=location_id, required_qty=qty
    )
    if not avail.is_valid:
        log.warning(
            "fulfill %s item %s short: product=%s available=%s requested=%s",
            order.id,
            req.item_id,
            product.id,
            avail.current_quantity,
            qty,
        )
        result.skipped.append(
            SkippedLine(
                req.item_id,
                SkipReason.INSUFFICIENT_STOCK.value,
                f"Insufficient stock for {product.name}. "
                f"Available: {avail.current_quantity}, Requested: {qty}",
            )
        )
        return

    async with session.begin_nested():
        delta = await apply_delta(
            session,
            product_id=product.id,
            location_id=location_id,
            delta=-qty,
            user_id=user_id,
            log_type=LedgerLogType.ADJUSTMENT,
            expected_version=avail.version,
            ref=f"ORDER:{order.id}",
            note=notes,
            batch=batch,
        )
        await _bump_fulfilled_qty(session, item_id=item.id, qty=qty)

    result.fulfilled.append(
        FulfilledLine(
            item_id=req.item_id,
            product_id=product.id,
            product_name=product.name,
            location_id=int(location_id),
            quantity=qty,
            ledger_entry_id=delta.ledger_id,
        )
    )
    result.ledger_entry_ids.append(delta.ledger_id)


async def _advance_status(
    session: AsyncSession,
    *,
    order: ExternalOrder,
    current: str,
    user_id: Optional[int],
) -> str:
    """Recompute totals and move internal_status forward; never backwards."""
    total_qty, total_done = (
        await session.execute(
            sa.select(
                sa.func.coalesce(sa.func.sum(ExternalOrderItem.quantity), 0),
                sa.func.coalesce(sa.func.sum(ExternalOrderItem.fulfilled_qty), 0),
            ).where(ExternalOrderItem.order_id == order.id)
        )
    ).one()
    total_qty, total_done = int(total_qty), int(total_done)

    target = current
    if total_qty > 0 and total_done >= total_qty:
        target = OrderStatus.FULFILLED.value
    elif total_done > 0:
        target = OrderStatus.PROCESSING.value

    if ORDER_STATUS_RANK.get(OrderStatus(target), 0) <= ORDER_STATUS_RANK.get(OrderStatus(current), 0):
        return current

    now = datetime.now(timezone.utc)
    values: Dict[str, Any] = {"internal_status": target, "updated_at": now}
    if target == OrderStatus.FULFILLED.value:
        values["fulfilled_at"] = now
        values["fulfilled_by"] = user_id
    await session.execute(
        sa.update(ExternalOrder)
        .where(ExternalOrder.id == order.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    log.info("order %s status %s -> %s (%s/%s)", order.id, current, target, total_done, total_qty)
    return target


async def _run_fulfillment(
    session: AsyncSession,
    *,
    order_id: str,
    location_id: int,
    items: List[FulfillmentItem],
    user_id: Optional[int],
    notes: Optional[str],
) -> FulfillmentResult:
    order = await load_order(session, order_id)
    if order.internal_status == OrderStatus.CANCELLED.value:
        raise InvalidRequest(
            "Cancelled orders cannot be fulfilled",
            context={"order_id": order.id, "internal_status": order.internal_status},
        )
    await MasterDataService.get_location(session, location_id)

    by_id = {it.id: it for it in order.items}
    products = await mapped_products(session, list(order.items))
    result = FulfillmentResult(order_id=order.id, order_status=order.internal_status)

    with audit_batch(source=f"fulfillment:{order.id}") as batch:
        result.batch_id = batch.batch_id

        for req in items:
            item = by_id.get(req.item_id)
            if item is None:
                result.failed.append(
                    FailedLine(req.item_id, "Item not found in order", "NOT_FOUND")
                )
                continue
            try:
                await _fulfill_line(
                    session,
                    order=order,
                    req=req,
                    item=item,
                    mapped=products.get(item.id),
                    location_id=location_id,
                    user_id=user_id,
                    notes=notes,
                    batch=batch,
                    result=result,
                )
            except StockError as e:
                log.warning("fulfill %s item %s failed: %s", order.id, req.item_id, e.message)
                result.failed.append(FailedLine(req.item_id, e.message, e.error_code))
            except Exception as e:
                log.exception("fulfill %s item %s crashed", order.id, req.item_id)
                result.failed.append(FailedLine(req.item_id, str(e), "INTERNAL_ERROR"))

        result.order_status = await _advance_status(
            session, order=order, current=order.internal_status, user_id=user_id
        )

        await AuditEventWriter.write(
            session,
            flow="FULFILLMENT",
            event="ORDER_FULFILL",
            ref=order.id,
            user_id=user_id,
            batch=batch,
            meta={
                "order_number": order.order_number,
                "location_id": int(location_id),
                "fulfilled": len(result.fulfilled),
                "skipped": len(result.skipped),
                "failed": len(result.failed),
                "order_status": result.order_status,
                "notes": notes,
            },
        )

    return result


async def fulfill_external_order(
    session: AsyncSession,
    *,
    order_id: str,
    location_id: int,
    items: Sequence[Any],
    user_id: Optional[int] = None,
    notes: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> FulfillmentResult:
    """
    Deduct stock for the requested order lines from one location.

    Line outcomes (never raised, always reported):
      - fulfilled: stock deducted (ADJUSTMENT, guarded by the version read
        during re-validation) and fulfilled_qty bumped, in one savepoint
      - skipped:   already_fulfilled / unmapped / insufficient_stock
      - failed:    unknown item, missing override product, lost race, or any
                   unexpected error (that line's savepoint is rolled back)

    Whole-call errors: order or location missing (NotFound), cancelled order
    or empty / non-positive request (InvalidRequest), and FulfillmentTimeout
    when the run exceeds FULFILLMENT_TIMEOUT_SECONDS; nothing is kept then.
    """
    reqs = [_coerce_item(r) for r in items]
    if not reqs:
        raise InvalidRequest("items must not be empty")
    bad = [r.item_id for r in reqs if r.quantity <= 0]
    if bad:
        raise InvalidRequest("quantity must be positive", context={"item_ids": bad})

    limit = timeout_seconds if timeout_seconds is not None else get_settings().FULFILLMENT_TIMEOUT_SECONDS

    try:
        async with asyncio.timeout(limit):
            async with tx_atomic(session):
                result = await _run_fulfillment(
                    session,
                    order_id=order_id,
                    location_id=int(location_id),
                    items=reqs,
                    user_id=user_id,
                    notes=notes,
                )
    except TimeoutError:
        log.warning("fulfill %s timed out after %ss", order_id, limit)
        raise FulfillmentTimeout(
            f"Fulfillment of order {order_id} exceeded {limit} seconds",
            context={"order_id": order_id, "timeout_seconds": limit},
        )

    log.info(
        "fulfill %s at location=%s fulfilled=%d skipped=%d failed=%d status=%s",
        order_id,
        location_id,
        len(result.fulfilled),
        len(result.skipped),
        len(result.failed),
        result.order_status,
    )
    return result


__all__ = [
    "FulfillmentItem",
    "FulfilledLine",
    "SkippedLine",
    "FailedLine",
    "FulfillmentResult",
    "fulfill_external_order",
]
