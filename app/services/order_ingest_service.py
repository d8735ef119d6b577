# app/services/order_ingest_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.tx import tx_atomic
from app.models.external_order import ExternalOrder, ExternalOrderItem
from app.models.product_link import ProductLink
from app.services.order_ingest_types import NormalizedLineItem, NormalizedOrder

log = logging.getLogger("stockcore.ingest")


@dataclass(frozen=True)
class IngestResult:
    order_id: str
    order_number: str
    created: bool
    mapped_items: int
    unmapped_items: int


async def find_product_link(
    session: AsyncSession,
    *,
    integration_id: str,
    external_product_id: Optional[str],
    external_variant_id: Optional[str],
) -> Optional[ProductLink]:
    """Exact (integration, product, variant) match; a NULL variant only matches NULL."""
    if not external_product_id:
        return None
    variant_cond = (
        ProductLink.external_variant_id.is_(None)
        if external_variant_id is None
        else ProductLink.external_variant_id == external_variant_id
    )
    stmt = (
        sa.select(ProductLink)
        .where(
            ProductLink.integration_id == integration_id,
            ProductLink.external_product_id == external_product_id,
            variant_cond,
        )
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


def _item_name(li: NormalizedLineItem) -> str:
    if li.variant_name:
        return f"{li.name} - {li.variant_name}"
    return li.name


async def ingest_normalized_order(
    session: AsyncSession,
    *,
    integration_id: str,
    order: NormalizedOrder,
) -> IngestResult:
    """
    Idempotent upsert of one platform order keyed by (integration_id, external_id).

    - items upserted by (order_id, external_item_id), auto-mapped via ProductLink
    - re-ingest refreshes platform fields only; internal_status / fulfilled_*
      belong to the fulfillment engine and are left alone
    - an item's quantity never drops below its fulfilled_qty
    """
    now = datetime.now(timezone.utc)

    async with tx_atomic(session):
        row = (
            await session.execute(
                sa.select(ExternalOrder)
                .where(
                    ExternalOrder.integration_id == integration_id,
                    ExternalOrder.external_id == order.external_id,
                )
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

        created = row is None
        if row is None:
            row = ExternalOrder(
                integration_id=integration_id,
                external_id=order.external_id,
                created_at=now,
                items=[],
            )
            session.add(row)

        row.order_number = order.external_order_number
        row.native_status = order.native_status
        row.financial_status = order.financial_status
        row.fulfillment_status = order.fulfillment_status
        row.total = order.total
        row.currency = order.currency
        row.customer_email = order.customer.email
        row.customer_name = order.customer.name
        row.external_created_at = order.created_at
        row.updated_at = now
        await session.flush()

        existing = {it.external_item_id: it for it in row.items}
        shipped = {}
        if not created:
            shipped = dict(
                (
                    await session.execute(
                        sa.select(ExternalOrderItem.id, ExternalOrderItem.fulfilled_qty).where(
                            ExternalOrderItem.order_id == row.id
                        )
                    )
                ).all()
            )
        mapped = unmapped = 0

        for pos, li in enumerate(order.line_items):
            link = await find_product_link(
                session,
                integration_id=integration_id,
                external_product_id=li.external_product_id,
                external_variant_id=li.external_variant_id,
            )
            item = existing.get(li.external_id)
            is_new = item is None
            if is_new:
                item = ExternalOrderItem(
                    external_item_id=li.external_id,
                    external_product_id=li.external_product_id or "",
                    external_variant_id=li.external_variant_id,
                    fulfilled_qty=0,
                )
            floor = 0 if is_new else int(shipped.get(item.id, 0))
            if li.quantity < floor:
                log.warning(
                    "ingest %s item %s: quantity %s below fulfilled %s, kept at fulfilled",
                    order.external_id,
                    li.external_id,
                    li.quantity,
                    floor,
                )

            item.position = pos
            item.name = _item_name(li)
            item.sku = li.sku
            item.quantity = max(int(li.quantity), floor)
            item.price = li.unit_price
            item.product_link_id = link.id if link is not None else None
            item.is_mapped = link is not None
            if is_new:
                row.items.append(item)
            if link is not None:
                mapped += 1
            else:
                unmapped += 1

        await session.flush()

    log.info(
        "ingest %s/%s order=%s created=%s mapped=%s unmapped=%s",
        integration_id,
        order.external_order_number,
        row.id,
        created,
        mapped,
        unmapped,
    )
    return IngestResult(
        order_id=row.id,
        order_number=row.order_number,
        created=created,
        mapped_items=mapped,
        unmapped_items=unmapped,
    )


__all__ = ["IngestResult", "find_product_link", "ingest_normalized_order"]
