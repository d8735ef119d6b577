# tests/factories.py
from __future__ import annotations

import uuid
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.external_order import ExternalOrder, ExternalOrderItem
from app.models.location import Location
from app.models.product import Product
from app.models.product_link import ProductLink
from app.services.location_stock_service import apply_delta

INTEGRATION_ID = "int-shop-1"


async def make_product(session: AsyncSession, name: str = "Cat Food A") -> Product:
    obj = Product(name=name, base_name=name, unit="bag")
    session.add(obj)
    await session.flush()
    return obj


async def make_location(session: AsyncSession, name: Optional[str] = None) -> Location:
    loc = Location(name=name or f"LOC-{uuid.uuid4().hex[:6]}")
    session.add(loc)
    await session.flush()
    return loc


async def put_stock(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
    qty: int,
):
    """Seed stock through the real ledger path so cache and ledger agree."""
    return await apply_delta(session, product_id=product_id, location_id=location_id, delta=qty, user_id=1)


async def make_link(
    session: AsyncSession,
    *,
    product_id: int,
    external_product_id: str,
    external_variant_id: Optional[str] = None,
    integration_id: str = INTEGRATION_ID,
) -> ProductLink:
    link = ProductLink(
        integration_id=integration_id,
        internal_product_id=product_id,
        external_product_id=external_product_id,
        external_variant_id=external_variant_id,
    )
    session.add(link)
    await session.flush()
    return link


async def make_order(
    session: AsyncSession,
    *,
    items: Iterable[dict],
    integration_id: str = INTEGRATION_ID,
    status: str = "pending",
) -> ExternalOrder:
    """
    items: dicts with name, quantity and optionally fulfilled_qty / link.
    """
    ext = uuid.uuid4().hex[:10]
    order = ExternalOrder(
        integration_id=integration_id,
        external_id=ext,
        order_number=f"#{ext}",
        native_status="paid",
        internal_status=status,
        items=[],
    )
    for pos, it in enumerate(items):
        link: Optional[ProductLink] = it.get("link")
        order.items.append(
            ExternalOrderItem(
                position=pos,
                external_item_id=f"li-{pos}",
                external_product_id=link.external_product_id if link else f"ext-{pos}",
                name=it.get("name", f"Item {pos}"),
                quantity=int(it["quantity"]),
                fulfilled_qty=int(it.get("fulfilled_qty", 0)),
                product_link_id=link.id if link else None,
                is_mapped=link is not None,
            )
        )
    session.add(order)
    await session.flush()
    return order
