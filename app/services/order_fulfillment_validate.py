# app/services/order_fulfillment_validate.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.external_order import ExternalOrder, ExternalOrderItem
from app.models.product import Product
from app.models.product_link import ProductLink
from app.services.location_stock_service import get_product_locations
from app.services.stock_errors import NotFound


@dataclass
class LocationAvailability:
    location_id: int
    location_name: str
    available: int


@dataclass
class ItemMapping:
    product_id: int
    product_name: str
    available_by_location: List[LocationAvailability] = field(default_factory=list)


@dataclass
class ItemValidation:
    item_id: str
    name: str
    sku: Optional[str]
    requested_qty: int
    fulfilled_qty: int
    remaining_qty: int
    is_mapped: bool
    mapping: Optional[ItemMapping] = None
    issues: List[str] = field(default_factory=list)


@dataclass
class FulfillmentValidation:
    order_id: str
    order_number: str
    internal_status: str
    can_fulfill: bool
    requires_attention: bool
    location_id: Optional[int]
    suggested_location_id: Optional[int]
    items: List[ItemValidation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def load_order(session: AsyncSession, order_id: str) -> ExternalOrder:
    """Order with items, freshly read (identity-map copies are overwritten)."""
    order = (
        await session.execute(
            sa.select(ExternalOrder)
            .where(ExternalOrder.id == str(order_id))
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if order is None:
        raise NotFound(f"Order {order_id} not found", context={"order_id": order_id})
    return order


async def mapped_products(session: AsyncSession, items: List[ExternalOrderItem]) -> Dict[str, Product]:
    """item_id -> live (not soft-deleted) internal product, for mapped items only."""
    link_ids = {it.product_link_id for it in items if it.is_mapped and it.product_link_id}
    if not link_ids:
        return {}
    rows = (
        await session.execute(
            sa.select(ProductLink.id, Product)
            .join(Product, Product.id == ProductLink.internal_product_id)
            .where(ProductLink.id.in_(link_ids), Product.deleted_at.is_(None))
        )
    ).all()
    by_link = {link_id: product for link_id, product in rows}
    return {
        it.id: by_link[it.product_link_id]
        for it in items
        if it.is_mapped and it.product_link_id in by_link
    }


def _suggest_location(items: List[ItemValidation]) -> Optional[int]:
    """
    Location that can satisfy the most outstanding mapped items on its own.
    Ties go to the lowest location id; None when no location satisfies any.
    """
    scores: Dict[int, int] = {}
    for it in items:
        if it.mapping is None or it.remaining_qty <= 0:
            continue
        for loc in it.mapping.available_by_location:
            hit = 1 if loc.available >= it.remaining_qty else 0
            scores[loc.location_id] = scores.get(loc.location_id, 0) + hit

    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    if not ranked or ranked[0][1] == 0:
        return None
    return ranked[0][0]


async def validate_order_fulfillment(
    session: AsyncSession,
    order_id: str,
    location_id: Optional[int] = None,
) -> FulfillmentValidation:
    """
    Read-only readiness check of an external order.

    Per item: remaining quantity, mapping, availability per location and the
    issues found (unmapped / insufficient stock / already fulfilled).

    - can_fulfill        no item has any issue
    - requires_attention some item is unmapped or short
    - location_id None   availability is the sum across locations, and a
                         suggested_location_id is computed
    """
    order = await load_order(session, order_id)
    products = await mapped_products(session, list(order.items))

    out: List[ItemValidation] = []
    has_unmapped = has_short = False
    locations_cache: Dict[int, List[Dict[str, Any]]] = {}

    for item in order.items:
        remaining = int(item.quantity) - int(item.fulfilled_qty)
        v = ItemValidation(
            item_id=item.id,
            name=item.name,
            sku=item.sku,
            requested_qty=int(item.quantity),
            fulfilled_qty=int(item.fulfilled_qty),
            remaining_qty=remaining,
            is_mapped=item.id in products,
        )

        product = products.get(item.id)
        if product is None:
            v.issues.append("Item is not mapped to an internal product")
            has_unmapped = True
        else:
            if product.id not in locations_cache:
                locations_cache[product.id] = await get_product_locations(session, product_id=product.id)
            per_loc = locations_cache[product.id]
            v.mapping = ItemMapping(
                product_id=product.id,
                product_name=product.name,
                available_by_location=[
                    LocationAvailability(
                        location_id=r["location_id"],
                        location_name=r["location_name"],
                        available=r["quantity"],
                    )
                    for r in per_loc
                ],
            )
            if location_id is not None:
                available = next(
                    (r["quantity"] for r in per_loc if r["location_id"] == int(location_id)),
                    0,
                )
                if available < remaining:
                    v.issues.append(
                        f"Insufficient stock at selected location (available: {available}, needed: {remaining})"
                    )
                    has_short = True
            else:
                total = sum(r["quantity"] for r in per_loc)
                if total < remaining:
                    v.issues.append(f"Insufficient total stock (available: {total}, needed: {remaining})")
                    has_short = True

        if remaining <= 0:
            v.issues.append("Item is already fully fulfilled")

        out.append(v)

    return FulfillmentValidation(
        order_id=order.id,
        order_number=order.order_number,
        internal_status=order.internal_status,
        can_fulfill=bool(out) and all(not it.issues for it in out),
        requires_attention=has_unmapped or has_short,
        location_id=int(location_id) if location_id is not None else None,
        suggested_location_id=_suggest_location(out) if location_id is None else None,
        items=out,
    )


__all__ = [
    "LocationAvailability",
    "ItemMapping",
    "ItemValidation",
    "FulfillmentValidation",
    "load_order",
    "mapped_products",
    "validate_order_fulfillment",
]
