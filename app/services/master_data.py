from __future__ import annotations

from typing import Dict, Iterable, List

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.location import Location
from app.models.product import Product
from app.services.stock_errors import NotFound


class MasterDataService:
    """
    Master data lookups (products / locations) for the stock operations.
    No audit, no business rules; missing or soft-deleted rows raise NotFound.
    """

    @staticmethod
    async def get_product(session: AsyncSession, product_id: int) -> Product:
        row = (
            await session.execute(
                sa.select(Product).where(
                    Product.id == int(product_id),
                    Product.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFound(f"Product {product_id} not found", context={"product_id": product_id})
        return row

    @staticmethod
    async def get_location(session: AsyncSession, location_id: int) -> Location:
        row = await session.get(Location, int(location_id))
        if row is None:
            raise NotFound(f"Location {location_id} not found", context={"location_id": location_id})
        return row

    @staticmethod
    async def get_locations(session: AsyncSession, location_ids: Iterable[int]) -> Dict[int, Location]:
        """
        All requested locations keyed by id; any missing id -> NotFound listing
        every missing one.
        """
        ids: List[int] = list(dict.fromkeys(int(x) for x in location_ids))
        if not ids:
            return {}
        rows = (await session.execute(sa.select(Location).where(Location.id.in_(ids)))).scalars().all()
        found = {int(r.id): r for r in rows}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFound(
                "Some locations not found",
                context={"missing_locations": missing},
            )
        return found


__all__ = ["MasterDataService"]
