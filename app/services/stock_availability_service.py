# app/services/stock_availability_service.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.location_stock_service import get_location_stock, get_total_quantity


@dataclass(frozen=True)
class StockAvailability:
    is_valid: bool
    current_quantity: int
    requested_quantity: int
    shortfall: int
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StockAvailabilityService:
    """
    Read-only availability checks.

    - missing location_stocks row reads as quantity 0 / version 0
    - shortfall = max(0, requested - current); is_valid <=> shortfall == 0
    - location_id None checks the sum across every location (version is 0
      there, there is no single row to guard)
    """

    @staticmethod
    async def validate(
        session: AsyncSession,
        *,
        product_id: int,
        location_id: Optional[int],
        required_qty: int,
    ) -> StockAvailability:
        required = int(required_qty)
        if location_id is None:
            current = await get_total_quantity(session, product_id=product_id)
            version = 0
        else:
            level = await get_location_stock(session, product_id=product_id, location_id=location_id)
            current = level.quantity if level is not None else 0
            version = level.version if level is not None else 0

        shortfall = max(0, required - current)
        return StockAvailability(
            is_valid=shortfall == 0,
            current_quantity=current,
            requested_quantity=required,
            shortfall=shortfall,
            version=version,
        )


async def validate_stock_availability(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: Optional[int],
    required_qty: int,
) -> StockAvailability:
    return await StockAvailabilityService.validate(
        session,
        product_id=product_id,
        location_id=location_id,
        required_qty=required_qty,
    )


__all__ = ["StockAvailability", "StockAvailabilityService", "validate_stock_availability"]
