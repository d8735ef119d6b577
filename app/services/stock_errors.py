# app/services/stock_errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


class StockError(Exception):
    """
    Base of every typed failure of the stock engine.

    error_code / http_status let the API layer build a Problem body without
    knowing the concrete class; context carries machine-readable values.
    """

    error_code = "STOCK_ERROR"
    http_status = 400

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})


class InvalidRequest(StockError):
    """Malformed input; rejected before any write."""

    error_code = "INVALID_REQUEST"
    http_status = 422


class NotFound(StockError):
    """Product / location / order / item missing or soft-deleted."""

    error_code = "NOT_FOUND"
    http_status = 404


class VersionConflict(StockError):
    """Optimistic lock failure; re-read and retry."""

    error_code = "OPTIMISTIC_LOCK_ERROR"
    http_status = 409

    def __init__(
        self,
        *,
        product_id: int,
        location_id: int,
        expected_version: Optional[int],
        current_version: Optional[int],
    ) -> None:
        super().__init__(
            "Inventory was modified by another user",
            context={
                "product_id": int(product_id),
                "location_id": int(location_id),
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )
        self.product_id = int(product_id)
        self.location_id = int(location_id)
        self.expected_version = expected_version
        self.current_version = current_version


class InsufficientStock(StockError):
    """Requested deduction exceeds what is on hand."""

    error_code = "INVENTORY_INSUFFICIENT_STOCK"
    http_status = 400

    def __init__(
        self,
        message: str = "Insufficient stock",
        *,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
        current_quantity: Optional[int] = None,
        requested_quantity: Optional[int] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        shortfall = None
        if current_quantity is not None and requested_quantity is not None:
            shortfall = max(0, int(requested_quantity) - int(current_quantity))
        ctx: Dict[str, Any] = {
            "product_id": product_id,
            "location_id": location_id,
            "current_quantity": current_quantity,
            "requested_quantity": requested_quantity,
            "shortfall": shortfall,
        }
        super().__init__(message, context={k: v for k, v in ctx.items() if v is not None})
        self.product_id = product_id
        self.location_id = location_id
        self.current_quantity = current_quantity
        self.requested_quantity = requested_quantity
        self.shortfall = shortfall
        self.details: List[Dict[str, Any]] = list(details or [])


class OverFulfillment(StockError):
    """fulfilled_qty would exceed the ordered quantity (lost a concurrent race)."""

    error_code = "OVER_FULFILLMENT"
    http_status = 409


class FulfillmentTimeout(StockError):
    error_code = "FULFILLMENT_TIMEOUT"
    http_status = 504


__all__ = [
    "StockError",
    "InvalidRequest",
    "NotFound",
    "VersionConflict",
    "InsufficientStock",
    "OverFulfillment",
    "FulfillmentTimeout",
]
