# app/models/enums.py
from __future__ import annotations

from enum import StrEnum


class LedgerLogType(StrEnum):
    """
    Value stored in stock_ledger.log_type:

    - ADJUSTMENT  single-location change (stock in/out, corrections, order deduction)
    - TRANSFER    one leg of a two-location move (legs share stock_ledger.ref)
    """

    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"


class OrderStatus(StrEnum):
    """
    external_orders.internal_status. Forward-only:
    pending -> processing -> fulfilled; cancelled is terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


ORDER_STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.FULFILLED: 2,
}


class SkipReason(StrEnum):
    UNMAPPED = "unmapped"
    INSUFFICIENT_STOCK = "insufficient_stock"
    ALREADY_FULFILLED = "already_fulfilled"


__all__ = ["LedgerLogType", "OrderStatus", "ORDER_STATUS_RANK", "SkipReason"]
