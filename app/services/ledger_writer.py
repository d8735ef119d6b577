from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditBatch
from app.models.enums import LedgerLogType
from app.models.stock_ledger import StockLedgerEntry


async def write_ledger(
    session: AsyncSession,
    *,
    product_id: int,
    location_id: int,
    delta: int,
    after_qty: int,
    log_type: Union[str, LedgerLogType],
    user_id: Optional[int] = None,
    ref: Optional[str] = None,
    note: Optional[str] = None,
    batch: Optional[AuditBatch] = None,
    occurred_at: Optional[datetime] = None,
) -> int:
    """
    Append one stock_ledger row and return its id.

    - never called on its own for a stock change: location_stock_service pairs
      it with the cache update inside one atomic unit
    - a closed batch raises before anything is written
    """
    if batch is not None:
        batch.require_open()

    values = {
        "product_id": int(product_id),
        "location_id": int(location_id),
        "user_id": user_id,
        "delta": int(delta),
        "after_qty": int(after_qty),
        "log_type": LedgerLogType(log_type).value,
        "ref": ref,
        "note": note,
        "batch_id": batch.batch_id if batch is not None else None,
    }
    if occurred_at is not None:
        values["created_at"] = occurred_at

    res = await session.execute(
        sa.insert(StockLedgerEntry).values(**values).returning(StockLedgerEntry.id)
    )
    new_id = int(res.scalar_one())

    if batch is not None:
        batch.record_ledger(new_id)
    return new_id
