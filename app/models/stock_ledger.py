# app/models/stock_ledger.py
from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockLedgerEntry(Base):
    """
    Stock ledger (append only, never updated or deleted).

    - delta is signed; after_qty is location_stocks.quantity right after this entry
    - the two legs of one transfer share the same ref
    - batch_id correlates every entry written by one logical user action
    """

    __tablename__ = "stock_ledger"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    location_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    user_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)

    delta: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    after_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    log_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)

    ref: Mapped[str | None] = mapped_column(sa.String(128), nullable=True)
    note: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        sa.Index("ix_ledger_product_location", "product_id", "location_id"),
        sa.Index("ix_ledger_created_at", "created_at"),
        sa.Index("ix_ledger_batch_id", "batch_id"),
        sa.Index("ix_ledger_ref", "ref"),
    )

    def __repr__(self) -> str:
        return (
            f"<Ledger {self.log_type} product={self.product_id} location={self.location_id} "
            f"delta={self.delta} after={self.after_qty} ref={self.ref} batch_id={self.batch_id}>"
        )
