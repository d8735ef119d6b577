from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class AuditEvent(Base):
    """
    audit_events:
      - category: flow name, e.g. "INVENTORY" / "FULFILLMENT"
      - event:    e.g. "TRANSFER" / "ORDER_FULFILL"
      - ref:      business reference (transfer ref, order id ...)
      - batch_id: audit batch correlation id
      - meta:     JSON payload (names, quantities, locations ...)
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    event: Mapped[str] = mapped_column(String(64), nullable=False)
    ref: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    meta: Mapped[dict] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    __table_args__ = (
        Index("ix_audit_events_category", "category"),
        Index("ix_audit_events_ref", "ref"),
        Index("ix_audit_events_batch_id", "batch_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEvent id={self.id} category={self.category} event={self.event} "
            f"ref={self.ref} batch_id={self.batch_id}>"
        )
