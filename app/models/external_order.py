# app/models/external_order.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.enums import OrderStatus


def _uuid_hex() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExternalOrder(Base):
    """
    Order ingested from an e-commerce integration.

    - (integration_id, external_id) is the idempotency key of ingestion
    - native_status / financial_status / fulfillment_status mirror the platform
    - internal_status is owned by the fulfillment engine and only moves forward
    """

    __tablename__ = "external_orders"

    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True, default=_uuid_hex)
    integration_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    external_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    order_number: Mapped[str] = mapped_column(sa.String(100), nullable=False)

    native_status: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    financial_status: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    fulfillment_status: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)

    total: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(sa.String(10), nullable=False, default="USD")
    customer_email: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    internal_status: Mapped[str] = mapped_column(
        sa.String(50), nullable=False, default=OrderStatus.PENDING.value
    )
    fulfilled_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    fulfilled_by: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    external_created_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    items: Mapped[List["ExternalOrderItem"]] = relationship(
        "ExternalOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ExternalOrderItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        sa.UniqueConstraint("integration_id", "external_id", name="uq_external_orders_integration_ext"),
        sa.Index("ix_external_orders_status", "internal_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ExternalOrder id={self.id} ext={self.integration_id}:{self.external_id} "
            f"status={self.internal_status}>"
        )


class ExternalOrderItem(Base):
    """
    One ordered line. Invariant: 0 <= fulfilled_qty <= quantity.
    product_link_id / is_mapped are set by ingestion when a ProductLink matches.
    """

    __tablename__ = "external_order_items"

    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True, default=_uuid_hex)
    order_id: Mapped[str] = mapped_column(
        sa.String(32),
        sa.ForeignKey("external_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    external_item_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    external_product_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, default="")
    external_variant_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    name: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    sku: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    fulfilled_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False, default=0)

    product_link_id: Mapped[str | None] = mapped_column(
        sa.String(32), sa.ForeignKey("product_links.id", ondelete="SET NULL"), nullable=True
    )
    is_mapped: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)

    order: Mapped["ExternalOrder"] = relationship("ExternalOrder", back_populates="items")

    __table_args__ = (
        sa.CheckConstraint("fulfilled_qty >= 0", name="ck_order_items_fulfilled_nonneg"),
        sa.CheckConstraint("fulfilled_qty <= quantity", name="ck_order_items_no_over_fulfill"),
    )

    @property
    def remaining_qty(self) -> int:
        return int(self.quantity) - int(self.fulfilled_qty)

    def __repr__(self) -> str:
        return (
            f"<ExternalOrderItem id={self.id} qty={self.quantity} "
            f"fulfilled={self.fulfilled_qty} mapped={self.is_mapped}>"
        )
