# app/models/location_stock.py
from __future__ import annotations

from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

if TYPE_CHECKING:
    from .location import Location
    from .product import Product


class LocationStock(Base):
    """
    Current level per (product_id, location_id):

    - quantity is the cached sum of every stock_ledger.delta for the pair
    - version increments by exactly 1 on every write (optimistic lock)
    - rows are created lazily on first movement and never deleted
    - quantity / version are written only by app.services.location_stock_service
    """

    __tablename__ = "location_stocks"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )
    location_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("locations.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    min_quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_location_stocks_product_location"),
        Index("ix_location_stocks_location", "location_id"),
    )

    product: Mapped["Product"] = relationship("Product", back_populates="stocks", lazy="raise")
    location: Mapped["Location"] = relationship("Location", lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<LocationStock product={self.product_id} location={self.location_id} "
            f"qty={self.quantity} v={self.version}>"
        )
