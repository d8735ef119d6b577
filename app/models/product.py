# app/models/product.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

if TYPE_CHECKING:
    from .location_stock import LocationStock


class Product(Base):
    """
    Product master:

    - name is the display name; base_name / variant / size / unit are the
      decomposed parts used for sorting and grouping
    - low_stock_threshold is global; per-location minimums live on location_stocks
    - deleted_at marks a soft delete (treated as not found by stock operations)
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    base_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    variant: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    size: Mapped[Decimal | None] = mapped_column(sa.Numeric(10, 3), nullable=True)
    unit: Mapped[str | None] = mapped_column(sa.String(32), nullable=True)

    low_stock_threshold: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    cost_price: Mapped[Decimal | None] = mapped_column(sa.Numeric(12, 2), nullable=True)
    retail_price: Mapped[Decimal | None] = mapped_column(sa.Numeric(12, 2), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    stocks: Mapped[List["LocationStock"]] = relationship(
        "LocationStock",
        back_populates="product",
        lazy="raise",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"
