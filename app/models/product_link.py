from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ProductLink(Base):
    """
    External product/variant of one integration -> internal product.

    external_variant_id is NULL for platforms / products without variants.
    """

    __tablename__ = "product_links"

    id: Mapped[str] = mapped_column(
        sa.String(32), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    integration_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    internal_product_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    external_product_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    external_variant_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    external_sku: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    external_title: Mapped[str | None] = mapped_column(sa.String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        sa.UniqueConstraint(
            "integration_id",
            "external_product_id",
            "external_variant_id",
            name="uq_product_links_integration_external",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ProductLink {self.integration_id}:{self.external_product_id}/"
            f"{self.external_variant_id} -> product={self.internal_product_id}>"
        )
