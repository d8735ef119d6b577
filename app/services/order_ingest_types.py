# app/services/order_ingest_types.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NormalizedCustomer(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    email: Optional[str] = None
    name: Optional[str] = None


class NormalizedLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    external_id: str = Field(..., min_length=1, alias="externalId")
    external_product_id: Optional[str] = Field(default=None, alias="externalProductId")
    external_variant_id: Optional[str] = Field(default=None, alias="externalVariantId")
    name: str = Field(..., min_length=1)
    variant_name: Optional[str] = Field(default=None, alias="variantName")
    sku: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, alias="unitPrice")


class NormalizedOrder(BaseModel):
    """
    Platform-neutral order, produced by the per-platform normalisers upstream
    of this service. Accepts snake_case or camelCase keys.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    external_id: str = Field(..., min_length=1, alias="externalId")
    external_order_number: str = Field(..., min_length=1, alias="externalOrderNumber")
    platform: str = Field(..., min_length=1)
    native_status: str = Field(..., alias="nativeStatus")
    financial_status: Optional[str] = Field(default=None, alias="financialStatus")
    fulfillment_status: Optional[str] = Field(default=None, alias="fulfillmentStatus")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    customer: NormalizedCustomer = Field(default_factory=NormalizedCustomer)
    line_items: List[NormalizedLineItem] = Field(default_factory=list, alias="lineItems")
    currency: str = Field(default="USD", max_length=10)
    total: Decimal = Field(default=Decimal("0"), ge=0)


__all__ = ["NormalizedCustomer", "NormalizedLineItem", "NormalizedOrder"]
