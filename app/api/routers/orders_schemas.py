# app/api/routers/orders_schemas.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class IngestOut(BaseModel):
    order_id: str
    order_number: str
    created: bool
    mapped_items: int
    unmapped_items: int


class LocationAvailabilityOut(BaseModel):
    location_id: int
    location_name: str
    available: int


class ItemMappingOut(BaseModel):
    product_id: int
    product_name: str
    available_by_location: List[LocationAvailabilityOut] = Field(default_factory=list)


class ItemValidationOut(BaseModel):
    item_id: str
    name: str
    sku: Optional[str] = None
    requested_qty: int
    fulfilled_qty: int
    remaining_qty: int
    is_mapped: bool
    mapping: Optional[ItemMappingOut] = None
    issues: List[str] = Field(default_factory=list)


class FulfillmentValidationOut(BaseModel):
    order_id: str
    order_number: str
    internal_status: str
    can_fulfill: bool
    requires_attention: bool
    location_id: Optional[int] = None
    suggested_location_id: Optional[int] = None
    items: List[ItemValidationOut] = Field(default_factory=list)


class FulfillItemIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    product_id: Optional[int] = Field(None, ge=1, description="manual mapping override")
    skip_unmapped: bool = False


class FulfillRequest(BaseModel):
    location_id: int = Field(..., ge=1)
    items: List[FulfillItemIn] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=1000)


class FulfilledLineOut(BaseModel):
    item_id: str
    product_id: int
    product_name: str
    location_id: int
    quantity: int
    ledger_entry_id: int


class SkippedLineOut(BaseModel):
    item_id: str
    reason: str
    details: str


class FailedLineOut(BaseModel):
    item_id: str
    error: str
    error_code: Optional[str] = None


class FulfillmentOut(BaseModel):
    order_id: str
    order_status: str
    batch_id: Optional[str] = None
    fulfilled: List[FulfilledLineOut] = Field(default_factory=list)
    skipped: List[SkippedLineOut] = Field(default_factory=list)
    failed: List[FailedLineOut] = Field(default_factory=list)
    ledger_entry_ids: List[int] = Field(default_factory=list)
