# app/api/routers/inventory_schemas.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AdjustRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: int = Field(..., ge=1)
    location_id: int = Field(..., ge=1)
    delta: int = Field(..., description="signed change; 0 is rejected")
    expected_version: Optional[int] = Field(
        None, ge=0, description="version read by the client; 0 = row not created yet"
    )
    allow_negative: Optional[bool] = Field(
        None, description="None falls back to ALLOW_NEGATIVE_ADJUSTMENT"
    )
    note: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _non_zero(self) -> "AdjustRequest":
        if self.delta == 0:
            raise ValueError("delta must be non-zero")
        return self


class StockDeltaOut(BaseModel):
    product_id: int
    location_id: int
    delta: int
    before_quantity: int
    new_quantity: int
    new_version: int
    ledger_id: int
    created: bool


class TransferRequest(BaseModel):
    product_id: int = Field(..., ge=1)
    from_location_id: int = Field(..., ge=1)
    to_location_id: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1)
    expected_from_version: Optional[int] = Field(None, ge=0)
    expected_to_version: Optional[int] = Field(None, ge=0, description="0 = destination row not created yet")

    @model_validator(mode="after")
    def _distinct_locations(self) -> "TransferRequest":
        if self.from_location_id == self.to_location_id:
            raise ValueError("from_location_id and to_location_id must differ")
        return self


class TransferOut(BaseModel):
    ref: str
    batch_id: str
    product_id: int
    from_location_id: int
    to_location_id: int
    quantity: int
    from_quantity: int
    from_version: int
    to_quantity: int
    to_version: int
    ledger_entry_ids: List[int]
    audit_event_id: int


class BatchTransferLineIn(BaseModel):
    from_location_id: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1)
    expected_version: Optional[int] = Field(None, ge=0)


class BatchTransferRequest(BaseModel):
    """
    Stock In: several sources -> one destination. Source == destination is
    reported by the service with the full list of offending ids.
    """

    product_id: int = Field(..., ge=1)
    to_location_id: int = Field(..., ge=1)
    transfers: List[BatchTransferLineIn] = Field(..., min_length=1)


class BatchTransferLineOut(BaseModel):
    from_location_id: int
    from_location_name: str
    quantity: int
    success: bool
    ref: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    expected_version: Optional[int] = None
    current_version: Optional[int] = None


class BatchTransferOut(BaseModel):
    success: bool
    status: str
    batch_id: str
    product_id: int
    to_location_id: int
    total_transferred: int
    results: List[BatchTransferLineOut]


class ProductLocationOut(BaseModel):
    location_id: int
    location_name: str
    quantity: int
    version: int
    min_quantity: int


class ProductLocationsOut(BaseModel):
    product_id: int
    product_name: str
    total_quantity: int
    locations: List[ProductLocationOut]
