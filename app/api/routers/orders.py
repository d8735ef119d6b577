# app/api/routers/orders.py
from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_caller, get_session
from app.api.routers.orders_schemas import (
    FulfillmentOut,
    FulfillmentValidationOut,
    FulfillRequest,
    IngestOut,
)
from app.core.tx import tx_commit
from app.services.order_fulfillment_service import FulfillmentItem, fulfill_external_order
from app.services.order_fulfillment_validate import validate_order_fulfillment
from app.services.order_ingest_service import ingest_normalized_order
from app.services.order_ingest_types import NormalizedOrder

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/external/{integration_id}", response_model=IngestOut, status_code=status.HTTP_200_OK)
async def ingest_external_order(
    integration_id: str,
    order: NormalizedOrder,
    session: AsyncSession = Depends(get_session),
) -> IngestOut:
    """
    Upsert a normalised platform order. Called by the webhook layer after it
    has verified the signature, so no caller identity is required here.
    """
    async with tx_commit(session):
        res = await ingest_normalized_order(session, integration_id=integration_id, order=order)
    return IngestOut(**asdict(res))


@router.get("/{order_id}/fulfill/validate", response_model=FulfillmentValidationOut)
async def validate_fulfillment(
    order_id: str,
    location_id: Optional[int] = Query(None, ge=1),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_caller),
) -> FulfillmentValidationOut:
    res = await validate_order_fulfillment(session, order_id, location_id)
    return FulfillmentValidationOut(**res.to_dict())


@router.post("/{order_id}/fulfill", response_model=FulfillmentOut, status_code=status.HTTP_200_OK)
async def fulfill_order(
    order_id: str,
    req: FulfillRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_caller),
) -> FulfillmentOut:
    """
    Always 200 once the order is accepted for processing; per-line outcomes
    are in fulfilled / skipped / failed.
    """
    items = [
        FulfillmentItem(
            item_id=it.item_id,
            quantity=it.quantity,
            product_id=it.product_id,
            skip_unmapped=it.skip_unmapped,
        )
        for it in req.items
    ]
    async with tx_commit(session):
        res = await fulfill_external_order(
            session,
            order_id=order_id,
            location_id=req.location_id,
            items=items,
            user_id=caller.user_id,
            notes=req.notes,
        )
    return FulfillmentOut(**res.to_dict())
