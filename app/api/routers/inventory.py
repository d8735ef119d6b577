# app/api/routers/inventory.py
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_caller, get_session
from app.api.routers.inventory_schemas import (
    AdjustRequest,
    BatchTransferOut,
    BatchTransferRequest,
    ProductLocationsOut,
    StockDeltaOut,
    TransferOut,
    TransferRequest,
)
from app.core.tx import tx_commit
from app.services.batch_transfer_service import batch_transfer
from app.services.inventory_adjust import adjust_stock
from app.services.location_stock_service import get_product_locations
from app.services.master_data import MasterDataService
from app.services.transfer_service import transfer_stock

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.post("/adjust", response_model=StockDeltaOut, status_code=status.HTTP_200_OK)
async def adjust_inventory(
    req: AdjustRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_caller),
) -> StockDeltaOut:
    async with tx_commit(session):
        res = await adjust_stock(
            session,
            product_id=req.product_id,
            location_id=req.location_id,
            delta=req.delta,
            user_id=caller.user_id,
            expected_version=req.expected_version,
            allow_negative=req.allow_negative,
            note=req.note,
        )
    return StockDeltaOut(**asdict(res))


@router.post("/transfer", response_model=TransferOut, status_code=status.HTTP_200_OK)
async def transfer_inventory(
    req: TransferRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_caller),
) -> TransferOut:
    """
    Single transfer. 400 on shortfall (context carries current_quantity /
    shortfall), 409 when expected_from_version or expected_to_version is stale.
    """
    async with tx_commit(session):
        res = await transfer_stock(
            session,
            product_id=req.product_id,
            from_location_id=req.from_location_id,
            to_location_id=req.to_location_id,
            quantity=req.quantity,
            user_id=caller.user_id,
            expected_from_version=req.expected_from_version,
            expected_to_version=req.expected_to_version,
        )
    return TransferOut(**res.to_dict())


@router.post(
    "/transfer/batch",
    response_model=BatchTransferOut,
    responses={207: {"model": BatchTransferOut, "description": "partial success"}},
)
async def batch_transfer_inventory(
    req: BatchTransferRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    """
    200 when every line succeeded, 207 otherwise; the body always lists the
    per-line outcome. Each line is committed by the service on its own.
    """
    res = await batch_transfer(
        session,
        product_id=req.product_id,
        to_location_id=req.to_location_id,
        transfers=req.transfers,
        user_id=caller.user_id,
        source=f"http:{request.url.path}",
    )
    body = BatchTransferOut(**res.to_dict())
    code = status.HTTP_200_OK if res.success else status.HTTP_207_MULTI_STATUS
    return JSONResponse(status_code=code, content=body.model_dump())


@router.get("/product/{product_id}/locations", response_model=ProductLocationsOut)
async def product_locations(
    product_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_caller),
) -> ProductLocationsOut:
    """Quantity + version per location (0 / 0 where the product never moved)."""
    product = await MasterDataService.get_product(session, product_id)
    rows = await get_product_locations(session, product_id=product.id)
    return ProductLocationsOut(
        product_id=product.id,
        product_name=product.name,
        total_quantity=sum(r["quantity"] for r in rows),
        locations=rows,
    )
