# tests/services/test_inventory_adjust.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.stock_ledger import StockLedgerEntry
from app.services import inventory_adjust
from app.services.inventory_adjust import AUTO_ADD_NOTE, adjust_stock, stock_in, top_up_shortfall
from app.services.location_stock_service import get_location_stock, get_quantity
from app.services.stock_availability_service import validate_stock_availability
from app.services.stock_errors import InsufficientStock, InvalidRequest, NotFound, VersionConflict
from tests.factories import make_location, make_product, put_stock

pytestmark = pytest.mark.asyncio


async def _ledger_count(session: AsyncSession) -> int:
    return int((await session.execute(sa.select(sa.func.count(StockLedgerEntry.id)))).scalar_one())


async def test_zero_delta_rejected(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    with pytest.raises(InvalidRequest):
        await adjust_stock(session, product_id=p.id, location_id=loc.id, delta=0, user_id=1)
    assert await _ledger_count(session) == 0


async def test_unknown_or_deleted_product_is_not_found(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)

    with pytest.raises(NotFound):
        await adjust_stock(session, product_id=p.id + 999, location_id=loc.id, delta=1)
    with pytest.raises(NotFound):
        await adjust_stock(session, product_id=p.id, location_id=loc.id + 999, delta=1)

    p.deleted_at = datetime.now(timezone.utc)
    await session.flush()
    with pytest.raises(NotFound):
        await adjust_stock(session, product_id=p.id, location_id=loc.id, delta=1)


async def test_negative_below_zero_refused_by_default(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=loc.id, qty=5)

    with pytest.raises(InsufficientStock) as ei:
        await adjust_stock(session, product_id=p.id, location_id=loc.id, delta=-8, user_id=1)

    assert ei.value.current_quantity == 5
    assert ei.value.requested_quantity == 8
    assert ei.value.shortfall == 3
    assert await get_quantity(session, product_id=p.id, location_id=loc.id) == 5
    assert await _ledger_count(session) == 1


async def test_negative_allowed_by_flag(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=loc.id, qty=5)

    res = await adjust_stock(
        session, product_id=p.id, location_id=loc.id, delta=-8, user_id=1, allow_negative=True
    )
    assert res.new_quantity == -3


async def test_adjust_honours_expected_version(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=loc.id, qty=5)

    with pytest.raises(VersionConflict):
        await adjust_stock(
            session, product_id=p.id, location_id=loc.id, delta=2, expected_version=7
        )
    res = await adjust_stock(
        session, product_id=p.id, location_id=loc.id, delta=2, expected_version=1, note="recount"
    )
    assert (res.new_quantity, res.new_version) == (7, 2)

    last = (
        await session.execute(sa.select(StockLedgerEntry).order_by(StockLedgerEntry.id.desc()).limit(1))
    ).scalar_one()
    assert last.note == "recount"


async def test_stock_in_positive_only(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    with pytest.raises(InvalidRequest):
        await stock_in(session, product_id=p.id, location_id=loc.id, quantity=0)
    res = await stock_in(session, product_id=p.id, location_id=loc.id, quantity=9)
    assert res.new_quantity == 9


async def test_availability_shortfall(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=loc.id, qty=5)

    avail = await validate_stock_availability(session, product_id=p.id, location_id=loc.id, required_qty=8)
    assert avail.is_valid is False
    assert (avail.current_quantity, avail.requested_quantity, avail.shortfall, avail.version) == (5, 8, 3, 1)

    ok = await validate_stock_availability(session, product_id=p.id, location_id=loc.id, required_qty=5)
    assert ok.is_valid is True
    assert ok.shortfall == 0


async def test_top_up_shortfall_adds_exactly_the_gap(session: AsyncSession):
    p = await make_product(session)
    loc = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=loc.id, qty=5)

    res = await top_up_shortfall(session, product_id=p.id, location_id=loc.id, required_qty=8, user_id=2)
    assert res is not None
    assert res.delta == 3
    assert res.new_quantity == 8

    last = (
        await session.execute(sa.select(StockLedgerEntry).order_by(StockLedgerEntry.id.desc()).limit(1))
    ).scalar_one()
    assert last.note == AUTO_ADD_NOTE

    assert await top_up_shortfall(session, product_id=p.id, location_id=loc.id, required_qty=8) is None
    level = await get_location_stock(session, product_id=p.id, location_id=loc.id)
    assert level.version == 2


async def test_availability_without_location_sums_all(session: AsyncSession):
    p = await make_product(session)
    a = await make_location(session)
    b = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=a.id, qty=2)
    await put_stock(session, product_id=p.id, location_id=b.id, qty=3)

    avail = await validate_stock_availability(session, product_id=p.id, location_id=None, required_qty=6)
    assert (avail.current_quantity, avail.shortfall, avail.version) == (5, 1, 0)


async def test_stock_out_guarded_by_checked_version(session: AsyncSession, monkeypatch):
    p = await make_product(session)
    loc = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=loc.id, qty=6)

    real_validate = inventory_adjust.validate_stock_availability

    async def _validate_then_drain(session, **kw):
        avail = await real_validate(session, **kw)
        await put_stock(session, product_id=p.id, location_id=loc.id, qty=-5)
        return avail

    monkeypatch.setattr(inventory_adjust, "validate_stock_availability", _validate_then_drain)

    with pytest.raises(VersionConflict):
        await adjust_stock(session, product_id=p.id, location_id=loc.id, delta=-6, user_id=1)
    assert await get_quantity(session, product_id=p.id, location_id=loc.id) == 1
