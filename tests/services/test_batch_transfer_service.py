# tests/services/test_batch_transfer_service.py
from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.stock_ledger import StockLedgerEntry
from app.services import batch_transfer_service
from app.services.batch_transfer_service import (
    BATCH_FAILED,
    BATCH_OK,
    BATCH_PARTIAL,
    TransferLine,
    batch_transfer,
)
from app.services.location_stock_service import get_location_stock, get_quantity
from app.services.stock_errors import InsufficientStock, InvalidRequest, NotFound
from tests.factories import make_location, make_product, put_stock

pytestmark = pytest.mark.asyncio


async def _seed(session: AsyncSession):
    p = await make_product(session, "Kibble 5kg")
    a = await make_location(session, "Source A")
    b = await make_location(session, "Source B")
    dst = await make_location(session, "Front")
    await put_stock(session, product_id=p.id, location_id=a.id, qty=10)
    await put_stock(session, product_id=p.id, location_id=b.id, qty=10)
    return p, a, b, dst


async def test_all_lines_succeed(session: AsyncSession):
    p, a, b, dst = await _seed(session)

    res = await batch_transfer(
        session,
        product_id=p.id,
        to_location_id=dst.id,
        transfers=[
            {"from_location_id": a.id, "quantity": 4, "expected_version": 1},
            TransferLine(from_location_id=b.id, quantity=6),
        ],
        user_id=5,
    )

    assert res.success is True
    assert res.status == BATCH_OK
    assert res.total_transferred == 10
    assert [r.success for r in res.results] == [True, True]
    assert await get_quantity(session, product_id=p.id, location_id=dst.id) == 10

    tagged = (
        await session.execute(
            sa.select(sa.func.count(StockLedgerEntry.id)).where(StockLedgerEntry.batch_id == res.batch_id)
        )
    ).scalar_one()
    assert tagged == 4


async def test_one_line_loses_race(async_session_maker):
    """A ok, B version-conflict: partial, total 4, B untouched."""
    async with async_session_maker() as s0:
        p, a, b, dst = await _seed(s0)
        await s0.commit()
        pid, aid, bid, did = p.id, a.id, b.id, dst.id

    # another writer touches B after the client read version 1
    async with async_session_maker() as other:
        await put_stock(other, product_id=pid, location_id=bid, qty=1)
        await other.commit()

    async with async_session_maker() as s:
        res = await batch_transfer(
            s,
            product_id=pid,
            to_location_id=did,
            transfers=[
                TransferLine(from_location_id=aid, quantity=4, expected_version=1),
                TransferLine(from_location_id=bid, quantity=3, expected_version=1),
            ],
            user_id=5,
        )
        await s.commit()

    assert res.success is False
    assert res.status == BATCH_PARTIAL
    assert res.total_transferred == 4

    line_a, line_b = res.results
    assert line_a.success is True
    assert line_b.success is False
    assert line_b.error_code == "OPTIMISTIC_LOCK_ERROR"
    assert line_b.current_version == 2
    assert line_b.expected_version == 1

    async with async_session_maker() as check:
        assert await get_quantity(check, product_id=pid, location_id=aid) == 6
        b_level = await get_location_stock(check, product_id=pid, location_id=bid)
        assert (b_level.quantity, b_level.version) == (11, 2)
        assert await get_quantity(check, product_id=pid, location_id=did) == 4


async def test_every_line_failing_is_failed_status(session: AsyncSession):
    p, a, b, dst = await _seed(session)

    res = await batch_transfer(
        session,
        product_id=p.id,
        to_location_id=dst.id,
        transfers=[TransferLine(from_location_id=a.id, quantity=1, expected_version=9)],
    )
    assert res.status == BATCH_FAILED
    assert res.total_transferred == 0


async def test_prevalidation_shortage_lists_each_short_source(session: AsyncSession):
    p, a, b, dst = await _seed(session)

    with pytest.raises(InsufficientStock) as ei:
        await batch_transfer(
            session,
            product_id=p.id,
            to_location_id=dst.id,
            transfers=[
                TransferLine(from_location_id=a.id, quantity=12),
                TransferLine(from_location_id=b.id, quantity=2),
            ],
        )

    details = ei.value.details
    assert len(details) == 1
    assert details[0] == {
        "from_location_id": a.id,
        "from_location_name": "Source A",
        "current_quantity": 10,
        "requested_quantity": 12,
        "shortfall": 2,
    }
    # nothing attempted, not even the valid line
    assert await get_quantity(session, product_id=p.id, location_id=b.id) == 10
    assert await get_location_stock(session, product_id=p.id, location_id=dst.id) is None


async def test_source_equal_to_destination(session: AsyncSession):
    p, a, b, dst = await _seed(session)
    with pytest.raises(InvalidRequest) as ei:
        await batch_transfer(
            session,
            product_id=p.id,
            to_location_id=dst.id,
            transfers=[TransferLine(from_location_id=dst.id, quantity=1)],
        )
    assert ei.value.context["invalid_locations"] == [dst.id]


async def test_missing_locations_listed(session: AsyncSession):
    p, a, b, dst = await _seed(session)
    with pytest.raises(NotFound) as ei:
        await batch_transfer(
            session,
            product_id=p.id,
            to_location_id=dst.id,
            transfers=[
                TransferLine(from_location_id=a.id, quantity=1),
                TransferLine(from_location_id=9001, quantity=1),
                TransferLine(from_location_id=9002, quantity=1),
            ],
        )
    assert ei.value.context["missing_locations"] == [9001, 9002]


async def test_each_line_commits_before_the_next(async_session_maker, monkeypatch):
    async with async_session_maker() as s0:
        p, a, b, dst = await _seed(s0)
        c = await make_location(s0, "Source C")
        await put_stock(s0, product_id=p.id, location_id=c.id, qty=10)
        await s0.commit()
        pid, aid, bid, cid, did = p.id, a.id, b.id, c.id, dst.id

    seen_at_dst = []
    real_transfer = batch_transfer_service.transfer_stock

    async def _observe_then_transfer(session, **kw):
        async with async_session_maker() as other:
            seen_at_dst.append(await get_quantity(other, product_id=pid, location_id=did))
        return await real_transfer(session, **kw)

    monkeypatch.setattr(batch_transfer_service, "transfer_stock", _observe_then_transfer)

    async with async_session_maker() as s:
        res = await batch_transfer(
            s,
            product_id=pid,
            to_location_id=did,
            transfers=[
                TransferLine(from_location_id=aid, quantity=4),
                TransferLine(from_location_id=bid, quantity=2, expected_version=9),
                TransferLine(from_location_id=cid, quantity=3),
            ],
        )
        assert s.in_transaction() is False
        # nothing left for the caller to undo
        await s.rollback()

    assert res.status == BATCH_PARTIAL
    assert seen_at_dst == [0, 4, 4]

    async with async_session_maker() as check:
        assert await get_quantity(check, product_id=pid, location_id=aid) == 6
        assert await get_quantity(check, product_id=pid, location_id=bid) == 10
        assert await get_quantity(check, product_id=pid, location_id=cid) == 7
        assert await get_quantity(check, product_id=pid, location_id=did) == 7
