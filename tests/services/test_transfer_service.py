# tests/services/test_transfer_service.py
from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_event import AuditEvent
from app.models.stock_ledger import StockLedgerEntry
from app.services.location_stock_service import get_location_stock, get_quantity
from app.services.stock_errors import InsufficientStock, InvalidRequest, NotFound, VersionConflict
from app.services import transfer_service
from app.services.transfer_service import transfer_stock
from tests.factories import make_location, make_product, put_stock

pytestmark = pytest.mark.asyncio


async def _count(session: AsyncSession, model) -> int:
    return int((await session.execute(sa.select(sa.func.count()).select_from(model))).scalar_one())


async def test_transfer_moves_stock_and_writes_two_legs(session: AsyncSession):
    p = await make_product(session, "Dog Treats")
    src = await make_location(session, "Back Room")
    dst = await make_location(session, "Front Shelf")
    await put_stock(session, product_id=p.id, location_id=src.id, qty=10)

    res = await transfer_stock(
        session, product_id=p.id, from_location_id=src.id, to_location_id=dst.id, quantity=4, user_id=9
    )

    assert (res.from_quantity, res.to_quantity) == (6, 4)
    assert res.to_version == 1

    legs = (
        await session.execute(
            sa.select(StockLedgerEntry).where(StockLedgerEntry.ref == res.ref).order_by(StockLedgerEntry.id)
        )
    ).scalars().all()
    assert [(leg.location_id, leg.delta, leg.log_type) for leg in legs] == [
        (src.id, -4, "TRANSFER"),
        (dst.id, 4, "TRANSFER"),
    ]
    assert sum(leg.delta for leg in legs) == 0

    audit = await session.get(AuditEvent, res.audit_event_id)
    assert audit.event == "TRANSFER"
    assert audit.meta["from_location_name"] == "Back Room"
    assert audit.meta["to_location_name"] == "Front Shelf"
    assert audit.meta["quantity"] == 4


async def test_transfer_shortfall_writes_nothing(session: AsyncSession):
    p = await make_product(session)
    src = await make_location(session)
    dst = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=src.id, qty=5)

    with pytest.raises(InsufficientStock) as ei:
        await transfer_stock(
            session, product_id=p.id, from_location_id=src.id, to_location_id=dst.id, quantity=8
        )

    assert ei.value.current_quantity == 5
    assert ei.value.shortfall == 3
    assert ei.value.context["shortfall"] == 3
    assert await get_quantity(session, product_id=p.id, location_id=src.id) == 5
    assert await get_location_stock(session, product_id=p.id, location_id=dst.id) is None
    assert await _count(session, StockLedgerEntry) == 1
    assert await _count(session, AuditEvent) == 0


async def test_transfer_validation(session: AsyncSession):
    p = await make_product(session)
    src = await make_location(session)
    dst = await make_location(session)

    with pytest.raises(InvalidRequest):
        await transfer_stock(session, product_id=p.id, from_location_id=src.id, to_location_id=src.id, quantity=1)
    with pytest.raises(InvalidRequest):
        await transfer_stock(session, product_id=p.id, from_location_id=src.id, to_location_id=dst.id, quantity=0)
    with pytest.raises(NotFound):
        await transfer_stock(
            session, product_id=p.id, from_location_id=src.id, to_location_id=dst.id + 100, quantity=1
        )


async def test_stale_version_then_retry(async_session_maker):
    """Client read version 3; another writer bumped it to 4. Retry with 4 succeeds."""
    async with async_session_maker() as s0:
        p = await make_product(s0)
        src = await make_location(s0, "Warehouse")
        dst = await make_location(s0, "Store")
        for q in (4, 3, 3):
            await put_stock(s0, product_id=p.id, location_id=src.id, qty=q)
        await s0.commit()
        pid, sid, did = p.id, src.id, dst.id

    async with async_session_maker() as other:
        await put_stock(other, product_id=pid, location_id=sid, qty=2)
        await other.commit()

    async with async_session_maker() as s:
        with pytest.raises(VersionConflict) as ei:
            await transfer_stock(
                s,
                product_id=pid,
                from_location_id=sid,
                to_location_id=did,
                quantity=5,
                expected_from_version=3,
            )
        assert ei.value.current_version == 4
        assert ei.value.expected_version == 3
        await s.rollback()

        assert await get_quantity(s, product_id=pid, location_id=did) == 0
        await s.rollback()

        res = await transfer_stock(
            s,
            product_id=pid,
            from_location_id=sid,
            to_location_id=did,
            quantity=5,
            expected_from_version=4,
        )
        await s.commit()
        assert (res.from_quantity, res.to_quantity, res.from_version) == (7, 5, 5)


async def test_conservation_across_transfers(session: AsyncSession):
    p = await make_product(session)
    locs = [await make_location(session) for _ in range(3)]
    await put_stock(session, product_id=p.id, location_id=locs[0].id, qty=20)

    await transfer_stock(session, product_id=p.id, from_location_id=locs[0].id, to_location_id=locs[1].id, quantity=7)
    await transfer_stock(session, product_id=p.id, from_location_id=locs[1].id, to_location_id=locs[2].id, quantity=3)
    await transfer_stock(session, product_id=p.id, from_location_id=locs[0].id, to_location_id=locs[2].id, quantity=5)

    qtys = [await get_quantity(session, product_id=p.id, location_id=loc.id) for loc in locs]
    assert qtys == [8, 4, 8]
    assert sum(qtys) == 20


async def test_stock_taken_after_check_is_a_conflict(session: AsyncSession, monkeypatch):
    """Another writer drains the source between the availability check and the write."""
    p = await make_product(session)
    src = await make_location(session)
    dst = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=src.id, qty=10)

    real_validate = transfer_service.validate_stock_availability

    async def _validate_then_drain(session, **kw):
        avail = await real_validate(session, **kw)
        await put_stock(session, product_id=p.id, location_id=src.id, qty=-8)
        return avail

    monkeypatch.setattr(transfer_service, "validate_stock_availability", _validate_then_drain)

    with pytest.raises(VersionConflict) as ei:
        await transfer_stock(session, product_id=p.id, from_location_id=src.id, to_location_id=dst.id, quantity=8)

    assert (ei.value.expected_version, ei.value.current_version) == (1, 2)
    assert await get_quantity(session, product_id=p.id, location_id=src.id) == 2
    assert await get_location_stock(session, product_id=p.id, location_id=dst.id) is None
    assert await _count(session, AuditEvent) == 0


async def test_legs_and_audit_share_one_batch(session: AsyncSession):
    p = await make_product(session)
    src = await make_location(session)
    dst = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=src.id, qty=3)

    res = await transfer_stock(session, product_id=p.id, from_location_id=src.id, to_location_id=dst.id, quantity=3)

    assert res.batch_id
    leg_batches = (
        await session.execute(sa.select(StockLedgerEntry.batch_id).where(StockLedgerEntry.ref == res.ref))
    ).scalars().all()
    assert leg_batches == [res.batch_id, res.batch_id]
    audit = await session.get(AuditEvent, res.audit_event_id)
    assert audit.batch_id == res.batch_id


async def test_stale_destination_version_writes_nothing(session: AsyncSession):
    p = await make_product(session)
    src = await make_location(session)
    dst = await make_location(session)
    await put_stock(session, product_id=p.id, location_id=src.id, qty=5)
    await put_stock(session, product_id=p.id, location_id=dst.id, qty=1)

    with pytest.raises(VersionConflict) as ei:
        await transfer_stock(
            session,
            product_id=p.id,
            from_location_id=src.id,
            to_location_id=dst.id,
            quantity=2,
            expected_to_version=4,
        )
    assert ei.value.location_id == dst.id
    assert await get_quantity(session, product_id=p.id, location_id=src.id) == 5
    assert await _count(session, StockLedgerEntry) == 2

    res = await transfer_stock(
        session,
        product_id=p.id,
        from_location_id=src.id,
        to_location_id=dst.id,
        quantity=2,
        expected_to_version=1,
    )
    assert (res.from_quantity, res.to_quantity, res.to_version) == (3, 3, 2)
