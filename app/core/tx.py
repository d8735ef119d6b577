# app/core/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def tx_atomic(session: AsyncSession) -> AsyncIterator[None]:
    """
    One atomic unit of work.

    - session already inside a transaction: SAVEPOINT (the outer owner commits)
    - otherwise: BEGIN ... COMMIT, i.e. a service handed a session with no
      open transaction commits its own unit
    Any exception rolls the unit back and propagates.
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield
    else:
        async with session.begin():
            yield


@asynccontextmanager
async def tx_commit(session: AsyncSession) -> AsyncIterator[None]:
    """
    Commit transaction for an outermost caller. A transaction already opened
    by reads on this session (autobegin) is committed or rolled back here.
    """
    if session.in_transaction():
        try:
            yield
        except BaseException:
            await session.rollback()
            raise
        else:
            await session.commit()
    else:
        async with session.begin():
            yield

