# tests/conftest.py
from __future__ import annotations

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.api.deps import get_session
from app.db.base import Base, init_models
from app.db.engine import create_async_engine_safe
from app.main import app

init_models()


# =========================================
# Per-test engine on a fresh sqlite file
#   (file, not :memory:, so several sessions see the same database)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine_safe(
        f"sqlite+aiosqlite:///{tmp_path / 'stockcore-test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Standard session. Tests commit explicitly before another session writes
    (sqlite allows a single writer).
    """
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# FastAPI / httpx AsyncClient
#   every request gets its own session on the test engine
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://testserver",
            timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
        ) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_session, None)


@pytest.fixture
def caller_headers() -> dict[str, str]:
    return {"X-User-Id": "7", "X-User-Approved": "true"}
