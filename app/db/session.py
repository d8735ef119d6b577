# app/db/session.py
# Async engine / session factory + FastAPI dependency (get_session)
from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.db.engine import create_async_engine_safe

log = logging.getLogger("stockcore.db")


def normalize_async_dsn(url: str) -> str:
    """Normalise DSNs to psycopg (v3) / aiosqlite drivers."""
    url = (url or "").strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if not url:
        return "sqlite+aiosqlite:///./stockcore.db"
    # sqlite:/// -> sqlite+aiosqlite:///
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite://") :]
    # postgres/postgresql(+*) -> postgresql+psycopg
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        url = normalize_async_dsn(settings.DATABASE_URL)
        log.info("Using DSN (async): %s", re.sub(r"://([^:/@]+):[^@]+@", r"://\1:***@", url))
        _engine = create_async_engine_safe(url, echo=settings.SQL_ECHO)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_maker


# ---- FastAPI dependency ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_maker()() as session:
        yield session


async def close_engines() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
