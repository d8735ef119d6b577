# app/db/engine.py
# Engine factory: postgres gets pool_pre_ping + application_name; sqlite gets check_same_thread only
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

__all__ = ["create_async_engine_safe"]


def _connect_args_for(url_str: str) -> dict[str, Any]:
    """
    Backend specific connect_args:
    - PostgreSQL(psycopg): application_name
    - SQLite: check_same_thread only
    """
    u = make_url(url_str)
    backend = u.get_backend_name()

    if backend.startswith("postgresql"):
        return {"application_name": "stockcore"}

    if backend.startswith("sqlite"):
        return {"check_same_thread": False}

    return {}


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    pysqlite starts transactions lazily and breaks SAVEPOINT; take over BEGIN
    so begin_nested() behaves like it does on postgres.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN")


def create_async_engine_safe(url_str: str, *, echo: bool = False, **extra: Any) -> AsyncEngine:
    """Async engine for 'postgresql+psycopg' or 'sqlite+aiosqlite'."""
    connect_args: dict[str, Any] = _connect_args_for(url_str)
    u = make_url(url_str)

    kwargs: dict[str, Any] = {"echo": echo}
    if u.get_backend_name().startswith("postgresql"):
        kwargs["pool_pre_ping"] = True
    if connect_args:
        kwargs["connect_args"] = connect_args
    kwargs.update(extra)

    engine = create_async_engine(url_str, **kwargs)
    if u.get_backend_name().startswith("sqlite"):
        _enable_sqlite_savepoints(engine)
    return engine
