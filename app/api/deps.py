# app/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.problem import raise_401, raise_403
from app.db.session import get_session as _get_session


# ---------------------------
# Async session dependency
# ---------------------------


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in _get_session():
        yield session


# ---------------------------
# Caller identity
# ---------------------------


@dataclass(frozen=True)
class Caller:
    user_id: int
    approved: bool


_TRUTHY = {"1", "true", "yes", "on"}


async def get_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_approved: Optional[str] = Header(default=None),
) -> Caller:
    """
    Identity resolved by the upstream auth layer and forwarded as headers:

    - X-User-Id missing / not an integer -> 401
    - X-User-Approved not truthy         -> 403
    """
    raw = (x_user_id or "").strip()
    if not raw:
        raise_401()
    try:
        user_id = int(raw)
    except ValueError:
        raise_401("Invalid user id")

    approved = (x_user_approved or "").strip().lower() in _TRUTHY
    if not approved:
        raise_403("User is not approved")

    return Caller(user_id=user_id, approved=approved)


__all__ = ("Caller", "get_caller", "get_session")
