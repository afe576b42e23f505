"""FastAPI dependency injection helpers."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.config import settings
from keystone.db.session import get_session
from keystone.models.db import User

# API key security
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async for session in get_session():
        yield session


async def verify_api_key(
    api_key: str | None = Security(api_key_header),
) -> str:
    """Verify the API key from the request header.

    In development mode, allows requests without an API key.
    """
    if settings.keystone_env == "development":
        return api_key or "dev"

    if not api_key or api_key != settings.keystone_api_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")

    return api_key


async def get_current_user(
    user_id: str | None = Header(None, alias="X-User-Id"),
    session: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the ``X-User-Id`` header set by the auth proxy."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = await session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user
