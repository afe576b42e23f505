"""User API routes.

Users are owned by the upstream identity provider; this service only keeps
a mirror so that memberships and assignments can reference them.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.models.db import User
from keystone.models.schemas import UserResponse, UserUpsert

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.post("/users", response_model=UserResponse)
async def upsert_user(
    data: UserUpsert,
    session: AsyncSession = Depends(get_db),
):
    """Create or update a user mirrored from the identity provider."""
    clash = await session.execute(
        select(User.id).where(User.email == data.email, User.id != data.id)
    )
    if clash.first() is not None:
        raise HTTPException(status_code=400, detail="Email already belongs to another user")

    user = await session.get(User, data.id)
    if user is None:
        user = User(**data.model_dump())
        session.add(user)
        logger.info("Registered user %s", data.id)
    else:
        for key, value in data.model_dump().items():
            setattr(user, key, value)

    await session.flush()
    await session.refresh(user)
    return user


@router.get("/users/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """Return the calling user."""
    return user
