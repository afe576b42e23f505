"""Stakeholder register API routes."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access import (
    ProjectAccess,
    require_project_manager,
    require_project_member,
    require_workspace_member,
)
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.core.stakeholders import build_matrix, tracked_changes
from keystone.core.timeutil import utcnow
from keystone.models.db import Project, Stakeholder, StakeholderHistory, User
from keystone.models.schemas import (
    StakeholderCreate,
    StakeholderHistoryCreate,
    StakeholderHistoryResponse,
    StakeholderResponse,
    StakeholderUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stakeholders", dependencies=[Depends(verify_api_key)])


async def _get_stakeholder(session: AsyncSession, stakeholder_id: uuid.UUID) -> Stakeholder:
    stakeholder = await session.get(Stakeholder, stakeholder_id)
    if stakeholder is None:
        raise HTTPException(status_code=404, detail="Stakeholder not found")
    return stakeholder


async def _stakeholder_for_member(
    session: AsyncSession, stakeholder_id: uuid.UUID, user: User
) -> tuple[Stakeholder, ProjectAccess]:
    stakeholder = await _get_stakeholder(session, stakeholder_id)
    return stakeholder, await require_project_member(session, stakeholder.project_id, user)


@router.post("", response_model=StakeholderResponse, status_code=201)
async def create_stakeholder(
    data: StakeholderCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_manager(session, data.project_id, user)

    stakeholder = Stakeholder(**data.model_dump())
    session.add(stakeholder)
    await session.flush()

    session.add(
        StakeholderHistory(
            stakeholder_id=stakeholder.id,
            type="creation",
            title="Stakeholder added",
            description=f"{stakeholder.name} was added as a stakeholder",
            user_id=user.id,
            metadata_={"action": "created", "by": user.id},
        )
    )
    await session.flush()
    await session.refresh(stakeholder)
    return stakeholder


@router.get("/project/{project_id}", response_model=list[StakeholderResponse])
async def list_project_stakeholders(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, project_id, user)
    result = await session.execute(
        select(Stakeholder)
        .where(Stakeholder.project_id == project_id)
        .order_by(Stakeholder.created_at.desc())
    )
    return result.scalars().all()


def _workspace_query(
    workspace_id: uuid.UUID,
    project_id: uuid.UUID | None = None,
    influence: str | None = None,
    interest: str | None = None,
    category: str | None = None,
    search: str | None = None,
):
    query = (
        select(Stakeholder)
        .join(Project, Project.id == Stakeholder.project_id)
        .where(Project.workspace_id == workspace_id)
    )
    if project_id:
        query = query.where(Stakeholder.project_id == project_id)
    if influence:
        query = query.where(Stakeholder.influence == influence)
    if interest:
        query = query.where(Stakeholder.interest == interest)
    if category:
        query = query.where(Stakeholder.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Stakeholder.name.ilike(pattern),
                Stakeholder.email.ilike(pattern),
                Stakeholder.organization.ilike(pattern),
                Stakeholder.role.ilike(pattern),
            )
        )
    return query.order_by(Stakeholder.created_at.desc())


@router.get("/workspace/{workspace_id}", response_model=list[StakeholderResponse])
async def list_workspace_stakeholders(
    workspace_id: uuid.UUID,
    project_id: uuid.UUID | None = None,
    influence: str | None = None,
    interest: str | None = None,
    category: str | None = None,
    search: str | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Stakeholders across the workspace's projects.

    ``search`` matches name, email, organization or role, case-insensitively.
    """
    await require_workspace_member(session, workspace_id, user)
    result = await session.execute(
        _workspace_query(workspace_id, project_id, influence, interest, category, search)
    )
    return result.scalars().all()


@router.get("/workspace/{workspace_id}/matrix", response_model=dict[str, list[StakeholderResponse]])
async def stakeholder_matrix(
    workspace_id: uuid.UUID,
    project_id: uuid.UUID | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Group stakeholders into the four influence/interest quadrants."""
    await require_workspace_member(session, workspace_id, user)
    result = await session.execute(_workspace_query(workspace_id, project_id))
    return build_matrix(result.scalars().all())


@router.put("/{stakeholder_id}", response_model=StakeholderResponse)
async def update_stakeholder(
    stakeholder_id: uuid.UUID,
    data: StakeholderUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stakeholder = await _get_stakeholder(session, stakeholder_id)
    await require_project_manager(session, stakeholder.project_id, user)

    updates = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
    changes = tracked_changes(stakeholder, updates)

    for key, value in updates.items():
        setattr(stakeholder, key, value)

    if changes:
        session.add(
            StakeholderHistory(
                stakeholder_id=stakeholder.id,
                type="update",
                title="Stakeholder information updated",
                description=f"Updated fields: {', '.join(changes)}",
                user_id=user.id,
                metadata_={"changes": changes, "by": user.id},
            )
        )

    await session.flush()
    await session.refresh(stakeholder)
    return stakeholder


@router.delete("/{stakeholder_id}", status_code=204)
async def delete_stakeholder(
    stakeholder_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stakeholder = await _get_stakeholder(session, stakeholder_id)
    await require_project_manager(session, stakeholder.project_id, user)
    await session.delete(stakeholder)
    logger.info("Stakeholder %s deleted by %s", stakeholder_id, user.id)


@router.post("/{stakeholder_id}/history", response_model=StakeholderHistoryResponse, status_code=201)
async def add_stakeholder_history(
    stakeholder_id: uuid.UUID,
    data: StakeholderHistoryCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Record an engagement (meeting, email, decision...) with a stakeholder."""
    await _stakeholder_for_member(session, stakeholder_id, user)

    entry = StakeholderHistory(
        stakeholder_id=stakeholder_id,
        type=data.type,
        title=data.title,
        description=data.description,
        status=data.status,
        date=data.date or utcnow(),
        user_id=user.id,
        metadata_=data.metadata or {},
    )
    session.add(entry)
    await session.flush()
    await session.refresh(entry)
    return entry


@router.get("/{stakeholder_id}/history", response_model=list[StakeholderHistoryResponse])
async def get_stakeholder_history(
    stakeholder_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await _stakeholder_for_member(session, stakeholder_id, user)
    result = await session.execute(
        select(StakeholderHistory)
        .where(StakeholderHistory.stakeholder_id == stakeholder_id)
        .order_by(StakeholderHistory.date.desc(), StakeholderHistory.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()
