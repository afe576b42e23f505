"""Workspace API routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access import require_workspace_admin, require_workspace_member
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.models.db import Project, User, Workspace, WorkspaceMember
from keystone.models.schemas import (
    ProjectResponse,
    WorkspaceCreate,
    WorkspaceMemberAdd,
    WorkspaceMemberResponse,
    WorkspaceResponse,
)

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.post("/workspaces", response_model=WorkspaceResponse, status_code=201)
async def create_workspace(
    data: WorkspaceCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a workspace; the creator becomes its owner and first admin."""
    workspace = Workspace(name=data.name, description=data.description, owner_id=user.id)
    session.add(workspace)
    await session.flush()

    session.add(WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role="ADMIN"))
    await session.flush()
    await session.refresh(workspace)
    return workspace


@router.get("/workspaces", response_model=list[WorkspaceResponse])
async def list_workspaces(
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List workspaces the caller belongs to."""
    result = await session.execute(
        select(Workspace)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .where(WorkspaceMember.user_id == user.id)
        .order_by(Workspace.created_at.desc())
    )
    return result.scalars().all()


@router.get("/workspaces/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_workspace_member(session, workspace_id, user)
    return await session.get(Workspace, workspace_id)


@router.post(
    "/workspaces/{workspace_id}/members",
    response_model=WorkspaceMemberResponse,
    status_code=201,
)
async def add_workspace_member(
    workspace_id: uuid.UUID,
    data: WorkspaceMemberAdd,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Add an existing user (by email) to the workspace. Admins only."""
    await require_workspace_admin(session, workspace_id, user)

    result = await session.execute(select(User).where(User.email == data.email))
    invitee = result.scalar_one_or_none()
    if invitee is None:
        raise HTTPException(status_code=404, detail="User not found")

    existing = await session.execute(
        select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == invitee.id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=400, detail="User is already a member")

    member = WorkspaceMember(workspace_id=workspace_id, user_id=invitee.id, role=data.role)
    session.add(member)
    await session.flush()
    return member


@router.get("/workspaces/{workspace_id}/projects", response_model=list[ProjectResponse])
async def list_workspace_projects(
    workspace_id: uuid.UUID,
    include_archived: bool = False,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_workspace_member(session, workspace_id, user)

    query = select(Project).where(Project.workspace_id == workspace_id)
    if not include_archived:
        query = query.where(Project.archived.is_(False))
    result = await session.execute(query.order_by(Project.created_at.desc()))
    return result.scalars().all()
