"""Project CRUD API routes."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access import (
    require_project_manager,
    require_project_member,
    require_workspace_admin,
    require_workspace_member,
)
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.core.timeutil import utcnow
from keystone.exporters import UnsupportedFormat, export_table
from keystone.models.db import Project, ProjectMember, User, WorkspaceMember
from keystone.models.schemas import (
    ProjectCreate,
    ProjectMemberAdd,
    ProjectMemberResponse,
    ProjectResponse,
    ProjectUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])


async def _workspace_users(session: AsyncSession, workspace_id: uuid.UUID) -> list[User]:
    result = await session.execute(
        select(User)
        .join(WorkspaceMember, WorkspaceMember.user_id == User.id)
        .where(WorkspaceMember.workspace_id == workspace_id)
    )
    return list(result.scalars().all())


def _match_user(users: list[User], ref: str | None) -> User | None:
    """Find a user by id or email."""
    if not ref:
        return None
    for candidate in users:
        if ref in (candidate.id, candidate.email):
            return candidate
    return None


@router.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    data: ProjectCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a new project. Workspace admins only.

    Requested members (ids or emails) who are not in the workspace are
    skipped.
    """
    await require_workspace_admin(session, data.workspace_id, user)
    workspace_users = await _workspace_users(session, data.workspace_id)

    team_lead = _match_user(workspace_users, data.team_lead)
    project = Project(
        **data.model_dump(exclude={"members", "team_lead"}),
        team_lead=team_lead.id if team_lead else None,
    )
    session.add(project)
    await session.flush()

    added: set[str] = set()
    for ref in data.members:
        member = _match_user(workspace_users, ref)
        if member is None:
            logger.warning("Skipping project member %s: not in workspace %s", ref, data.workspace_id)
            continue
        if member.id in added:
            continue
        session.add(ProjectMember(project_id=project.id, user_id=member.id))
        added.add(member.id)

    await session.flush()
    await session.refresh(project)
    return project


@router.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Get a project by ID."""
    access = await require_project_member(session, project_id, user)
    return access.project


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID,
    data: ProjectUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Update a project. Workspace admins or the team lead."""
    access = await require_project_manager(session, project_id, user)
    project = access.project

    update_data = data.model_dump(exclude_unset=True)
    if "team_lead" in update_data and update_data["team_lead"] is not None:
        lead = _match_user(await _workspace_users(session, project.workspace_id), update_data["team_lead"])
        if lead is None:
            raise HTTPException(status_code=400, detail="Team lead must be a workspace member")
        update_data["team_lead"] = lead.id

    for key, value in update_data.items():
        setattr(project, key, value)

    await session.flush()
    await session.refresh(project)
    return project


@router.delete("/projects/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete a project and everything in it. Workspace admins only."""
    access = await require_project_member(session, project_id, user)
    if not access.is_workspace_admin:
        raise HTTPException(status_code=403, detail="Only workspace admins can delete projects")

    await session.delete(access.project)
    logger.info("Project %s deleted by %s", project_id, user.id)


@router.post(
    "/projects/{project_id}/members",
    response_model=ProjectMemberResponse,
    status_code=201,
)
async def add_project_member(
    project_id: uuid.UUID,
    data: ProjectMemberAdd,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Add a user (by email) to the project."""
    await require_project_manager(session, project_id, user)

    result = await session.execute(select(User).where(User.email == data.email))
    invitee = result.scalar_one_or_none()
    if invitee is None:
        raise HTTPException(status_code=404, detail="User not found")

    existing = await session.execute(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == invitee.id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=400, detail="User is already a member")

    member = ProjectMember(project_id=project_id, user_id=invitee.id)
    session.add(member)
    await session.flush()
    await session.refresh(member)
    return member


async def _set_archived(session: AsyncSession, project_id: uuid.UUID, user: User, archived: bool) -> Project:
    access = await require_project_manager(session, project_id, user)
    project = access.project
    project.archived = archived
    project.archived_at = utcnow() if archived else None
    await session.flush()
    await session.refresh(project)
    return project


@router.post("/projects/{project_id}/archive", response_model=ProjectResponse)
async def archive_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await _set_archived(session, project_id, user, True)


@router.post("/projects/{project_id}/restore", response_model=ProjectResponse)
async def restore_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await _set_archived(session, project_id, user, False)


@router.get("/workspaces/{workspace_id}/projects/export")
async def export_projects(
    workspace_id: uuid.UUID,
    format: str = "xlsx",
    status: str | None = None,
    priority: str | None = None,
    archived: bool | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Download the workspace's projects as CSV, Excel or HTML."""
    await require_workspace_member(session, workspace_id, user)

    query = select(Project).where(Project.workspace_id == workspace_id)
    if status:
        query = query.where(Project.status == status)
    if priority:
        query = query.where(Project.priority == priority)
    if archived is not None:
        query = query.where(Project.archived.is_(archived))
    result = await session.execute(query.order_by(Project.name))

    rows = [
        {
            "id": p.id,
            "name": p.name,
            "description": p.description,
            "status": p.status,
            "priority": p.priority,
            "progress": p.progress,
            "team_lead": p.team_lead,
            "start_date": p.start_date,
            "end_date": p.end_date,
            "budget": p.budget,
            "spent": p.spent,
            "archived": p.archived,
            "created_at": p.created_at,
        }
        for p in result.scalars().all()
    ]

    try:
        exported = export_table(rows, format, title="projects")
    except UnsupportedFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
