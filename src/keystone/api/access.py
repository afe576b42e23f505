"""Membership lookups that gate every resource route.

A *member* belongs to the project's workspace or to the project itself; a
*manager* is a workspace admin or the project's team lead.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.models.db import Project, ProjectMember, User, Workspace, WorkspaceMember


@dataclass
class ProjectAccess:
    project: Project
    user: User
    workspace_role: str | None
    is_project_member: bool

    @property
    def is_workspace_member(self) -> bool:
        return self.workspace_role is not None

    @property
    def is_workspace_admin(self) -> bool:
        return self.workspace_role == "ADMIN"

    @property
    def is_team_lead(self) -> bool:
        return self.project.team_lead == self.user.id

    @property
    def can_view(self) -> bool:
        return self.is_workspace_member or self.is_project_member or self.is_team_lead

    @property
    def can_manage(self) -> bool:
        return self.is_workspace_admin or self.is_team_lead


async def workspace_role(session: AsyncSession, workspace_id: uuid.UUID, user_id: str) -> str | None:
    result = await session.execute(
        select(WorkspaceMember.role).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_project_access(session: AsyncSession, project_id: uuid.UUID, user: User) -> ProjectAccess:
    project = await session.get(Project, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    role = await workspace_role(session, project.workspace_id, user.id)
    result = await session.execute(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user.id,
        )
    )
    return ProjectAccess(
        project=project,
        user=user,
        workspace_role=role,
        is_project_member=result.first() is not None,
    )


async def require_project_member(session: AsyncSession, project_id: uuid.UUID, user: User) -> ProjectAccess:
    access = await get_project_access(session, project_id, user)
    if not access.can_view:
        raise HTTPException(status_code=403, detail="You don't have access to this project")
    return access


async def require_project_manager(session: AsyncSession, project_id: uuid.UUID, user: User) -> ProjectAccess:
    access = await get_project_access(session, project_id, user)
    if not access.can_manage:
        raise HTTPException(
            status_code=403, detail="Only workspace admins or the project lead can do this"
        )
    return access


async def require_workspace_member(session: AsyncSession, workspace_id: uuid.UUID, user: User) -> str:
    """Return the caller's role in the workspace, or raise 404/403."""
    if await session.get(Workspace, workspace_id) is None:
        raise HTTPException(status_code=404, detail="Workspace not found")

    role = await workspace_role(session, workspace_id, user.id)
    if role is None:
        raise HTTPException(status_code=403, detail="You are not a member of this workspace")
    return role


async def require_workspace_admin(session: AsyncSession, workspace_id: uuid.UUID, user: User) -> str:
    role = await require_workspace_member(session, workspace_id, user)
    if role != "ADMIN":
        raise HTTPException(status_code=403, detail="Only workspace admins can do this")
    return role
