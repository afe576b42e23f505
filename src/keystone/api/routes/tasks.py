"""Task board API routes: tasks, subtasks and task dependencies."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from keystone.api.access import (
    ProjectAccess,
    require_project_manager,
    require_project_member,
    require_workspace_member,
)
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.core.dependencies import dependency_would_cycle
from keystone.models.db import Project, ProjectMember, Subtask, Task, TaskDependency, User, WorkspaceMember
from keystone.models.schemas import (
    DependencyCreate,
    DependencyLink,
    SubtaskCreate,
    SubtaskResponse,
    SubtaskUpdate,
    TaskBulkDelete,
    TaskCreate,
    TaskDependenciesResponse,
    TaskDependencyResponse,
    TaskResponse,
    TaskStatusUpdate,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", dependencies=[Depends(verify_api_key)])


async def _load_task(session: AsyncSession, task_id: uuid.UUID) -> Task:
    result = await session.execute(
        select(Task)
        .where(Task.id == task_id)
        .options(selectinload(Task.subtasks))
        .execution_options(populate_existing=True)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def _task_for_member(session: AsyncSession, task_id: uuid.UUID, user: User) -> tuple[Task, ProjectAccess]:
    task = await _load_task(session, task_id)
    return task, await require_project_member(session, task.project_id, user)


async def _check_assignee(session: AsyncSession, project: Project, assignee_id: str | None) -> None:
    """An assignee must belong to the project's workspace or to the project."""
    if not assignee_id:
        return
    in_workspace = await session.execute(
        select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == project.workspace_id,
            WorkspaceMember.user_id == assignee_id,
        )
    )
    if in_workspace.first() is not None:
        return
    in_project = await session.execute(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project.id,
            ProjectMember.user_id == assignee_id,
        )
    )
    if in_project.first() is None:
        raise HTTPException(status_code=403, detail="Assignee is not a member of the project or workspace")


async def _next_position(session: AsyncSession, project_id: uuid.UUID, status: str) -> int:
    result = await session.execute(
        select(func.max(Task.position)).where(Task.project_id == project_id, Task.status == status)
    )
    current = result.scalar()
    return 0 if current is None else current + 1


def _task_list_query():
    return select(Task).options(selectinload(Task.subtasks))


# ── Tasks ─────────────────────────────────────────────────────────────────────


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    data: TaskCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    access = await require_project_member(session, data.project_id, user)
    await _check_assignee(session, access.project, data.assignee_id)

    task = Task(**data.model_dump(), position=await _next_position(session, data.project_id, data.status))
    session.add(task)
    await session.flush()
    return await _load_task(session, task.id)


@router.post("/delete", status_code=204)
async def delete_tasks(
    data: TaskBulkDelete,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete several tasks of one project. Managers only."""
    wanted = list(dict.fromkeys(data.task_ids))
    result = await session.execute(select(Task).where(Task.id.in_(wanted)))
    tasks = {task.id: task for task in result.scalars().all()}
    if wanted[0] not in tasks:
        raise HTTPException(status_code=404, detail="Task not found")

    project_id = tasks[wanted[0]].project_id
    await require_project_manager(session, project_id, user)

    if len(tasks) != len(wanted):
        raise HTTPException(status_code=404, detail="Task not found")
    if any(task.project_id != project_id for task in tasks.values()):
        raise HTTPException(status_code=400, detail="All tasks must belong to the same project")

    for task in tasks.values():
        await session.delete(task)
    logger.info("Deleted %d task(s) from project %s", len(tasks), project_id)


@router.get("/project/{project_id}", response_model=list[TaskResponse])
async def list_project_tasks(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, project_id, user)
    result = await session.execute(
        _task_list_query()
        .where(Task.project_id == project_id)
        .order_by(Task.status, Task.position, Task.created_at.desc())
    )
    return result.scalars().all()


@router.get("/my-tasks", response_model=list[TaskResponse])
async def list_my_tasks(
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Tasks assigned to the caller across all projects."""
    result = await session.execute(
        _task_list_query()
        .where(Task.assignee_id == user.id)
        .order_by(Task.status, Task.due_date, Task.created_at.desc())
    )
    return result.scalars().all()


@router.get("/workspace/{workspace_id}", response_model=list[TaskResponse])
async def list_workspace_tasks(
    workspace_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_workspace_member(session, workspace_id, user)
    result = await session.execute(
        _task_list_query()
        .join(Project, Project.id == Task.project_id)
        .where(Project.workspace_id == workspace_id)
        .order_by(Task.created_at.desc())
    )
    return result.scalars().all()


@router.put("/subtasks/{subtask_id}", response_model=SubtaskResponse)
async def update_subtask(
    subtask_id: uuid.UUID,
    data: SubtaskUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    subtask = await session.get(Subtask, subtask_id)
    if subtask is None:
        raise HTTPException(status_code=404, detail="Subtask not found")
    await _task_for_member(session, subtask.task_id, user)

    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(subtask, key, value)
    await session.flush()
    await session.refresh(subtask)
    return subtask


@router.delete("/subtasks/{subtask_id}", status_code=204)
async def delete_subtask(
    subtask_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    subtask = await session.get(Subtask, subtask_id)
    if subtask is None:
        raise HTTPException(status_code=404, detail="Subtask not found")
    task = await _load_task(session, subtask.task_id)
    await require_project_manager(session, task.project_id, user)
    await session.delete(subtask)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    task, _ = await _task_for_member(session, task_id, user)
    return task


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: uuid.UUID,
    data: TaskUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Edit a task. Managers only."""
    task = await _load_task(session, task_id)
    access = await require_project_manager(session, task.project_id, user)

    updates = data.model_dump(exclude_unset=True)
    if updates.get("assignee_id"):
        await _check_assignee(session, access.project, updates["assignee_id"])

    for key, value in updates.items():
        setattr(task, key, value)
    await session.flush()
    return await _load_task(session, task_id)


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: uuid.UUID,
    data: TaskStatusUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Move a task on the board; members may do this."""
    task, _ = await _task_for_member(session, task_id, user)
    task.status = data.status
    if data.position is not None:
        task.position = data.position
    await session.flush()
    return await _load_task(session, task_id)


# ── Subtasks ──────────────────────────────────────────────────────────────────


@router.post("/{task_id}/subtasks", response_model=SubtaskResponse, status_code=201)
async def add_subtask(
    task_id: uuid.UUID,
    data: SubtaskCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await _task_for_member(session, task_id, user)

    result = await session.execute(select(func.max(Subtask.position)).where(Subtask.task_id == task_id))
    last = result.scalar()
    subtask = Subtask(task_id=task_id, title=data.title, position=0 if last is None else last + 1)
    session.add(subtask)
    await session.flush()
    await session.refresh(subtask)
    return subtask


# ── Dependencies ──────────────────────────────────────────────────────────────


@router.post("/{task_id}/dependencies", response_model=TaskDependencyResponse, status_code=201)
async def add_task_dependency(
    task_id: uuid.UUID,
    data: DependencyCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Make ``task_id`` depend on another task of the same project.

    Rejected when the edge already exists or would close a dependency cycle.
    """
    task = await session.get(Task, task_id)
    prerequisite = await session.get(Task, data.depends_on_task_id)
    if task is None or prerequisite is None:
        raise HTTPException(status_code=404, detail="Task not found")

    await require_project_member(session, task.project_id, user)

    if prerequisite.project_id != task.project_id:
        raise HTTPException(status_code=400, detail="Tasks must belong to the same project")

    existing = await session.execute(
        select(TaskDependency.id).where(
            TaskDependency.dependent_task_id == task_id,
            TaskDependency.depends_on_task_id == data.depends_on_task_id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=400, detail="Dependency already exists")

    if await dependency_would_cycle(session, task_id, data.depends_on_task_id):
        raise HTTPException(status_code=400, detail="This dependency would create a circular reference")

    dependency = TaskDependency(dependent_task_id=task_id, depends_on_task_id=data.depends_on_task_id)
    session.add(dependency)
    await session.flush()
    await session.refresh(dependency)
    return dependency


@router.delete("/{task_id}/dependencies/{dependency_id}", status_code=204)
async def remove_task_dependency(
    task_id: uuid.UUID,
    dependency_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await _task_for_member(session, task_id, user)

    dependency = await session.get(TaskDependency, dependency_id)
    if dependency is None or task_id not in (dependency.dependent_task_id, dependency.depends_on_task_id):
        raise HTTPException(status_code=404, detail="Dependency not found")
    await session.delete(dependency)


@router.get("/{task_id}/dependencies", response_model=TaskDependenciesResponse)
async def get_task_dependencies(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Tasks this task waits on, and tasks waiting on it."""
    await _task_for_member(session, task_id, user)

    prerequisites = await session.execute(
        select(TaskDependency.id, Task)
        .join(Task, Task.id == TaskDependency.depends_on_task_id)
        .where(TaskDependency.dependent_task_id == task_id)
    )
    dependents = await session.execute(
        select(TaskDependency.id, Task)
        .join(Task, Task.id == TaskDependency.dependent_task_id)
        .where(TaskDependency.depends_on_task_id == task_id)
    )

    def links(rows) -> list[DependencyLink]:
        return [
            DependencyLink(dependency_id=dep_id, task_id=t.id, title=t.title, status=t.status)
            for dep_id, t in rows
        ]

    return TaskDependenciesResponse(
        dependencies=links(prerequisites.all()),
        dependents=links(dependents.all()),
    )
