"""Requirement API routes: CRUD, traceability links and test cases."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from keystone.api.access import require_project_manager, require_project_member
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.models.db import (
    Requirement,
    RequirementStakeholder,
    RequirementTaskLink,
    RequirementTestCase,
    Stakeholder,
    Task,
    User,
)
from keystone.models.schemas import (
    LinkTask,
    RequirementCreate,
    RequirementResponse,
    RequirementStakeholderAdd,
    RequirementTestCaseCreate,
    RequirementTestCaseResponse,
    RequirementTestCaseUpdate,
    RequirementUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requirements", dependencies=[Depends(verify_api_key)])

_CODE_ATTEMPTS = 10


def _requirement_query():
    return select(Requirement).options(
        selectinload(Requirement.task_links),
        selectinload(Requirement.stakeholder_links),
        selectinload(Requirement.test_cases),
    )


async def _load_requirement(session: AsyncSession, requirement_id: uuid.UUID) -> Requirement:
    result = await session.execute(
        _requirement_query()
        .where(Requirement.id == requirement_id)
        .execution_options(populate_existing=True)
    )
    requirement = result.scalar_one_or_none()
    if requirement is None:
        raise HTTPException(status_code=404, detail="Requirement not found")
    return requirement


async def _next_requirement_code(session: AsyncSession, project_id: uuid.UUID) -> str:
    """``REQ-nnn`` numbered per project, skipping codes already taken."""
    count = (
        await session.execute(select(func.count(Requirement.id)).where(Requirement.project_id == project_id))
    ).scalar_one()
    for attempt in range(_CODE_ATTEMPTS):
        code = f"REQ-{count + 1 + attempt:03d}"
        taken = await session.execute(
            select(Requirement.id).where(Requirement.project_id == project_id, Requirement.requirement_code == code)
        )
        if taken.first() is None:
            return code
    return f"REQ-{uuid.uuid4().hex[:8].upper()}"


async def _check_parent(session: AsyncSession, project_id: uuid.UUID, parent_id: uuid.UUID | None) -> None:
    if parent_id is None:
        return
    parent = await session.get(Requirement, parent_id)
    if parent is None or parent.project_id != project_id:
        raise HTTPException(status_code=400, detail="Parent requirement must belong to the same project")


@router.post("", response_model=RequirementResponse, status_code=201)
async def create_requirement(
    data: RequirementCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, data.project_id, user)
    await _check_parent(session, data.project_id, data.parent_id)

    values = data.model_dump()
    values["owner_id"] = values["owner_id"] or user.id
    requirement = Requirement(**values, requirement_code=await _next_requirement_code(session, data.project_id))
    session.add(requirement)
    await session.flush()
    logger.info("Requirement %s created in project %s", requirement.requirement_code, data.project_id)
    return await _load_requirement(session, requirement.id)


@router.get("/project/{project_id}", response_model=list[RequirementResponse])
async def list_project_requirements(
    project_id: uuid.UUID,
    status: str | None = None,
    priority: str | None = None,
    type: str | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, project_id, user)

    query = _requirement_query().where(Requirement.project_id == project_id)
    if status:
        query = query.where(Requirement.status == status)
    if priority:
        query = query.where(Requirement.priority == priority)
    if type:
        query = query.where(Requirement.type == type)
    result = await session.execute(query.order_by(Requirement.created_at.desc()))
    return result.scalars().all()


@router.get("/project/{project_id}/traceability")
async def traceability_matrix(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Each requirement with the stakeholders, tasks and test cases tracing to it."""
    access = await require_project_member(session, project_id, user)

    result = await session.execute(
        select(Requirement)
        .where(Requirement.project_id == project_id)
        .options(
            selectinload(Requirement.stakeholder_links).selectinload(RequirementStakeholder.stakeholder),
            selectinload(Requirement.task_links).selectinload(RequirementTaskLink.task),
            selectinload(Requirement.test_cases),
        )
        .order_by(Requirement.created_at)
    )

    matrix = []
    for requirement in result.scalars().all():
        matrix.append(
            {
                "id": str(requirement.id),
                "requirement_code": requirement.requirement_code,
                "title": requirement.title,
                "type": requirement.type,
                "status": requirement.status,
                "priority": requirement.priority,
                "owner_id": requirement.owner_id,
                "stakeholders": [
                    {"id": str(link.stakeholder.id), "name": link.stakeholder.name}
                    for link in requirement.stakeholder_links
                ],
                "tasks": [
                    {
                        "id": str(link.task.id),
                        "title": link.task.title,
                        "status": link.task.status,
                        "assignee_id": link.task.assignee_id,
                    }
                    for link in requirement.task_links
                ],
                "test_cases": [
                    {"id": str(case.id), "title": case.title, "status": case.status}
                    for case in requirement.test_cases
                ],
            }
        )

    return {"project": {"id": str(access.project.id), "name": access.project.name}, "matrix": matrix}


@router.patch("/test-cases/{test_case_id}", response_model=RequirementTestCaseResponse)
async def update_test_case(
    test_case_id: uuid.UUID,
    data: RequirementTestCaseUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    test_case = await session.get(RequirementTestCase, test_case_id)
    if test_case is None:
        raise HTTPException(status_code=404, detail="Test case not found")
    requirement = await session.get(Requirement, test_case.requirement_id)
    await require_project_member(session, requirement.project_id, user)

    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(test_case, key, value)
    await session.flush()
    await session.refresh(test_case)
    return test_case


@router.get("/{requirement_id}", response_model=RequirementResponse)
async def get_requirement(
    requirement_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    requirement = await _load_requirement(session, requirement_id)
    await require_project_member(session, requirement.project_id, user)
    return requirement


@router.put("/{requirement_id}", response_model=RequirementResponse)
async def update_requirement(
    requirement_id: uuid.UUID,
    data: RequirementUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Edit a requirement. Managers or the requirement's owner."""
    requirement = await _load_requirement(session, requirement_id)
    access = await require_project_member(session, requirement.project_id, user)
    if not (access.can_manage or requirement.owner_id == user.id):
        raise HTTPException(status_code=403, detail="You don't have permission to update this requirement")

    updates = data.model_dump(exclude_unset=True)
    if updates.get("parent_id") is not None:
        if updates["parent_id"] == requirement.id:
            raise HTTPException(status_code=400, detail="A requirement cannot be its own parent")
        await _check_parent(session, requirement.project_id, updates["parent_id"])

    for key, value in updates.items():
        setattr(requirement, key, value)
    await session.flush()
    return await _load_requirement(session, requirement_id)


@router.delete("/{requirement_id}", status_code=204)
async def delete_requirement(
    requirement_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    requirement = await session.get(Requirement, requirement_id)
    if requirement is None:
        raise HTTPException(status_code=404, detail="Requirement not found")
    await require_project_manager(session, requirement.project_id, user)
    await session.delete(requirement)
    logger.info("Requirement %s deleted by %s", requirement.requirement_code, user.id)


@router.post("/{requirement_id}/link-task", response_model=RequirementResponse, status_code=201)
async def link_task(
    requirement_id: uuid.UUID,
    data: LinkTask,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    requirement = await _load_requirement(session, requirement_id)
    await require_project_member(session, requirement.project_id, user)

    task = await session.get(Task, data.task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if task.project_id != requirement.project_id:
        raise HTTPException(status_code=400, detail="Requirement and task must be in the same project")
    if data.task_id in requirement.linked_task_ids:
        raise HTTPException(status_code=400, detail="This requirement is already linked to this task")

    session.add(RequirementTaskLink(requirement_id=requirement_id, task_id=data.task_id))
    await session.flush()
    return await _load_requirement(session, requirement_id)


@router.post("/{requirement_id}/stakeholders", response_model=RequirementResponse, status_code=201)
async def add_requirement_stakeholder(
    requirement_id: uuid.UUID,
    data: RequirementStakeholderAdd,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    requirement = await _load_requirement(session, requirement_id)
    await require_project_member(session, requirement.project_id, user)

    stakeholder = await session.get(Stakeholder, data.stakeholder_id)
    if stakeholder is None:
        raise HTTPException(status_code=404, detail="Stakeholder not found")
    if stakeholder.project_id != requirement.project_id:
        raise HTTPException(status_code=400, detail="Requirement and stakeholder must be in the same project")
    if data.stakeholder_id in requirement.stakeholder_ids:
        raise HTTPException(status_code=400, detail="Stakeholder is already linked to this requirement")

    session.add(RequirementStakeholder(requirement_id=requirement_id, stakeholder_id=data.stakeholder_id))
    await session.flush()
    return await _load_requirement(session, requirement_id)


@router.post("/{requirement_id}/test-cases", response_model=RequirementTestCaseResponse, status_code=201)
async def add_test_case(
    requirement_id: uuid.UUID,
    data: RequirementTestCaseCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    requirement = await session.get(Requirement, requirement_id)
    if requirement is None:
        raise HTTPException(status_code=404, detail="Requirement not found")
    await require_project_member(session, requirement.project_id, user)

    test_case = RequirementTestCase(requirement_id=requirement_id, title=data.title, status=data.status)
    session.add(test_case)
    await session.flush()
    await session.refresh(test_case)
    return test_case
