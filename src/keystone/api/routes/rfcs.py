"""Request-for-change (RFC) API routes."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from keystone.api.access import ProjectAccess, require_project_member
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.core.history import field_changes
from keystone.core.rfc_workflow import (
    RFCPermissionError,
    RFCTransitionError,
    check_transition,
    is_editable,
    next_rfc_code,
)
from keystone.core.timeutil import utcnow
from keystone.models.db import (
    RFC,
    RFC_STATUSES,
    SEVERITY_LEVELS,
    Requirement,
    RequirementStakeholder,
    RequirementTaskLink,
    RFCComment,
    RFCHistory,
    User,
)
from keystone.models.schemas import (
    CommentCreate,
    CommentResponse,
    RFCCreate,
    RFCDetailResponse,
    RFCResponse,
    RFCStatusUpdate,
    RFCUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rfc", dependencies=[Depends(verify_api_key)])


async def _load_rfc(session: AsyncSession, rfc_id: uuid.UUID, detail: bool = False) -> RFC:
    query = select(RFC).where(RFC.id == rfc_id).execution_options(populate_existing=True)
    if detail:
        query = query.options(selectinload(RFC.comments), selectinload(RFC.history))
    rfc = (await session.execute(query)).scalar_one_or_none()
    if rfc is None:
        raise HTTPException(status_code=404, detail="RFC not found")
    return rfc


async def _next_rfc_code(session: AsyncSession, project_id: uuid.UUID) -> str:
    """``RFC-nnn`` numbered per project, skipping codes already taken."""
    taken = set((await session.execute(select(RFC.rfc_code).where(RFC.project_id == project_id))).scalars())
    count = len(taken)
    while next_rfc_code(count) in taken:
        count += 1
    return next_rfc_code(count)


async def _rfc_for_member(
    session: AsyncSession, rfc_id: uuid.UUID, user: User, detail: bool = False
) -> tuple[RFC, ProjectAccess]:
    rfc = await _load_rfc(session, rfc_id, detail=detail)
    return rfc, await require_project_member(session, rfc.project_id, user)


@router.post("", response_model=RFCDetailResponse, status_code=201)
async def create_rfc(
    data: RFCCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Propose a change against a requirement of the project."""
    requirement = await session.get(Requirement, data.requirement_id)
    if requirement is None or requirement.project_id != data.project_id:
        raise HTTPException(status_code=404, detail="Requirement not found")
    await require_project_member(session, data.project_id, user)

    rfc = RFC(
        **data.model_dump(),
        rfc_code=await _next_rfc_code(session, data.project_id),
        requester_id=user.id,
        status="PROPOSED",
    )
    session.add(rfc)
    await session.flush()

    session.add(
        RFCHistory(
            rfc_id=rfc.id,
            user_id=user.id,
            action="CREATED",
            changes={"status": "PROPOSED", "title": data.title, "reason": data.reason},
        )
    )
    await session.flush()
    logger.info("RFC %s proposed on requirement %s", rfc.rfc_code, requirement.requirement_code)
    return await _load_rfc(session, rfc.id, detail=True)


@router.get("/project/{project_id}", response_model=list[RFCResponse])
async def list_project_rfcs(
    project_id: uuid.UUID,
    status: str | None = None,
    impact_level: str | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, project_id, user)

    query = select(RFC).where(RFC.project_id == project_id)
    if status:
        if status in RFC_STATUSES:
            query = query.where(RFC.status == status)
        else:
            logger.warning("Ignoring unknown RFC status filter %r", status)
    if impact_level:
        if impact_level in SEVERITY_LEVELS:
            query = query.where(RFC.impact_level == impact_level)
        else:
            logger.warning("Ignoring unknown RFC impact level filter %r", impact_level)

    result = await session.execute(query.order_by(RFC.created_at.desc()))
    return result.scalars().all()


@router.get("/{rfc_id}", response_model=RFCDetailResponse)
async def get_rfc(
    rfc_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rfc, _ = await _rfc_for_member(session, rfc_id, user, detail=True)
    return rfc


@router.put("/{rfc_id}", response_model=RFCDetailResponse)
async def update_rfc(
    rfc_id: uuid.UUID,
    data: RFCUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Edit an open RFC. Its requester, reviewer, a workspace admin or the lead."""
    rfc, access = await _rfc_for_member(session, rfc_id, user)
    if not (access.can_manage or user.id in (rfc.requester_id, rfc.reviewer_id)):
        raise HTTPException(status_code=403, detail="You don't have permission to update this RFC")
    if not is_editable(rfc.status):
        raise HTTPException(status_code=400, detail=f"Cannot update RFC with status: {rfc.status}")

    updates = data.model_dump(exclude_unset=True)
    changes = field_changes(rfc, updates)
    for key, value in updates.items():
        setattr(rfc, key, value)

    session.add(RFCHistory(rfc_id=rfc.id, user_id=user.id, action="UPDATED", changes=changes))
    await session.flush()
    return await _load_rfc(session, rfc_id, detail=True)


@router.patch("/{rfc_id}/status", response_model=RFCDetailResponse)
async def update_rfc_status(
    rfc_id: uuid.UUID,
    data: RFCStatusUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Move an RFC through review: start review, approve, reject, implement or cancel."""
    rfc, access = await _rfc_for_member(session, rfc_id, user)

    try:
        check_transition(
            rfc.status,
            data.status,
            is_manager=access.can_manage,
            is_requester=rfc.requester_id == user.id,
            is_workspace_admin=access.is_workspace_admin,
            rejection_reason=data.rejection_reason,
        )
    except RFCPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except RFCTransitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    changes: dict = {"status": {"old": rfc.status, "new": data.status}}
    now = utcnow()
    if data.status == "UNDER_REVIEW":
        rfc.reviewer_id = data.reviewer_id or user.id
    elif data.status == "APPROVED":
        rfc.approved_by = user.id
        rfc.approved_at = now
    elif data.status == "REJECTED":
        rfc.rejection_reason = data.rejection_reason.strip()
        changes["rejection_reason"] = rfc.rejection_reason
    elif data.status == "IMPLEMENTED":
        rfc.implemented_at = now

    logger.info("RFC %s: %s -> %s by %s", rfc.rfc_code, rfc.status, data.status, user.id)
    rfc.status = data.status
    session.add(RFCHistory(rfc_id=rfc.id, user_id=user.id, action="STATUS_CHANGED", changes=changes))
    await session.flush()
    return await _load_rfc(session, rfc_id, detail=True)


@router.delete("/{rfc_id}", status_code=204)
async def delete_rfc(
    rfc_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Workspace admins may delete any RFC; requesters only while it is PROPOSED."""
    rfc, access = await _rfc_for_member(session, rfc_id, user)
    own_proposal = rfc.requester_id == user.id and rfc.status == "PROPOSED"
    if not (access.is_workspace_admin or own_proposal):
        raise HTTPException(status_code=403, detail="You don't have permission to delete this RFC")
    await session.delete(rfc)


@router.post("/{rfc_id}/comment", response_model=CommentResponse, status_code=201)
async def add_rfc_comment(
    rfc_id: uuid.UUID,
    data: CommentCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not data.content.strip():
        raise HTTPException(status_code=400, detail="Comment content is required")
    await _rfc_for_member(session, rfc_id, user)

    comment = RFCComment(rfc_id=rfc_id, user_id=user.id, content=data.content.strip())
    session.add(comment)
    await session.flush()
    await session.refresh(comment)
    return comment


def _task_summary(task) -> dict:
    return {
        "id": str(task.id),
        "title": task.title,
        "status": task.status,
        "priority": task.priority,
        "assignee_id": task.assignee_id,
        "due_date": task.due_date.isoformat() if task.due_date else None,
    }


@router.get("/{rfc_id}/impact-analysis")
async def rfc_impact_analysis(
    rfc_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """What a change touches: the requirement, tasks traced to it or its
    child requirements, its stakeholders, and the RFC's own estimates."""
    rfc, _ = await _rfc_for_member(session, rfc_id, user)

    task_links = selectinload(Requirement.task_links).selectinload(RequirementTaskLink.task)
    requirement = (
        await session.execute(
            select(Requirement)
            .where(Requirement.id == rfc.requirement_id)
            .options(
                task_links,
                selectinload(Requirement.stakeholder_links).selectinload(RequirementStakeholder.stakeholder),
            )
        )
    ).scalar_one()
    children = (
        await session.execute(
            select(Requirement)
            .where(Requirement.parent_id == requirement.id)
            .options(task_links)
        )
    ).scalars().all()

    tasks = {}
    for source in (requirement, *children):
        for link in source.task_links:
            tasks.setdefault(link.task.id, link.task)

    return {
        "rfc": {
            "id": str(rfc.id),
            "rfc_code": rfc.rfc_code,
            "title": rfc.title,
            "status": rfc.status,
            "impact_level": rfc.impact_level,
        },
        "requirement": {
            "id": str(requirement.id),
            "requirement_code": requirement.requirement_code,
            "title": requirement.title,
            "status": requirement.status,
            "priority": requirement.priority,
        },
        "affected_tasks": [_task_summary(task) for task in tasks.values()],
        "affected_stakeholders": [
            {
                "id": str(link.stakeholder.id),
                "name": link.stakeholder.name,
                "role": link.stakeholder.role,
                "influence": link.stakeholder.influence,
                "interest": link.stakeholder.interest,
            }
            for link in requirement.stakeholder_links
        ],
        "estimated_impact": {
            "time_estimate": rfc.time_estimate,
            "cost_estimate": rfc.cost_estimate,
            "schedule_impact": rfc.schedule_impact,
            "affected_releases": rfc.affected_releases or [],
        },
    }
