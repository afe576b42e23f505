"""Risk register API routes."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from keystone.api.access import ProjectAccess, require_project_manager, require_project_member
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.config import settings
from keystone.core.analytics import risk_analytics, risk_matrix
from keystone.core.history import field_changes, record_risk_history
from keystone.core.monitoring import is_triggered, monitor_triggered_risk
from keystone.core.scoring import (
    IMPACT_LABELS,
    LIKELIHOOD_LABELS,
    calculate_comprehensive_score,
    calculate_risk_score,
    generate_risk_code,
    residual_risk,
    risk_level_for,
)
from keystone.core.timeutil import utcnow
from keystone.exporters import UnsupportedFormat, export_table
from keystone.models.db import (
    Requirement,
    Risk,
    RiskComment,
    RiskHistory,
    RiskIndicator,
    RiskRequirementLink,
    RiskResponseAction,
    RiskResponsePlan,
    RiskTaskLink,
    Task,
    User,
)
from keystone.models.schemas import (
    CommentCreate,
    CommentResponse,
    EscalationCreate,
    IndicatorCreate,
    IndicatorResponse,
    IndicatorUpdate,
    LinkRequirement,
    LinkTask,
    ResponsePlanResponse,
    ResponsePlanUpsert,
    RiskAssessmentCreate,
    RiskBulkUpdate,
    RiskCreate,
    RiskDetailResponse,
    RiskHistoryResponse,
    RiskResponse,
    RiskStatusUpdate,
    RiskUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/risks", dependencies=[Depends(verify_api_key)])


# ── Loading helpers ───────────────────────────────────────────────────────────


def _detail_options() -> tuple:
    return (
        selectinload(Risk.comments),
        selectinload(Risk.history),
        selectinload(Risk.response_plan).selectinload(RiskResponsePlan.actions),
        selectinload(Risk.indicators),
        selectinload(Risk.requirement_links),
        selectinload(Risk.task_links),
    )


async def _load_risk(session: AsyncSession, risk_id: uuid.UUID, detail: bool = False) -> Risk:
    # populate_existing reloads columns that a flush expired (updated_at etc.)
    query = select(Risk).where(Risk.id == risk_id).execution_options(populate_existing=True)
    if detail:
        query = query.options(*_detail_options())
    risk = (await session.execute(query)).scalar_one_or_none()
    if risk is None:
        raise HTTPException(status_code=404, detail="Risk not found")
    return risk


async def _risk_for_member(
    session: AsyncSession, risk_id: uuid.UUID, user: User
) -> tuple[Risk, ProjectAccess]:
    risk = await _load_risk(session, risk_id)
    access = await require_project_member(session, risk.project_id, user)
    return risk, access


def _apply_update(session: AsyncSession, risk: Risk, updates: dict[str, Any], user: User) -> None:
    """Apply a partial update, rescoring and recording history."""
    changes = field_changes(risk, updates)
    for key, value in updates.items():
        setattr(risk, key, value)

    if "likelihood" in updates or "impact" in updates:
        score = calculate_risk_score(risk.likelihood, risk.impact)
        if score != risk.risk_score:
            changes["risk_score"] = {"old": risk.risk_score, "new": score}
        risk.risk_score = score
        risk.risk_level = risk_level_for(score)

    risk.updated_by = user.id
    if changes:
        record_risk_history(session, risk.id, user.id, "UPDATE", {"changes": changes})


def _export_row(risk: Risk) -> dict[str, Any]:
    return {
        "risk_code": risk.risk_code,
        "title": risk.title,
        "category": risk.category,
        "likelihood": risk.likelihood,
        "impact": risk.impact,
        "risk_score": risk.risk_score,
        "risk_level": risk.risk_level,
        "status": risk.status,
        "trend": risk.trend,
        "owner": risk.owner,
        "residual_risk": risk.residual_risk,
        "escalated": risk.escalated,
        "created_at": risk.created_at,
    }


# ── Register ──────────────────────────────────────────────────────────────────


@router.post("", response_model=RiskDetailResponse, status_code=201)
async def create_risk(
    data: RiskCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a risk. The score is computed from likelihood and impact unless given."""
    await require_project_member(session, data.project_id, user)

    impact = data.impact or data.severity or "MODERATE"
    score = data.risk_score if data.risk_score is not None else calculate_risk_score(data.likelihood, impact)

    risk = Risk(
        **data.model_dump(exclude={"impact", "severity", "risk_score"}),
        impact=impact,
        risk_score=score,
        risk_level=risk_level_for(score),
        risk_code=generate_risk_code(),
        created_by=user.id,
        updated_by=user.id,
    )
    session.add(risk)
    await session.flush()

    record_risk_history(
        session,
        risk.id,
        user.id,
        "CREATED",
        {"risk_code": risk.risk_code, "title": risk.title, "risk_score": score},
    )
    await session.flush()
    return await _load_risk(session, risk.id, detail=True)


@router.get("/project/{project_id}", response_model=list[RiskResponse])
async def list_project_risks(
    project_id: uuid.UUID,
    category: str | None = None,
    status: str | None = None,
    likelihood: str | None = None,
    impact: str | None = None,
    severity: str | None = None,
    risk_level: str | None = None,
    owner: str | None = None,
    search: str | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List a project's risks, newest first."""
    await require_project_member(session, project_id, user)

    query = select(Risk).where(Risk.project_id == project_id)
    if category:
        query = query.where(Risk.category == category)
    if status:
        query = query.where(Risk.status == status)
    if likelihood:
        query = query.where(Risk.likelihood == likelihood)
    if impact or severity:
        query = query.where(Risk.impact == (impact or severity))
    if risk_level:
        query = query.where(Risk.risk_level == risk_level)
    if owner:
        query = query.where(Risk.owner == owner)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Risk.title.ilike(pattern),
                Risk.description.ilike(pattern),
                Risk.risk_code.ilike(pattern),
            )
        )

    result = await session.execute(query.order_by(Risk.created_at.desc()))
    return result.scalars().all()


@router.get("/project/{project_id}/matrix")
async def get_risk_matrix(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, project_id, user)
    result = await session.execute(select(Risk).where(Risk.project_id == project_id))
    return risk_matrix(result.scalars().all())


@router.get("/project/{project_id}/analytics")
async def get_risk_analytics(
    project_id: uuid.UUID,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Aggregate the project's risks, optionally limited to a creation window."""
    await require_project_member(session, project_id, user)

    query = select(Risk).where(Risk.project_id == project_id)
    if start_date:
        query = query.where(Risk.created_at >= start_date)
    if end_date:
        query = query.where(Risk.created_at <= end_date)
    result = await session.execute(query)
    return risk_analytics(result.scalars().all())


@router.get("/project/{project_id}/export")
async def export_project_risks(
    project_id: uuid.UUID,
    format: str = "xlsx",
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_project_member(session, project_id, user)
    result = await session.execute(
        select(Risk).where(Risk.project_id == project_id).order_by(Risk.created_at.desc())
    )

    try:
        exported = export_table([_export_row(r) for r in result.scalars().all()], format, title="risks")
    except UnsupportedFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@router.put("/bulk-update", response_model=list[RiskResponse])
async def bulk_update_risks(
    data: RiskBulkUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Apply one partial update to several risks of the same project."""
    await require_project_member(session, data.project_id, user)

    wanted = set(data.risk_ids)
    result = await session.execute(
        select(Risk).where(Risk.id.in_(wanted), Risk.project_id == data.project_id)
    )
    risks = list(result.scalars().all())
    if len(risks) != len(wanted):
        raise HTTPException(status_code=400, detail="All risks must exist and belong to the project")

    updates = data.updates.model_dump(exclude_unset=True)
    for risk in risks:
        _apply_update(session, risk, updates, user)
    await session.flush()

    return [await _load_risk(session, risk.id) for risk in risks]


# ── Single risk ───────────────────────────────────────────────────────────────


@router.get("/{risk_id}", response_model=RiskDetailResponse)
async def get_risk(
    risk_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await _risk_for_member(session, risk_id, user)
    return await _load_risk(session, risk_id, detail=True)


@router.put("/{risk_id}", response_model=RiskDetailResponse)
async def update_risk(
    risk_id: uuid.UUID,
    data: RiskUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk, _ = await _risk_for_member(session, risk_id, user)
    _apply_update(session, risk, data.model_dump(exclude_unset=True), user)
    await session.flush()
    return await _load_risk(session, risk_id, detail=True)


@router.delete("/{risk_id}", status_code=204)
async def delete_risk(
    risk_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk = await _load_risk(session, risk_id)
    await require_project_manager(session, risk.project_id, user)
    await session.delete(risk)
    logger.info("Risk %s deleted by %s", risk.risk_code, user.id)


@router.post("/{risk_id}/comment", response_model=CommentResponse, status_code=201)
async def add_risk_comment(
    risk_id: uuid.UUID,
    data: CommentCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not data.content.strip():
        raise HTTPException(status_code=400, detail="Comment content is required")
    await _risk_for_member(session, risk_id, user)

    comment = RiskComment(risk_id=risk_id, user_id=user.id, content=data.content.strip())
    session.add(comment)
    await session.flush()
    await session.refresh(comment)
    return comment


@router.patch("/{risk_id}/status", response_model=RiskResponse)
async def update_risk_status(
    risk_id: uuid.UUID,
    data: RiskStatusUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk, _ = await _risk_for_member(session, risk_id, user)

    old_status = risk.status
    risk.status = data.status
    risk.updated_by = user.id
    record_risk_history(
        session,
        risk.id,
        user.id,
        "STATUS_CHANGE",
        {"old_status": old_status, "new_status": data.status, "notes": data.notes},
    )
    await session.flush()
    return await _load_risk(session, risk_id)


@router.post("/{risk_id}/assess", response_model=RiskResponse)
async def assess_risk(
    risk_id: uuid.UUID,
    data: RiskAssessmentCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Record a six-factor assessment and rescore the risk."""
    risk, _ = await _risk_for_member(session, risk_id, user)

    factors = data.model_dump(exclude={"notes"})
    score = calculate_comprehensive_score(factors)

    risk.likelihood = LIKELIHOOD_LABELS[data.likelihood]
    risk.impact = IMPACT_LABELS[data.impact]
    risk.detectability = data.detectability
    risk.velocity = data.velocity
    risk.interconnectedness = data.interconnectedness
    risk.control_effectiveness = data.control_effectiveness
    risk.risk_score = score
    risk.risk_level = risk_level_for(score)
    risk.last_assessment_date = utcnow()
    risk.assessed_by = user.id
    risk.updated_by = user.id

    record_risk_history(
        session,
        risk.id,
        user.id,
        "ASSESSMENT",
        {"risk_score": score, "risk_level": risk.risk_level, "assessment": data.model_dump()},
    )
    await session.flush()
    return await _load_risk(session, risk_id)


async def _load_plan(session: AsyncSession, risk_id: uuid.UUID) -> RiskResponsePlan | None:
    result = await session.execute(
        select(RiskResponsePlan)
        .where(RiskResponsePlan.risk_id == risk_id)
        .options(selectinload(RiskResponsePlan.actions))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@router.post("/{risk_id}/response-plan", response_model=ResponsePlanResponse)
@router.put("/{risk_id}/response-plan", response_model=ResponsePlanResponse)
async def upsert_response_plan(
    risk_id: uuid.UUID,
    data: ResponsePlanUpsert,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create or update the risk's response plan and recompute residual risk.

    When ``actions`` is given it replaces the plan's action list.
    """
    risk, _ = await _risk_for_member(session, risk_id, user)
    plan = await _load_plan(session, risk_id)
    created = plan is None

    values = data.model_dump(exclude={"actions"}, exclude_unset=True)
    if values.get("response_effectiveness") is None:
        values.pop("response_effectiveness", None)

    if plan is None:
        values.setdefault("response_effectiveness", settings.default_response_effectiveness)
        values.setdefault("triggers", [])
        plan = RiskResponsePlan(risk_id=risk_id, created_by=user.id, **values)
        session.add(plan)
    else:
        for key, value in values.items():
            setattr(plan, key, value)
    plan.updated_by = user.id

    if data.actions is not None:
        plan.actions = [RiskResponseAction(**action.model_dump()) for action in data.actions]

    risk.residual_risk = residual_risk(risk.risk_score, plan.response_effectiveness)
    risk.response_implemented = True
    risk.updated_by = user.id

    record_risk_history(
        session,
        risk.id,
        user.id,
        "RESPONSE_PLAN",
        {
            "created": created,
            "strategy": plan.response_strategy,
            "effectiveness": plan.response_effectiveness,
            "residual_risk": risk.residual_risk,
        },
    )
    await session.flush()
    return await _load_plan(session, risk_id)


@router.post("/{risk_id}/indicators", response_model=IndicatorResponse, status_code=201)
async def add_indicator(
    risk_id: uuid.UUID,
    data: IndicatorCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk, _ = await _risk_for_member(session, risk_id, user)

    indicator = RiskIndicator(
        risk_id=risk_id,
        **data.model_dump(),
        triggered=is_triggered(data.current_value, data.threshold),
        last_updated=utcnow(),
    )
    session.add(indicator)
    if indicator.active and indicator.triggered and monitor_triggered_risk(risk):
        logger.info("Indicator %r moved risk %s to monitoring", data.name, risk.risk_code)

    await session.flush()
    await session.refresh(indicator)
    return indicator


@router.put("/{risk_id}/indicators/{indicator_id}", response_model=IndicatorResponse)
async def update_indicator(
    risk_id: uuid.UUID,
    indicator_id: uuid.UUID,
    data: IndicatorUpdate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Record a new reading; a breached active indicator puts the risk under monitoring."""
    risk, _ = await _risk_for_member(session, risk_id, user)

    indicator = await session.get(RiskIndicator, indicator_id)
    if indicator is None or indicator.risk_id != risk_id:
        raise HTTPException(status_code=404, detail="Indicator not found")

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(indicator, key, value)
    indicator.triggered = is_triggered(indicator.current_value, indicator.threshold)
    indicator.last_updated = utcnow()

    if indicator.active and indicator.triggered and monitor_triggered_risk(risk):
        risk.updated_by = user.id
        logger.info("Indicator %r moved risk %s to monitoring", indicator.name, risk.risk_code)

    await session.flush()
    await session.refresh(indicator)
    return indicator


@router.post("/{risk_id}/escalate", response_model=RiskResponse)
async def escalate_risk(
    risk_id: uuid.UUID,
    data: EscalationCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk, _ = await _risk_for_member(session, risk_id, user)

    risk.escalated = True
    risk.escalated_to = data.escalated_to
    risk.escalation_date = utcnow()
    risk.escalation_notes = data.notes
    risk.escalation_priority = data.priority
    risk.escalation_status = "PENDING"
    risk.updated_by = user.id

    record_risk_history(
        session,
        risk.id,
        user.id,
        "ESCALATION",
        {"escalated_to": data.escalated_to, "notes": data.notes, "priority": data.priority},
    )
    await session.flush()
    logger.info("Risk %s escalated to %s (%s)", risk.risk_code, data.escalated_to, data.priority)
    return await _load_risk(session, risk_id)


@router.get("/{risk_id}/history", response_model=list[RiskHistoryResponse])
async def get_risk_history(
    risk_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await _risk_for_member(session, risk_id, user)
    result = await session.execute(
        select(RiskHistory).where(RiskHistory.risk_id == risk_id).order_by(RiskHistory.created_at.desc())
    )
    return result.scalars().all()


@router.post("/{risk_id}/link-requirement", response_model=RiskDetailResponse, status_code=201)
async def link_requirement(
    risk_id: uuid.UUID,
    data: LinkRequirement,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk, _ = await _risk_for_member(session, risk_id, user)

    requirement = await session.get(Requirement, data.requirement_id)
    if requirement is None:
        raise HTTPException(status_code=404, detail="Requirement not found")
    if requirement.project_id != risk.project_id:
        raise HTTPException(status_code=400, detail="Requirement belongs to another project")

    existing = await session.execute(
        select(RiskRequirementLink.id).where(
            RiskRequirementLink.risk_id == risk_id,
            RiskRequirementLink.requirement_id == data.requirement_id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=400, detail="Risk is already linked to this requirement")

    session.add(RiskRequirementLink(risk_id=risk_id, requirement_id=data.requirement_id))
    await session.flush()
    return await _load_risk(session, risk_id, detail=True)


@router.post("/{risk_id}/link-task", response_model=RiskDetailResponse, status_code=201)
async def link_task(
    risk_id: uuid.UUID,
    data: LinkTask,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    risk, _ = await _risk_for_member(session, risk_id, user)

    task = await session.get(Task, data.task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if task.project_id != risk.project_id:
        raise HTTPException(status_code=400, detail="Task belongs to another project")

    existing = await session.execute(
        select(RiskTaskLink.id).where(
            RiskTaskLink.risk_id == risk_id,
            RiskTaskLink.task_id == data.task_id,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=400, detail="Risk is already linked to this task")

    session.add(RiskTaskLink(risk_id=risk_id, task_id=data.task_id))
    await session.flush()
    return await _load_risk(session, risk_id, detail=True)
