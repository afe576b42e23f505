"""Project reports.

Each builder takes a project with its child collections loaded and returns a
JSON-ready dict. ``build_report`` loads the project and dispatches by report
type; ``build_report_from_config`` does the same for a saved report.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from keystone.core.analytics import risk_analytics
from keystone.core.scoring import percentage, round_half_up
from keystone.core.timeutil import as_utc, utcnow
from keystone.models.db import Project, Requirement

logger = logging.getLogger(__name__)

DEFAULT_REPORT_TYPE = "project-status"


class ReportError(Exception):
    """A report could not be produced from the given input."""


class UnknownReportType(ReportError):
    pass


class ReportProjectNotFound(ReportError):
    pass


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _is_overdue(task: Any, now: datetime) -> bool:
    due = as_utc(task.due_date)
    return due is not None and due < now and task.status != "DONE"


def _count_overdue(tasks: list[Any], now: datetime) -> int:
    return sum(1 for t in tasks if _is_overdue(t, now))


def _coverage_of(requirement: Any) -> str:
    has_tasks = bool(requirement.task_links)
    has_tests = bool(requirement.test_cases)
    if has_tasks and has_tests:
        return "full"
    if has_tasks or has_tests:
        return "partial"
    return "none"


def _health_score(part: int | float, whole: int | float) -> int:
    """100 minus the percentage of bad items; an empty population is healthy."""
    if not whole:
        return 100
    return 100 - percentage(part, whole)


# ── Builders ──────────────────────────────────────────────────────────────────


def project_status(project: Any, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    tasks = list(project.tasks)
    total_tasks = len(tasks)
    completed_tasks = sum(1 for t in tasks if t.status == "DONE")
    overdue_tasks = _count_overdue(tasks, now)

    if overdue_tasks > 5:
        health = "red"
    elif total_tasks and completed_tasks / total_tasks > 0.7:
        health = "green"
    else:
        health = "yellow"

    requirements = list(project.requirements)
    completed_requirements = sum(1 for r in requirements if r.status == "COMPLETED")
    scope_changes = sum(1 for rfc in project.rfcs if rfc.status in ("APPROVED", "IMPLEMENTED"))

    risks = list(project.risks)
    members = list(project.members)

    return {
        "project": {
            "id": str(project.id),
            "name": project.name,
            "description": project.description,
            "status": project.status,
            "priority": project.priority,
        },
        "overview": {
            "status": "AT_RISK" if overdue_tasks > 5 else "ON_TRACK",
            "health": health,
            "progress": percentage(completed_tasks, total_tasks),
            "start_date": _iso(project.start_date),
            "end_date": _iso(project.end_date),
            "budget": project.budget,
            "spent": project.spent or 0,
        },
        "scope": {
            "total_requirements": len(requirements),
            "completed_requirements": completed_requirements,
            "in_progress_requirements": len(requirements) - completed_requirements,
            "scope_changes": scope_changes,
        },
        "schedule": {
            "total_tasks": total_tasks,
            "completed_tasks": completed_tasks,
            "overdue_tasks": overdue_tasks,
            "upcoming_tasks": total_tasks - completed_tasks - overdue_tasks,
        },
        "risks": {
            "total_risks": len(risks),
            "active_risks": sum(1 for r in risks if r.status == "ACTIVE"),
            "critical_risks": sum(1 for r in risks if r.risk_level == "CRITICAL"),
            "mitigated_risks": sum(1 for r in risks if r.status in ("MITIGATED", "CLOSED")),
        },
        "team": {
            "total_members": len(members),
            "active_members": sum(1 for m in members if m.status == "ACTIVE"),
        },
    }


def task_progress(project: Any, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    tasks = list(project.tasks)
    summary = {
        "total_tasks": len(tasks),
        "completed_tasks": sum(1 for t in tasks if t.status == "DONE"),
        "in_progress_tasks": sum(1 for t in tasks if t.status == "IN_PROGRESS"),
        "in_review_tasks": sum(1 for t in tasks if t.status == "IN_REVIEW"),
        "pending_tasks": sum(1 for t in tasks if t.status == "TODO"),
        "overdue_tasks": _count_overdue(tasks, now),
    }
    summary["completion_rate"] = percentage(summary["completed_tasks"], summary["total_tasks"])

    rows = [
        {
            "id": str(t.id),
            "title": t.title,
            "type": t.type,
            "status": t.status,
            "priority": t.priority,
            "assignee_id": t.assignee_id,
            "due_date": _iso(t.due_date),
            "overdue": _is_overdue(t, now),
        }
        for t in tasks
    ]
    return {"summary": summary, "tasks": rows}


def requirements_coverage(project: Any) -> dict[str, Any]:
    requirements = list(project.requirements)
    coverage = [_coverage_of(r) for r in requirements]
    summary = {
        "total_requirements": len(requirements),
        "covered_requirements": coverage.count("full"),
        "partial_coverage": coverage.count("partial"),
        "no_coverage": coverage.count("none"),
    }
    summary["coverage_percentage"] = percentage(
        summary["covered_requirements"], summary["total_requirements"]
    )

    rows = [
        {
            "id": str(r.id),
            "requirement_code": r.requirement_code,
            "title": r.title,
            "status": r.status,
            "priority": r.priority,
            "task_count": len(r.task_links),
            "test_count": len(r.test_cases),
            "coverage": level,
        }
        for r, level in zip(requirements, coverage)
    ]
    return {"summary": summary, "requirements": rows}


def stakeholder_engagement(project: Any) -> dict[str, Any]:
    stakeholders = list(project.stakeholders)
    summary = {
        "total_stakeholders": len(stakeholders),
        "actively_engaged": sum(1 for s in stakeholders if s.engagement_level == "high"),
        "partially_engaged": sum(1 for s in stakeholders if s.engagement_level == "medium"),
        "not_engaged": sum(1 for s in stakeholders if s.engagement_level == "low"),
    }
    summary["engagement_rate"] = percentage(summary["actively_engaged"], summary["total_stakeholders"])

    rows = [
        {
            "id": str(s.id),
            "name": s.name,
            "role": s.role,
            "organization": s.organization,
            "category": s.category,
            "influence": s.influence,
            "interest": s.interest,
            "engagement_level": s.engagement_level,
        }
        for s in stakeholders
    ]
    return {"summary": summary, "stakeholders": rows}


def project_risk_analytics(project: Any) -> dict[str, Any]:
    return {"analytics": risk_analytics(project.risks)}


def dashboard(project: Any, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    status = project_status(project, now)
    progress = task_progress(project, now)
    coverage = requirements_coverage(project)
    risks = list(project.risks)

    schedule = status["schedule"]
    overview = status["overview"]
    if overview["budget"]:
        budget_health = round_half_up((1 - overview["spent"] / overview["budget"]) * 100)
    else:
        budget_health = 100

    levels = {level: 0 for level in ("CRITICAL", "HIGH", "MEDIUM", "LOW")}
    for risk in risks:
        if risk.risk_level in levels:
            levels[risk.risk_level] += 1

    return {
        "project_health": {
            "overall": overview["progress"] if schedule["total_tasks"] else 100,
            "schedule": _health_score(schedule["overdue_tasks"], schedule["total_tasks"]),
            "budget": budget_health,
            "quality": (
                coverage["summary"]["coverage_percentage"]
                if coverage["summary"]["total_requirements"]
                else 100
            ),
            "risks": _health_score(levels["CRITICAL"], len(risks)),
        },
        "task_summary": progress["summary"],
        "risk_overview": {
            "total": len(risks),
            "critical": levels["CRITICAL"],
            "high": levels["HIGH"],
            "medium": levels["MEDIUM"],
            "low": levels["LOW"],
        },
        "requirements_coverage": coverage["summary"],
    }


REPORT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "project-status": project_status,
    "task-progress": task_progress,
    "requirements-coverage": lambda project, now=None: requirements_coverage(project),
    "stakeholder-engagement": lambda project, now=None: stakeholder_engagement(project),
    "risk-analytics": lambda project, now=None: project_risk_analytics(project),
    "dashboard": dashboard,
}

REPORT_TYPES = tuple(REPORT_BUILDERS)


# ── Loading & dispatch ────────────────────────────────────────────────────────


async def load_project_for_report(session: AsyncSession, project_id: uuid.UUID) -> Project | None:
    result = await session.execute(
        select(Project)
        .where(Project.id == project_id)
        .options(
            selectinload(Project.tasks),
            selectinload(Project.requirements).selectinload(Requirement.task_links),
            selectinload(Project.requirements).selectinload(Requirement.test_cases),
            selectinload(Project.rfcs),
            selectinload(Project.risks),
            selectinload(Project.members),
            selectinload(Project.stakeholders),
        )
    )
    return result.scalar_one_or_none()


async def build_report(
    session: AsyncSession,
    project_id: uuid.UUID,
    report_type: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    builder = REPORT_BUILDERS.get(report_type)
    if builder is None:
        raise UnknownReportType(f"Invalid report type: {report_type}")

    project = await load_project_for_report(session, project_id)
    if project is None:
        raise ReportProjectNotFound(f"Project {project_id} not found")

    return builder(project, now=now)


async def build_report_from_config(
    session: AsyncSession,
    config: Mapping[str, Any] | None,
    project_id: uuid.UUID | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run a saved report definition.

    ``config`` may name a ``report_type`` (defaults to project status), a
    ``project_id`` used when the report itself has none, and a list of
    top-level ``sections`` to keep.
    """
    config = dict(config or {})
    report_type = config.get("report_type") or DEFAULT_REPORT_TYPE

    target = project_id or config.get("project_id")
    if target is None:
        raise ReportError("Saved report has no project to report on")
    if not isinstance(target, uuid.UUID):
        try:
            target = uuid.UUID(str(target))
        except ValueError as exc:
            raise ReportError(f"Invalid project id in report config: {target}") from exc

    data = await build_report(session, target, report_type, now=now)

    sections = config.get("sections")
    if sections:
        unknown = [s for s in sections if s not in data]
        if unknown:
            logger.warning("Ignoring unknown report sections %s for %s", unknown, report_type)
        data = {key: value for key, value in data.items() if key in sections}

    return {"report_type": report_type, "project_id": str(target), "data": data}
