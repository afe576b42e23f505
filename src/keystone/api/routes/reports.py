"""Report API routes: live project reports, saved reports and exports."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access import require_project_member
from keystone.api.deps import get_current_user, get_db, verify_api_key
from keystone.core.reports import (
    ReportError,
    ReportProjectNotFound,
    UnknownReportType,
    build_report,
    build_report_from_config,
)
from keystone.core.timeutil import utcnow
from keystone.exporters import UnsupportedFormat, export_report
from keystone.models.db import Report, User
from keystone.models.schemas import ReportResponse, ReportRunResponse, ReportSave

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", dependencies=[Depends(verify_api_key)])

REPORT_CATEGORIES = ("favorites", "scheduled", "shared", "personal")


def _in_category(report: Report, category: str | None, user_id: str) -> bool:
    if category == "favorites":
        return report.is_favorite
    if category == "scheduled":
        return report.schedule is not None
    if category == "shared":
        return report.created_by != user_id and user_id in (report.shared_with or [])
    if category == "personal":
        return report.created_by == user_id
    return True


async def _visible_report(session: AsyncSession, report_id: uuid.UUID, user: User) -> Report:
    report = await session.get(Report, report_id)
    if report is None or not report.visible_to(user.id):
        raise HTTPException(status_code=404, detail="Report not found or access denied")
    return report


async def _run_report(session: AsyncSession, project_id: uuid.UUID, report_type: str) -> dict:
    try:
        return await build_report(session, project_id, report_type)
    except UnknownReportType as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ReportProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")


@router.get("/saved", response_model=list[ReportResponse])
async def list_saved_reports(
    project_id: uuid.UUID | None = None,
    category: str | None = None,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Reports the caller created or that were shared with them, newest first."""
    if category is not None and category not in REPORT_CATEGORIES:
        logger.warning("Ignoring unknown report category %r", category)
        category = None

    query = select(Report)
    if project_id:
        query = query.where(Report.project_id == project_id)
    result = await session.execute(query.order_by(Report.last_modified.desc(), Report.created_at.desc()))

    # shared_with is a JSON list, so visibility is checked here rather than in SQL.
    return [
        report
        for report in result.scalars().all()
        if report.visible_to(user.id) and _in_category(report, category, user.id)
    ]


@router.post("/save", response_model=ReportResponse, status_code=201)
async def save_report(
    data: ReportSave,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if data.project_id is not None:
        await require_project_member(session, data.project_id, user)

    report = Report(**data.model_dump(), created_by=user.id)
    session.add(report)
    await session.flush()
    await session.refresh(report)
    logger.info("Report %r saved by %s", report.name, user.id)
    return report


@router.get("/export/{project_id}/{report_type}")
async def export_project_report(
    project_id: uuid.UUID,
    report_type: str,
    format: str = "xlsx",
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Download a live report as CSV, Excel or HTML."""
    await require_project_member(session, project_id, user)
    data = await _run_report(session, project_id, report_type)

    try:
        exported = export_report(data, format, title=report_type)
    except UnsupportedFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@router.post("/run/{report_id}", response_model=ReportRunResponse)
async def run_saved_report(
    report_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    report = await _visible_report(session, report_id, user)

    try:
        result = await build_report_from_config(session, report.config, report.project_id)
    except ReportProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except ReportError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    report.last_run = utcnow()
    report.run_count = (report.run_count or 0) + 1
    await session.flush()
    await session.refresh(report)
    return ReportRunResponse(report=ReportResponse.model_validate(report), data=result)


@router.patch("/favorite/{report_id}", response_model=ReportResponse)
async def toggle_favorite(
    report_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    report = await _visible_report(session, report_id, user)
    report.is_favorite = not report.is_favorite
    await session.flush()
    await session.refresh(report)
    return report


@router.get("/{project_id}/{report_type}")
async def get_report_data(
    project_id: uuid.UUID,
    report_type: str,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Build one of the live project reports (project-status, task-progress...)."""
    await require_project_member(session, project_id, user)
    return await _run_report(session, project_id, report_type)


@router.delete("/{report_id}", status_code=204)
async def delete_report(
    report_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Only the creator can delete a saved report."""
    report = await session.get(Report, report_id)
    if report is None or report.created_by != user.id:
        raise HTTPException(status_code=404, detail="Report not found or access denied")
    await session.delete(report)
