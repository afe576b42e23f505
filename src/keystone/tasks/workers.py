"""Background workers using APScheduler.

Runs periodic tasks:
- Scheduled saved reports (daily, weekly ones on Mondays)
- Key risk indicator sweep (hourly by default)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.config import settings

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None

SessionFactory = Callable[[], AsyncSession]


def start_scheduler() -> None:
    """Start the background task scheduler."""
    global _scheduler
    if _scheduler is not None:
        return

    _scheduler = AsyncIOScheduler(timezone="UTC")

    _scheduler.add_job(
        run_scheduled_reports,
        "cron",
        hour=settings.keystone_report_hour,
        minute=0,
        id="scheduled_reports_daily",
        replace_existing=True,
    )

    _scheduler.add_job(
        sweep_risk_indicators,
        "interval",
        minutes=settings.keystone_indicator_sweep_minutes,
        id="risk_indicator_sweep",
        replace_existing=True,
    )

    _scheduler.start()
    logger.info("Background scheduler started")


def stop_scheduler() -> None:
    """Stop the background task scheduler."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Background scheduler stopped")


def _default_session_factory() -> SessionFactory:
    from keystone.db.session import async_session_factory

    return async_session_factory


def due_schedules(now: datetime) -> tuple[str, ...]:
    """Schedules that fire on ``now``'s day: daily always, weekly on Mondays."""
    if now.weekday() == 0:
        return ("daily", "weekly")
    return ("daily",)


async def run_scheduled_reports(
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> int:
    """Run every saved report whose schedule is due. Returns how many ran."""
    from keystone.core.reports import build_report_from_config
    from keystone.core.timeutil import utcnow
    from keystone.models.db import Report

    now = now or utcnow()
    session_factory = session_factory or _default_session_factory()
    schedules = due_schedules(now)
    logger.info("Running scheduled reports (%s)", ", ".join(schedules))

    completed = 0
    async with session_factory() as session:
        result = await session.execute(select(Report.id).where(Report.schedule.in_(schedules)))
        report_ids = result.scalars().all()

        for report_id in report_ids:
            try:
                # A rollback expires loaded rows, so each report is fetched fresh.
                report = await session.get(Report, report_id)
                output = await build_report_from_config(session, report.config, report.project_id, now=now)
                report.last_run = now
                report.run_count = (report.run_count or 0) + 1
                await session.commit()
                completed += 1
                logger.info(
                    "Scheduled report %r (%s) produced %d section(s)",
                    report.name,
                    output["report_type"],
                    len(output["data"]),
                )
            except Exception:
                logger.exception("Scheduled report %s failed", report_id)
                await session.rollback()

    return completed


async def sweep_risk_indicators(session_factory: SessionFactory | None = None) -> int:
    """Put risks with a firing active indicator under monitoring.

    Returns the number of risks moved.
    """
    from keystone.core.monitoring import SETTLED_STATUSES, monitor_triggered_risk
    from keystone.models.db import Risk, RiskIndicator

    session_factory = session_factory or _default_session_factory()

    async with session_factory() as session:
        result = await session.execute(
            select(Risk).where(
                Risk.status.not_in(sorted(SETTLED_STATUSES)),
                Risk.id.in_(
                    select(RiskIndicator.risk_id).where(
                        RiskIndicator.active.is_(True),
                        RiskIndicator.triggered.is_(True),
                    )
                ),
            )
        )
        moved = [risk for risk in result.scalars().all() if monitor_triggered_risk(risk, skip_settled=True)]

        if moved:
            await session.commit()
            logger.info("Indicator sweep moved %d risk(s) to monitoring", len(moved))
        return len(moved)
