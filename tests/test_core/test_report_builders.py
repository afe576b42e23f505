"""Tests for the report builders."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from keystone.core.reports import (
    REPORT_BUILDERS,
    ReportError,
    UnknownReportType,
    build_report,
    build_report_from_config,
    dashboard,
    project_status,
    requirements_coverage,
    stakeholder_engagement,
    task_progress,
)

NOW = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
PAST = NOW - timedelta(days=9)
FUTURE = NOW + timedelta(days=9)


def task(status="TODO", due=None, **kw):
    return SimpleNamespace(
        id=uuid.uuid4(),
        title=kw.get("title", "Task"),
        type="TASK",
        status=status,
        priority="MEDIUM",
        assignee_id=None,
        due_date=due,
    )


def requirement(status="DRAFT", tasks=0, tests=0):
    return SimpleNamespace(
        id=uuid.uuid4(),
        requirement_code="REQ-001",
        title="Requirement",
        status=status,
        priority="MEDIUM",
        task_links=[object()] * tasks,
        test_cases=[object()] * tests,
    )


def stakeholder(engagement):
    return SimpleNamespace(
        id=uuid.uuid4(),
        name="Person",
        role=None,
        organization=None,
        category="external",
        influence="medium",
        interest="medium",
        engagement_level=engagement,
    )


def make_project(**overrides):
    values = {
        "id": uuid.uuid4(),
        "name": "Launch",
        "description": "",
        "status": "ACTIVE",
        "priority": "HIGH",
        "start_date": None,
        "end_date": None,
        "budget": None,
        "spent": 0,
        "tasks": [],
        "requirements": [],
        "rfcs": [],
        "risks": [],
        "members": [],
        "stakeholders": [],
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def project():
    return make_project(
        budget=1000.0,
        spent=250.0,
        # 6 done, 1 overdue, 1 upcoming
        tasks=[task("DONE") for _ in range(6)] + [task("IN_PROGRESS", due=PAST), task("TODO", due=FUTURE)],
        requirements=[
            requirement("COMPLETED", tasks=1, tests=1),
            requirement("IN_PROGRESS", tasks=2),
            requirement(),
        ],
        rfcs=[SimpleNamespace(status="APPROVED"), SimpleNamespace(status="PROPOSED")],
        risks=[
            SimpleNamespace(status="ACTIVE", risk_level="CRITICAL", category="TECHNICAL", risk_score=80, trend=None),
            SimpleNamespace(status="MITIGATED", risk_level="LOW", category="BUDGET", risk_score=10, trend=None),
        ],
        members=[SimpleNamespace(status="ACTIVE"), SimpleNamespace(status="INACTIVE")],
        stakeholders=[stakeholder("high"), stakeholder("medium"), stakeholder("low"), stakeholder("high")],
    )


class TestProjectStatus:
    def test_sections(self, project):
        report = project_status(project, now=NOW)
        assert set(report) == {"project", "overview", "scope", "schedule", "risks", "team"}

    def test_healthy_project(self, project):
        report = project_status(project, now=NOW)

        assert report["overview"]["health"] == "green"
        assert report["overview"]["status"] == "ON_TRACK"
        assert report["overview"]["progress"] == 75
        assert report["schedule"] == {
            "total_tasks": 8,
            "completed_tasks": 6,
            "overdue_tasks": 1,
            "upcoming_tasks": 1,
        }
        assert report["scope"] == {
            "total_requirements": 3,
            "completed_requirements": 1,
            "in_progress_requirements": 2,
            "scope_changes": 1,
        }
        assert report["risks"]["critical_risks"] == 1
        assert report["risks"]["mitigated_risks"] == 1
        assert report["team"] == {"total_members": 2, "active_members": 1}

    def test_many_overdue_tasks_turn_red(self):
        late = make_project(tasks=[task("TODO", due=PAST) for _ in range(6)])
        overview = project_status(late, now=NOW)["overview"]
        assert overview["health"] == "red"
        assert overview["status"] == "AT_RISK"

    def test_naive_due_dates_are_treated_as_utc(self):
        late = make_project(tasks=[task("TODO", due=PAST.replace(tzinfo=None))])
        assert project_status(late, now=NOW)["schedule"]["overdue_tasks"] == 1

    def test_empty_project(self):
        overview = project_status(make_project(), now=NOW)["overview"]
        assert overview["health"] == "yellow"
        assert overview["progress"] == 0


class TestTaskProgress:
    def test_summary(self, project):
        report = task_progress(project, now=NOW)
        summary = report["summary"]

        assert summary["total_tasks"] == 8
        assert summary["completed_tasks"] == 6
        assert summary["in_progress_tasks"] == 1
        assert summary["pending_tasks"] == 1
        assert summary["overdue_tasks"] == 1
        assert summary["completion_rate"] == 75
        assert sum(row["overdue"] for row in report["tasks"]) == 1


class TestRequirementsCoverage:
    def test_coverage_levels(self, project):
        report = requirements_coverage(project)

        assert [row["coverage"] for row in report["requirements"]] == ["full", "partial", "none"]
        assert report["summary"] == {
            "total_requirements": 3,
            "covered_requirements": 1,
            "partial_coverage": 1,
            "no_coverage": 1,
            "coverage_percentage": 33,
        }


class TestStakeholderEngagement:
    def test_summary(self, project):
        summary = stakeholder_engagement(project)["summary"]
        assert summary == {
            "total_stakeholders": 4,
            "actively_engaged": 2,
            "partially_engaged": 1,
            "not_engaged": 1,
            "engagement_rate": 50,
        }


class TestDashboard:
    def test_health_scores(self, project):
        report = dashboard(project, now=NOW)

        assert report["project_health"] == {
            "overall": 75,
            "schedule": 87,
            "budget": 75,
            "quality": 33,
            "risks": 50,
        }
        assert report["risk_overview"] == {"total": 2, "critical": 1, "high": 0, "medium": 0, "low": 1}
        assert report["task_summary"]["total_tasks"] == 8

    def test_empty_project_is_healthy(self):
        health = dashboard(make_project(), now=NOW)["project_health"]
        assert health == {"overall": 100, "schedule": 100, "budget": 100, "quality": 100, "risks": 100}


class TestDispatch:
    def test_registered_types(self):
        assert set(REPORT_BUILDERS) == {
            "project-status",
            "task-progress",
            "requirements-coverage",
            "stakeholder-engagement",
            "risk-analytics",
            "dashboard",
        }

    @pytest.mark.asyncio
    async def test_unknown_type(self):
        with pytest.raises(UnknownReportType, match="Invalid report type: burndown"):
            await build_report(None, uuid.uuid4(), "burndown")

    @pytest.mark.asyncio
    async def test_saved_report_without_project(self):
        with pytest.raises(ReportError, match="no project"):
            await build_report_from_config(None, {"report_type": "dashboard"}, None)

    @pytest.mark.asyncio
    async def test_saved_report_with_bad_project_id(self):
        with pytest.raises(ReportError, match="Invalid project id"):
            await build_report_from_config(None, {"project_id": "not-a-uuid"}, None)
