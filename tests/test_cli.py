"""Tests for the CLI and the demo seed."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner
from sqlalchemy import func, select

from keystone.cli import cli
from keystone.models.db import RFC, Project, Task, TaskDependency


class TestReportCommand:
    def test_rejects_bad_project_id(self):
        result = CliRunner().invoke(cli, ["report", "--project-id", "nope"])
        assert result.exit_code == 1
        assert "invalid project id" in result.output

    def test_rejects_unknown_format(self):
        result = CliRunner().invoke(
            cli, ["report", "--project-id", "00000000-0000-0000-0000-000000000001", "--format", "pdf"]
        )
        assert result.exit_code == 2

    def test_writes_report(self, tmp_path):
        target = tmp_path / "dashboard.csv"
        with patch("keystone.cli._report", new_callable=AsyncMock, return_value=target) as run:
            result = CliRunner().invoke(
                cli,
                [
                    "report",
                    "--project-id",
                    "00000000-0000-0000-0000-000000000001",
                    "--type",
                    "dashboard",
                    "--format",
                    "csv",
                    "--output",
                    str(tmp_path),
                ],
            )

        assert result.exit_code == 0, result.output
        assert f"Wrote dashboard report to {target}" in result.output
        _, report_type, fmt, output = run.await_args.args
        assert (report_type, fmt, output) == ("dashboard", "csv", Path(tmp_path))


class TestSeed:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, session_factory):
        from keystone.seed import seed_demo_workspace

        with patch("keystone.seed.async_session_factory", session_factory):
            project_id = await seed_demo_workspace()
            assert project_id is not None
            assert await seed_demo_workspace() is None

        async with session_factory() as s:
            assert (await s.execute(select(func.count(Project.id)))).scalar_one() == 1
            assert (await s.execute(select(func.count(Task.id)))).scalar_one() == 3
            assert (await s.execute(select(func.count(TaskDependency.id)))).scalar_one() >= 1
            rfc = (await s.execute(select(RFC))).scalar_one()
            assert rfc.rfc_code == "RFC-001"
