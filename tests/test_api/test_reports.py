"""Tests for live reports, saved reports and report exports."""

from __future__ import annotations

import io
import uuid

import pandas as pd
import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def populated(client, world):
    for title, status in [("Spec", "DONE"), ("Build", "IN_PROGRESS"), ("Test", "TODO")]:
        await client.post(
            "/api/tasks", json={"project_id": world.project_id, "title": title, "status": status}, headers=world.member
        )
    await client.post(
        "/api/risks",
        json={
            "project_id": world.project_id,
            "title": "Outage",
            "category": "TECHNICAL",
            "likelihood": "ALMOST_CERTAIN",
            "impact": "CATASTROPHIC",
        },
        headers=world.member,
    )
    return world


class TestLiveReports:
    @pytest.mark.asyncio
    async def test_project_status(self, client, populated):
        world = populated
        resp = await client.get(f"/api/reports/{world.project_id}/project-status", headers=world.member)
        assert resp.status_code == 200
        data = resp.json()
        assert data["project"]["name"] == "Launch"
        assert data["schedule"]["total_tasks"] == 3
        assert data["schedule"]["completed_tasks"] == 1
        assert data["overview"]["progress"] == 33
        assert data["overview"]["health"] == "yellow"
        assert data["risks"]["critical_risks"] == 1
        assert data["team"]["total_members"] == 1

    @pytest.mark.asyncio
    async def test_dashboard(self, client, populated):
        world = populated
        data = (await client.get(f"/api/reports/{world.project_id}/dashboard", headers=world.member)).json()
        assert data["risk_overview"]["critical"] == 1
        assert data["project_health"]["risks"] == 0
        assert data["task_summary"]["in_progress_tasks"] == 1

    @pytest.mark.asyncio
    async def test_unknown_type(self, client, world):
        resp = await client.get(f"/api/reports/{world.project_id}/burndown", headers=world.member)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_outsider(self, client, world):
        resp = await client.get(f"/api/reports/{world.project_id}/dashboard", headers=world.outsider)
        assert resp.status_code == 403


class TestExport:
    @pytest.mark.asyncio
    async def test_xlsx(self, client, populated):
        world = populated
        resp = await client.get(f"/api/reports/export/{world.project_id}/task-progress", headers=world.member)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert 'filename="task-progress-' in resp.headers["content-disposition"]

        sheets = pd.read_excel(io.BytesIO(resp.content), sheet_name=None, engine="openpyxl")
        assert sorted(sheets["tasks"]["title"]) == ["Build", "Spec", "Test"]

    @pytest.mark.asyncio
    async def test_html(self, client, populated):
        world = populated
        resp = await client.get(
            f"/api/reports/export/{world.project_id}/project-status", params={"format": "html"}, headers=world.member
        )
        assert resp.headers["content-type"].startswith("text/html")
        assert "Launch" in resp.text

    @pytest.mark.asyncio
    async def test_bad_format(self, client, world):
        resp = await client.get(
            f"/api/reports/export/{world.project_id}/dashboard", params={"format": "pdf"}, headers=world.member
        )
        assert resp.status_code == 400


class TestSavedReports:
    async def save(self, client, headers, **fields):
        resp = await client.post("/api/reports/save", json={"name": "Report", **fields}, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    @pytest.mark.asyncio
    async def test_visibility_and_categories(self, client, world):
        mine = await self.save(client, world.member, name="Mine", schedule="weekly")
        shared = await self.save(client, world.lead, name="Shared", shared_with=["u_member"])
        await self.save(client, world.lead, name="Private")

        def names(resp):
            return sorted(r["name"] for r in resp.json())

        assert names(await client.get("/api/reports/saved", headers=world.member)) == ["Mine", "Shared"]

        resp = await client.get("/api/reports/saved", params={"category": "shared"}, headers=world.member)
        assert [r["id"] for r in resp.json()] == [shared["id"]]

        resp = await client.get("/api/reports/saved", params={"category": "scheduled"}, headers=world.member)
        assert [r["id"] for r in resp.json()] == [mine["id"]]

        resp = await client.get("/api/reports/saved", params={"category": "personal"}, headers=world.member)
        assert [r["id"] for r in resp.json()] == [mine["id"]]

        resp = await client.get("/api/reports/saved", params={"category": "nonsense"}, headers=world.member)
        assert names(resp) == ["Mine", "Shared"]

    @pytest.mark.asyncio
    async def test_favorite_toggle(self, client, world):
        report = await self.save(client, world.member)
        url = f"/api/reports/favorite/{report['id']}"

        assert (await client.patch(url, headers=world.member)).json()["is_favorite"] is True
        resp = await client.get("/api/reports/saved", params={"category": "favorites"}, headers=world.member)
        assert [r["id"] for r in resp.json()] == [report["id"]]

        assert (await client.patch(url, headers=world.member)).json()["is_favorite"] is False
        assert (await client.patch(url, headers=world.outsider)).status_code == 404

    @pytest.mark.asyncio
    async def test_run(self, client, populated):
        world = populated
        report = await self.save(
            client,
            world.member,
            project_id=world.project_id,
            config={"report_type": "task-progress", "sections": ["summary"]},
        )

        resp = await client.post(f"/api/reports/run/{report['id']}", headers=world.member)
        assert resp.status_code == 200
        body = resp.json()
        assert body["report"]["run_count"] == 1
        assert body["report"]["last_run"] is not None
        assert body["data"]["report_type"] == "task-progress"
        assert list(body["data"]["data"]) == ["summary"]
        assert body["data"]["data"]["summary"]["total_tasks"] == 3

    @pytest.mark.asyncio
    async def test_run_without_project(self, client, world):
        report = await self.save(client, world.member)
        resp = await client.post(f"/api/reports/run/{report['id']}", headers=world.member)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_run_missing_project(self, client, world):
        report = await self.save(client, world.member, config={"project_id": str(uuid.uuid4())})
        resp = await client.post(f"/api/reports/run/{report['id']}", headers=world.member)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_save_for_foreign_project(self, client, world):
        resp = await client.post(
            "/api/reports/save", json={"name": "Spy", "project_id": world.project_id}, headers=world.outsider
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_only_creator_deletes(self, client, world):
        report = await self.save(client, world.lead, shared_with=["u_member"])
        url = f"/api/reports/{report['id']}"

        assert (await client.delete(url, headers=world.member)).status_code == 404
        assert (await client.delete(url, headers=world.lead)).status_code == 204
        assert (await client.get("/api/reports/saved", headers=world.lead)).json() == []
