"""Tests for the risk register routes."""

from __future__ import annotations

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def risk(client, world):
    resp = await client.post(
        "/api/risks",
        json={
            "project_id": world.project_id,
            "title": "Payment provider outage",
            "category": "TECHNICAL",
            "likelihood": "POSSIBLE",
            "impact": "MAJOR",
        },
        headers=world.member,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCreateRisk:
    @pytest.mark.asyncio
    async def test_scored_from_likelihood_and_impact(self, risk):
        assert risk["risk_score"] == 48
        assert risk["risk_level"] == "MEDIUM"
        assert risk["status"] == "IDENTIFIED"
        assert risk["risk_code"].startswith("RSK-")
        assert risk["created_by"] == "u_member"
        assert [h["action"] for h in risk["history"]] == ["CREATED"]

    @pytest.mark.asyncio
    async def test_severity_alias_and_explicit_score(self, client, world):
        resp = await client.post(
            "/api/risks",
            json={
                "project_id": world.project_id,
                "title": "Vendor lock-in",
                "category": "EXTERNAL",
                "severity": "CATASTROPHIC",
                "risk_score": 90,
            },
            headers=world.member,
        )
        data = resp.json()
        assert data["impact"] == "CATASTROPHIC"
        assert data["risk_score"] == 90
        assert data["risk_level"] == "CRITICAL"

    @pytest.mark.asyncio
    async def test_outsider_rejected(self, client, world):
        resp = await client.post(
            "/api/risks",
            json={"project_id": world.project_id, "title": "x", "category": "TECHNICAL"},
            headers=world.outsider,
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_category(self, client, world):
        resp = await client.post(
            "/api/risks",
            json={"project_id": world.project_id, "title": "x", "category": "WEATHER"},
            headers=world.member,
        )
        assert resp.status_code == 422


class TestListRisks:
    @pytest.mark.asyncio
    async def test_filters_and_search(self, client, world, risk):
        await client.post(
            "/api/risks",
            json={"project_id": world.project_id, "title": "Budget overrun", "category": "BUDGET"},
            headers=world.member,
        )
        url = f"/api/risks/project/{world.project_id}"

        assert len((await client.get(url, headers=world.member)).json()) == 2

        resp = await client.get(url, params={"category": "BUDGET"}, headers=world.member)
        assert [r["title"] for r in resp.json()] == ["Budget overrun"]

        resp = await client.get(url, params={"search": "PAYMENT"}, headers=world.member)
        assert [r["title"] for r in resp.json()] == ["Payment provider outage"]

        resp = await client.get(url, params={"severity": "MAJOR"}, headers=world.member)
        assert len(resp.json()) == 1


class TestUpdateRisk:
    @pytest.mark.asyncio
    async def test_rescores_and_records_history(self, client, world, risk):
        resp = await client.put(
            f"/api/risks/{risk['id']}",
            json={"likelihood": "ALMOST_CERTAIN", "impact": "CATASTROPHIC"},
            headers=world.member,
        )
        data = resp.json()
        assert data["risk_score"] == 100
        assert data["risk_level"] == "CRITICAL"

        history = (await client.get(f"/api/risks/{risk['id']}/history", headers=world.member)).json()
        update = next(h for h in history if h["action"] == "UPDATE")
        assert update["details"]["changes"]["risk_score"] == {"old": 48, "new": 100}

    @pytest.mark.asyncio
    async def test_null_for_required_field_rejected(self, client, world, risk):
        url = f"/api/risks/{risk['id']}"
        resp = await client.put(url, json={"likelihood": None}, headers=world.member)
        assert resp.status_code == 422

        resp = await client.put(
            "/api/risks/bulk-update",
            json={"project_id": world.project_id, "risk_ids": [risk["id"]], "updates": {"title": None}},
            headers=world.member,
        )
        assert resp.status_code == 422

        detail = (await client.get(url, headers=world.member)).json()
        assert detail["likelihood"] == "POSSIBLE"
        assert detail["title"] == "Payment provider outage"

    @pytest.mark.asyncio
    async def test_null_clears_optional_field(self, client, world, risk):
        url = f"/api/risks/{risk['id']}"
        await client.put(url, json={"cause": "Single vendor"}, headers=world.member)
        resp = await client.put(url, json={"cause": None}, headers=world.member)
        assert resp.status_code == 200
        assert resp.json()["cause"] is None

    @pytest.mark.asyncio
    async def test_bulk_update(self, client, world, risk):
        resp = await client.put(
            "/api/risks/bulk-update",
            json={"project_id": world.project_id, "risk_ids": [risk["id"]], "updates": {"status": "ACTIVE"}},
            headers=world.member,
        )
        assert resp.status_code == 200
        assert resp.json()[0]["status"] == "ACTIVE"

    @pytest.mark.asyncio
    async def test_status_change(self, client, world, risk):
        resp = await client.patch(
            f"/api/risks/{risk['id']}/status",
            json={"status": "MITIGATED", "notes": "Failover in place"},
            headers=world.member,
        )
        assert resp.json()["status"] == "MITIGATED"

    @pytest.mark.asyncio
    async def test_delete_needs_manager(self, client, world, risk):
        url = f"/api/risks/{risk['id']}"
        assert (await client.delete(url, headers=world.member)).status_code == 403
        assert (await client.delete(url, headers=world.lead)).status_code == 204
        assert (await client.get(url, headers=world.lead)).status_code == 404


class TestAssessmentAndResponse:
    @pytest.mark.asyncio
    async def test_assessment(self, client, world, risk):
        resp = await client.post(
            f"/api/risks/{risk['id']}/assess",
            json={
                "likelihood": 5,
                "impact": 5,
                "detectability": 5,
                "velocity": 5,
                "interconnectedness": 5,
                "control_effectiveness": 5,
            },
            headers=world.member,
        )
        data = resp.json()
        assert data["risk_score"] == 100
        assert data["risk_level"] == "CRITICAL"
        assert data["likelihood"] == "ALMOST_CERTAIN"
        assert data["impact"] == "CATASTROPHIC"
        assert data["last_assessment_date"] is not None

    @pytest.mark.asyncio
    async def test_assessment_factor_range(self, client, world, risk):
        resp = await client.post(
            f"/api/risks/{risk['id']}/assess", json={"likelihood": 6, "impact": 1}, headers=world.member
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_response_plan_sets_residual_risk(self, client, world, risk):
        url = f"/api/risks/{risk['id']}/response-plan"
        resp = await client.post(
            url,
            json={
                "response_strategy": "MITIGATE",
                "actions": [{"description": "Add a second provider"}],
            },
            headers=world.member,
        )
        assert resp.status_code == 200
        plan = resp.json()
        assert plan["response_effectiveness"] == 50
        assert [a["description"] for a in plan["actions"]] == ["Add a second provider"]

        detail = (await client.get(f"/api/risks/{risk['id']}", headers=world.member)).json()
        assert detail["residual_risk"] == 24.0
        assert detail["response_implemented"] is True

        resp = await client.put(url, json={"response_effectiveness": 75}, headers=world.member)
        assert resp.json()["response_strategy"] == "MITIGATE"
        assert len(resp.json()["actions"]) == 1

        detail = (await client.get(f"/api/risks/{risk['id']}", headers=world.member)).json()
        assert detail["residual_risk"] == 12.0


class TestIndicators:
    @pytest.mark.asyncio
    async def test_breached_indicator_moves_risk_to_monitoring(self, client, world, risk):
        url = f"/api/risks/{risk['id']}/indicators"
        resp = await client.post(url, json={"name": "Error rate", "threshold": 5, "current_value": 1}, headers=world.member)
        assert resp.status_code == 201
        indicator = resp.json()
        assert indicator["triggered"] is False

        resp = await client.put(f"{url}/{indicator['id']}", json={"current_value": 9}, headers=world.member)
        assert resp.json()["triggered"] is True

        detail = (await client.get(f"/api/risks/{risk['id']}", headers=world.member)).json()
        assert detail["status"] == "MONITORING"
        assert detail["trend"] == "INCREASING"

    @pytest.mark.asyncio
    async def test_monitored_risk_trend_turns_increasing(self, client, world, risk):
        await client.put(
            f"/api/risks/{risk['id']}", json={"status": "MONITORING", "trend": "DECREASING"}, headers=world.member
        )
        url = f"/api/risks/{risk['id']}/indicators"
        indicator = (
            await client.post(
                url, json={"name": "Error rate", "threshold": 5, "current_value": 1}, headers=world.member
            )
        ).json()

        await client.put(f"{url}/{indicator['id']}", json={"current_value": 9}, headers=world.member)

        detail = (await client.get(f"/api/risks/{risk['id']}", headers=world.member)).json()
        assert (detail["status"], detail["trend"]) == ("MONITORING", "INCREASING")

    @pytest.mark.asyncio
    async def test_mitigated_risk_pulled_back_into_monitoring(self, client, world, risk):
        await client.put(
            f"/api/risks/{risk['id']}", json={"status": "MITIGATED", "trend": "DECREASING"}, headers=world.member
        )
        await client.post(
            f"/api/risks/{risk['id']}/indicators",
            json={"name": "Error rate", "threshold": 5, "current_value": 9},
            headers=world.member,
        )
        detail = (await client.get(f"/api/risks/{risk['id']}", headers=world.member)).json()
        assert (detail["status"], detail["trend"]) == ("MONITORING", "INCREASING")

    @pytest.mark.asyncio
    async def test_inactive_indicator_ignored(self, client, world, risk):
        await client.post(
            f"/api/risks/{risk['id']}/indicators",
            json={"name": "Error rate", "threshold": 5, "current_value": 9, "active": False},
            headers=world.member,
        )
        detail = (await client.get(f"/api/risks/{risk['id']}", headers=world.member)).json()
        assert detail["status"] == "IDENTIFIED"

    @pytest.mark.asyncio
    async def test_threshold_cannot_be_nulled(self, client, world, risk):
        url = f"/api/risks/{risk['id']}/indicators"
        indicator = (await client.post(url, json={"name": "Error rate", "threshold": 5}, headers=world.member)).json()
        resp = await client.put(f"{url}/{indicator['id']}", json={"threshold": None}, headers=world.member)
        assert resp.status_code == 422


class TestEscalationAndComments:
    @pytest.mark.asyncio
    async def test_escalate(self, client, world, risk):
        resp = await client.post(
            f"/api/risks/{risk['id']}/escalate",
            json={"escalated_to": "cto@example.com", "notes": "Needs budget"},
            headers=world.member,
        )
        data = resp.json()
        assert data["escalated"] is True
        assert data["escalation_priority"] == "HIGH"
        assert data["escalation_status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_comments(self, client, world, risk):
        url = f"/api/risks/{risk['id']}/comment"
        assert (await client.post(url, json={"content": "   "}, headers=world.member)).status_code == 400

        resp = await client.post(url, json={"content": " Watching this "}, headers=world.member)
        assert resp.status_code == 201
        assert resp.json()["content"] == "Watching this"


class TestMatrixAndAnalytics:
    @pytest.mark.asyncio
    async def test_matrix(self, client, world, risk):
        resp = await client.get(f"/api/risks/project/{world.project_id}/matrix", headers=world.member)
        data = resp.json()
        assert len(data["matrix"]["POSSIBLE-MAJOR"]) == 1
        assert sum(map(sum, data["grid"])) == 1

    @pytest.mark.asyncio
    async def test_analytics(self, client, world, risk):
        resp = await client.get(f"/api/risks/project/{world.project_id}/analytics", headers=world.member)
        data = resp.json()
        assert data["total_risks"] == 1
        assert data["average_risk_score"] == 48

    @pytest.mark.asyncio
    async def test_analytics_date_window(self, client, world, risk):
        url = f"/api/risks/project/{world.project_id}/analytics"

        resp = await client.get(
            url, params={"start_date": "2000-01-01T00:00:00", "end_date": "2999-12-31T00:00:00"}, headers=world.member
        )
        assert resp.json()["total_risks"] == 1

        resp = await client.get(url, params={"start_date": "2999-01-01T00:00:00"}, headers=world.member)
        assert resp.json()["total_risks"] == 0

        resp = await client.get(url, params={"end_date": "2000-01-01T00:00:00"}, headers=world.member)
        assert resp.json()["total_risks"] == 0

    @pytest.mark.asyncio
    async def test_export(self, client, world, risk):
        resp = await client.get(
            f"/api/risks/project/{world.project_id}/export", params={"format": "csv"}, headers=world.member
        )
        assert resp.status_code == 200
        assert "Payment provider outage" in resp.text


class TestLinks:
    @pytest.mark.asyncio
    async def test_link_task_and_requirement(self, client, world, risk):
        task = (
            await client.post(
                "/api/tasks", json={"project_id": world.project_id, "title": "Add failover"}, headers=world.member
            )
        ).json()
        requirement = (
            await client.post(
                "/api/requirements",
                json={"project_id": world.project_id, "title": "99.9% uptime"},
                headers=world.member,
            )
        ).json()

        resp = await client.post(
            f"/api/risks/{risk['id']}/link-task", json={"task_id": task["id"]}, headers=world.member
        )
        assert resp.status_code == 201
        assert resp.json()["linked_task_ids"] == [task["id"]]

        resp = await client.post(
            f"/api/risks/{risk['id']}/link-task", json={"task_id": task["id"]}, headers=world.member
        )
        assert resp.status_code == 400

        resp = await client.post(
            f"/api/risks/{risk['id']}/link-requirement",
            json={"requirement_id": requirement["id"]},
            headers=world.member,
        )
        assert resp.status_code == 201
        assert resp.json()["linked_requirement_ids"] == [requirement["id"]]
