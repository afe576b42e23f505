"""Tests for the task board routes."""

from __future__ import annotations

import uuid

import pytest


async def create_task(client, world, title, headers=None, **fields):
    resp = await client.post(
        "/api/tasks",
        json={"project_id": world.project_id, "title": title, **fields},
        headers=headers or world.member,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestTasks:
    @pytest.mark.asyncio
    async def test_positions_per_status_column(self, client, world):
        first = await create_task(client, world, "First")
        second = await create_task(client, world, "Second")
        done = await create_task(client, world, "Done", status="DONE")

        assert (first["position"], second["position"], done["position"]) == (0, 1, 0)

    @pytest.mark.asyncio
    async def test_assignee_must_belong(self, client, world):
        resp = await client.post(
            "/api/tasks",
            json={"project_id": world.project_id, "title": "x", "assignee_id": "u_outsider"},
            headers=world.member,
        )
        assert resp.status_code == 403

        task = await create_task(client, world, "Mine", assignee_id="u_member")
        mine = await client.get("/api/tasks/my-tasks", headers=world.member)
        assert [t["id"] for t in mine.json()] == [task["id"]]

    @pytest.mark.asyncio
    async def test_update_is_manager_only(self, client, world):
        task = await create_task(client, world, "Write docs")
        url = f"/api/tasks/{task['id']}"

        assert (await client.put(url, json={"title": "Nope"}, headers=world.member)).status_code == 403

        resp = await client.put(url, json={"title": "Write API docs", "priority": "HIGH"}, headers=world.lead)
        assert resp.json()["title"] == "Write API docs"
        assert resp.json()["priority"] == "HIGH"

    @pytest.mark.asyncio
    async def test_update_with_null_title_rejected(self, client, world):
        task = await create_task(client, world, "Write docs", assignee_id="u_member")
        url = f"/api/tasks/{task['id']}"

        resp = await client.put(url, json={"title": None}, headers=world.lead)
        assert resp.status_code == 422
        assert (await client.get(url, headers=world.lead)).json()["title"] == "Write docs"

        resp = await client.put(url, json={"assignee_id": None}, headers=world.lead)
        assert resp.status_code == 200
        assert resp.json()["assignee_id"] is None

    @pytest.mark.asyncio
    async def test_members_move_tasks(self, client, world):
        task = await create_task(client, world, "Ship")
        resp = await client.patch(
            f"/api/tasks/{task['id']}/status", json={"status": "IN_REVIEW", "position": 3}, headers=world.member
        )
        assert resp.json()["status"] == "IN_REVIEW"
        assert resp.json()["position"] == 3

    @pytest.mark.asyncio
    async def test_workspace_listing(self, client, world):
        await create_task(client, world, "One")
        resp = await client.get(f"/api/tasks/workspace/{world.workspace_id}", headers=world.member)
        assert len(resp.json()) == 1

        resp = await client.get(f"/api/tasks/workspace/{world.workspace_id}", headers=world.outsider)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_bulk_delete(self, client, world):
        a = await create_task(client, world, "A")
        b = await create_task(client, world, "B")
        body = {"task_ids": [a["id"], b["id"]]}

        assert (await client.post("/api/tasks/delete", json=body, headers=world.member)).status_code == 403
        assert (await client.post("/api/tasks/delete", json=body, headers=world.lead)).status_code == 204

        resp = await client.get(f"/api/tasks/project/{world.project_id}", headers=world.lead)
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_bulk_delete_unknown_task(self, client, world):
        a = await create_task(client, world, "A")
        body = {"task_ids": [a["id"], str(uuid.uuid4())]}
        assert (await client.post("/api/tasks/delete", json=body, headers=world.lead)).status_code == 404


class TestSubtasks:
    @pytest.mark.asyncio
    async def test_lifecycle(self, client, world):
        task = await create_task(client, world, "Release")
        url = f"/api/tasks/{task['id']}/subtasks"

        first = (await client.post(url, json={"title": "Tag"}, headers=world.member)).json()
        second = (await client.post(url, json={"title": "Publish"}, headers=world.member)).json()
        assert (first["position"], second["position"]) == (0, 1)

        resp = await client.put(f"/api/tasks/subtasks/{first['id']}", json={"completed": True}, headers=world.member)
        assert resp.json()["completed"] is True

        detail = (await client.get(f"/api/tasks/{task['id']}", headers=world.member)).json()
        assert [s["title"] for s in detail["subtasks"]] == ["Tag", "Publish"]

        assert (await client.delete(f"/api/tasks/subtasks/{second['id']}", headers=world.member)).status_code == 403
        assert (await client.delete(f"/api/tasks/subtasks/{second['id']}", headers=world.lead)).status_code == 204


class TestDependencies:
    @pytest.mark.asyncio
    async def test_add_and_list(self, client, world):
        design = await create_task(client, world, "Design")
        build = await create_task(client, world, "Build")

        resp = await client.post(
            f"/api/tasks/{build['id']}/dependencies",
            json={"depends_on_task_id": design["id"]},
            headers=world.member,
        )
        assert resp.status_code == 201
        dependency = resp.json()

        deps = (await client.get(f"/api/tasks/{build['id']}/dependencies", headers=world.member)).json()
        assert [d["title"] for d in deps["dependencies"]] == ["Design"]
        assert deps["dependents"] == []

        deps = (await client.get(f"/api/tasks/{design['id']}/dependencies", headers=world.member)).json()
        assert [d["title"] for d in deps["dependents"]] == ["Build"]

        resp = await client.delete(
            f"/api/tasks/{build['id']}/dependencies/{dependency['id']}", headers=world.member
        )
        assert resp.status_code == 204

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, client, world):
        a = await create_task(client, world, "A")
        b = await create_task(client, world, "B")
        url = f"/api/tasks/{b['id']}/dependencies"
        body = {"depends_on_task_id": a["id"]}

        assert (await client.post(url, json=body, headers=world.member)).status_code == 201
        resp = await client.post(url, json=body, headers=world.member)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Dependency already exists"

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, client, world):
        a = await create_task(client, world, "A")
        b = await create_task(client, world, "B")
        c = await create_task(client, world, "C")

        async def depend(task, on):
            return await client.post(
                f"/api/tasks/{task['id']}/dependencies",
                json={"depends_on_task_id": on["id"]},
                headers=world.member,
            )

        assert (await depend(b, a)).status_code == 201
        assert (await depend(c, b)).status_code == 201

        resp = await depend(a, c)
        assert resp.status_code == 400
        assert "circular" in resp.json()["detail"]

        resp = await depend(a, a)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_cross_project_rejected(self, client, world):
        other = await client.post(
            "/api/projects",
            json={"workspace_id": world.workspace_id, "name": "Other"},
            headers=world.admin,
        )
        foreign = await client.post(
            "/api/tasks",
            json={"project_id": other.json()["id"], "title": "Elsewhere"},
            headers=world.admin,
        )
        local = await create_task(client, world, "Here")

        resp = await client.post(
            f"/api/tasks/{local['id']}/dependencies",
            json={"depends_on_task_id": foreign.json()["id"]},
            headers=world.member,
        )
        assert resp.status_code == 400
