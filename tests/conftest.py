"""Shared test fixtures for the Keystone test suite."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from keystone.db.session import create_engine_for
from keystone.models.db import Base


@pytest_asyncio.fixture
async def engine():
    """A fresh in-memory SQLite database per test."""
    engine = create_engine_for("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def client(session_factory):
    """An httpx client wired to the app, with ``get_db`` bound to the test database."""
    from keystone.api.deps import get_db
    from keystone.main import app

    async def override_get_db():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@dataclass
class World:
    """A workspace with one project and users in each role."""

    workspace_id: str
    project_id: str
    admin: dict[str, str]
    lead: dict[str, str]
    member: dict[str, str]
    outsider: dict[str, str]


USERS = {
    "admin": ("u_admin", "admin@example.com"),
    "lead": ("u_lead", "lead@example.com"),
    "member": ("u_member", "member@example.com"),
    "outsider": ("u_outsider", "outsider@example.com"),
}


@pytest_asyncio.fixture
async def world(client) -> World:
    """Admin owns the workspace; lead and member belong to it; outsider does not."""
    for user_id, email in USERS.values():
        resp = await client.post("/api/users", json={"id": user_id, "email": email, "name": user_id})
        assert resp.status_code == 200, resp.text

    admin = as_user(USERS["admin"][0])
    resp = await client.post("/api/workspaces", json={"name": "Acme"}, headers=admin)
    assert resp.status_code == 201, resp.text
    workspace_id = resp.json()["id"]

    for role in ("lead", "member"):
        resp = await client.post(
            f"/api/workspaces/{workspace_id}/members",
            json={"email": USERS[role][1], "role": "MEMBER"},
            headers=admin,
        )
        assert resp.status_code == 201, resp.text

    resp = await client.post(
        "/api/projects",
        json={
            "workspace_id": workspace_id,
            "name": "Launch",
            "team_lead": USERS["lead"][1],
            "members": [USERS["member"][0]],
        },
        headers=admin,
    )
    assert resp.status_code == 201, resp.text

    return World(
        workspace_id=workspace_id,
        project_id=resp.json()["id"],
        admin=admin,
        lead=as_user(USERS["lead"][0]),
        member=as_user(USERS["member"][0]),
        outsider=as_user(USERS["outsider"][0]),
    )
