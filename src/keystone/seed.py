"""Seed database with a demo workspace for local exploration.

Usage: python -m keystone.seed  (or ``keystone seed``)
"""

import asyncio
from datetime import timedelta

from sqlalchemy import select

from keystone.core.scoring import calculate_risk_score, generate_risk_code, risk_level_for
from keystone.core.timeutil import utcnow
from keystone.db.session import async_session_factory, init_db
from keystone.models.db import (
    RFC,
    Project,
    ProjectMember,
    Requirement,
    RequirementTaskLink,
    Risk,
    Stakeholder,
    Task,
    TaskDependency,
    User,
    Workspace,
    WorkspaceMember,
)

DEMO_USERS = [
    ("user_demo_admin", "admin@keystone.local", "Avery Admin"),
    ("user_demo_lead", "lead@keystone.local", "Jordan Lead"),
    ("user_demo_dev", "dev@keystone.local", "Sam Developer"),
]

DEMO_WORKSPACE = "Keystone Demo"


async def seed_demo_workspace() -> str | None:
    """Create the demo users, workspace and one populated project."""
    async with async_session_factory() as session:
        result = await session.execute(select(Workspace).where(Workspace.name == DEMO_WORKSPACE))
        if result.scalar_one_or_none():
            print("  Demo workspace already exists, skipping.")
            return None

        for user_id, email, name in DEMO_USERS:
            if await session.get(User, user_id) is None:
                session.add(User(id=user_id, email=email, name=name))
        await session.flush()

        admin, lead, dev = (u[0] for u in DEMO_USERS)
        workspace = Workspace(name=DEMO_WORKSPACE, description="Sample data", owner_id=admin)
        session.add(workspace)
        await session.flush()
        session.add_all(
            [
                WorkspaceMember(workspace_id=workspace.id, user_id=admin, role="ADMIN"),
                WorkspaceMember(workspace_id=workspace.id, user_id=lead, role="MEMBER"),
                WorkspaceMember(workspace_id=workspace.id, user_id=dev, role="MEMBER"),
            ]
        )

        now = utcnow()
        project = Project(
            workspace_id=workspace.id,
            name="Checkout Redesign",
            description="Rebuild the checkout flow with saved payment methods",
            status="ACTIVE",
            priority="HIGH",
            team_lead=lead,
            start_date=now - timedelta(days=30),
            end_date=now + timedelta(days=60),
            budget=120000.0,
            spent=45000.0,
        )
        session.add(project)
        await session.flush()
        session.add(ProjectMember(project_id=project.id, user_id=dev))

        design = Task(
            project_id=project.id, title="Design payment form", status="DONE", assignee_id=dev, position=0
        )
        api = Task(
            project_id=project.id,
            title="Implement tokenisation API",
            status="IN_PROGRESS",
            priority="HIGH",
            assignee_id=dev,
            due_date=now + timedelta(days=7),
        )
        rollout = Task(
            project_id=project.id,
            title="Staged rollout",
            assignee_id=lead,
            due_date=now - timedelta(days=2),
        )
        session.add_all([design, api, rollout])
        await session.flush()
        session.add_all(
            [
                TaskDependency(dependent_task_id=api.id, depends_on_task_id=design.id),
                TaskDependency(dependent_task_id=rollout.id, depends_on_task_id=api.id),
            ]
        )

        for title, category, likelihood, impact in [
            ("Payment provider outage", "EXTERNAL", "POSSIBLE", "MAJOR"),
            ("PCI audit finding", "COMPLIANCE", "UNLIKELY", "CATASTROPHIC"),
            ("Frontend capacity", "RESOURCE", "LIKELY", "MODERATE"),
        ]:
            score = calculate_risk_score(likelihood, impact)
            session.add(
                Risk(
                    project_id=project.id,
                    risk_code=generate_risk_code(),
                    title=title,
                    category=category,
                    likelihood=likelihood,
                    impact=impact,
                    risk_score=score,
                    risk_level=risk_level_for(score),
                    owner=lead,
                    created_by=lead,
                )
            )

        session.add_all(
            [
                Stakeholder(
                    project_id=project.id,
                    name="Priya Finance",
                    role="CFO",
                    organization="Finance",
                    influence="high",
                    interest="high",
                    category="internal",
                ),
                Stakeholder(
                    project_id=project.id,
                    name="Acme Payments",
                    organization="Acme",
                    influence="high",
                    interest="low",
                ),
            ]
        )

        requirement = Requirement(
            project_id=project.id,
            requirement_code="REQ-001",
            title="Customers can save a card for later",
            priority="HIGH",
            status="APPROVED",
            owner_id=lead,
        )
        session.add(requirement)
        await session.flush()
        session.add(RequirementTaskLink(requirement_id=requirement.id, task_id=api.id))
        session.add(
            RFC(
                project_id=project.id,
                requirement_id=requirement.id,
                rfc_code="RFC-001",
                title="Support wallets alongside cards",
                reason="Mobile conversion",
                impact_level="MEDIUM",
                requester_id=dev,
            )
        )

        await session.commit()
        print(f"  Created project: {project.name} (ID: {project.id})")
        return str(project.id)


async def main():
    """Run all seed operations."""
    print("Initializing database connection...")
    await init_db(create_tables=True)

    print("Seeding demo workspace...")
    project_id = await seed_demo_workspace()
    if project_id:
        print(f"  Demo project ID: {project_id}")

    print("Done! Seed data loaded successfully.")


if __name__ == "__main__":
    asyncio.run(main())
