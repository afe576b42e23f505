"""Task dependency cycle detection."""

from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.models.db import TaskDependency

PrerequisiteLookup = Callable[[uuid.UUID], Awaitable[Iterable[uuid.UUID]]]


async def creates_cycle(
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
    get_prerequisites: PrerequisiteLookup,
) -> bool:
    """Return True if making ``task_id`` depend on ``depends_on_id`` closes a loop.

    Walks breadth-first from ``depends_on_id`` along "depends on" edges; if
    ``task_id`` is reachable the new edge would complete a cycle.
    """
    if task_id == depends_on_id:
        return True

    visited: set[uuid.UUID] = set()
    queue: deque[uuid.UUID] = deque([depends_on_id])
    while queue:
        current = queue.popleft()
        if current == task_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        for prerequisite in await get_prerequisites(current):
            if prerequisite not in visited:
                queue.append(prerequisite)
    return False


async def dependency_would_cycle(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
) -> bool:
    """Cycle check against the stored ``task_dependencies`` edges."""

    async def prerequisites_of(current: uuid.UUID) -> list[uuid.UUID]:
        result = await session.execute(
            select(TaskDependency.depends_on_task_id).where(
                TaskDependency.dependent_task_id == current
            )
        )
        return list(result.scalars().all())

    return await creates_cycle(task_id, depends_on_id, prerequisites_of)
