"""Audit history helpers."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.models.db import RiskHistory


def json_safe(value: Any) -> Any:
    """Convert UUIDs, datetimes and decimals so a value can go in a JSON column."""
    if isinstance(value, Mapping):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(v) for v in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def field_changes(obj: Any, updates: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Return ``{field: {"old": ..., "new": ...}}`` for fields whose value differs."""
    changes: dict[str, dict[str, Any]] = {}
    for field, new in updates.items():
        old = getattr(obj, field, None)
        if old != new:
            changes[field] = {"old": json_safe(old), "new": json_safe(new)}
    return changes


def record_risk_history(
    session: AsyncSession,
    risk_id: uuid.UUID,
    user_id: str | None,
    action: str,
    details: Mapping[str, Any] | None = None,
) -> RiskHistory:
    entry = RiskHistory(
        risk_id=risk_id,
        user_id=user_id,
        action=action,
        details=json_safe(dict(details or {})),
    )
    session.add(entry)
    return entry
