"""Stakeholder matrix and change tracking."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

QUADRANTS = (
    "high_influence_high_interest",
    "high_influence_low_interest",
    "low_influence_high_interest",
    "low_influence_low_interest",
)

TRACKED_FIELDS = (
    "influence",
    "interest",
    "power",
    "impact",
    "category",
    "engagement_approach",
)


def matrix_quadrant(influence: str | None, interest: str | None) -> str:
    """Place a stakeholder on the influence/interest grid.

    Only ``high`` counts as high; ``medium`` falls in with ``low``.
    """
    influence_band = "high" if influence == "high" else "low"
    interest_band = "high" if interest == "high" else "low"
    return f"{influence_band}_influence_{interest_band}_interest"


def build_matrix(stakeholders: Iterable[Any]) -> dict[str, list[Any]]:
    matrix: dict[str, list[Any]] = {quadrant: [] for quadrant in QUADRANTS}
    for stakeholder in stakeholders:
        matrix[matrix_quadrant(stakeholder.influence, stakeholder.interest)].append(stakeholder)
    return matrix


def tracked_changes(current: Any, updates: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Return ``{field: {"from": old, "to": new}}`` for changed tracked fields."""
    changes: dict[str, dict[str, Any]] = {}
    for field in TRACKED_FIELDS:
        if field not in updates:
            continue
        old = getattr(current, field, None)
        new = updates[field]
        if old != new:
            changes[field] = {"from": old, "to": new}
    return changes
