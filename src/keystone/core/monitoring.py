"""Key risk indicator evaluation."""

from __future__ import annotations

from typing import Any

# The periodic sweep leaves risks in these states alone.
SETTLED_STATUSES = frozenset({"MONITORING", "MITIGATED", "CLOSED"})


def is_triggered(current_value: float | None, threshold: float) -> bool:
    return current_value is not None and current_value > threshold


def monitor_triggered_risk(risk: Any, skip_settled: bool = False) -> bool:
    """Move a risk with a firing indicator to MONITORING with an increasing trend.

    With ``skip_settled`` risks in :data:`SETTLED_STATUSES` are left untouched.
    Returns True when the risk changed.
    """
    if skip_settled and risk.status in SETTLED_STATUSES:
        return False
    if risk.status == "MONITORING" and risk.trend == "INCREASING":
        return False
    risk.status = "MONITORING"
    risk.trend = "INCREASING"
    return True
