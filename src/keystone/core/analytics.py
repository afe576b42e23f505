"""Risk matrix and risk analytics aggregations."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from typing import Any

from keystone.core.scoring import IMPACT_VALUES, LIKELIHOOD_VALUES, percentage, round_half_up

LIKELIHOOD_ORDER = sorted(LIKELIHOOD_VALUES, key=LIKELIHOOD_VALUES.get)
# Grid rows run from the most severe impact down.
IMPACT_ORDER = sorted(IMPACT_VALUES, key=IMPACT_VALUES.get, reverse=True)


def risk_summary(risk: Any) -> dict[str, Any]:
    return {
        "id": str(risk.id),
        "risk_code": risk.risk_code,
        "title": risk.title,
        "category": risk.category,
        "likelihood": risk.likelihood,
        "impact": risk.impact,
        "risk_level": risk.risk_level,
        "risk_score": risk.risk_score,
        "status": risk.status,
        "trend": risk.trend,
    }


def risk_matrix(risks: Iterable[Any]) -> dict[str, Any]:
    """Group risks by ``"<likelihood>-<impact>"`` and count them on a 5x5 grid."""
    risks = list(risks)
    cells: dict[str, list[dict[str, Any]]] = {}
    for risk in risks:
        cells.setdefault(f"{risk.likelihood}-{risk.impact}", []).append(risk_summary(risk))

    grid = [
        [len(cells.get(f"{likelihood}-{impact}", [])) for likelihood in LIKELIHOOD_ORDER]
        for impact in IMPACT_ORDER
    ]
    return {
        "matrix": cells,
        "grid": grid,
        "likelihoods": LIKELIHOOD_ORDER,
        "impacts": IMPACT_ORDER,
        "risks": [risk_summary(risk) for risk in risks],
    }


def risk_analytics(risks: Iterable[Any]) -> dict[str, Any]:
    risks = list(risks)
    by_status = Counter(r.status for r in risks)
    by_category = Counter(r.category for r in risks)
    by_level = Counter(r.risk_level for r in risks)

    trends = {"increasing": 0, "decreasing": 0, "stable": 0}
    for risk in risks:
        if risk.trend:
            trends[risk.trend.lower()] += 1

    total_score = sum(r.risk_score or 0 for r in risks)
    return {
        "total_risks": len(risks),
        "by_status": dict(by_status),
        "by_category": dict(by_category),
        "by_risk_level": dict(by_level),
        "average_risk_score": round_half_up(total_score / len(risks)) if risks else 0,
        "mitigation_rate": percentage(by_status.get("MITIGATED", 0), len(risks)),
        "trends": trends,
    }
