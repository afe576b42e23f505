"""Tests for the risk matrix and risk analytics."""

from __future__ import annotations

import uuid
from types import SimpleNamespace

from keystone.core.analytics import IMPACT_ORDER, LIKELIHOOD_ORDER, risk_analytics, risk_matrix


def make_risk(likelihood="POSSIBLE", impact="MODERATE", **overrides):
    values = {
        "id": uuid.uuid4(),
        "risk_code": "RSK-000000-00",
        "title": "A risk",
        "category": "TECHNICAL",
        "likelihood": likelihood,
        "impact": impact,
        "risk_level": "MEDIUM",
        "risk_score": 36,
        "status": "IDENTIFIED",
        "trend": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestRiskMatrix:
    def test_axes(self):
        assert LIKELIHOOD_ORDER[0] == "RARE"
        assert LIKELIHOOD_ORDER[-1] == "ALMOST_CERTAIN"
        assert IMPACT_ORDER[0] == "CATASTROPHIC"
        assert IMPACT_ORDER[-1] == "INSIGNIFICANT"

    def test_cells_and_grid(self):
        risks = [
            make_risk("LIKELY", "MAJOR"),
            make_risk("LIKELY", "MAJOR"),
            make_risk("RARE", "INSIGNIFICANT"),
        ]
        result = risk_matrix(risks)

        assert len(result["matrix"]["LIKELY-MAJOR"]) == 2
        assert len(result["matrix"]["RARE-INSIGNIFICANT"]) == 1
        assert len(result["risks"]) == 3

        grid = result["grid"]
        assert len(grid) == 5 and all(len(row) == 5 for row in grid)
        assert grid[IMPACT_ORDER.index("MAJOR")][LIKELIHOOD_ORDER.index("LIKELY")] == 2
        assert grid[4][0] == 1
        assert sum(map(sum, grid)) == 3

    def test_empty(self):
        result = risk_matrix([])
        assert result["matrix"] == {}
        assert sum(map(sum, result["grid"])) == 0


class TestRiskAnalytics:
    def test_aggregates(self):
        risks = [
            make_risk(status="MITIGATED", risk_score=20, risk_level="LOW", trend="DECREASING"),
            make_risk(status="ACTIVE", risk_score=80, risk_level="CRITICAL", trend="INCREASING"),
            make_risk(status="ACTIVE", risk_score=45, risk_level="MEDIUM", category="BUDGET"),
        ]
        result = risk_analytics(risks)

        assert result["total_risks"] == 3
        assert result["by_status"] == {"MITIGATED": 1, "ACTIVE": 2}
        assert result["by_category"] == {"TECHNICAL": 2, "BUDGET": 1}
        assert result["by_risk_level"]["CRITICAL"] == 1
        assert result["average_risk_score"] == 48
        assert result["mitigation_rate"] == 33
        assert result["trends"] == {"increasing": 1, "decreasing": 1, "stable": 0}

    def test_no_risks(self):
        result = risk_analytics([])
        assert result["total_risks"] == 0
        assert result["average_risk_score"] == 0
        assert result["mitigation_rate"] == 0
