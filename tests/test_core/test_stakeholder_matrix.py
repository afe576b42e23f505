"""Tests for the stakeholder matrix and change tracking."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from keystone.core.stakeholders import QUADRANTS, build_matrix, matrix_quadrant, tracked_changes


class TestMatrix:
    @pytest.mark.parametrize(
        "influence,interest,quadrant",
        [
            ("high", "high", "high_influence_high_interest"),
            ("high", "medium", "high_influence_low_interest"),
            ("medium", "high", "low_influence_high_interest"),
            ("low", "low", "low_influence_low_interest"),
            (None, None, "low_influence_low_interest"),
        ],
    )
    def test_quadrant(self, influence, interest, quadrant):
        assert matrix_quadrant(influence, interest) == quadrant

    def test_every_quadrant_present(self):
        people = [
            SimpleNamespace(name="CEO", influence="high", interest="high"),
            SimpleNamespace(name="Vendor", influence="low", interest="medium"),
        ]
        matrix = build_matrix(people)

        assert set(matrix) == set(QUADRANTS)
        assert [s.name for s in matrix["high_influence_high_interest"]] == ["CEO"]
        assert [s.name for s in matrix["low_influence_low_interest"]] == ["Vendor"]
        assert matrix["high_influence_low_interest"] == []


class TestTrackedChanges:
    def test_only_tracked_fields_that_differ(self):
        current = SimpleNamespace(influence="low", interest="high", category="external", name="Ann")
        changes = tracked_changes(
            current,
            {"influence": "high", "interest": "high", "name": "Anne", "category": "internal"},
        )
        assert changes == {
            "influence": {"from": "low", "to": "high"},
            "category": {"from": "external", "to": "internal"},
        }

    def test_no_changes(self):
        current = SimpleNamespace(influence="medium")
        assert tracked_changes(current, {"influence": "medium"}) == {}
