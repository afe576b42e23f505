"""Risk scoring.

Likelihood and impact are five-point scales. A plain score multiplies the two
(scaled to 4..100); an assessment score weighs six factors (scaled to
20..100). Both map onto the same four risk levels.
"""

from __future__ import annotations

import random
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

LIKELIHOOD_VALUES = {
    "RARE": 1,
    "UNLIKELY": 2,
    "POSSIBLE": 3,
    "LIKELY": 4,
    "ALMOST_CERTAIN": 5,
}

IMPACT_VALUES = {
    "INSIGNIFICANT": 1,
    "MINOR": 2,
    "MODERATE": 3,
    "MAJOR": 4,
    "CATASTROPHIC": 5,
}

# Reverse lookups used when an assessment submits numeric factors.
LIKELIHOOD_LABELS = {v: k for k, v in LIKELIHOOD_VALUES.items()}
IMPACT_LABELS = {v: k for k, v in IMPACT_VALUES.items()}

DEFAULT_FACTOR = 3

ASSESSMENT_WEIGHTS = {
    "likelihood": Decimal("0.25"),
    "impact": Decimal("0.25"),
    "detectability": Decimal("0.15"),
    "velocity": Decimal("0.15"),
    "interconnectedness": Decimal("0.10"),
    "control_effectiveness": Decimal("0.10"),
}


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def likelihood_value(label: str | None) -> int:
    return LIKELIHOOD_VALUES.get(label or "", DEFAULT_FACTOR)


def impact_value(label: str | None) -> int:
    return IMPACT_VALUES.get(label or "", DEFAULT_FACTOR)


def calculate_risk_score(likelihood: str | None, impact: str | None) -> int:
    """Score a risk from its likelihood and impact labels (4..100)."""
    return likelihood_value(likelihood) * impact_value(impact) * 4


def calculate_comprehensive_score(factors: Mapping[str, int | None]) -> int:
    """Weighted assessment score (20..100).

    Missing or zero factors count as the medium value 3.
    """
    total = Decimal(0)
    for name, weight in ASSESSMENT_WEIGHTS.items():
        value = factors.get(name) or DEFAULT_FACTOR
        total += Decimal(value) * weight
    return round_half_up(total * 20)


def risk_level_for(score: int | float) -> str:
    if score <= 25:
        return "LOW"
    if score <= 50:
        return "MEDIUM"
    if score <= 75:
        return "HIGH"
    return "CRITICAL"


def residual_risk(score: int | float, effectiveness: int | None = None) -> float:
    """Risk left over once a response of the given effectiveness (%) lands."""
    if effectiveness is None:
        effectiveness = 50
    return score * (1 - effectiveness / 100)


def generate_risk_code() -> str:
    """Human readable risk id, e.g. ``RSK-431207-08``."""
    millis = str(int(time.time() * 1000))[-6:]
    return f"RSK-{millis}-{random.randint(0, 99):02d}"


def percentage(part: int | float, whole: int | float) -> int:
    if not whole:
        return 0
    return round_half_up(Decimal(str(part)) * 100 / Decimal(str(whole)))
