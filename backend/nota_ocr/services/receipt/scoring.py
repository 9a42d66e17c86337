"""Extraction completeness score."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ExtractionFactors:
    has_amount: bool = False
    has_merchant: bool = False
    has_date: bool = False
    has_category: bool = False


@dataclass(frozen=True)
class ScoreWeights:
    amount: float = 0.40
    merchant: float = 0.25
    date: float = 0.20
    category: float = 0.15

    def __post_init__(self) -> None:
        values = (self.amount, self.merchant, self.date, self.category)
        if any(v < 0 for v in values) or not math.isclose(sum(values), 1.0, abs_tol=1e-9):
            msg = f"Score weights must be non-negative and sum to 1.0, got {values}"
            raise ValueError(msg)


DEFAULT_WEIGHTS = ScoreWeights()


def score(factors: ExtractionFactors, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Weighted share of fields found, in [0, 1]."""
    total = (
        (weights.amount if factors.has_amount else 0.0)
        + (weights.merchant if factors.has_merchant else 0.0)
        + (weights.date if factors.has_date else 0.0)
        + (weights.category if factors.has_category else 0.0)
    )
    return min(1.0, max(0.0, round(total, 4)))
