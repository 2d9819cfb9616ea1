"""
Compatibility scoring - ranks a candidate pair of users.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from couplematch.config import settings
from couplematch.features.match_cycle.domain import UserSnapshot

Scorer = Callable[[UserSnapshot, UserSnapshot], float]


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    religion: float = 50.0
    hobbies: float = 10.0
    traits: float = 5.0
    age: float = 0.0
    age_horizon_years: int = 20

    def __post_init__(self):
        for name in ("religion", "hobbies", "traits", "age"):
            if getattr(self, name) < 0:
                raise ValueError(f"Scoring weight '{name}' must be non-negative")

    @classmethod
    def from_settings(cls) -> ScoringWeights:
        weights = settings.get_scoring_weights()
        return cls(
            religion=weights["religion"],
            hobbies=weights["hobbies"],
            traits=weights["traits"],
            age=weights["age"],
            age_horizon_years=settings.SCORE_AGE_HORIZON_YEARS,
        )


class CompatibilityScorer:
    """
    Weighted sum of independent signals.

    Every signal is symmetric in its two arguments and never negative, so the
    total is symmetric and non-negative too.
    """

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights.from_settings()

    def __call__(self, a: UserSnapshot, b: UserSnapshot) -> float:
        return self.score(a, b)

    def score(self, a: UserSnapshot, b: UserSnapshot) -> float:
        return sum(self.breakdown(a, b).values())

    def breakdown(self, a: UserSnapshot, b: UserSnapshot) -> dict[str, float]:
        w = self.weights
        parts = {
            "religion": w.religion if a.religion and a.religion == b.religion else 0.0,
            "hobbies": len(a.hobbies & b.hobbies) * w.hobbies,
            "traits": len(a.personality_traits & b.personality_traits) * w.traits,
            "age": 0.0,
        }
        if w.age and a.age is not None and b.age is not None:
            parts["age"] = max(0, w.age_horizon_years - abs(a.age - b.age)) * w.age
        return parts


def score(a: UserSnapshot, b: UserSnapshot, weights: ScoringWeights | None = None) -> float:
    """Score a pair with the given (or configured) weights."""
    return CompatibilityScorer(weights).score(a, b)
