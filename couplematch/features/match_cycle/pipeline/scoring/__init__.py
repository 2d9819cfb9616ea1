"""
Compatibility scoring package.

Provides the pluggable scorer the pairing engine uses to rank candidates.
"""

from .service import CompatibilityScorer, Scorer, ScoringWeights, score

__all__ = ["CompatibilityScorer", "Scorer", "ScoringWeights", "score"]
