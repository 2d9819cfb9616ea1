"""
Weekly match cycle feature package.

Keeps every layer of the cycle co-located: domain models, repositories,
the scoring and pairing pipeline, the phase services, the weekly scheduler
and the job entry points.
"""

from .domain import MatchRecord, MatchStatus, UserSnapshot  # noqa: F401
from .jobs import start_match_cycle_scheduler  # noqa: F401
from .pipeline.pairing import PairingEngine, compute_cycle_matches  # noqa: F401
from .pipeline.scoring import CompatibilityScorer, ScoringWeights  # noqa: F401
from .services import MatchCycleService, match_cycle_service  # noqa: F401
