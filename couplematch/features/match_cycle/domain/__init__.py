"""
Domain subpackage for the match cycle feature.
"""

from .models import (
    MatchRecord,
    MatchStatus,
    UserSnapshot,
    normalize_tag,
    normalize_tags,
    pair_key,
    transition_status,
)

__all__ = [
    "MatchRecord",
    "MatchStatus",
    "UserSnapshot",
    "normalize_tag",
    "normalize_tags",
    "pair_key",
    "transition_status",
]
