"""
Persistence helpers for the match cycle feature.
"""

from .match_repository import MatchRepository, MatchRepositoryError
from .user_repository import UserRepository, UserRepositoryError

__all__ = [
    "MatchRepository",
    "MatchRepositoryError",
    "UserRepository",
    "UserRepositoryError",
]
