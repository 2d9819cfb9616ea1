"""
Service layer for the match cycle feature.
"""

from .cycle_service import CycleMetrics, MatchCycleError, MatchCycleService, match_cycle_service
from .notifier import MatchNotifier, match_notifier
from .scheduler import ScheduleConfigError, WeeklyScheduler, WeeklyTrigger, validate_cycle_calendar

__all__ = [
    "CycleMetrics",
    "MatchCycleError",
    "MatchCycleService",
    "match_cycle_service",
    "MatchNotifier",
    "match_notifier",
    "ScheduleConfigError",
    "WeeklyScheduler",
    "WeeklyTrigger",
    "validate_cycle_calendar",
]
