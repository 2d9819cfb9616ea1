"""
Job runners for the match cycle feature.
"""

from .cycle_job import (
    build_cycle_scheduler,
    run_match_creation,
    run_match_reveal,
    run_opt_in_reset,
    run_schema_setup,
    start_match_cycle_scheduler,
)

__all__ = [
    "build_cycle_scheduler",
    "run_match_creation",
    "run_match_reveal",
    "run_opt_in_reset",
    "run_schema_setup",
    "start_match_cycle_scheduler",
]
