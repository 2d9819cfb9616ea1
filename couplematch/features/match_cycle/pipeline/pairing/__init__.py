"""
Pairing package.

Builds the weekly set of disjoint couples from the opted-in population.
"""

from .service import (
    PairingEngine,
    PairingOutcome,
    PartitionRule,
    build_exclusion_set,
    compute_cycle_matches,
)

__all__ = [
    "PairingEngine",
    "PairingOutcome",
    "PartitionRule",
    "build_exclusion_set",
    "compute_cycle_matches",
]
