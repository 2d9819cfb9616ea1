"""
Pairing engine - turns the opted-in population into disjoint weekly couples.

The algorithm is a one-sided greedy pass: each member of group A, in input
order, takes the highest-scoring member of group B that is still free and
that they have not been live-matched with before. It is not a global
optimum; swapping in a stable-marriage or max-weight solver only means
replacing `_select_pairs`.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from couplematch.config import settings
from couplematch.features.match_cycle.domain import (
    MatchRecord,
    MatchStatus,
    UserSnapshot,
    normalize_tag,
    pair_key,
)
from couplematch.features.match_cycle.pipeline.scoring import CompatibilityScorer, Scorer
from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PartitionRule:
    """Which attribute splits candidates, and the values naming groups A and B."""

    attribute: str = "gender"
    group_a: str = "man"
    group_b: str = "woman"

    @classmethod
    def from_settings(cls) -> PartitionRule:
        return cls(
            attribute=settings.PARTITION_ATTRIBUTE,
            group_a=settings.PARTITION_GROUP_A,
            group_b=settings.PARTITION_GROUP_B,
        )

    def classify(self, user: UserSnapshot) -> str | None:
        value = normalize_tag(getattr(user, self.attribute, None))
        if value is None:
            return None
        if value == normalize_tag(self.group_a):
            return "a"
        if value == normalize_tag(self.group_b):
            return "b"
        return None


@dataclass(slots=True)
class PairingOutcome:
    records: list[MatchRecord]
    group_a_size: int
    group_b_size: int
    unclassified: int
    unmatched_a: list[str]


def build_exclusion_set(history: Iterable[MatchRecord]) -> set[tuple[str, str]]:
    """Unordered pairs that must not be produced again."""
    return {
        record.pair_key for record in history if record.status in MatchStatus.EXCLUDING
    }


class PairingEngine:
    def __init__(self, scorer: Scorer | None = None, partition: PartitionRule | None = None):
        self.scorer = scorer or CompatibilityScorer()
        self.partition = partition or PartitionRule.from_settings()

    def compute_cycle_matches(
        self,
        users: Sequence[UserSnapshot],
        match_history: Iterable[MatchRecord],
        now: datetime | None = None,
    ) -> list[MatchRecord]:
        return self.run(users, match_history, now).records

    def run(
        self,
        users: Sequence[UserSnapshot],
        match_history: Iterable[MatchRecord],
        now: datetime | None = None,
    ) -> PairingOutcome:
        created_at = now or datetime.now(UTC)
        group_a, group_b, unclassified = self._partition(users)

        if not group_a or not group_b:
            logger.info(
                "Not enough eligible users for pairing",
                group_a=len(group_a),
                group_b=len(group_b),
                unclassified=unclassified,
            )
            return PairingOutcome([], len(group_a), len(group_b), unclassified, [])

        excluded = build_exclusion_set(match_history)
        pairs, unmatched_a = self._select_pairs(group_a, group_b, excluded)

        records = [
            MatchRecord(
                id=str(uuid.uuid4()),
                couple=(a.id, b.id),
                status=MatchStatus.PENDING,
                created_at=created_at,
            )
            for a, b in pairs
        ]

        logger.info(
            "Pairing computed",
            group_a=len(group_a),
            group_b=len(group_b),
            unclassified=unclassified,
            excluded_pairs=len(excluded),
            pairs=len(records),
            unmatched_a=len(unmatched_a),
        )
        return PairingOutcome(records, len(group_a), len(group_b), unclassified, unmatched_a)

    def _partition(
        self, users: Sequence[UserSnapshot]
    ) -> tuple[list[UserSnapshot], list[UserSnapshot], int]:
        group_a: list[UserSnapshot] = []
        group_b: list[UserSnapshot] = []
        seen: set[str] = set()
        unclassified = 0

        for user in users:
            if user.id in seen:
                continue
            seen.add(user.id)

            side = self.partition.classify(user)
            if side == "a":
                group_a.append(user)
            elif side == "b":
                group_b.append(user)
            else:
                unclassified += 1

        return group_a, group_b, unclassified

    def _select_pairs(
        self,
        group_a: list[UserSnapshot],
        group_b: list[UserSnapshot],
        excluded: set[tuple[str, str]],
    ) -> tuple[list[tuple[UserSnapshot, UserSnapshot]], list[str]]:
        used: set[str] = set()
        pairs: list[tuple[UserSnapshot, UserSnapshot]] = []
        unmatched_a: list[str] = []

        for a in group_a:
            pool = [
                b
                for b in group_b
                if b.id not in used and pair_key(a.id, b.id) not in excluded
            ]
            if not pool:
                logger.debug("No available new matches", user_id=a.id)
                unmatched_a.append(a.id)
                continue

            best = pool[0]
            best_score = self.scorer(a, best)
            for candidate in pool[1:]:
                candidate_score = self.scorer(a, candidate)
                # Strict comparison keeps the earliest candidate on ties
                if candidate_score > best_score:
                    best, best_score = candidate, candidate_score

            used.add(a.id)
            used.add(best.id)
            pairs.append((a, best))

        return pairs, unmatched_a


def compute_cycle_matches(
    users: Sequence[UserSnapshot],
    match_history: Iterable[MatchRecord],
    *,
    scorer: Scorer | None = None,
    partition: PartitionRule | None = None,
    now: datetime | None = None,
) -> list[MatchRecord]:
    """Functional entry point around PairingEngine."""
    return PairingEngine(scorer, partition).compute_cycle_matches(users, match_history, now)
