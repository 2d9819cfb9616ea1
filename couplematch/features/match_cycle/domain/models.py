"""
Domain models for the weekly match cycle.

These lightweight dataclasses describe the user snapshots the pairing engine
reads and the match records the cycle produces. They carry no I/O so they can
be shared by repositories, the pairing engine and the jobs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class MatchStatus:
    PENDING = "pending"
    REVEALED = "revealed"
    ACCEPTED = "accepted"
    UNMATCHED = "unmatched"
    STALE = "stale"

    ALL = frozenset({PENDING, REVEALED, ACCEPTED, UNMATCHED, STALE})

    # Statuses that block the same two users from being paired again.
    # Rejected (unmatched) and stale pairings may recur in a later cycle.
    EXCLUDING = frozenset({PENDING, REVEALED, ACCEPTED})


def normalize_tag(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def normalize_tags(values: Any) -> frozenset[str]:
    if not values:
        return frozenset()
    out = set()
    for item in values:
        tag = normalize_tag(item)
        if tag:
            out.add(tag)
    return frozenset(out)


def pair_key(user_a: str, user_b: str) -> tuple[str, str]:
    """Canonical key for an unordered pair of users."""
    a, b = sorted((str(user_a), str(user_b)))
    return a, b


@dataclass(frozen=True, slots=True)
class UserSnapshot:
    """Read-only view of a user's matching attributes at the start of a phase."""

    id: str
    gender: str | None = None
    hobbies: frozenset[str] = field(default_factory=frozenset)
    religion: str | None = None
    personality_traits: frozenset[str] = field(default_factory=frozenset)
    age: int | None = None
    opt_in: bool = True

    def __post_init__(self):
        # Frozen instance, so normalisation goes through object.__setattr__
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "gender", normalize_tag(self.gender))
        object.__setattr__(self, "religion", normalize_tag(self.religion))
        object.__setattr__(self, "hobbies", normalize_tags(self.hobbies))
        object.__setattr__(self, "personality_traits", normalize_tags(self.personality_traits))

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserSnapshot":
        return cls(
            id=row["id"],
            gender=row.get("gender"),
            hobbies=row.get("hobbies") or (),
            religion=row.get("religion"),
            personality_traits=row.get("personality_traits") or (),
            age=row.get("age"),
            opt_in=bool(row.get("opt_in", True)),
        )


@dataclass(slots=True)
class MatchRecord:
    """One pairing produced by a cycle run. Only `status` changes after creation."""

    id: str
    couple: tuple[str, str]
    status: str
    created_at: datetime

    def __post_init__(self):
        if len(self.couple) != 2:
            raise ValueError("A match record couples exactly two users")
        if self.couple[0] == self.couple[1]:
            raise ValueError("A user cannot be matched with themselves")
        if self.status not in MatchStatus.ALL:
            raise ValueError(f"Unknown match status '{self.status}'")

    @property
    def pair_key(self) -> tuple[str, str]:
        return pair_key(*self.couple)

    def involves(self, user_id: str) -> bool:
        return str(user_id) in self.couple

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "couple": list(self.couple),
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }


def transition_status(current: str, action: str) -> str:
    """
    Apply a cycle action to a match status.

    The cycle only drives pending -> revealed; every other combination leaves
    the status untouched, which keeps repeated reveals harmless.
    """
    if action == "reveal" and current == MatchStatus.PENDING:
        return MatchStatus.REVEALED
    return current
