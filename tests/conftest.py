from datetime import UTC, datetime

import pytest

from couplematch.features.match_cycle.domain import MatchRecord, MatchStatus, UserSnapshot


class FakeUserStore:
    def __init__(self, users: list[UserSnapshot] | None = None):
        self.users: dict[str, UserSnapshot] = {u.id: u for u in users or []}
        self.opt_in: dict[str, bool] = {u.id: u.opt_in for u in users or []}
        self.reset_calls: list[list[str] | None] = []
        self.fail_reads = False

    async def find_opted_in(self) -> list[UserSnapshot]:
        if self.fail_reads:
            raise RuntimeError("user store unavailable")
        return [u for uid, u in sorted(self.users.items()) if self.opt_in[uid]]

    async def reset_opt_in(self, user_ids=None) -> int:
        self.reset_calls.append(None if user_ids is None else list(user_ids))
        targets = self.opt_in.keys() if user_ids is None else user_ids
        changed = 0
        for uid in targets:
            if self.opt_in.get(uid):
                self.opt_in[uid] = False
                changed += 1
        return changed


class FakeMatchStore:
    def __init__(self, records: list[MatchRecord] | None = None):
        self.records: dict[str, MatchRecord] = {r.id: r for r in records or []}
        self.insert_calls = 0
        self.fail_inserts = False

    async def find_by_status(self, status: str) -> list[MatchRecord]:
        return [r for r in self.records.values() if r.status == status]

    async def count_by_status(self, status: str) -> int:
        return len(await self.find_by_status(status))

    async def find_history(self) -> list[MatchRecord]:
        return [r for r in self.records.values() if r.status in MatchStatus.EXCLUDING]

    async def insert_many(self, records) -> int:
        self.insert_calls += 1
        if self.fail_inserts:
            raise RuntimeError("match store unavailable")
        for record in records:
            self.records[record.id] = record
        return len(records)

    async def update_status(self, ids, new_status, *, expected_status=None) -> list[str]:
        changed = []
        for record_id in ids:
            record = self.records[record_id]
            if expected_status is not None and record.status != expected_status:
                continue
            record.status = new_status
            changed.append(record_id)
        return changed


class FakeNotifier:
    def __init__(self, fail_for: set[str] | None = None):
        self.published: list[tuple[str, str, dict]] = []
        self.broadcasts: list[tuple[str, dict]] = []
        self.fail_for = fail_for or set()

    async def publish(self, user_id, event_name, payload) -> bool:
        if user_id in self.fail_for:
            raise ConnectionError("socket gone")
        self.published.append((user_id, event_name, payload))
        return True

    async def broadcast(self, event_name, payload=None) -> bool:
        self.broadcasts.append((event_name, payload or {}))
        return True


def make_user(user_id: str, gender: str | None = "man", **attrs) -> UserSnapshot:
    return UserSnapshot(id=user_id, gender=gender, **attrs)


def make_match(
    user_a: str, user_b: str, status: str = MatchStatus.REVEALED, record_id: str | None = None
) -> MatchRecord:
    return MatchRecord(
        id=record_id or f"m-{user_a}-{user_b}",
        couple=(user_a, user_b),
        status=status,
        created_at=datetime(2026, 10, 6, 23, 1, tzinfo=UTC),
    )


@pytest.fixture
def fixed_now():
    # Tuesday 23:01 UTC
    return datetime(2026, 10, 13, 23, 1, tzinfo=UTC)


@pytest.fixture
def scenario_users():
    return [
        make_user("a", "man", hobbies={"chess", "hiking"}),
        make_user("b", "woman", hobbies={"chess", "yoga"}),
        make_user("c", "woman", hobbies={"hiking"}),
    ]


@pytest.fixture
def user():
    return make_user


@pytest.fixture
def match():
    return make_match


@pytest.fixture
def stores():
    """Factory for a (user store, match store, notifier) trio."""

    def _build(users=None, records=None, fail_for=None):
        return FakeUserStore(users), FakeMatchStore(records), FakeNotifier(fail_for)

    return _build
