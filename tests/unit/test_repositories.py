from datetime import UTC, datetime
from unittest.mock import AsyncMock

import psycopg
import pytest

from couplematch.db.helpers import DatabaseError
from couplematch.features.match_cycle.domain import MatchRecord, MatchStatus
from couplematch.features.match_cycle.repository import (
    MatchRepository,
    MatchRepositoryError,
    UserRepository,
)

MODULE = "couplematch.features.match_cycle.repository"
NOW = datetime(2026, 10, 13, 23, 1, tzinfo=UTC)


def _db_error(exc: Exception) -> DatabaseError:
    try:
        raise DatabaseError(f"Query failed: {exc}", operation="fetch_all") from exc
    except DatabaseError as e:
        return e


@pytest.mark.asyncio
async def test_find_opted_in_builds_snapshots(monkeypatch):
    rows = [
        {
            "id": "u-1",
            "gender": "Man",
            "hobbies": ["Chess ", "hiking"],
            "religion": None,
            "personality_traits": None,
            "age": 31,
            "opt_in": True,
        }
    ]
    monkeypatch.setattr(f"{MODULE}.user_repository.fetch_all", AsyncMock(return_value=rows))

    users = await UserRepository.find_opted_in()

    assert users[0].id == "u-1"
    assert users[0].gender == "man"
    assert users[0].hobbies == frozenset({"chess", "hiking"})
    assert users[0].personality_traits == frozenset()


@pytest.mark.asyncio
async def test_reset_opt_in_for_listed_users_only(monkeypatch):
    execute_mock = AsyncMock(return_value=2)
    monkeypatch.setattr(f"{MODULE}.user_repository.execute_query", execute_mock)

    updated = await UserRepository.reset_opt_in(["u-1", "u-2"])

    assert updated == 2
    query, params = execute_mock.await_args.args
    assert "opt_in = true" in query
    assert params == (["u-1", "u-2"],)


@pytest.mark.asyncio
async def test_reset_opt_in_with_empty_list_skips_query(monkeypatch):
    execute_mock = AsyncMock()
    monkeypatch.setattr(f"{MODULE}.user_repository.execute_query", execute_mock)

    assert await UserRepository.reset_opt_in([]) == 0
    execute_mock.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_history_queries_excluding_statuses(monkeypatch):
    rows = [
        {
            "id": "m-1",
            "user_a_id": "u-1",
            "user_b_id": "u-2",
            "status": "revealed",
            "created_at": NOW,
        }
    ]
    fetch_mock = AsyncMock(return_value=rows)
    monkeypatch.setattr(f"{MODULE}.match_repository.fetch_all", fetch_mock)

    history = await MatchRepository.find_history()

    assert history[0].couple == ("u-1", "u-2")
    _, params = fetch_mock.await_args.args
    assert params == (["accepted", "pending", "revealed"],)


@pytest.mark.asyncio
async def test_insert_many_runs_one_transaction(monkeypatch):
    tx_mock = AsyncMock(return_value=2)
    monkeypatch.setattr(f"{MODULE}.match_repository.execute_transaction", tx_mock)
    records = [
        MatchRecord(id="m-1", couple=("a", "b"), status=MatchStatus.PENDING, created_at=NOW),
        MatchRecord(id="m-2", couple=("c", "d"), status=MatchStatus.PENDING, created_at=NOW),
    ]

    inserted = await MatchRepository.insert_many(records)

    assert inserted == 2
    tx_mock.assert_awaited_once()
    queries = tx_mock.await_args.args[0]
    assert len(queries) == 2
    assert "ON CONFLICT DO NOTHING" in queries[0][0]
    assert queries[1][1] == ("m-2", "c", "d", "pending", NOW)


@pytest.mark.asyncio
async def test_insert_many_failure_raises_repository_error(monkeypatch):
    tx_mock = AsyncMock(side_effect=_db_error(psycopg.IntegrityError("boom")))
    monkeypatch.setattr(f"{MODULE}.match_repository.execute_transaction", tx_mock)
    record = MatchRecord(id="m-1", couple=("a", "b"), status=MatchStatus.PENDING, created_at=NOW)

    with pytest.raises(MatchRepositoryError) as exc_info:
        await MatchRepository.insert_many([record])

    assert exc_info.value.operation == "insert_many"
    assert exc_info.value.recoverable is False


@pytest.mark.asyncio
async def test_update_status_returns_only_changed_ids(monkeypatch):
    # m-2 was already moved by another run, so the guarded update skips it
    fetch_mock = AsyncMock(return_value=[{"id": "m-1"}])
    monkeypatch.setattr(f"{MODULE}.match_repository.fetch_all", fetch_mock)

    changed = await MatchRepository.update_status(
        ["m-1", "m-2"], MatchStatus.REVEALED, expected_status=MatchStatus.PENDING
    )

    assert changed == ["m-1"]
    query, params = fetch_mock.await_args.args
    assert "AND status = %s" in query
    assert query.rstrip().endswith("RETURNING id")
    assert params == ("revealed", ["m-1", "m-2"], "pending")


@pytest.mark.asyncio
async def test_update_status_with_no_ids_skips_query(monkeypatch):
    fetch_mock = AsyncMock()
    monkeypatch.setattr(f"{MODULE}.match_repository.fetch_all", fetch_mock)

    assert await MatchRepository.update_status([], MatchStatus.REVEALED) == []
    fetch_mock.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_status_rejects_unknown_status():
    with pytest.raises(ValueError):
        await MatchRepository.update_status(["m-1"], "matched")


@pytest.mark.asyncio
async def test_reads_retry_transient_failures(monkeypatch):
    rows = [{"id": "m-1", "user_a_id": "a", "user_b_id": "b", "status": "pending", "created_at": NOW}]
    fetch_mock = AsyncMock(
        side_effect=[_db_error(psycopg.OperationalError("connection reset")), rows]
    )
    monkeypatch.setattr(f"{MODULE}.match_repository.fetch_all", fetch_mock)

    records = await MatchRepository.find_by_status(MatchStatus.PENDING)

    assert [r.id for r in records] == ["m-1"]
    assert fetch_mock.await_count == 2


@pytest.mark.asyncio
async def test_reads_do_not_retry_permanent_failures(monkeypatch):
    fetch_mock = AsyncMock(side_effect=_db_error(psycopg.ProgrammingError("bad column")))
    monkeypatch.setattr(f"{MODULE}.match_repository.fetch_all", fetch_mock)

    with pytest.raises(MatchRepositoryError):
        await MatchRepository.find_by_status(MatchStatus.PENDING)

    assert fetch_mock.await_count == 1


@pytest.mark.asyncio
async def test_count_by_status_handles_empty_result(monkeypatch):
    monkeypatch.setattr(f"{MODULE}.match_repository.fetch_val", AsyncMock(return_value=None))

    assert await MatchRepository.count_by_status(MatchStatus.PENDING) == 0
