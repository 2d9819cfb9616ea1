"""
Persistence layer for couple match records.

Every write is idempotent: inserts skip pairs that are already live (enforced
by the partial unique index on the unordered pair), and status updates can
be guarded by the status they expect to find.
"""

from collections.abc import Iterable, Sequence

from couplematch.db.helpers import (
    DatabaseError,
    execute_transaction,
    fetch_all,
    fetch_val,
    with_db_retry,
)
from couplematch.features.match_cycle.domain import MatchRecord, MatchStatus
from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MatchRepositoryError(DatabaseError):
    """More specific exception for match store failures."""


class MatchRepository:
    """Queries against the couple_matches table."""

    SELECT_COLUMNS = "id, user_a_id, user_b_id, status, created_at"

    @classmethod
    def _row_to_record(cls, row: dict) -> MatchRecord:
        return MatchRecord(
            id=str(row["id"]),
            couple=(str(row["user_a_id"]), str(row["user_b_id"])),
            status=row["status"],
            created_at=row["created_at"],
        )

    @classmethod
    @with_db_retry()
    async def find_by_status(cls, status: str) -> list[MatchRecord]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM couple_matches
            WHERE status = %s
            ORDER BY created_at ASC, id ASC
        """
        try:
            rows = await fetch_all(query, (status,))
        except DatabaseError as e:
            raise MatchRepositoryError(
                f"Failed to load {status} matches: {e}", operation="find_by_status"
            ) from e.__cause__
        return [cls._row_to_record(row) for row in rows]

    @classmethod
    @with_db_retry()
    async def find_history(cls) -> list[MatchRecord]:
        """Every pairing that blocks the same couple from being matched again."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM couple_matches
            WHERE status = ANY(%s)
            ORDER BY created_at ASC, id ASC
        """
        try:
            rows = await fetch_all(query, (sorted(MatchStatus.EXCLUDING),))
        except DatabaseError as e:
            raise MatchRepositoryError(
                f"Failed to load match history: {e}", operation="find_history"
            ) from e.__cause__
        return [cls._row_to_record(row) for row in rows]

    @classmethod
    async def count_by_status(cls, status: str) -> int:
        try:
            count = await fetch_val(
                "SELECT COUNT(*) FROM couple_matches WHERE status = %s", (status,)
            )
        except DatabaseError as e:
            raise MatchRepositoryError(
                f"Failed to count {status} matches: {e}", operation="count_by_status"
            ) from e.__cause__
        return int(count or 0)

    @classmethod
    async def insert_many(cls, records: Iterable[MatchRecord]) -> int:
        """Insert records in one transaction. Returns how many rows were new."""
        records = list(records)
        if not records:
            return 0

        query = """
            INSERT INTO couple_matches (id, user_a_id, user_b_id, status, created_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
        """
        queries = [
            (
                query,
                (record.id, record.couple[0], record.couple[1], record.status, record.created_at),
            )
            for record in records
        ]

        try:
            inserted = await execute_transaction(queries)
        except DatabaseError as e:
            raise MatchRepositoryError(
                f"Failed to insert matches: {e}", operation="insert_many", recoverable=False
            ) from e.__cause__

        if inserted < len(records):
            logger.warning(
                "Some matches already existed and were skipped",
                requested=len(records),
                inserted=inserted,
            )
        logger.info("Match records inserted", count=inserted)
        return inserted

    @classmethod
    async def update_status(
        cls,
        ids: Sequence[str],
        new_status: str,
        *,
        expected_status: str | None = None,
    ) -> list[str]:
        """
        Set the status of the given records in a single statement.

        Returns the ids whose row actually changed. With `expected_status`,
        only rows still in that status change, so when two runs race the
        loser gets an empty list back.
        """
        if new_status not in MatchStatus.ALL:
            raise ValueError(f"Unknown match status '{new_status}'")
        ids = list(ids)
        if not ids:
            return []

        query = """
            UPDATE couple_matches
            SET status = %s,
                updated_at = NOW()
            WHERE id = ANY(%s::uuid[])
        """
        params: tuple = (new_status, ids)
        if expected_status is not None:
            query += " AND status = %s"
            params = (new_status, ids, expected_status)
        query += " RETURNING id"

        try:
            rows = await fetch_all(query, params)
        except DatabaseError as e:
            raise MatchRepositoryError(
                f"Failed to update match status: {e}", operation="update_status"
            ) from e.__cause__

        changed = [str(row["id"]) for row in rows]
        logger.info(
            "Match status updated",
            requested=len(ids),
            updated=len(changed),
            new_status=new_status,
            expected_status=expected_status,
        )
        return changed
