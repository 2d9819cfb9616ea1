"""
Read access to the profile store's users table, plus the weekly opt-in reset.
"""

from collections.abc import Sequence

from couplematch.db.helpers import DatabaseError, execute_query, fetch_all, with_db_retry
from couplematch.features.match_cycle.domain import UserSnapshot
from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class UserRepositoryError(DatabaseError):
    """More specific exception for user store failures."""


class UserRepository:
    """Queries against the users table used by the match cycle."""

    @staticmethod
    @with_db_retry()
    async def find_opted_in() -> list[UserSnapshot]:
        """Opted-in users, ordered by id so pairing order is deterministic."""
        query = """
            SELECT id, gender, hobbies, religion, personality_traits, age, opt_in
            FROM users
            WHERE opt_in = true
            ORDER BY id ASC
        """
        try:
            rows = await fetch_all(query)
        except DatabaseError as e:
            raise UserRepositoryError(
                f"Failed to load opted-in users: {e}", operation="find_opted_in"
            ) from e.__cause__
        return [UserSnapshot.from_row(row) for row in rows]

    @staticmethod
    async def reset_opt_in(user_ids: Sequence[str] | None = None) -> int:
        """
        Clear the opt-in flag.

        `None` clears it for every opted-in user; otherwise only for the given
        ids. Rows already cleared are not touched, so repeats are no-ops.
        """
        if user_ids is None:
            query = "UPDATE users SET opt_in = false, updated_at = NOW() WHERE opt_in = true"
            params: tuple = ()
        else:
            user_ids = list(user_ids)
            if not user_ids:
                return 0
            query = """
                UPDATE users
                SET opt_in = false,
                    updated_at = NOW()
                WHERE id = ANY(%s::uuid[])
                  AND opt_in = true
            """
            params = (user_ids,)

        try:
            updated = await execute_query(query, params)
        except DatabaseError as e:
            raise UserRepositoryError(
                f"Failed to reset opt-in flags: {e}", operation="reset_opt_in"
            ) from e.__cause__

        logger.info(
            "Opt-in flags reset",
            scope="all" if user_ids is None else "listed",
            updated=updated,
        )
        return updated
