# couplematch/db/helpers.py
"""
Query helpers shared by the match and user repositories.

Every psycopg failure surfaces as `DatabaseError` with the original error kept
as `__cause__`, which is what `with_db_retry` inspects to tell transient
connection problems from permanent ones.
"""

import asyncio
import functools
from typing import Any

import psycopg

from couplematch.db.pool import get_db_connection, get_db_transaction
from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A store operation failed."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    """Run a SELECT and return every row as a dict."""
    try:
        async with await get_db_connection() as conn:
            cur = await conn.execute(query, params)
            return await cur.fetchall()
    except psycopg.Error as e:
        logger.error("Database fetch_all error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e


async def fetch_val(query: str, params: tuple = ()) -> Any:
    """First column of the first row, or None when nothing matched."""
    try:
        async with await get_db_connection() as conn:
            cur = await conn.execute(query, params)
            row = await cur.fetchone()
    except psycopg.Error as e:
        logger.error("Database fetch_val error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_val") from e
    return next(iter(row.values())) if row else None


async def execute_query(query: str, params: tuple = ()) -> int:
    """Run a write statement and return the affected row count."""
    try:
        async with await get_db_connection() as conn:
            cur = await conn.execute(query, params)
            return cur.rowcount
    except psycopg.Error as e:
        logger.error("Database execute error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="execute") from e


async def execute_transaction(statements: list[tuple[str, tuple]]) -> int:
    """
    Run (query, params) pairs in one transaction.

    Returns the total number of affected rows. Nothing is committed if any
    statement fails.
    """
    affected = 0
    try:
        async with await get_db_transaction() as conn:
            for query, params in statements:
                cur = await conn.execute(query, params)
                affected += max(cur.rowcount, 0)
    except psycopg.Error as e:
        logger.error("Transaction failed", statement_count=len(statements), error=str(e))
        raise DatabaseError(f"Transaction failed: {e}", operation="transaction") from e

    logger.debug("Transaction committed", statement_count=len(statements), affected_rows=affected)
    return affected


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository read when the underlying failure is an OperationalError.

    Back-off doubles on each attempt. Any other DatabaseError is raised at once
    and marked not recoverable.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    transient = isinstance(e.__cause__, psycopg.OperationalError)
                    if not transient or attempt >= max_retries:
                        if transient:
                            logger.error(
                                "Database operation failed after all retries",
                                operation=func.__name__,
                                attempts=attempt + 1,
                                error=str(e),
                            )
                        e.recoverable = False
                        raise

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Transient database failure, retrying",
                        operation=func.__name__,
                        attempt=attempt,
                        delay=delay,
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
