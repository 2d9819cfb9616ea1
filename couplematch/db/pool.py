# couplematch/db/pool.py
"""
Shared psycopg connection pool for the match and user stores.

The cycle phases only hold a connection for the length of one query or one
batch transaction, so the pool stays small. Connections come back in
autocommit mode with dict rows.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib import resources
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from couplematch.config import settings
from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabasePoolManager:
    """Lifecycle of the AsyncConnectionPool used by the repositories."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._initialized and not self._closed

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        config = settings.get_db_pool_config()
        logger.info(
            "Opening match store pool",
            min_size=config["min_size"],
            max_size=config["max_size"],
            environment=settings.environment,
        )

        self.pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **config,
        )
        try:
            await self.pool.open()
            await self.pool.wait()
            self._initialized = True

            async with self.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Failed to open match store pool", error=str(e))
            self._initialized = False
            await self.pool.close()
            self.pool = None
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Match store pool ready")

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        # Idle pooled connections must never sit inside a transaction
        await conn.set_autocommit(True)
        app_name = f"couplematch-{settings.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return

        logger.info("Closing match store pool")
        try:
            await asyncio.wait_for(self.pool.close(), timeout=30.0)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if not self.is_ready:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside a transaction: commits on success, rolls back on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def apply_schema(self) -> None:
        """Create the cycle's tables and indexes if they are missing."""
        ddl = resources.files("couplematch.db").joinpath("schema.sql").read_text()
        async with self.transaction() as conn:
            await conn.execute(ddl)
        logger.info("Match store schema applied")

    async def health_check(self) -> dict[str, Any]:
        if not self.is_ready:
            return {"healthy": False, "error": "Pool not initialized", "service": "database_pool"}

        try:
            started = time.time()
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
            latency_ms = (time.time() - started) * 1000
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        health = {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round(latency_ms, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }
        if health["pool_stats"]["requests_waiting"]:
            health["warnings"] = [
                f"Requests waiting for connections: {health['pool_stats']['requests_waiting']}"
            ]
        return health


db_pool = DatabasePoolManager()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
