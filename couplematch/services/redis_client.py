# couplematch/services/redis_client.py
"""
Redis connection used as the real-time channel to connected clients.

Only pub/sub is needed: every cycle event is a JSON message published on a
per-user channel or the broadcast channel.
"""

import json
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from couplematch.config import settings
from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 10


class FastRedisClient:
    """Pooled Redis client for publishing cycle events."""

    def __init__(self):
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return

        self.pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=5,
            socket_timeout=settings.NOTIFY_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        self.client = redis.Redis(connection_pool=self.pool)

        try:
            await self.client.ping()
        except redis.RedisError as e:
            logger.error("Redis unreachable at startup", error=str(e))
            await self.close()
            raise RuntimeError("Redis initialization failed") from e

        self._initialized = True
        logger.info("Redis publisher ready", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        self.client = None
        self.pool = None
        self._initialized = False
        logger.info("Redis publisher closed")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            logger.warning("Redis used before startup, connecting now")
            await self.initialize()

    async def ping(self) -> bool:
        try:
            await self._ensure_initialized()
            return bool(await self.client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """
        Publish `message` as JSON on `channel`.

        Returns the number of subscribers that received it. Errors propagate;
        the notifier decides what a failed delivery means.
        """
        await self._ensure_initialized()
        return int(await self.client.publish(channel, json.dumps(message, default=str)))


fast_redis = FastRedisClient()
