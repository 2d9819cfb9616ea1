"""
Real-time delivery of cycle events over Redis pub/sub.

Each user listens on `user:{id}`; connected clients also listen on the
broadcast channel. Delivery is best-effort: a user who is offline simply
misses the live event, and a failed publish never undoes the transition
that triggered it.
"""

import asyncio
from typing import Any

from couplematch.config import settings
from couplematch.infrastructure.observability.logging import get_logger
from couplematch.services.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

BROADCAST_CHANNEL = "broadcast"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class MatchNotifier:
    """Publishes match cycle events; never raises."""

    def __init__(self, client: FastRedisClient | None = None, timeout_s: float | None = None):
        self.client = client or fast_redis
        self.timeout_s = timeout_s if timeout_s is not None else settings.NOTIFY_TIMEOUT_SECONDS

    async def publish(self, user_id: str, event_name: str, payload: dict[str, Any]) -> bool:
        return await self._send(user_channel(user_id), event_name, payload, user_id=user_id)

    async def broadcast(self, event_name: str, payload: dict[str, Any] | None = None) -> bool:
        return await self._send(BROADCAST_CHANNEL, event_name, payload or {})

    async def _send(
        self,
        channel: str,
        event_name: str,
        payload: dict[str, Any],
        user_id: str | None = None,
    ) -> bool:
        message = {"event": event_name, "payload": payload}
        try:
            receivers = await asyncio.wait_for(
                self.client.publish(channel, message), timeout=self.timeout_s
            )
        except TimeoutError:
            logger.warning(
                "Event publish timed out",
                channel=channel,
                event_name=event_name,
                user_id=user_id,
                timeout_s=self.timeout_s,
            )
            return False
        except Exception as e:
            logger.warning(
                "Event publish failed",
                channel=channel,
                event_name=event_name,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.debug(
            "Event published",
            channel=channel,
            event_name=event_name,
            receivers=receivers,
        )
        return True


match_notifier = MatchNotifier()
