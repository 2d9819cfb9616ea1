import asyncio
from unittest.mock import AsyncMock

import pytest

from couplematch.features.match_cycle.services.notifier import MatchNotifier


@pytest.mark.asyncio
async def test_publish_targets_user_channel():
    client = AsyncMock()
    client.publish.return_value = 1
    notifier = MatchNotifier(client=client, timeout_s=1.0)

    ok = await notifier.publish("u-1", "match:delivered", {"match": {"id": "m-1"}})

    assert ok is True
    client.publish.assert_awaited_once_with(
        "user:u-1", {"event": "match:delivered", "payload": {"match": {"id": "m-1"}}}
    )


@pytest.mark.asyncio
async def test_broadcast_uses_shared_channel():
    client = AsyncMock()
    client.publish.return_value = 0
    notifier = MatchNotifier(client=client, timeout_s=1.0)

    ok = await notifier.broadcast("optin:reset")

    assert ok is True
    client.publish.assert_awaited_once_with("broadcast", {"event": "optin:reset", "payload": {}})


@pytest.mark.asyncio
async def test_publish_failure_is_swallowed():
    client = AsyncMock()
    client.publish.side_effect = ConnectionError("redis down")
    notifier = MatchNotifier(client=client, timeout_s=1.0)

    assert await notifier.publish("u-1", "match:delivered", {}) is False


@pytest.mark.asyncio
async def test_publish_timeout_is_swallowed():
    async def slow_publish(channel, message):
        await asyncio.sleep(1)

    client = AsyncMock()
    client.publish.side_effect = slow_publish
    notifier = MatchNotifier(client=client, timeout_s=0.01)

    assert await notifier.publish("u-1", "match:delivered", {}) is False
