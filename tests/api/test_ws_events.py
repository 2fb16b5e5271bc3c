"""Tests for the WebSocket ConnectionManager bridging the realtime publisher."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from hawkeye.api.websockets.events import ConnectionManager
from hawkeye.realtime.publisher import RealtimePublisher


def _websocket():
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.close = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_events_forwarded_to_owner_only(self):
        publisher = RealtimePublisher()
        manager = ConnectionManager(publisher, heartbeat_interval=60)
        alice, bob = _websocket(), _websocket()
        await manager.connect(alice, 1)
        await manager.connect(bob, 2)

        publisher.publish(1, "alert_created", {"id": 5})
        await publisher.drain()
        await asyncio.sleep(0.01)

        alice.send_text.assert_awaited_once()
        payload = json.loads(alice.send_text.call_args[0][0])
        assert payload["event"] == "alert_created"
        assert payload["data"] == {"id": 5}
        bob.send_text.assert_not_awaited()

        await manager.close_all()
        assert manager.connection_count == 0
        assert publisher.get_stats()["subscriber_count"] == 0

    @pytest.mark.asyncio
    async def test_rejects_over_limit(self):
        manager = ConnectionManager(RealtimePublisher(), max_connections=1)
        first, second = _websocket(), _websocket()

        assert await manager.connect(first, 1) is True
        assert await manager.connect(second, 1) is False
        second.close.assert_awaited_once_with(code=1013)

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_slow_client_is_disconnected(self):
        publisher = RealtimePublisher()
        manager = ConnectionManager(publisher, queue_size=1, heartbeat_interval=60)
        ws = _websocket()

        async def stuck(text):
            await asyncio.sleep(10)

        ws.send_text = AsyncMock(side_effect=stuck)
        await manager.connect(ws, 3)

        for i in range(5):
            await manager.send_to_user(3, {"event": "domain_update", "data": {"i": i}})

        assert manager.connection_count == 0
        ws.close.assert_awaited()
