"""Tests for RealtimePublisher: per-user fan-out and bounded queueing."""

import asyncio

import pytest

from hawkeye.realtime.publisher import RealtimePublisher, user_channel


class TestPublisher:
    def test_user_channel_name(self):
        assert user_channel(7) == "user-7"

    @pytest.mark.asyncio
    async def test_events_reach_only_their_user(self):
        publisher = RealtimePublisher()
        alice, bob = [], []

        async def alice_handler(event_name, message):
            alice.append(event_name)

        async def bob_handler(event_name, message):
            bob.append(event_name)

        publisher.subscribe("user-1", alice_handler)
        publisher.subscribe("user-2", bob_handler)

        publisher.publish(1, "alert_created", {"id": 10})
        publisher.publish(2, "domain_update", {"domain_id": 3})
        publisher.publish(1, "notifications_sent", {"alert_id": 10})
        await publisher.drain()

        assert alice == ["alert_created", "notifications_sent"]
        assert bob == ["domain_update"]

    @pytest.mark.asyncio
    async def test_full_queue_drops_and_counts(self):
        publisher = RealtimePublisher(queue_size=2)

        for i in range(5):
            publisher.publish(1, "domain_update", {"i": i})

        stats = publisher.get_stats()
        assert stats["total_published"] == 2
        assert stats["total_dropped"] == 3
        assert stats["queue_size"] == 2

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        publisher = RealtimePublisher()
        received = []

        async def broken(event_name, message):
            raise RuntimeError("socket closed")

        async def healthy(event_name, message):
            received.append(message["data"])

        publisher.subscribe("user-1", broken)
        publisher.subscribe("user-1", healthy)
        publisher.publish(1, "alert_created", {"id": 1})
        await publisher.drain()

        assert received == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_dispatch_loop(self):
        publisher = RealtimePublisher()
        received = asyncio.Event()

        async def handler(event_name, message):
            received.set()

        publisher.subscribe("user-5", handler)
        await publisher.start()
        try:
            publisher.publish(5, "dark_web_update", {"findings": 0})
            await asyncio.wait_for(received.wait(), timeout=2)
        finally:
            await publisher.stop()

        assert publisher.get_stats()["running"] is False

    def test_unsubscribe(self):
        publisher = RealtimePublisher()

        async def handler(event_name, message):
            pass

        publisher.subscribe("user-1", handler)
        publisher.unsubscribe("user-1", handler)
        assert publisher.get_stats()["channels"] == []
