"""Realtime event publisher.

Scan progress, alert lifecycle changes and notification results are pushed
to per-user channels named ``user-<id>``. Publishing never blocks and never
raises: events go onto a bounded queue and are dropped (and counted) when
the queue is full. A dispatch loop drains the queue and fans each event out
to the handlers subscribed to its channel.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Optional

from ..utils.logging import get_logger

logger = get_logger("realtime.publisher")

Handler = Callable[[str, dict], Coroutine[Any, Any, Any]]


def user_channel(user_id: int) -> str:
    return f"user-{user_id}"


class RealtimePublisher:
    """Async per-user publish/subscribe fan-out."""

    def __init__(self, queue_size: int = 10000, handler_timeout: float = 5.0):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._handler_timeout = handler_timeout
        self._running: bool = False
        self._dispatch_task: Optional[asyncio.Task] = None
        self._total_published: int = 0
        self._total_dispatched: int = 0
        self._total_dropped: int = 0

    def subscribe(self, channel: str, handler: Handler) -> None:
        """Subscribe a coroutine handler to a channel such as ``user-7``."""
        if handler not in self._subscribers[channel]:
            self._subscribers[channel].append(handler)
            logger.debug("realtime_subscriber_added", channel=channel)

    def unsubscribe(self, channel: str, handler: Handler) -> None:
        handlers = self._subscribers.get(channel)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._subscribers[channel]

    def publish(self, user_id: int, event_name: str, payload: dict) -> None:
        """Queue an event for a user's channel (non-blocking, drops if full)."""
        event = {
            "channel": user_channel(user_id),
            "event": event_name,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._queue.put_nowait(event)
            self._total_published += 1
        except asyncio.QueueFull:
            self._total_dropped += 1
            logger.warning("realtime_queue_full", event_name=event_name, user_id=user_id)

    async def start(self) -> None:
        """Start the dispatch loop."""
        if self._running:
            return
        self._running = True
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("realtime_publisher_started")

    async def stop(self) -> None:
        """Stop the dispatch loop."""
        self._running = False
        if self._dispatch_task and not self._dispatch_task.done():
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
        self._dispatch_task = None
        logger.info(
            "realtime_publisher_stopped",
            published=self._total_published,
            dispatched=self._total_dispatched,
            dropped=self._total_dropped,
        )

    async def drain(self) -> None:
        """Dispatch everything currently queued without the background loop."""
        while not self._queue.empty():
            event = self._queue.get_nowait()
            await self._dispatch_event(event)
            self._total_dispatched += 1

    async def _dispatch_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                await self._dispatch_event(event)
                self._total_dispatched += 1
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("realtime_dispatch_error", error=str(e))

    async def _dispatch_event(self, event: dict) -> None:
        channel = event["channel"]
        event_name = event["event"]
        message = {
            "event": event_name,
            "data": event["data"],
            "timestamp": event["timestamp"],
        }
        for handler in list(self._subscribers.get(channel, [])):
            try:
                await asyncio.wait_for(handler(event_name, message), timeout=self._handler_timeout)
            except asyncio.TimeoutError:
                logger.warning("realtime_handler_timeout", channel=channel, event_name=event_name)
            except Exception as e:
                logger.error("realtime_handler_error", channel=channel, event_name=event_name, error=str(e))

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "total_published": self._total_published,
            "total_dispatched": self._total_dispatched,
            "total_dropped": self._total_dropped,
            "queue_size": self._queue.qsize(),
            "channels": sorted(self._subscribers.keys()),
            "subscriber_count": sum(len(v) for v in self._subscribers.values()),
        }
