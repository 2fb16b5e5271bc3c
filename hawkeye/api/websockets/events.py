"""Per-user WebSocket sink for realtime events."""

import asyncio
import json
import time
from datetime import datetime, timezone

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...realtime.publisher import user_channel
from ...utils.logging import get_logger

logger = get_logger("websocket.events")

router = APIRouter()


class ConnectionManager:
    """Bridges the realtime publisher to WebSocket clients.

    Every connection gets a bounded outbound queue drained by its own writer
    task. A client whose queue fills up is disconnected.
    """

    def __init__(self, publisher, max_connections: int = 100, queue_size: int = 50, heartbeat_interval: int = 30):
        self._publisher = publisher
        self._connections: dict[WebSocket, asyncio.Queue] = {}
        self._writer_tasks: dict[WebSocket, asyncio.Task] = {}
        self._by_user: dict[int, set[WebSocket]] = {}
        self._handlers: dict[int, object] = {}
        self._max_connections = max_connections
        self._queue_size = queue_size
        self._heartbeat_interval = heartbeat_interval

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, user_id: int) -> bool:
        """Accept a connection if under the limit. Returns False if rejected."""
        if len(self._connections) >= self._max_connections:
            await websocket.close(code=1013)  # Try Again Later
            logger.warning("ws_connection_rejected", reason="max_connections", total=len(self._connections))
            return False
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._connections[websocket] = queue
        self._writer_tasks[websocket] = asyncio.create_task(self._writer(websocket, queue))

        sockets = self._by_user.setdefault(user_id, set())
        sockets.add(websocket)
        if user_id not in self._handlers:
            handler = self._make_handler(user_id)
            self._handlers[user_id] = handler
            self._publisher.subscribe(user_channel(user_id), handler)
        logger.info("ws_client_connected", user_id=user_id, total=len(self._connections))
        return True

    async def disconnect(self, websocket: WebSocket) -> None:
        self._connections.pop(websocket, None)
        task = self._writer_tasks.pop(websocket, None)
        if task and not task.done():
            task.cancel()

        for user_id, sockets in list(self._by_user.items()):
            if websocket in sockets:
                sockets.discard(websocket)
                if not sockets:
                    del self._by_user[user_id]
                    handler = self._handlers.pop(user_id, None)
                    if handler is not None:
                        self._publisher.unsubscribe(user_channel(user_id), handler)
        try:
            await websocket.close()
        except Exception as e:
            logger.debug("ws_close_failed", error=str(e))
        logger.info("ws_client_disconnected", total=len(self._connections))

    async def send_to_user(self, user_id: int, message: dict) -> None:
        """Enqueue a message on every socket of one user."""
        text = json.dumps(message, default=str)
        disconnected = []
        for ws in list(self._by_user.get(user_id, ())):
            queue = self._connections.get(ws)
            if queue is None:
                continue
            try:
                queue.put_nowait(text)
            except asyncio.QueueFull:
                disconnected.append(ws)
                logger.warning("ws_client_backpressure_disconnect", user_id=user_id)
        for ws in disconnected:
            await self.disconnect(ws)

    async def close_all(self) -> None:
        for ws in list(self._connections.keys()):
            await self.disconnect(ws)

    def _make_handler(self, user_id: int):
        async def handler(event_name: str, message: dict) -> None:
            await self.send_to_user(user_id, message)
        return handler

    async def _writer(self, websocket: WebSocket, queue: asyncio.Queue) -> None:
        last_activity = time.monotonic()
        try:
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=self._heartbeat_interval)
                    await websocket.send_text(message)
                    last_activity = time.monotonic()
                except asyncio.TimeoutError:
                    try:
                        await websocket.send_text(json.dumps({
                            "event": "heartbeat",
                            "timestamp": datetime.now(timezone.utc).isoformat(),
                            "idle_seconds": round(time.monotonic() - last_activity, 1),
                        }))
                        last_activity = time.monotonic()
                    except Exception as e:
                        logger.debug("ws_heartbeat_failed", error=str(e))
                        break
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.debug("ws_writer_error", error=str(e))


@router.websocket("/ws/events/{user_id}")
async def websocket_events(websocket: WebSocket, user_id: int):
    """Stream realtime events for one user.

    Messages are JSON objects: ``{"event": ..., "data": {...}, "timestamp": ...}``.
    Clients may send ``{"type": "ping"}`` and receive a ``pong``.
    """
    manager = websocket.app.state.services.ws_manager
    if not await manager.connect(websocket, user_id):
        return

    await websocket.send_text(json.dumps({
        "event": "connected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("ws_invalid_json_from_client")
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await websocket.send_text(json.dumps({
                    "event": "pong",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("ws_error", error=str(e))
    finally:
        await manager.disconnect(websocket)
