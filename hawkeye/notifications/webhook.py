"""Incoming-webhook channels (Slack, Discord)."""

import httpx

from ..errors import NotificationError
from ..utils.logging import get_logger

logger = get_logger("notifications.webhook")


class WebhookChannel:
    """POSTs a pre-rendered JSON message to a webhook URL."""

    def __init__(self, name: str, timeout: float = 30.0) -> None:
        self.name = name
        self._timeout = timeout

    async def send(self, destination: str, rendered: dict) -> None:
        if not destination:
            raise NotificationError(self.name, "No webhook URL configured")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    destination,
                    json=rendered,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "webhook_http_error",
                channel=self.name,
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            raise NotificationError(self.name, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("webhook_send_error", channel=self.name, error=str(exc))
            raise NotificationError(self.name, str(exc)) from exc
        logger.info("webhook_sent", channel=self.name, status=response.status_code)
