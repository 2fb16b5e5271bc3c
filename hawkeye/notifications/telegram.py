"""Telegram Bot API channel."""

from pathlib import Path
from typing import Optional

import httpx

from ..errors import NotificationError
from ..utils.logging import get_logger

logger = get_logger("notifications.telegram")

_API_BASE = "https://api.telegram.org"


class TelegramChannel:
    name = "telegram"

    def __init__(self, bot_token: Optional[str], timeout: float = 30.0) -> None:
        self._bot_token = bot_token
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._bot_token)

    def _url(self, method: str) -> str:
        return f"{_API_BASE}/bot{self._bot_token}/{method}"

    async def _call(self, method: str, **kwargs) -> dict:
        if not self._bot_token:
            raise NotificationError(self.name, "Telegram bot token is not configured")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url(method), **kwargs)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("telegram_http_error", method=method, status=exc.response.status_code)
            raise NotificationError(self.name, f"HTTP {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("telegram_send_error", method=method, error=str(exc))
            raise NotificationError(self.name, str(exc)) from exc

        if not body.get("ok", False):
            raise NotificationError(self.name, body.get("description", "Telegram API error"))
        return body

    async def send(self, destination: str, rendered: str) -> None:
        """Send an HTML-formatted text message to a chat id."""
        await self._call(
            "sendMessage",
            json={
                "chat_id": destination,
                "text": rendered,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        logger.info("telegram_message_sent", chat_id=destination)

    async def send_attachment(self, destination: str, path: str, caption: str = "") -> None:
        """Upload a photo to a chat."""
        file_path = Path(path)
        if not file_path.is_file():
            raise NotificationError(self.name, f"Attachment not found: {path}")
        with file_path.open("rb") as fh:
            await self._call(
                "sendPhoto",
                data={"chat_id": destination, "caption": caption, "parse_mode": "HTML"},
                files={"photo": (file_path.name, fh, "image/png")},
            )
        logger.info("telegram_photo_sent", chat_id=destination, path=path)
