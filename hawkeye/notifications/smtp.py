"""SMTP email channel."""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..errors import NotificationError
from ..utils.logging import get_logger

logger = get_logger("notifications.smtp")


class EmailChannel:
    """Sends HTML alert emails.

    The SMTP conversation runs in a thread executor so the event loop is
    never blocked.
    """

    name = "email"

    def __init__(
        self,
        host: Optional[str],
        port: int,
        username: Optional[str],
        password: Optional[str],
        from_addr: str,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_addr = from_addr
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._host and self._username and self._password)

    async def send(self, destination: str, rendered: dict) -> None:
        """Send ``rendered`` (``subject`` and ``html``) to one address."""
        if not self.configured:
            raise NotificationError(self.name, "SMTP is not configured")
        if not destination:
            raise NotificationError(self.name, "No recipient address")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                self._send_sync,
                destination,
                rendered["subject"],
                rendered["html"],
            )
        except Exception as exc:
            logger.error("smtp_send_error", to=destination, error=str(exc))
            raise NotificationError(self.name, str(exc)) from exc
        logger.info("smtp_email_sent", to=destination, subject=rendered["subject"])

    def _send_sync(self, to: str, subject: str, html_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self._from_addr
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            server.ehlo()
            if self._port != 25:
                server.starttls()
                server.ehlo()
            server.login(self._username, self._password)
            server.sendmail(self._from_addr, [to], msg.as_string())
