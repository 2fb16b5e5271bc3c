"""Notification dispatcher: delivers pending alerts over each user's channels."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from ..constants import CHANNEL_DISCORD, CHANNEL_EMAIL, CHANNEL_SLACK, CHANNEL_TELEGRAM
from ..models.base import utcnow
from ..utils.logging import get_logger
from .renderers import (
    render_discord,
    render_email,
    render_slack,
    render_telegram,
    screenshot_caption,
)

logger = get_logger("notifications.dispatcher")

RENDERERS = {
    CHANNEL_EMAIL: render_email,
    CHANNEL_SLACK: render_slack,
    CHANNEL_DISCORD: render_discord,
    CHANNEL_TELEGRAM: render_telegram,
}


@dataclass
class DispatchSummary:
    pending: int = 0
    notified: int = 0
    partial: int = 0
    throttled: int = 0
    missing_user: int = 0
    undelivered: int = 0

    def to_dict(self) -> dict:
        return {
            "pending": self.pending,
            "notified": self.notified,
            "partial": self.partial,
            "throttled": self.throttled,
            "missing_user": self.missing_user,
            "undelivered": self.undelivered,
        }


def should_send(user, now: datetime) -> bool:
    """Frequency throttle: hourly allows one send per 60 minutes, daily one per UTC day."""
    frequency = user.alert_frequency or "immediate"
    last = user.last_alert_sent
    if frequency == "hourly":
        return last is None or last < now - timedelta(hours=1)
    if frequency == "daily":
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return last is None or last < midnight
    return True


class NotificationDispatcher:
    """Routes pending alerts to email, Slack, Discord and Telegram.

    A channel is eligible for an alert when the user enabled it, it is
    configured (credentials, webhook URL, bot token and chat id) and it has
    not already delivered that alert. Each channel is tried independently.
    Successful deliveries are recorded per channel; once every eligible
    channel has delivered, the alert leaves the pending set.
    """

    def __init__(
        self,
        lifecycle,
        user_store,
        config,
        email=None,
        slack=None,
        discord=None,
        telegram=None,
        publisher=None,
    ) -> None:
        self._lifecycle = lifecycle
        self._users = user_store
        self._config = config
        self._channels = {
            CHANNEL_EMAIL: email,
            CHANNEL_SLACK: slack,
            CHANNEL_DISCORD: discord,
            CHANNEL_TELEGRAM: telegram,
        }
        self._publisher = publisher
        self._lock = asyncio.Lock()

    def configured_channels(self, user) -> list[tuple[str, str]]:
        """``(channel, destination)`` pairs the user enabled and we can reach."""
        cfg = self._config
        channels = []
        email = self._channels[CHANNEL_EMAIL]
        if user.email_notifications and email is not None and cfg.smtp_configured and user.email:
            channels.append((CHANNEL_EMAIL, user.email))

        slack_url = user.slack_webhook_url or cfg.alert_slack_webhook_url
        if user.slack_notifications and self._channels[CHANNEL_SLACK] is not None and slack_url:
            channels.append((CHANNEL_SLACK, slack_url))

        discord_url = user.discord_webhook_url or cfg.alert_discord_webhook_url
        if user.discord_notifications and self._channels[CHANNEL_DISCORD] is not None and discord_url:
            channels.append((CHANNEL_DISCORD, discord_url))

        if (
            user.telegram_notifications
            and self._channels[CHANNEL_TELEGRAM] is not None
            and cfg.telegram_bot_token
            and user.telegram_chat_id
        ):
            channels.append((CHANNEL_TELEGRAM, user.telegram_chat_id))
        return channels

    async def process_pending(self, now: Optional[datetime] = None) -> Optional[DispatchSummary]:
        """Run one dispatch pass. Returns ``None`` if a pass is already running."""
        if self._lock.locked():
            logger.warning("alert_dispatch_skipped_overlap")
            return None

        async with self._lock:
            now = now or utcnow()
            pending = await self._lifecycle.list_pending()
            summary = DispatchSummary(pending=len(pending))
            logger.info("alert_dispatch_started", pending=len(pending))

            for alert in pending:
                try:
                    await self._process_alert(alert, now, summary)
                except Exception as e:
                    summary.undelivered += 1
                    logger.error("alert_dispatch_failed", alert_id=alert.id, error=str(e))

            logger.info("alert_dispatch_completed", **summary.to_dict())
            return summary

    async def _process_alert(self, alert, now: datetime, summary: DispatchSummary) -> None:
        user = await self._users.get(alert.user_id)
        if user is None:
            summary.missing_user += 1
            logger.warning("alert_user_missing", alert_id=alert.id, user_id=alert.user_id)
            return

        if not should_send(user, now):
            summary.throttled += 1
            logger.info("alert_throttled", alert_id=alert.id, frequency=user.alert_frequency)
            return

        delivered = await self._lifecycle.delivered_channels(alert.id)
        configured = self.configured_channels(user)
        eligible = [(name, dest) for name, dest in configured if name not in delivered]
        if configured and not eligible:
            # every configured channel has already delivered
            await self._lifecycle.mark_notified(alert.id)
            summary.notified += 1
            logger.info("alert_delivery_complete", alert_id=alert.id, channels=sorted(delivered))
            return
        if not eligible:
            summary.undelivered += 1
            logger.warning("alert_no_eligible_channels", alert_id=alert.id, user_id=user.id)
            return

        sent = []
        for name, destination in eligible:
            if await self._deliver(name, destination, user, alert):
                sent.append(name)

        if not sent:
            summary.undelivered += 1
            logger.warning("alert_not_delivered", alert_id=alert.id, attempted=[n for n, _ in eligible])
            return

        fully_notified = len(sent) == len(eligible)
        await self._lifecycle.record_deliveries(alert.id, sent, fully_notified, now=now)
        await self._users.set_last_alert_sent(user.id, now)
        if fully_notified:
            summary.notified += 1
        else:
            summary.partial += 1

        logger.info("alert_notifications_sent", alert_id=alert.id, channels=sent, complete=fully_notified)
        if self._publisher is not None:
            self._publisher.publish(user.id, "notifications_sent", {
                "alert_id": alert.id,
                "channels": sent,
            })

    async def _deliver(self, name: str, destination: str, user, alert) -> bool:
        channel = self._channels[name]
        rendered = RENDERERS[name](user, alert, self._config.base_url)
        try:
            await channel.send(destination, rendered)
        except Exception as e:
            logger.error("channel_send_failed", channel=name, alert_id=alert.id, error=str(e))
            return False

        if name == CHANNEL_TELEGRAM:
            await self._send_screenshot(channel, destination, alert)
        return True

    async def _send_screenshot(self, channel, chat_id: str, alert) -> None:
        metadata = alert.metadata_json or {}
        path = metadata.get("screenshot_path")
        if not (path and metadata.get("has_screenshot")):
            return
        if not Path(path).is_file():
            logger.warning("screenshot_missing", alert_id=alert.id, path=path)
            return
        try:
            await channel.send_attachment(chat_id, path, screenshot_caption(alert))
        except Exception as e:
            logger.error("screenshot_send_failed", alert_id=alert.id, error=str(e))
