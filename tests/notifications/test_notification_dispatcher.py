"""Tests for NotificationDispatcher: channel selection, throttling, partial failure."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from hawkeye.errors import NotificationError
from hawkeye.notifications.dispatcher import NotificationDispatcher, should_send


def _channel(name, error=None):
    channel = MagicMock()
    channel.name = name
    channel.send = AsyncMock(side_effect=error)
    channel.send_attachment = AsyncMock()
    return channel


@pytest.fixture
def channels():
    return {
        "email": _channel("email"),
        "slack": _channel("slack"),
        "discord": _channel("discord"),
        "telegram": _channel("telegram"),
    }


@pytest.fixture
def chat_config(config):
    return config.model_copy(update={
        "smtp_host": "smtp.example.com",
        "smtp_user": "hawkeye",
        "smtp_pass": "secret",
        "alert_slack_webhook_url": "https://hooks.slack.com/services/T/B/X",
        "telegram_bot_token": "123:abc",
    })


@pytest.fixture
def dispatcher(lifecycle, user_store, chat_config, channels, publisher):
    return NotificationDispatcher(
        lifecycle,
        user_store,
        chat_config,
        publisher=publisher,
        **channels,
    )


class TestShouldSend:
    NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def _user(self, frequency, last):
        user = MagicMock()
        user.alert_frequency = frequency
        user.last_alert_sent = last
        return user

    def test_immediate_always_sends(self):
        assert should_send(self._user("immediate", self.NOW), self.NOW) is True

    def test_hourly(self):
        assert should_send(self._user("hourly", None), self.NOW) is True
        assert should_send(self._user("hourly", self.NOW - timedelta(minutes=30)), self.NOW) is False
        assert should_send(self._user("hourly", self.NOW - timedelta(minutes=61)), self.NOW) is True

    def test_daily_resets_at_utc_midnight(self):
        assert should_send(self._user("daily", self.NOW - timedelta(hours=2)), self.NOW) is False
        assert should_send(self._user("daily", self.NOW - timedelta(hours=13)), self.NOW) is True


class TestConfiguredChannels:
    @pytest.mark.asyncio
    async def test_only_enabled_and_configured(self, dispatcher, user_store):
        user = await user_store.add(
            "carol@acme.com",
            slack_notifications=True,
            discord_notifications=True,  # no webhook anywhere
            telegram_notifications=True,
            telegram_chat_id="555",
        )

        assert dispatcher.configured_channels(user) == [
            ("email", "carol@acme.com"),
            ("slack", "https://hooks.slack.com/services/T/B/X"),
            ("telegram", "555"),
        ]

    @pytest.mark.asyncio
    async def test_user_webhook_overrides_global(self, dispatcher, user_store):
        user = await user_store.add(
            "dave@acme.com",
            email_notifications=False,
            slack_notifications=True,
            slack_webhook_url="https://hooks.slack.com/services/mine",
        )

        assert dispatcher.configured_channels(user) == [("slack", "https://hooks.slack.com/services/mine")]

    @pytest.mark.asyncio
    async def test_email_needs_smtp(self, lifecycle, user_store, config, channels, user):
        dispatcher = NotificationDispatcher(lifecycle, user_store, config, **channels)
        assert dispatcher.configured_channels(user) == []


class TestProcessPending:
    @pytest.mark.asyncio
    async def test_delivers_and_marks_notified(self, dispatcher, lifecycle, user_store, user, channels, make_alert, fixed_now):
        alert = await make_alert()

        summary = await dispatcher.process_pending(now=fixed_now)

        assert summary.pending == 1
        assert summary.notified == 1
        channels["email"].send.assert_awaited_once()
        destination, rendered = channels["email"].send.call_args[0]
        assert destination == "alice@acme.com"
        assert rendered["subject"] == "[HawkEye Alert] Domain Alert: acme-login.com"
        assert (await lifecycle.get(alert.id)).notified is True
        assert (await user_store.get(user.id)).last_alert_sent == fixed_now
        actions = await lifecycle.list_actions(alert.id)
        assert actions[-1].description == "Sent via: email"

    @pytest.mark.asyncio
    async def test_partial_failure_retries_only_failed_channel(
        self, lifecycle, user_store, chat_config, user, make_alert, fixed_now
    ):
        email = _channel("email")
        slack = _channel("slack", error=NotificationError("slack", "HTTP 500"))
        dispatcher = NotificationDispatcher(lifecycle, user_store, chat_config, email=email, slack=slack)
        await user_store.update_preferences(user.id, slack_notifications=True)
        alert = await make_alert()

        first = await dispatcher.process_pending(now=fixed_now)

        assert first.partial == 1
        assert await lifecycle.delivered_channels(alert.id) == {"email"}
        assert [a.id for a in await lifecycle.list_pending()] == [alert.id]

        slack.send.side_effect = None
        second = await dispatcher.process_pending(now=fixed_now + timedelta(minutes=5))

        assert second.notified == 1
        assert email.send.await_count == 1
        assert slack.send.await_count == 2
        assert await lifecycle.delivered_channels(alert.id) == {"email", "slack"}
        assert (await lifecycle.get(alert.id)).notified is True

    @pytest.mark.asyncio
    async def test_disabling_failed_channel_completes_alert(
        self, lifecycle, user_store, chat_config, user, make_alert, fixed_now
    ):
        email = _channel("email")
        slack = _channel("slack", error=NotificationError("slack", "HTTP 500"))
        dispatcher = NotificationDispatcher(lifecycle, user_store, chat_config, email=email, slack=slack)
        await user_store.update_preferences(user.id, slack_notifications=True)
        alert = await make_alert()

        await dispatcher.process_pending(now=fixed_now)
        await user_store.update_preferences(user.id, slack_notifications=False)
        summary = await dispatcher.process_pending(now=fixed_now + timedelta(minutes=5))

        assert summary.notified == 1
        assert summary.undelivered == 0
        assert email.send.await_count == 1
        assert (await lifecycle.get(alert.id)).notified is True
        assert await lifecycle.list_pending() == []

    @pytest.mark.asyncio
    async def test_all_channels_failing_leaves_alert_pending(
        self, lifecycle, user_store, chat_config, user, make_alert, fixed_now
    ):
        email = _channel("email", error=NotificationError("email", "auth failed"))
        dispatcher = NotificationDispatcher(lifecycle, user_store, chat_config, email=email)
        alert = await make_alert()

        summary = await dispatcher.process_pending(now=fixed_now)

        assert summary.undelivered == 1
        assert (await lifecycle.get(alert.id)).notified is False
        assert await lifecycle.list_actions(alert.id) == []
        assert (await user_store.get(user.id)).last_alert_sent is None

    @pytest.mark.asyncio
    async def test_throttled_user_is_skipped(self, dispatcher, lifecycle, user_store, user, channels, make_alert, fixed_now):
        await user_store.update_preferences(user.id, alert_frequency="hourly")
        await user_store.set_last_alert_sent(user.id, fixed_now - timedelta(minutes=10))
        alert = await make_alert()

        summary = await dispatcher.process_pending(now=fixed_now)

        assert summary.throttled == 1
        channels["email"].send.assert_not_awaited()
        assert (await lifecycle.get(alert.id)).notified is False

    @pytest.mark.asyncio
    async def test_read_alerts_are_not_sent(self, dispatcher, lifecycle, channels, make_alert, fixed_now):
        alert = await make_alert()
        await lifecycle.mark_read(alert.id)

        summary = await dispatcher.process_pending(now=fixed_now)

        assert summary.pending == 0
        channels["email"].send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_telegram_screenshot_follows_message(
        self, dispatcher, user_store, user, channels, make_alert, fixed_now, tmp_path
    ):
        screenshot = tmp_path / "acme-login.com_brand_abuse.png"
        screenshot.write_bytes(b"\x89PNG\r\n")
        await user_store.update_preferences(
            user.id, email_notifications=False, telegram_notifications=True, telegram_chat_id="777",
        )
        await make_alert(metadata={
            "domain": "acme-login.com",
            "screenshot_path": str(screenshot),
            "has_screenshot": True,
        })

        await dispatcher.process_pending(now=fixed_now)

        channels["telegram"].send.assert_awaited_once()
        channels["telegram"].send_attachment.assert_awaited_once()
        chat_id, path, caption = channels["telegram"].send_attachment.call_args[0]
        assert chat_id == "777"
        assert path == str(screenshot)
        assert "acme-login.com" in caption

    @pytest.mark.asyncio
    async def test_screenshot_failure_does_not_undo_delivery(
        self, dispatcher, lifecycle, user_store, user, channels, make_alert, fixed_now, tmp_path
    ):
        screenshot = tmp_path / "shot.png"
        screenshot.write_bytes(b"\x89PNG\r\n")
        channels["telegram"].send_attachment.side_effect = NotificationError("telegram", "too big")
        await user_store.update_preferences(
            user.id, email_notifications=False, telegram_notifications=True, telegram_chat_id="777",
        )
        alert = await make_alert(metadata={"screenshot_path": str(screenshot), "has_screenshot": True})

        summary = await dispatcher.process_pending(now=fixed_now)

        assert summary.notified == 1
        assert await lifecycle.delivered_channels(alert.id) == {"telegram"}

    @pytest.mark.asyncio
    async def test_missing_user_is_counted(self, dispatcher, lifecycle, make_alert, fixed_now):
        alert = await make_alert(user_id=999)

        summary = await dispatcher.process_pending(now=fixed_now)

        assert summary.missing_user == 1
        assert (await lifecycle.get(alert.id)).notified is False

    @pytest.mark.asyncio
    async def test_overlapping_pass_is_skipped(self, dispatcher, fixed_now):
        async with dispatcher._lock:
            assert await dispatcher.process_pending(now=fixed_now) is None

