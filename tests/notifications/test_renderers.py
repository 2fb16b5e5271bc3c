"""Tests for per-channel message rendering."""

from datetime import datetime, timezone
from types import SimpleNamespace

from hawkeye.notifications.renderers import (
    render_discord,
    render_email,
    render_slack,
    render_telegram,
    screenshot_caption,
)

BASE_URL = "https://hawkeye.example.com/"


def _user():
    return SimpleNamespace(first_name="Alice", last_name="Smith", email="alice@acme.com", display_name="Alice Smith")


def _alert(**overrides):
    fields = dict(
        id=42,
        severity="critical",
        title="Domain Alert: acme-login.com",
        message="Threat detected: <script>cloned login</script>",
        source="Domain Monitoring",
        source_url="http://acme-login.com",
        created_at=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
        metadata_json={"domain": "acme-login.com"},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestEmail:
    def test_subject_and_escaping(self):
        rendered = render_email(_user(), _alert(), BASE_URL)

        assert rendered["subject"] == "[HawkEye Alert] Domain Alert: acme-login.com"
        assert "#dc3545" in rendered["html"]
        assert "&lt;script&gt;" in rendered["html"]
        assert "<script>" not in rendered["html"]
        assert "https://hawkeye.example.com/alerts/42" in rendered["html"]
        assert "Hello Alice" in rendered["html"]

    def test_unknown_severity_uses_default_color(self):
        rendered = render_email(_user(), _alert(severity="unknown"), BASE_URL)
        assert "#6c757d" in rendered["html"]


class TestChat:
    def test_slack_attachment(self):
        rendered = render_slack(_user(), _alert(severity="high"), BASE_URL)

        attachment = rendered["attachments"][0]
        assert attachment["color"] == "#fd7e14"
        assert [f["title"] for f in attachment["fields"]] == ["Severity", "Source", "Detected"]
        assert attachment["actions"][0]["url"] == "https://hawkeye.example.com/alerts/42"

    def test_discord_embed(self):
        rendered = render_discord(_user(), _alert(severity="medium"), BASE_URL)

        embed = rendered["embeds"][0]
        assert embed["color"] == 0xFFC107
        assert embed["timestamp"] == "2024-06-01T12:00:00+00:00"
        assert all(field["inline"] for field in embed["fields"])

    def test_telegram_html(self):
        text = render_telegram(_user(), _alert(), BASE_URL)

        assert "<b>Domain Alert: acme-login.com</b>" in text
        assert "&lt;script&gt;" in text
        assert "CRITICAL" in text
        assert "Source URL: http://acme-login.com" in text

    def test_screenshot_caption(self):
        assert "acme-login.com" in screenshot_caption(_alert())
