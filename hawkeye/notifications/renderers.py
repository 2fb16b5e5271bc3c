"""Message rendering for each notification channel."""

from html import escape

SEVERITY_COLORS = {
    "low": "#28a745",
    "medium": "#ffc107",
    "high": "#fd7e14",
    "critical": "#dc3545",
}
DEFAULT_COLOR = "#6c757d"

DISCORD_COLORS = {
    "low": 0x28A745,
    "medium": 0xFFC107,
    "high": 0xFD7E14,
    "critical": 0xDC3545,
}
DEFAULT_DISCORD_COLOR = 0x6C757D

SLACK_EMOJI = {
    "low": ":white_check_mark:",
    "medium": ":warning:",
    "high": ":rotating_light:",
    "critical": ":fire:",
}
SEVERITY_EMOJI = {
    "low": "✅",
    "medium": "⚠️",
    "high": "\U0001f6a8",
    "critical": "\U0001f525",
}
SEVERITY_DOT = {
    "low": "\U0001f7e2",
    "medium": "\U0001f7e1",
    "high": "\U0001f7e0",
    "critical": "\U0001f534",
}

FOOTER = "HawkEye Brand Protection Platform"

_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>HawkEye Alert</title>
<style>
body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
.container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
.header {{ background: {color}; color: white; padding: 20px; text-align: center; }}
.content {{ padding: 20px; background: #f8f9fa; }}
.alert-details {{ background: white; padding: 15px; margin: 15px 0; border-left: 4px solid {color}; }}
.footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
.button {{ display: inline-block; padding: 10px 20px; background: {color}; color: white; text-decoration: none; border-radius: 5px; }}
</style>
</head>
<body>
<div class="container">
    <div class="header">
        <h1>HawkEye Security Alert</h1>
        <p>Severity: {severity}</p>
    </div>
    <div class="content">
        <h2>{title}</h2>
        <p>Hello {name},</p>
        <p>We've detected a security issue that requires your attention:</p>
        <div class="alert-details">
            <h3>Alert Details</h3>
            <p><strong>Message:</strong> {message}</p>
            <p><strong>Source:</strong> {source}</p>
            <p><strong>Detected:</strong> {detected}</p>
            {source_url}
        </div>
        <p>Please review this alert and take appropriate action if necessary.</p>
        <p style="text-align: center;"><a href="{details_url}" class="button">View Alert Details</a></p>
    </div>
    <div class="footer">
        <p>This is an automated alert from HawkEye Brand Protection Platform.</p>
        <p>If you have any questions, please contact your security team.</p>
    </div>
</div>
</body>
</html>"""


def severity_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, DEFAULT_COLOR)


def discord_color(severity: str) -> int:
    return DISCORD_COLORS.get(severity, DEFAULT_DISCORD_COLOR)


def details_url(base_url: str, alert) -> str:
    return f"{base_url.rstrip('/')}/alerts/{alert.id}"


def _detected(alert) -> str:
    return alert.created_at.strftime("%Y-%m-%d %H:%M:%S UTC") if alert.created_at else ""


def render_email(user, alert, base_url: str) -> dict:
    """Subject and HTML body for an alert email."""
    source_url = ""
    if alert.source_url:
        url = escape(alert.source_url)
        source_url = f'<p><strong>Source URL:</strong> <a href="{url}">{url}</a></p>'
    body = _EMAIL_TEMPLATE.format(
        color=severity_color(alert.severity),
        severity=alert.severity.upper(),
        title=escape(alert.title),
        name=escape(user.first_name or user.display_name),
        message=escape(alert.message),
        source=escape(alert.source),
        detected=_detected(alert),
        source_url=source_url,
        details_url=escape(details_url(base_url, alert)),
    )
    return {"subject": f"[HawkEye Alert] {alert.title}", "html": body}


def render_slack(user, alert, base_url: str) -> dict:
    return {
        "text": f"HawkEye Security Alert for {user.display_name}",
        "attachments": [
            {
                "color": severity_color(alert.severity),
                "title": f"{SLACK_EMOJI.get(alert.severity, '')} {alert.title}".strip(),
                "text": alert.message,
                "fields": [
                    {"title": "Severity", "value": alert.severity.upper(), "short": True},
                    {"title": "Source", "value": alert.source, "short": True},
                    {"title": "Detected", "value": _detected(alert), "short": True},
                ],
                "actions": [
                    {"type": "button", "text": "View Details", "url": details_url(base_url, alert)},
                ],
                "footer": FOOTER,
            }
        ],
    }


def render_discord(user, alert, base_url: str) -> dict:
    return {
        "embeds": [
            {
                "title": f"{SEVERITY_EMOJI.get(alert.severity, '')} {alert.title}".strip(),
                "description": alert.message,
                "color": discord_color(alert.severity),
                "fields": [
                    {"name": "Severity", "value": alert.severity.upper(), "inline": True},
                    {"name": "Source", "value": alert.source, "inline": True},
                    {"name": "Detected", "value": _detected(alert), "inline": True},
                ],
                "url": details_url(base_url, alert),
                "footer": {"text": FOOTER},
                "timestamp": alert.created_at.isoformat() if alert.created_at else None,
            }
        ]
    }


def render_telegram(user, alert, base_url: str) -> str:
    """Telegram message text in HTML parse mode."""
    lines = [
        f"<b>{SEVERITY_EMOJI.get(alert.severity, '')} HawkEye Security Alert</b>",
        "",
        f"<b>{escape(alert.title)}</b>",
        "",
        escape(alert.message),
        "",
        "<b>Details:</b>",
        f"• Severity: {SEVERITY_DOT.get(alert.severity, '')} {alert.severity.upper()}",
        f"• Source: {escape(alert.source)}",
        f"• Detected: {_detected(alert)}",
    ]
    if alert.source_url:
        lines.append(f"• Source URL: {escape(alert.source_url)}")
    lines.extend(["", f"<i>{FOOTER}</i>"])
    return "\n".join(lines)


def screenshot_caption(alert) -> str:
    domain = (alert.metadata_json or {}).get("domain", "")
    return f"\U0001f4f8 Screenshot of suspicious domain: {escape(domain)}"
