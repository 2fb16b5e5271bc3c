"""Shared vocabularies: risk levels, scan categories, alert types and statuses."""

RISK_LEVELS = ("low", "medium", "high", "critical")

# Alert lifetime in days, keyed by severity
EXPIRATION_DAYS = {
    "low": 30,
    "medium": 60,
    "high": 90,
    "critical": 180,
}
DEFAULT_EXPIRATION_DAYS = 60

# Scan categories
CATEGORY_DOMAIN = "domain"
CATEGORY_DARK_WEB = "dark_web"
CATEGORY_SOCIAL_MEDIA = "social_media"
CATEGORY_PASTEBIN = "pastebin"
CATEGORY_PASSWORD_STORE = "password_store"

SCAN_CATEGORIES = (
    CATEGORY_DOMAIN,
    CATEGORY_DARK_WEB,
    CATEGORY_SOCIAL_MEDIA,
    CATEGORY_PASTEBIN,
    CATEGORY_PASSWORD_STORE,
)
USER_SCAN_CATEGORIES = SCAN_CATEGORIES[1:]

# Scheduler-only job names
JOB_ALERT_DISPATCH = "alerts"
JOB_ALERT_EXPIRY = "alert_expiry"

ASSET_STATUSES = ("active", "inactive", "suspended")
MONITORING_TYPES = ("typosquatting", "brand_abuse", "phishing", "malware", "all")
HISTORY_STATUSES = ("online", "offline", "redirecting", "error")

ALERT_TYPES = (
    "domain_registration",
    "domain_expiry",
    "dark_web_mention",
    "social_media_mention",
    "pastebin_mention",
    "password_breach",
    "ssl_expiry",
    "content_change",
    "threat_detected",
    "brand_abuse",
    "phishing_detected",
    "malware_detected",
)

ALERT_STATUSES = ("new", "acknowledged", "investigating", "resolved", "false_positive")

CHANNEL_EMAIL = "email"
CHANNEL_SLACK = "slack"
CHANNEL_DISCORD = "discord"
CHANNEL_TELEGRAM = "telegram"

ALERT_FREQUENCIES = ("immediate", "hourly", "daily")
