"""Keyword-tier risk classification of findings.

Each scan category has three keyword tiers. The finding's title, content and
URL are lowercased and checked critical first, then high, then medium; the
first tier with a matching keyword wins, otherwise the finding is low risk.
Classification is pure and never raises.
"""

from ..constants import (
    CATEGORY_DARK_WEB,
    CATEGORY_PASSWORD_STORE,
    CATEGORY_PASTEBIN,
    CATEGORY_SOCIAL_MEDIA,
)
from ..scanning.types import Finding

DARK_WEB_TIERS = {
    "critical": ("password", "credential", "breach", "leak", "dump", "hack"),
    "high": ("login", "signin", "account", "bank", "paypal", "amazon"),
    "medium": ("market", "shop", "store", "buy", "sell"),
}

PASTEBIN_TIERS = {
    "critical": ("password", "credential", "api_key", "secret", "token", "private_key"),
    "high": ("email", "username", "login", "config", "database", "connection"),
    "medium": ("domain", "url", "link", "address", "contact"),
}

SOCIAL_MEDIA_TIERS = {
    "critical": ("breach", "leak", "hacked", "scam", "fraud"),
    "high": ("phishing", "fake", "impersonat", "login", "account", "bank", "paypal"),
    "medium": ("market", "shop", "store", "buy", "sell", "giveaway"),
}

CATEGORY_TIERS = {
    CATEGORY_DARK_WEB: DARK_WEB_TIERS,
    CATEGORY_PASTEBIN: PASTEBIN_TIERS,
    CATEGORY_SOCIAL_MEDIA: SOCIAL_MEDIA_TIERS,
}

# Breached-record thresholds for password stores
BREACH_COUNT_TIERS = (
    (1_000_000, "critical"),
    (100_000, "high"),
    (10_000, "medium"),
)


def _finding_text(finding: Finding) -> str:
    parts = (finding.title, finding.content, finding.url)
    return " ".join(str(p) for p in parts if p).lower()


def classify_text(text: str, tiers: dict) -> str:
    text = (text or "").lower()
    for level in ("critical", "high", "medium"):
        if any(keyword in text for keyword in tiers.get(level, ())):
            return level
    return "low"


def classify_breach_count(count) -> str:
    try:
        count = int(count)
    except (TypeError, ValueError):
        return "low"
    for threshold, level in BREACH_COUNT_TIERS:
        if count > threshold:
            return level
    return "low"


def classify(category: str, finding: Finding) -> str:
    """Return the risk level of a finding for its scan category."""
    metadata = finding.metadata or {}
    if category == CATEGORY_PASSWORD_STORE and metadata.get("count") is not None:
        return classify_breach_count(metadata["count"])
    tiers = CATEGORY_TIERS.get(category, DARK_WEB_TIERS)
    return classify_text(_finding_text(finding), tiers)


def risk_from_confidence(confidence) -> str:
    """Bucket a 0-100 confidence: >=90 critical, >=70 high, >=50 medium, else low."""
    if confidence is None:
        return "low"
    if confidence >= 90:
        return "critical"
    if confidence >= 70:
        return "high"
    if confidence >= 50:
        return "medium"
    return "low"


def risk_from_indicators(indicators) -> str:
    """Risk level of a set of threat indicators: bucket of the max confidence."""
    confidences = [i.confidence if hasattr(i, "confidence") else i.get("confidence", 0) for i in indicators]
    if not confidences:
        return "low"
    return risk_from_confidence(max(confidences))
