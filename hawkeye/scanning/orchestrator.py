"""Scan orchestration: enumerate targets for a category, scan them, promote findings.

``domain`` runs walk every active monitored asset through the domain
analyzer. Every other category walks the active users, builds each user's
search terms and hands them to that category's source adapter; high and
critical findings become alerts.
"""

import asyncio
import re
import weakref
from datetime import datetime, timezone
from typing import Optional

from ..analysis.classifier import classify, risk_from_confidence
from ..constants import (
    CATEGORY_DARK_WEB,
    CATEGORY_DOMAIN,
    CATEGORY_PASSWORD_STORE,
    CATEGORY_PASTEBIN,
    CATEGORY_SOCIAL_MEDIA,
    SCAN_CATEGORIES,
)
from ..errors import AnalysisError
from ..sources.base import ScanContext, SourceAdapter
from ..utils.logging import get_logger, scan_context
from .types import Finding, ScanSummary, SourceStatus

logger = get_logger("scanning.orchestrator")

PROMOTED_RISK_LEVELS = ("high", "critical")

_STATUS_RANK = {"completed": 0, "degraded": 1, "failed": 2}

# Alert wording per category
ALERT_TEMPLATES = {
    CATEGORY_DARK_WEB: {
        "type": "dark_web_mention",
        "title": "Dark Web Mention: {term}",
        "source": "Dark Web Monitoring",
    },
    CATEGORY_PASTEBIN: {
        "type": "pastebin_mention",
        "title": "Pastebin Mention: {term}",
        "source": "Pastebin Monitoring",
    },
    CATEGORY_SOCIAL_MEDIA: {
        "type": "social_media_mention",
        "title": "Social Media Mention: {term}",
        "source": "Social Media Monitoring",
    },
    CATEGORY_PASSWORD_STORE: {
        "type": "password_breach",
        "title": "Password Breach: {term}",
        "source": "Password Store Monitoring",
    },
}

PASSWORD_STORE_SOURCE_URL = "https://haveibeenpwned.com/PwnedWebsites"


def build_search_terms(company: Optional[str], domains: list[str], email: Optional[str]) -> list[str]:
    """Search terms for a user: company, domains and email domain plus compact variants.

    Duplicates are removed; first occurrence order is kept.
    """
    terms = []
    if company:
        lowered = company.lower()
        terms.append(lowered)
        terms.append(re.sub(r"\s+", "", lowered))
    for domain in domains:
        terms.append(domain)
        terms.append(domain.replace(".", ""))
    if email and "@" in email:
        email_domain = email.split("@", 1)[1].lower()
        if email_domain:
            terms.append(email_domain)
            terms.append(email_domain.replace(".", ""))
    return list(dict.fromkeys(t for t in terms if t))


def finding_alert(category: str, user_id: int, finding: Finding) -> dict:
    """Alert payload for a promoted finding."""
    template = ALERT_TEMPLATES[category]
    term = finding.search_term
    metadata = {
        "search_term": term,
        "source": finding.source,
        "detected_at": finding.detected_at.isoformat(),
        "risk_level": finding.risk_level,
    }
    source_url = finding.url or None

    if category == CATEGORY_PASSWORD_STORE:
        breach_name = finding.metadata.get("breach_name") or finding.title or finding.source
        count = finding.metadata.get("count")
        if count is not None:
            message = f'Found {count} instances of "{term}" in {breach_name} breach'
        else:
            message = f'Found "{term}" in {breach_name} breach'
        metadata.update(breach_name=breach_name, count=count)
        source_url = PASSWORD_STORE_SOURCE_URL
    elif category == CATEGORY_SOCIAL_MEDIA:
        platform = finding.metadata.get("platform") or finding.source
        message = f'Found mention of "{term}" on {platform}'
        metadata["platform"] = platform
        for key in ("sentiment", "engagement"):
            if key in finding.metadata:
                metadata[key] = finding.metadata[key]
    else:
        message = f'Found mention of "{term}" on {finding.source}: {finding.title}'

    return {
        "user_id": user_id,
        "type": template["type"],
        "severity": finding.risk_level,
        "title": template["title"].format(term=term),
        "message": message,
        "source": template["source"],
        "source_url": source_url,
        "metadata": metadata,
    }


class CategoryRunGuard:
    """Tracks which categories have a run in progress."""

    def __init__(self):
        self._running: dict[str, bool] = {}

    def try_acquire(self, category: str) -> bool:
        if self._running.get(category):
            return False
        self._running[category] = True
        return True

    def release(self, category: str) -> None:
        self._running[category] = False

    def is_running(self, category: str) -> bool:
        return self._running.get(category, False)

    def snapshot(self) -> dict[str, bool]:
        return {category: self.is_running(category) for category in SCAN_CATEGORIES}


class ScanOrchestrator:
    """Runs scan categories across all targets."""

    def __init__(
        self,
        asset_store,
        user_store,
        analyzer,
        lifecycle,
        adapters: dict[str, SourceAdapter],
        publisher=None,
        concurrency: int = 1,
    ):
        self._assets = asset_store
        self._users = user_store
        self._analyzer = analyzer
        self._lifecycle = lifecycle
        self._adapters = adapters
        self._publisher = publisher
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        # Entries vanish once no scan holds or waits on the lock
        self._target_locks: "weakref.WeakValueDictionary[tuple[str, int], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self.guard = CategoryRunGuard()

    def _publish(self, user_id: int, event_name: str, payload: dict) -> None:
        if self._publisher is not None:
            self._publisher.publish(user_id, event_name, payload)

    def _lock_for(self, kind: str, target_id: int) -> asyncio.Lock:
        key = (kind, target_id)
        lock = self._target_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._target_locks[key] = lock
        return lock

    async def run_category(self, category: str) -> Optional[ScanSummary]:
        """Scan every target of a category.

        Returns ``None`` without doing anything when a run of the same
        category is still in progress. Target enumeration errors propagate.
        """
        if category not in SCAN_CATEGORIES:
            raise ValueError(f"Unknown scan category: {category}")
        if not self.guard.try_acquire(category):
            logger.warning("scan_skipped_overlap", category=category)
            return None

        summary = ScanSummary(category=category)
        try:
            with scan_context(category):
                logger.info("scan_started", category=category)
                if category == CATEGORY_DOMAIN:
                    assets = await self._assets.list_active()
                    summary.targets_total = len(assets)
                    await asyncio.gather(*(self._bounded_domain(asset, summary) for asset in assets))
                else:
                    users = await self._users.list_active()
                    summary.targets_total = len(users)
                    await asyncio.gather(*(self._bounded_user(category, user, summary) for user in users))
        finally:
            self.guard.release(category)

        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            "scan_completed",
            category=category,
            targets=summary.targets_total,
            succeeded=summary.targets_succeeded,
            failed=summary.targets_failed,
            findings=summary.total_findings,
            alerts=summary.alerts_created,
        )
        return summary

    async def run_for_user(self, user_id: int, category: str) -> ScanSummary:
        """Manual scan of one category for one user."""
        if category not in SCAN_CATEGORIES:
            raise ValueError(f"Unknown scan category: {category}")
        user = await self._users.require(user_id)

        summary = ScanSummary(category=category)
        with scan_context(category, manual=True):
            logger.info("manual_scan_started", category=category, user_id=user_id)
            if category == CATEGORY_DOMAIN:
                assets = await self._assets.list_active_for_user(user.id)
                summary.targets_total = len(assets)
                await asyncio.gather(*(self._bounded_domain(asset, summary) for asset in assets))
            else:
                summary.targets_total = 1
                await self._bounded_user(category, user, summary)
        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            "manual_scan_completed",
            category=category,
            user_id=user_id,
            findings=summary.total_findings,
            alerts=summary.alerts_created,
        )
        return summary

    # ------------------------------------------------------------------
    # domain targets
    # ------------------------------------------------------------------

    async def _bounded_domain(self, asset, summary: ScanSummary) -> None:
        lock = self._lock_for("asset", asset.id)
        async with self._semaphore:
            async with lock:
                await self._scan_domain(asset, summary)

    async def _scan_domain(self, asset, summary: ScanSummary) -> None:
        try:
            result = await self._analyzer.analyze(asset)
        except AnalysisError as e:
            summary.targets_failed += 1
            for status in e.statuses:
                self._record_status(summary, status)
            logger.error("domain_scan_failed", asset_id=asset.id, domain=asset.domain, error=str(e))
            return
        except Exception as e:
            summary.targets_failed += 1
            logger.error("domain_scan_failed", asset_id=asset.id, domain=asset.domain, error=str(e))
            return

        for status in result.probe_statuses:
            self._record_status(summary, status)
        summary.targets_succeeded += 1
        summary.alerts_created += result.alerts_created
        for indicator in result.threat_indicators:
            summary.count(risk_from_confidence(indicator.confidence))

        unread = await self._assets.count_unread_asset_alerts(asset.id)
        self._publish(asset.user_id, "domain_update", {
            "domain_id": asset.id,
            "domain": asset.domain,
            "risk_level": result.risk_level,
            "alerts": unread,
        })

    # ------------------------------------------------------------------
    # user targets
    # ------------------------------------------------------------------

    async def _bounded_user(self, category: str, user, summary: ScanSummary) -> None:
        lock = self._lock_for("user", user.id)
        async with self._semaphore:
            async with lock:
                await self._scan_user(category, user, summary)

    async def _scan_user(self, category: str, user, summary: ScanSummary) -> None:
        adapter = self._adapters.get(category)
        if adapter is None:
            summary.targets_failed += 1
            self._record_status(summary, SourceStatus(category, "failed", "No source adapter configured"))
            logger.error("source_adapter_missing", category=category)
            return

        try:
            assets = await self._assets.list_active_for_user(user.id)
            terms = build_search_terms(user.company, [a.domain for a in assets], user.email)
            context = ScanContext(
                user_id=user.id,
                category=category,
                company=user.company,
                domains=[a.domain for a in assets],
            )
            result = await adapter.scan(terms, context)
        except Exception as e:
            summary.targets_failed += 1
            self._record_status(summary, SourceStatus(adapter.name, "degraded", str(e)))
            logger.error("source_scan_failed", category=category, user_id=user.id, source=adapter.name, error=str(e))
            return

        for status in result.statuses:
            self._record_status(summary, status)

        created = 0
        for finding in result.findings:
            if finding.risk_level is None:
                finding.risk_level = classify(category, finding)
            summary.count(finding.risk_level)
            if finding.risk_level in PROMOTED_RISK_LEVELS:
                try:
                    await self._lifecycle.create(finding_alert(category, user.id, finding))
                    created += 1
                except Exception as e:
                    logger.error("finding_promotion_failed", category=category, user_id=user.id, error=str(e))

        summary.targets_succeeded += 1
        summary.alerts_created += created
        self._publish(user.id, f"{category}_update", {
            "scan_time": datetime.now(timezone.utc).isoformat(),
            "findings": len(result.findings),
            "alerts_created": created,
        })
        logger.info(
            "source_scan_completed",
            category=category,
            user_id=user.id,
            terms=len(terms),
            findings=len(result.findings),
            alerts=created,
        )

    @staticmethod
    def _record_status(summary: ScanSummary, status: SourceStatus) -> None:
        for i, existing in enumerate(summary.sources):
            if existing.source == status.source:
                if _STATUS_RANK.get(status.status, 0) > _STATUS_RANK.get(existing.status, 0):
                    summary.sources[i] = status
                return
        summary.sources.append(status)
