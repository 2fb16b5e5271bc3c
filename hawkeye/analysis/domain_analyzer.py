"""Domain risk analysis.

One run probes a monitored domain from five directions at once (WHOIS, DNS,
threat intelligence, HTTP content, TLS), folds the answers into a risk level,
writes everything back to the asset in a single statement, appends a
monitoring-history record and raises alerts for threats and upcoming
expirations.

Run states: pending -> probing -> aggregating -> persisted, or error when no
probe reached the domain at all.
"""

import asyncio
from datetime import datetime
from typing import Any, Optional

from ..errors import AnalysisError
from ..models.asset import MonitoredAsset
from ..models.base import utcnow
from ..scanning.types import AnalysisResult, SourceStatus, ThreatIndicator
from ..utils.logging import get_logger
from .classifier import risk_from_confidence, risk_from_indicators
from .probes import (
    check_ssl,
    detect_heuristic_threats,
    fetch_content,
    lookup_whois,
    resolve_dns,
)

logger = get_logger("analysis.domain_analyzer")

PROMOTED_SEVERITIES = ("high", "critical")


def expiry_severity(days_left: int) -> str:
    if days_left <= 7:
        return "critical"
    if days_left <= 14:
        return "high"
    return "medium"


def _jsonable(data: Optional[dict]) -> Optional[dict]:
    if data is None:
        return None
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in data.items()
    }


def _probe_reached(whois_data, dns_records, response_time_ms, ssl_certificate) -> bool:
    if whois_data is not None:
        return True
    if any(dns_records.values()):
        return True
    if response_time_ms is not None:
        return True
    return bool(ssl_certificate.get("is_valid"))


def _probe_statuses(whois_data, dns_records, response_time_ms, ssl_certificate) -> list[SourceStatus]:
    """One status per network probe; an unavailable answer counts as degraded."""
    def status(name: str, ok: bool, error: Optional[str] = "unavailable") -> SourceStatus:
        return SourceStatus(name, "completed") if ok else SourceStatus(name, "degraded", error)

    return [
        status("whois", whois_data is not None),
        status("dns", any(dns_records.values())),
        status("content", response_time_ms is not None),
        status("ssl", bool(ssl_certificate.get("is_valid")), ssl_certificate.get("error") or "unavailable"),
    ]


class DomainRiskAnalyzer:
    """Analyzes monitored domains and records the outcome."""

    def __init__(
        self,
        asset_store,
        lifecycle,
        config,
        virustotal=None,
        shodan=None,
        screenshots=None,
    ):
        self._assets = asset_store
        self._lifecycle = lifecycle
        self._config = config
        self._virustotal = virustotal
        self._shodan = shodan
        self._screenshots = screenshots

    async def check_threats(self, domain: str) -> tuple[list[ThreatIndicator], list[SourceStatus]]:
        """External reputation lookups (when configured) plus the heuristic pass.

        Returns the indicators and one status per provider consulted.
        """
        providers = [
            provider
            for provider in (self._virustotal, self._shodan)
            if provider is not None and provider.enabled
        ]
        results = await asyncio.gather(
            *(provider.check_domain(domain) for provider in providers), return_exceptions=True
        )

        indicators: list[ThreatIndicator] = []
        statuses: list[SourceStatus] = []
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                logger.error("threat_provider_failed", domain=domain, provider=provider.name, error=str(result))
                statuses.append(SourceStatus(provider.name, "degraded", str(result)))
                continue
            indicators.extend(result)
            statuses.append(SourceStatus(provider.name, "completed"))
        indicators.extend(detect_heuristic_threats(domain))
        return indicators, statuses

    async def analyze(self, asset: MonitoredAsset, now: Optional[datetime] = None) -> AnalysisResult:
        """Run a full analysis of one asset.

        Raises ``AnalysisError`` if every probe came back unavailable; an
        ``error`` history record is written first.
        """
        now = now or utcnow()
        domain = asset.domain
        cfg = self._config
        logger.info("domain_analysis_started", asset_id=asset.id, domain=domain)

        whois_data, dns_records, threat_result, content_result, ssl_certificate = await asyncio.gather(
            lookup_whois(domain, timeout=cfg.whois_timeout),
            resolve_dns(domain, timeout=cfg.dns_timeout),
            self.check_threats(domain),
            fetch_content(domain, timeout=cfg.http_timeout),
            check_ssl(domain, timeout=cfg.ssl_timeout),
        )
        content, response_time_ms = content_result
        indicators, provider_statuses = threat_result
        statuses = _probe_statuses(whois_data, dns_records, response_time_ms, ssl_certificate)
        statuses.extend(provider_statuses)

        if not _probe_reached(whois_data, dns_records, response_time_ms, ssl_certificate):
            await self._assets.append_history(asset.id, "error", check_date=now)
            logger.error("domain_analysis_failed", asset_id=asset.id, domain=domain)
            raise AnalysisError(domain, statuses=statuses)

        # aggregating
        indicators = indicators[-cfg.threat_indicator_cap:]
        risk_level = risk_from_indicators(indicators)
        ip_address = dns_records["a"][0] if dns_records.get("a") else None
        history_status = "online" if (response_time_ms is not None or ssl_certificate.get("is_valid")) else "offline"

        fields: dict[str, Any] = {
            "risk_level": risk_level,
            "dns_records": dns_records,
            "content_analysis": dict(_jsonable(content), last_analyzed=now.isoformat()),
            "ssl_certificate": _jsonable(ssl_certificate),
            "threat_indicators": [i.to_dict() for i in indicators],
            "last_analyzed_at": now,
        }
        if whois_data is not None:
            fields.update(
                registrar=whois_data["registrar"],
                registration_date=whois_data["registration_date"],
                expiration_date=whois_data["expiration_date"],
                name_servers=whois_data["name_servers"],
                whois_status=whois_data["status"],
            )
        if ip_address:
            fields["ip_address"] = ip_address

        changes = self._diff(asset, fields, content)

        await self._assets.update_fields(asset.id, fields)
        await self._assets.append_history(
            asset.id,
            history_status,
            response_time_ms=response_time_ms,
            changes=changes,
            check_date=now,
        )

        result = AnalysisResult(
            asset_id=asset.id,
            domain=domain,
            risk_level=risk_level,
            threat_indicators=indicators,
            whois=whois_data,
            dns_records=dns_records,
            content=content,
            ssl_certificate=ssl_certificate,
            ip_address=ip_address,
            response_time_ms=response_time_ms,
            history_status=history_status,
            probe_statuses=statuses,
            changes=changes,
            analyzed_at=now,
        )
        await self._raise_alerts(asset, result, now)

        logger.info(
            "domain_analysis_completed",
            asset_id=asset.id,
            domain=domain,
            risk_level=risk_level,
            indicators=len(indicators),
            status=history_status,
            alerts=result.alerts_created,
        )
        return result

    @staticmethod
    def _diff(asset: MonitoredAsset, fields: dict, content: dict) -> list[dict]:
        changes = []
        tracked = (
            ("registrar", asset.registrar, fields.get("registrar", asset.registrar)),
            ("ip_address", asset.ip_address, fields.get("ip_address", asset.ip_address)),
            ("risk_level", asset.risk_level, fields["risk_level"]),
            (
                "content_title",
                (asset.content_analysis or {}).get("title"),
                content.get("title"),
            ),
        )
        for field_name, old_value, new_value in tracked:
            if old_value != new_value:
                changes.append({"field": field_name, "old_value": old_value, "new_value": new_value})
        return changes

    def _candidate_alerts(self, result: AnalysisResult, now: datetime) -> list[dict]:
        alerts = []
        for indicator in result.threat_indicators:
            if indicator.confidence >= 50:
                alerts.append({
                    "type": "threat_detected",
                    "message": f"Threat detected: {indicator.description}",
                    "severity": risk_from_confidence(indicator.confidence),
                    "indicator_type": indicator.type,
                })

        warning_days = self._config.expiry_warning_days
        valid_to = result.ssl_certificate.get("valid_to")
        if valid_to:
            days_left = (valid_to - now).days
            if days_left <= warning_days:
                alerts.append({
                    "type": "ssl_expiry",
                    "message": f"SSL certificate expires in {days_left} days",
                    "severity": expiry_severity(days_left),
                })

        expiration = result.whois.get("expiration_date") if result.whois else None
        if expiration:
            days_left = (expiration - now).days
            if days_left <= warning_days:
                alerts.append({
                    "type": "domain_expiry",
                    "message": f"Domain expires in {days_left} days",
                    "severity": expiry_severity(days_left),
                })
        return alerts

    async def _raise_alerts(self, asset: MonitoredAsset, result: AnalysisResult, now: datetime) -> None:
        candidates = self._candidate_alerts(result, now)
        for candidate in candidates:
            await self._assets.add_asset_alert(
                asset.id, candidate["type"], candidate["message"], candidate["severity"]
            )
        result.asset_alerts = candidates

        for candidate in candidates:
            if candidate["severity"] not in PROMOTED_SEVERITIES:
                continue
            metadata = {
                "domain": asset.domain,
                "detected_at": now.isoformat(),
                "threat_type": candidate.get("indicator_type", candidate["type"]),
                "threat_description": candidate["message"],
            }
            if candidate.get("indicator_type") == "brand_abuse":
                screenshot_path = await self._capture(asset.domain)
                if screenshot_path:
                    metadata["screenshot_path"] = screenshot_path
                    metadata["has_screenshot"] = True

            await self._lifecycle.create({
                "user_id": asset.user_id,
                "asset_id": asset.id,
                "type": candidate["type"],
                "severity": candidate["severity"],
                "title": f"Domain Alert: {asset.domain}",
                "message": candidate["message"],
                "source": "Domain Monitoring",
                "source_url": f"http://{asset.domain}",
                "metadata": metadata,
            }, now=now)
            result.alerts_created += 1

    async def _capture(self, domain: str) -> Optional[str]:
        if self._screenshots is None:
            return None
        try:
            return await self._screenshots.capture(domain, "brand_abuse")
        except Exception as e:
            logger.error("screenshot_capture_failed", domain=domain, error=str(e))
            return None
