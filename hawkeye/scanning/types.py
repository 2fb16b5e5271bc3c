"""Value objects passed between the analyzer, source adapters and the orchestrator."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Finding:
    """A raw hit from an intelligence source, before or after classification."""
    source: str
    search_term: str
    url: str = ""
    title: str = ""
    content: str = ""
    risk_level: Optional[str] = None  # None until classified
    detected_at: datetime = field(default_factory=_now)
    metadata: dict = field(default_factory=dict)


@dataclass
class ThreatIndicator:
    type: str  # malware / phishing / spam / suspicious_redirect / brand_abuse / typosquatting / other
    source: str
    confidence: int  # 0-100
    description: str
    detected_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "source": self.source,
            "confidence": self.confidence,
            "description": self.description,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass
class SourceStatus:
    source: str
    status: str  # completed / failed / degraded
    error: Optional[str] = None


@dataclass
class AnalysisResult:
    """Outcome of one domain analysis run."""
    asset_id: int
    domain: str
    risk_level: str
    threat_indicators: list[ThreatIndicator] = field(default_factory=list)
    whois: Optional[dict] = None
    dns_records: dict = field(default_factory=dict)
    content: dict = field(default_factory=dict)
    ssl_certificate: dict = field(default_factory=dict)
    ip_address: Optional[str] = None
    response_time_ms: Optional[int] = None
    history_status: str = "offline"
    probe_statuses: list[SourceStatus] = field(default_factory=list)
    changes: list[dict] = field(default_factory=list)
    asset_alerts: list[dict] = field(default_factory=list)
    alerts_created: int = 0
    analyzed_at: datetime = field(default_factory=_now)


@dataclass
class ScanSummary:
    """Aggregate result of one category run."""
    category: str
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    targets_total: int = 0
    targets_succeeded: int = 0
    targets_failed: int = 0
    total_findings: int = 0
    by_tier: dict[str, int] = field(
        default_factory=lambda: {"critical": 0, "high": 0, "medium": 0, "low": 0}
    )
    sources: list[SourceStatus] = field(default_factory=list)
    alerts_created: int = 0

    def count(self, risk_level: str) -> None:
        self.total_findings += 1
        self.by_tier[risk_level] = self.by_tier.get(risk_level, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "targets_total": self.targets_total,
            "targets_succeeded": self.targets_succeeded,
            "targets_failed": self.targets_failed,
            "total_findings": self.total_findings,
            "by_tier": dict(self.by_tier),
            "sources": [
                {"source": s.source, "status": s.status, "error": s.error} for s in self.sources
            ],
            "alerts_created": self.alerts_created,
        }
