"""Tests for ScanOrchestrator: search terms, promotion, overlap and failure handling."""

import asyncio
import gc
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hawkeye.analysis.domain_analyzer import DomainRiskAnalyzer
from hawkeye.analysis.probes import empty_content, invalid_certificate
from hawkeye.errors import AnalysisError, UserNotFoundError
from hawkeye.scanning.orchestrator import (
    CategoryRunGuard,
    ScanOrchestrator,
    build_search_terms,
    finding_alert,
)
from hawkeye.scanning.types import AnalysisResult, Finding, SourceStatus, ThreatIndicator
from hawkeye.sources.base import ScanContext, SourceAdapter, SourceScanResult


class StaticAdapter(SourceAdapter):
    """Returns a fixed set of findings and records what it was asked."""

    def __init__(self, name, findings=None, statuses=None, error=None):
        super().__init__(name)
        self.findings = findings or []
        self.statuses = statuses or []
        self.error = error
        self.calls = []

    async def scan(self, terms, context: ScanContext) -> SourceScanResult:
        self.calls.append((terms, context))
        if self.error is not None:
            raise self.error
        return SourceScanResult(findings=list(self.findings), statuses=list(self.statuses))


def _orchestrator(asset_store, user_store, lifecycle, publisher=None, analyzer=None, **adapters):
    return ScanOrchestrator(
        asset_store,
        user_store,
        analyzer or MagicMock(),
        lifecycle,
        adapters,
        publisher=publisher,
    )


class TestSearchTerms:
    def test_company_domains_and_email(self):
        terms = build_search_terms("Acme Corp", ["acme.com", "acme.io"], "alice@acme.com")
        assert terms == ["acme corp", "acmecorp", "acme.com", "acmecom", "acme.io", "acmeio"]

    def test_missing_company(self):
        assert build_search_terms(None, [], "bob@example.org") == ["example.org", "exampleorg"]

    def test_nothing_to_search(self):
        assert build_search_terms(None, [], "not-an-email") == []


class TestFindingAlert:
    def test_password_store_message(self):
        finding = Finding(
            source="HaveIBeenPwned",
            search_term="acme.com",
            risk_level="critical",
            metadata={"breach_name": "MegaLeak", "count": 2_500_000},
        )
        payload = finding_alert("password_store", 3, finding)

        assert payload["type"] == "password_breach"
        assert payload["title"] == "Password Breach: acme.com"
        assert payload["message"] == 'Found 2500000 instances of "acme.com" in MegaLeak breach'
        assert payload["source_url"] == "https://haveibeenpwned.com/PwnedWebsites"

    def test_dark_web_message(self):
        finding = Finding(
            source="Onion Forum", search_term="acme", title="acme credential dump",
            url="http://forum.onion/t/1", risk_level="critical",
        )
        payload = finding_alert("dark_web", 3, finding)

        assert payload["title"] == "Dark Web Mention: acme"
        assert payload["message"] == 'Found mention of "acme" on Onion Forum: acme credential dump'
        assert payload["source_url"] == "http://forum.onion/t/1"
        assert payload["metadata"]["search_term"] == "acme"


class TestCategoryRunGuard:
    def test_acquire_release(self):
        guard = CategoryRunGuard()
        assert guard.try_acquire("dark_web") is True
        assert guard.try_acquire("dark_web") is False
        assert guard.try_acquire("pastebin") is True
        guard.release("dark_web")
        assert guard.is_running("dark_web") is False
        assert guard.snapshot()["pastebin"] is True


class TestUserCategories:
    @pytest.mark.asyncio
    async def test_promotes_only_high_and_critical(self, asset_store, user_store, lifecycle, user):
        await asset_store.add(user.id, "acme.com")
        adapter = StaticAdapter("dark_web", findings=[
            Finding(source="Forum A", search_term="acme", title="acme password dump"),
            Finding(source="Forum B", search_term="acme", title="acme bank login"),
            Finding(source="Market", search_term="acme", title="buy acme merch"),
            Finding(source="News", search_term="acme", title="acme earnings"),
        ], statuses=[SourceStatus("dark_web", "completed")])
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, dark_web=adapter)

        summary = await orchestrator.run_category("dark_web")

        assert summary.by_tier == {"critical": 1, "high": 1, "medium": 1, "low": 1}
        assert summary.total_findings == 4
        assert summary.alerts_created == 2
        assert summary.targets_succeeded == 1
        pending = await lifecycle.list_pending()
        assert sorted(a.severity for a in pending) == ["critical", "high"]
        assert all(a.type == "dark_web_mention" for a in pending)

        terms, context = adapter.calls[0]
        assert "acme.com" in terms
        assert context.domains == ["acme.com"]
        assert context.user_id == user.id

    @pytest.mark.asyncio
    async def test_preset_risk_level_is_kept(self, asset_store, user_store, lifecycle, user):
        adapter = StaticAdapter("social_media", findings=[
            Finding(source="Twitter", search_term="acme", title="nice", risk_level="high",
                    metadata={"platform": "Twitter"}),
        ])
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, social_media=adapter)

        summary = await orchestrator.run_category("social_media")

        assert summary.by_tier["high"] == 1
        pending = await lifecycle.list_pending()
        assert pending[0].message == 'Found mention of "acme" on Twitter'

    @pytest.mark.asyncio
    async def test_adapter_failure_is_degraded(self, asset_store, user_store, lifecycle, user):
        adapter = StaticAdapter("pastebin", error=RuntimeError("site changed layout"))
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, pastebin=adapter)

        summary = await orchestrator.run_category("pastebin")

        assert summary.targets_failed == 1
        assert summary.targets_succeeded == 0
        assert summary.sources[0].status == "degraded"
        assert "site changed layout" in summary.sources[0].error
        assert orchestrator.guard.is_running("pastebin") is False

    @pytest.mark.asyncio
    async def test_missing_adapter_fails_target(self, asset_store, user_store, lifecycle, user):
        orchestrator = _orchestrator(asset_store, user_store, lifecycle)

        summary = await orchestrator.run_category("password_store")

        assert summary.targets_failed == 1
        assert summary.sources[0].status == "failed"

    @pytest.mark.asyncio
    async def test_publishes_category_update(self, asset_store, user_store, lifecycle, publisher, user):
        received = []

        async def handler(event_name, message):
            received.append((event_name, message["data"]))

        publisher.subscribe(f"user-{user.id}", handler)
        adapter = StaticAdapter("pastebin", findings=[
            Finding(source="Pastebin", search_term="acme", content="acme api_key leaked"),
        ])
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, publisher=publisher, pastebin=adapter)

        await orchestrator.run_category("pastebin")
        await publisher.drain()

        names = [name for name, _ in received]
        assert names == ["alert_created", "pastebin_update"]
        assert received[-1][1]["findings"] == 1
        assert received[-1][1]["alerts_created"] == 1

    @pytest.mark.asyncio
    async def test_manual_scan_unknown_user(self, asset_store, user_store, lifecycle):
        orchestrator = _orchestrator(asset_store, user_store, lifecycle)
        with pytest.raises(UserNotFoundError):
            await orchestrator.run_for_user(404, "dark_web")

    @pytest.mark.asyncio
    async def test_unknown_category(self, asset_store, user_store, lifecycle):
        orchestrator = _orchestrator(asset_store, user_store, lifecycle)
        with pytest.raises(ValueError):
            await orchestrator.run_category("carrier_pigeon")


class TestDomainCategory:
    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self, asset_store, user_store, lifecycle, user):
        await asset_store.add(user.id, "acme.com")
        started = asyncio.Event()
        gate = asyncio.Event()

        async def slow_analyze(asset):
            started.set()
            await gate.wait()
            return AnalysisResult(asset_id=asset.id, domain=asset.domain, risk_level="low")

        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(side_effect=slow_analyze)
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, analyzer=analyzer)

        first = asyncio.create_task(orchestrator.run_category("domain"))
        await asyncio.wait_for(started.wait(), timeout=5)
        assert orchestrator.guard.is_running("domain") is True

        assert await orchestrator.run_category("domain") is None

        gate.set()
        summary = await first
        assert summary.targets_succeeded == 1
        assert analyzer.analyze.await_count == 1
        assert orchestrator.guard.is_running("domain") is False

    @pytest.mark.asyncio
    async def test_failed_domain_does_not_stop_others(self, asset_store, user_store, lifecycle, user):
        bad = await asset_store.add(user.id, "unreachable.example")
        await asset_store.add(user.id, "acme.com")

        async def analyze(asset):
            if asset.id == bad.id:
                raise AnalysisError(asset.domain)
            return AnalysisResult(
                asset_id=asset.id,
                domain=asset.domain,
                risk_level="high",
                threat_indicators=[
                    ThreatIndicator(type="malware", source="VirusTotal", confidence=75, description="x"),
                ],
                alerts_created=1,
            )

        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(side_effect=analyze)
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, analyzer=analyzer)

        summary = await orchestrator.run_category("domain")

        assert summary.targets_total == 2
        assert summary.targets_failed == 1
        assert summary.targets_succeeded == 1
        assert summary.by_tier["high"] == 1
        assert summary.alerts_created == 1

    @pytest.mark.asyncio
    async def test_domain_update_event(self, asset_store, user_store, lifecycle, publisher, user):
        asset = await asset_store.add(user.id, "acme.com")
        await asset_store.add_asset_alert(asset.id, "ssl_expiry", "SSL certificate expires in 3 days", "critical")
        received = []

        async def handler(event_name, message):
            received.append((event_name, message["data"]))

        publisher.subscribe(f"user-{user.id}", handler)
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(
            return_value=AnalysisResult(asset_id=asset.id, domain="acme.com", risk_level="medium")
        )
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, publisher=publisher, analyzer=analyzer)

        await orchestrator.run_category("domain")
        await publisher.drain()

        assert received == [("domain_update", {
            "domain_id": asset.id,
            "domain": "acme.com",
            "risk_level": "medium",
            "alerts": 1,
        })]

    @pytest.mark.asyncio
    async def test_failed_whois_probe_is_degraded(self, asset_store, user_store, lifecycle, config, user):
        await asset_store.add(user.id, "acme.com")
        analyzer = DomainRiskAnalyzer(asset_store, lifecycle, config)
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, analyzer=analyzer)
        dns = {"a": ["198.51.100.1"], "mx": [], "txt": [], "cname": []}
        module = "hawkeye.analysis.domain_analyzer"

        with patch(f"{module}.lookup_whois", AsyncMock(return_value=None)), \
                patch(f"{module}.resolve_dns", AsyncMock(return_value=dns)), \
                patch(f"{module}.fetch_content", AsyncMock(return_value=(empty_content(), 90))), \
                patch(f"{module}.check_ssl", AsyncMock(return_value=invalid_certificate("timeout"))):
            summary = await orchestrator.run_category("domain")

        statuses = {s.source: s.status for s in summary.sources}
        assert summary.targets_succeeded == 1
        assert statuses == {"whois": "degraded", "dns": "completed", "content": "completed", "ssl": "degraded"}
        assert summary.to_dict()["sources"][0] == {"source": "whois", "status": "degraded", "error": "unavailable"}

    @pytest.mark.asyncio
    async def test_unreachable_domain_reports_probe_statuses(self, asset_store, user_store, lifecycle, user):
        await asset_store.add(user.id, "gone.example")
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(side_effect=AnalysisError(
            "gone.example", statuses=[SourceStatus("dns", "degraded", "unavailable")],
        ))
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, analyzer=analyzer)

        summary = await orchestrator.run_category("domain")

        assert summary.targets_failed == 1
        assert [(s.source, s.status) for s in summary.sources] == [("dns", "degraded")]

    @pytest.mark.asyncio
    async def test_target_locks_are_released_after_run(self, asset_store, user_store, lifecycle, user):
        await asset_store.add(user.id, "acme.com")
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(
            side_effect=lambda asset: AnalysisResult(asset_id=asset.id, domain=asset.domain, risk_level="low")
        )
        orchestrator = _orchestrator(asset_store, user_store, lifecycle, analyzer=analyzer)

        await orchestrator.run_category("domain")
        gc.collect()

        assert len(orchestrator._target_locks) == 0
