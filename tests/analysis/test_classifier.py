"""Tests for keyword-tier classification and confidence bucketing."""

import pytest

from hawkeye.analysis.classifier import (
    classify,
    classify_breach_count,
    risk_from_confidence,
    risk_from_indicators,
)
from hawkeye.scanning.types import Finding, ThreatIndicator


def _finding(title="", content="", url="", metadata=None):
    return Finding(
        source="test",
        search_term="acme",
        title=title,
        content=content,
        url=url,
        metadata=metadata or {},
    )


class TestClassify:
    def test_critical_beats_high(self):
        finding = _finding(title="acme login", content="credential dump")
        assert classify("dark_web", finding) == "critical"

    def test_high_tier(self):
        assert classify("dark_web", _finding(title="acme bank account")) == "high"

    def test_medium_tier(self):
        assert classify("dark_web", _finding(content="buy acme gift cards")) == "medium"

    def test_no_keyword_is_low(self):
        assert classify("dark_web", _finding(title="acme quarterly results")) == "low"

    def test_case_insensitive_and_url_checked(self):
        finding = _finding(url="https://paste.example/ACME-PASSWORD")
        assert classify("pastebin", finding) == "critical"

    def test_pastebin_tiers(self):
        assert classify("pastebin", _finding(content="database connection string")) == "high"
        assert classify("pastebin", _finding(content="contact address")) == "medium"

    def test_social_media_tiers(self):
        assert classify("social_media", _finding(content="acme giveaway scam")) == "critical"
        assert classify("social_media", _finding(content="fake acme support page")) == "high"

    def test_password_store_uses_record_count(self):
        finding = _finding(title="breach", metadata={"count": 500})
        assert classify("password_store", finding) == "low"

    def test_password_store_without_count_falls_back_to_keywords(self):
        assert classify("password_store", _finding(title="credential leak")) == "critical"

    @pytest.mark.parametrize("category", ["dark_web", "unknown_category", "password_store"])
    def test_total_over_empty_findings(self, category):
        finding = Finding(source="x", search_term="y", metadata=None)
        assert classify(category, finding) == "low"


class TestBreachCount:
    @pytest.mark.parametrize(
        "count, expected",
        [
            (2_000_000, "critical"),
            (1_000_000, "high"),
            (100_001, "high"),
            (50_000, "medium"),
            (10_000, "low"),
            ("not a number", "low"),
            (None, "low"),
        ],
    )
    def test_thresholds(self, count, expected):
        assert classify_breach_count(count) == expected


class TestConfidence:
    @pytest.mark.parametrize(
        "confidence, expected",
        [(100, "critical"), (90, "critical"), (89, "high"), (70, "high"), (69, "medium"),
         (50, "medium"), (49, "low"), (0, "low"), (None, "low")],
    )
    def test_buckets(self, confidence, expected):
        assert risk_from_confidence(confidence) == expected

    def test_indicators_use_max_confidence(self):
        indicators = [
            ThreatIndicator(type="brand_abuse", source="Pattern Analysis", confidence=60, description="a"),
            ThreatIndicator(type="malware", source="VirusTotal", confidence=80, description="b"),
        ]
        assert risk_from_indicators(indicators) == "high"

    def test_indicator_dicts_accepted(self):
        assert risk_from_indicators([{"confidence": 95}]) == "critical"

    def test_no_indicators_is_low(self):
        assert risk_from_indicators([]) == "low"
