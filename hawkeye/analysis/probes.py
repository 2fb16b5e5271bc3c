"""Network probes used by the domain analyzer.

Every probe is bounded by a timeout and converts its own failures into an
"unavailable" result (``None``, empty lists, ``is_valid=False``) instead of
raising, so one dead signal never aborts a whole analysis.
"""

import asyncio
import re
import socket
import ssl
import time
from datetime import datetime, timezone
from typing import Any, Optional

import dns.asyncresolver
import dns.exception
import httpx
import whois
from bs4 import BeautifulSoup

from ..scanning.types import ThreatIndicator
from ..utils.logging import get_logger

logger = get_logger("analysis.probes")

DNS_RECORD_TYPES = ("A", "MX", "TXT", "CNAME")

CONTENT_USER_AGENT = "Mozilla/5.0 (compatible; HawkEye/1.0)"
BRAND_KEYWORDS = ("login", "signin", "secure", "bank", "paypal", "amazon", "google")
SUSPICIOUS_CONTENT_PATTERNS = (
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"credit.?card", re.IGNORECASE),
    re.compile(r"ssn|social.?security", re.IGNORECASE),
    re.compile(r"bank.?account", re.IGNORECASE),
)

# Heuristic domain patterns
BRAND_TOKEN_RE = re.compile(
    r"(login|signin|secure|account|banking|paypal|amazon|google|facebook|twitter)", re.IGNORECASE
)
LONG_LABEL_RE = re.compile(r"[a-z]{20,}")
DIGIT_IN_WORD_RE = re.compile(r"[a-z][0-9]|[0-9][a-z]")
HEURISTIC_CONFIDENCE = 60


# ---------------------------------------------------------------------------
# WHOIS
# ---------------------------------------------------------------------------

def _first(value):
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_utc(value) -> Optional[datetime]:
    value = _first(value)
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_list(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v]


def normalize_whois(w) -> Optional[dict[str, Any]]:
    """Normalize a python-whois entry; ``None`` when the domain is not registered."""
    if not w or not w.get("domain_name"):
        return None
    registrar = _first(w.get("registrar"))
    return {
        "registrar": str(registrar) if registrar else None,
        "registration_date": _as_utc(w.get("creation_date")),
        "expiration_date": _as_utc(w.get("expiration_date")),
        "name_servers": sorted({ns.lower() for ns in _as_list(w.get("name_servers"))}),
        "status": _as_list(w.get("status")),
    }


async def lookup_whois(domain: str, timeout: float = 15.0) -> Optional[dict[str, Any]]:
    loop = asyncio.get_running_loop()
    try:
        entry = await asyncio.wait_for(
            loop.run_in_executor(None, whois.whois, domain), timeout=timeout
        )
        return normalize_whois(entry)
    except asyncio.TimeoutError:
        logger.warning("whois_timeout", domain=domain, timeout=timeout)
    except Exception as e:
        logger.warning("whois_failed", domain=domain, error=str(e))
    return None


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------

def _record_text(rtype: str, rdata) -> str:
    if rtype == "MX":
        return str(rdata.exchange).rstrip(".")
    if rtype == "TXT":
        return "".join(part.decode("utf-8", "replace") for part in rdata.strings)
    if rtype == "CNAME":
        return str(rdata.target).rstrip(".")
    return str(rdata)


async def _resolve_type(resolver, domain: str, rtype: str) -> list[str]:
    try:
        answer = await resolver.resolve(domain, rtype)
        return [_record_text(rtype, r) for r in answer]
    except dns.exception.DNSException as e:
        logger.debug("dns_lookup_failed", domain=domain, rtype=rtype, error=type(e).__name__)
    except Exception as e:
        logger.warning("dns_lookup_error", domain=domain, rtype=rtype, error=str(e))
    return []


async def resolve_dns(domain: str, timeout: float = 5.0) -> dict[str, list[str]]:
    """Resolve A, MX, TXT and CNAME independently. A failed type is an empty list."""
    try:
        resolver = dns.asyncresolver.Resolver()
    except dns.exception.DNSException as e:
        logger.warning("dns_resolver_unavailable", error=str(e))
        return {rtype.lower(): [] for rtype in DNS_RECORD_TYPES}
    resolver.lifetime = timeout
    results = await asyncio.gather(
        *(_resolve_type(resolver, domain, rtype) for rtype in DNS_RECORD_TYPES)
    )
    return {rtype.lower(): records for rtype, records in zip(DNS_RECORD_TYPES, results)}


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

def empty_content() -> dict[str, Any]:
    return {
        "title": None,
        "description": None,
        "keywords": [],
        "has_brand_mentions": False,
        "has_suspicious_content": False,
        "status_code": None,
        "final_url": None,
    }


def _meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"name": re.compile(f"^{name}$", re.IGNORECASE)})
    if not tag:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def analyze_html(html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None
    keywords = _meta_content(soup, "keywords")
    lowered = html.lower()
    return {
        "title": title or None,
        "description": _meta_content(soup, "description"),
        "keywords": [k.strip() for k in keywords.split(",") if k.strip()] if keywords else [],
        "has_brand_mentions": any(k in lowered for k in BRAND_KEYWORDS),
        "has_suspicious_content": any(p.search(html) for p in SUSPICIOUS_CONTENT_PATTERNS),
    }


async def fetch_content(domain: str, timeout: float = 10.0) -> tuple[dict[str, Any], Optional[int]]:
    """GET ``http://<domain>`` and extract the page summary.

    Returns ``(snapshot, response_time_ms)``; on failure the snapshot is empty
    and the response time is ``None``.
    """
    started = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(
                f"http://{domain}", headers={"User-Agent": CONTENT_USER_AGENT}
            )
    except Exception as e:
        logger.info("content_fetch_failed", domain=domain, error=str(e))
        return empty_content(), None

    elapsed_ms = int((time.monotonic() - started) * 1000)
    snapshot = empty_content()
    snapshot.update(analyze_html(response.text or ""))
    snapshot["status_code"] = response.status_code
    snapshot["final_url"] = str(response.url)
    return snapshot, elapsed_ms


# ---------------------------------------------------------------------------
# TLS
# ---------------------------------------------------------------------------

def _cert_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(ssl.cert_time_to_seconds(value), tz=timezone.utc)


def _name_field(entries, key: str) -> Optional[str]:
    for rdn in entries or ():
        for name, value in rdn:
            if name == key:
                return value
    return None


def _fetch_certificate(domain: str, timeout: float) -> dict:
    context = ssl.create_default_context()
    with socket.create_connection((domain, 443), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=domain) as ssock:
            return ssock.getpeercert()


def invalid_certificate(error: Optional[str] = None) -> dict[str, Any]:
    return {
        "is_valid": False,
        "issuer": None,
        "subject": None,
        "valid_from": None,
        "valid_to": None,
        "error": error,
    }


async def check_ssl(domain: str, timeout: float = 10.0) -> dict[str, Any]:
    """TLS handshake on port 443 with certificate verification."""
    loop = asyncio.get_running_loop()
    try:
        cert = await asyncio.wait_for(
            loop.run_in_executor(None, _fetch_certificate, domain, timeout), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.info("ssl_check_timeout", domain=domain)
        return invalid_certificate("timeout")
    except Exception as e:
        logger.info("ssl_check_failed", domain=domain, error=str(e))
        return invalid_certificate(str(e))

    issuer = _name_field(cert.get("issuer"), "organizationName") or _name_field(
        cert.get("issuer"), "commonName"
    )
    return {
        "is_valid": True,
        "issuer": issuer,
        "subject": _name_field(cert.get("subject"), "commonName"),
        "valid_from": _cert_time(cert.get("notBefore")),
        "valid_to": _cert_time(cert.get("notAfter")),
        "error": None,
    }


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------

def detect_heuristic_threats(domain: str) -> list[ThreatIndicator]:
    """Flag brand tokens, very long labels and digits mixed into words."""
    indicators = []
    name = domain.lower()
    label = name.rsplit(".", 1)[0] if "." in name else name

    match = BRAND_TOKEN_RE.search(name)
    if match:
        indicators.append(ThreatIndicator(
            type="brand_abuse",
            source="Pattern Analysis",
            confidence=HEURISTIC_CONFIDENCE,
            description=f"Suspicious domain pattern detected: brand token '{match.group(1).lower()}'",
        ))
    if LONG_LABEL_RE.search(label):
        indicators.append(ThreatIndicator(
            type="typosquatting",
            source="Pattern Analysis",
            confidence=HEURISTIC_CONFIDENCE,
            description="Suspicious domain pattern detected: unusually long name",
        ))
    if DIGIT_IN_WORD_RE.search(label):
        indicators.append(ThreatIndicator(
            type="typosquatting",
            source="Pattern Analysis",
            confidence=HEURISTIC_CONFIDENCE,
            description="Suspicious domain pattern detected: digits mixed into words",
        ))
    return indicators
