"""Shodan exposed-service provider."""

from typing import Optional

import httpx

from ..errors import SourceUnavailableError
from ..scanning.types import ThreatIndicator
from ..utils.logging import get_logger

logger = get_logger("intel.shodan")

_SHODAN_SEARCH_URL = "https://api.shodan.io/shodan/host/search"

# Remote admin and database ports that should not face the internet
SUSPICIOUS_PORTS = frozenset({22, 23, 3389, 1433, 3306, 5432})


class ShodanProvider:
    name = "shodan"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30.0) -> None:
        self.api_key = api_key
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def check_domain(self, domain: str) -> list[ThreatIndicator]:
        """Search hosts for the domain; flag any match exposing a suspicious port."""
        if not self.api_key:
            return []
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    _SHODAN_SEARCH_URL,
                    params={"key": self.api_key, "query": f"hostname:{domain}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("shodan_search_error", domain=domain, status=exc.response.status_code)
            raise SourceUnavailableError(self.name, f"HTTP {exc.response.status_code}") from exc
        except Exception as exc:
            logger.error("shodan_search_failed", domain=domain, error=str(exc))
            raise SourceUnavailableError(self.name, str(exc)) from exc

        if not data.get("total"):
            return []
        matches = data.get("matches") or []
        if any(match.get("port") in SUSPICIOUS_PORTS for match in matches):
            return [ThreatIndicator(
                type="suspicious_redirect",
                source="Shodan",
                confidence=70,
                description="Suspicious ports/services detected via Shodan",
            )]
        return []
