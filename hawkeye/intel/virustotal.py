"""VirusTotal domain reputation provider."""

from typing import Optional

import httpx

from ..errors import SourceUnavailableError
from ..scanning.types import ThreatIndicator
from ..utils.logging import get_logger

logger = get_logger("intel.virustotal")

_VT_DOMAIN_REPORT_URL = "https://www.virustotal.com/vtapi/v2/domain/report"


class VirusTotalProvider:
    """Looks up a domain report and turns positive detections into an indicator.

    Confidence is ten points per positive engine, capped at 100. Network,
    HTTP status and body errors raise ``SourceUnavailableError``.
    """

    name = "virustotal"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30.0) -> None:
        self.api_key = api_key
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def check_domain(self, domain: str) -> list[ThreatIndicator]:
        if not self.api_key:
            return []
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    _VT_DOMAIN_REPORT_URL,
                    params={"apikey": self.api_key, "domain": domain},
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("virustotal_domain_error", domain=domain, status=exc.response.status_code)
            raise SourceUnavailableError(self.name, f"HTTP {exc.response.status_code}") from exc
        except Exception as exc:
            logger.error("virustotal_domain_failed", domain=domain, error=str(exc))
            raise SourceUnavailableError(self.name, str(exc)) from exc

        positives = data.get("positives") or 0
        if not isinstance(positives, int) or positives <= 0:
            return []
        return [ThreatIndicator(
            type="malware",
            source="VirusTotal",
            confidence=min(positives * 10, 100),
            description=f"VirusTotal detected {positives} positive results",
        )]
