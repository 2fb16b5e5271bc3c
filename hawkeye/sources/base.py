"""Source adapter interface for non-domain intelligence categories.

Each scan category other than ``domain`` gets one adapter that takes a
user's search terms and returns raw findings. Scraping details live entirely
behind this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..scanning.types import Finding, SourceStatus
from ..utils.logging import get_logger


@dataclass
class ScanContext:
    """Who a source scan is running for."""
    user_id: int
    category: str
    company: Optional[str] = None
    domains: list[str] = field(default_factory=list)


@dataclass
class SourceScanResult:
    findings: list[Finding] = field(default_factory=list)
    statuses: list[SourceStatus] = field(default_factory=list)


class SourceAdapter(ABC):
    """Base class for every per-category intelligence source."""

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"sources.{name}")

    @abstractmethod
    async def scan(self, terms: list[str], context: ScanContext) -> SourceScanResult:
        """Search the source for the given terms.

        Findings may leave ``risk_level`` unset; the orchestrator classifies
        them. Per-site problems should be reported as ``degraded`` or
        ``failed`` statuses rather than raised.
        """
        ...


class NullSourceAdapter(SourceAdapter):
    """Adapter that never finds anything."""

    async def scan(self, terms: list[str], context: ScanContext) -> SourceScanResult:
        return SourceScanResult(statuses=[SourceStatus(source=self.name, status="completed")])
