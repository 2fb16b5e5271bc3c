"""Exception hierarchy shared by the scan, alert and notification services."""

from typing import Optional


class HawkeyeError(Exception):
    """Base class for all HawkEye errors."""


class AnalysisError(HawkeyeError):
    """A domain could not be analyzed at all (no probe reached it)."""

    def __init__(
        self,
        domain: str,
        message: str = "Domain unreachable by every probe",
        statuses: Optional[list] = None,
    ) -> None:
        super().__init__(f"{domain}: {message}")
        self.domain = domain
        self.statuses = statuses or []


class SourceUnavailableError(HawkeyeError):
    """A single intelligence source or probe failed."""

    def __init__(self, source: str, message: str = "Source unavailable") -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class NotificationError(HawkeyeError):
    """A notification channel rejected or failed to deliver a message."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class AlertNotFoundError(HawkeyeError):
    pass


class AssetNotFoundError(HawkeyeError):
    pass


class UserNotFoundError(HawkeyeError):
    pass


class InvalidTransitionError(HawkeyeError):
    """Requested alert status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str, allowed: list[str]) -> None:
        super().__init__(
            f"Cannot transition from {current} to {requested}. Allowed: {allowed}"
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed
