"""Monitoring service: wires scan categories and alert housekeeping onto the scheduler."""

from typing import Optional

from ..constants import (
    CATEGORY_DARK_WEB,
    CATEGORY_DOMAIN,
    CATEGORY_PASSWORD_STORE,
    CATEGORY_PASTEBIN,
    CATEGORY_SOCIAL_MEDIA,
    JOB_ALERT_DISPATCH,
    JOB_ALERT_EXPIRY,
)
from ..scanning.types import ScanSummary
from ..utils.logging import get_logger

logger = get_logger("scheduling.monitoring")

HOUR = 3600
MINUTE = 60


def job_intervals(config) -> dict[str, float]:
    """Seconds between runs for every scheduled job."""
    return {
        CATEGORY_DOMAIN: config.domain_monitoring_interval_hours * HOUR,
        CATEGORY_DARK_WEB: config.dark_web_scan_interval_hours * HOUR,
        CATEGORY_SOCIAL_MEDIA: config.social_media_scan_interval_hours * HOUR,
        CATEGORY_PASTEBIN: config.scan_interval_minutes * MINUTE,
        CATEGORY_PASSWORD_STORE: config.scan_interval_minutes * MINUTE,
        JOB_ALERT_DISPATCH: config.alert_dispatch_interval_minutes * MINUTE,
        JOB_ALERT_EXPIRY: config.alert_expiry_interval_hours * HOUR,
    }


class MonitoringService:
    """Starts and stops every recurring job and exposes manual scans."""

    def __init__(self, scheduler, orchestrator, dispatcher, lifecycle, config):
        self._scheduler = scheduler
        self._orchestrator = orchestrator
        self._dispatcher = dispatcher
        self._lifecycle = lifecycle
        self._config = config
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("monitoring_already_running")
            return
        self._running = True

        intervals = job_intervals(self._config)
        for category in (
            CATEGORY_DOMAIN,
            CATEGORY_DARK_WEB,
            CATEGORY_SOCIAL_MEDIA,
            CATEGORY_PASTEBIN,
            CATEGORY_PASSWORD_STORE,
        ):
            self._scheduler.register_job(category, intervals[category], self._category_task(category))
        self._scheduler.register_job(
            JOB_ALERT_DISPATCH, intervals[JOB_ALERT_DISPATCH], self._dispatcher.process_pending
        )
        self._scheduler.register_job(
            JOB_ALERT_EXPIRY, intervals[JOB_ALERT_EXPIRY], self._lifecycle.archive_expired
        )
        logger.info("monitoring_started", jobs=len(intervals))

    def stop(self) -> None:
        if not self._running:
            logger.warning("monitoring_not_running")
            return
        self._scheduler.stop_all()
        self._running = False
        logger.info("monitoring_stopped")

    def _category_task(self, category: str):
        async def run() -> Optional[ScanSummary]:
            return await self._orchestrator.run_category(category)
        return run

    async def run_category_now(self, category: str) -> Optional[ScanSummary]:
        return await self._orchestrator.run_category(category)

    async def run_manual_scan(self, user_id: int, scan_type: str) -> ScanSummary:
        try:
            return await self._orchestrator.run_for_user(user_id, scan_type)
        except Exception as e:
            logger.error("manual_scan_failed", user_id=user_id, scan_type=scan_type, error=str(e))
            raise

    def get_status(self) -> dict:
        scheduler_status = self._scheduler.get_status()
        return {
            "is_running": self._running,
            "active_jobs": [job["category"] for job in scheduler_status["jobs"]],
            "job_count": len(scheduler_status["jobs"]),
            "jobs": scheduler_status["jobs"],
            "categories_running": self._orchestrator.guard.snapshot(),
        }
