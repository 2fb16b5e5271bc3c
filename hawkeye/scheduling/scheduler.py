"""Recurring interval timers for scans and housekeeping.

Each registered job is an asyncio loop that sleeps for its interval and then
spawns the job's coroutine as a separate task without awaiting it, so a slow
or failing run never delays the next tick or any other job. Failures are
logged from the task's done-callback; the job stays registered.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Optional

from ..utils.logging import get_logger

logger = get_logger("scheduling.scheduler")

TaskFactory = Callable[[], Coroutine[Any, Any, Any]]


@dataclass
class ScanJob:
    category: str
    interval: float  # seconds
    task: TaskFactory
    last_run: Optional[datetime] = None
    ticks: int = 0
    handle: Optional[asyncio.Task] = None
    inflight: set = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "interval_seconds": self.interval,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "ticks": self.ticks,
            "inflight": len(self.inflight),
        }


class ScanScheduler:
    """Owns one timer loop per job name."""

    def __init__(self):
        self._jobs: dict[str, ScanJob] = {}

    @property
    def running(self) -> bool:
        return any(job.handle is not None and not job.handle.done() for job in self._jobs.values())

    def register_job(self, category: str, interval: float, task: TaskFactory) -> ScanJob:
        """Install a recurring job, replacing any existing job of the same name."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        if category in self._jobs:
            self.stop(category)

        job = ScanJob(category=category, interval=interval, task=task)
        job.handle = asyncio.create_task(self._timer_loop(job))
        self._jobs[category] = job
        logger.info("scheduled_job_registered", category=category, interval_seconds=interval)
        return job

    def stop(self, category: str) -> None:
        """Cancel a job's timer. Unknown names are ignored."""
        job = self._jobs.pop(category, None)
        if job is None:
            return
        if job.handle is not None and not job.handle.done():
            job.handle.cancel()
        logger.info("scheduled_job_stopped", category=category)

    def stop_all(self) -> None:
        for category in list(self._jobs):
            self.stop(category)

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "jobs": [job.to_dict() for job in self._jobs.values()],
        }

    async def _timer_loop(self, job: ScanJob) -> None:
        while True:
            try:
                await asyncio.sleep(job.interval)
                self._fire(job)
            except asyncio.CancelledError:
                break

    def _fire(self, job: ScanJob) -> asyncio.Task:
        job.ticks += 1
        job.last_run = datetime.now(timezone.utc)
        run = asyncio.create_task(job.task())
        job.inflight.add(run)
        run.add_done_callback(lambda t, j=job: self._on_done(j, t))
        return run

    @staticmethod
    def _on_done(job: ScanJob, run: asyncio.Task) -> None:
        job.inflight.discard(run)
        if run.cancelled():
            return
        exc = run.exception()
        if exc is not None:
            logger.error("scheduled_task_failed", category=job.category, error=str(exc))
