"""
Maintenance scheduler.

Named interval jobs (cache purge, profile reset, index repair) run against
an injected clock. Tests step a ManualClock and call run_pending(); a
service runs the async loop, which stops cleanly when its cancellation
token fires.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .clock import SystemClock

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    name: str
    interval: timedelta
    action: Callable[[], Any]
    next_run: datetime
    runs: int = 0
    failures: int = 0


class MaintenanceScheduler:
    """Interval job runner driven by an injectable clock"""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._jobs: Dict[str, ScheduledJob] = {}

    def add_job(self, name: str, interval_seconds: float, action: Callable[[], Any], run_immediately: bool = False) -> ScheduledJob:
        """
        Register a job.

        Args:
            name: Unique job name (re-adding replaces the job)
            interval_seconds: Time between runs
            action: Callable run with no arguments
            run_immediately: Due on the first run_pending() instead of after one interval

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(f"Job {name} needs a positive interval, got {interval_seconds}")
        interval = timedelta(seconds=interval_seconds)
        now = self.clock.now()
        job = ScheduledJob(name=name, interval=interval, action=action, next_run=now if run_immediately else now + interval)
        self._jobs[name] = job
        return job

    def remove_job(self, name: str) -> bool:
        return self._jobs.pop(name, None) is not None

    @property
    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs.values())

    def run_pending(self) -> List[str]:
        """
        Run every job that is due.

        A failing job is logged and rescheduled; it does not stop the others.

        Returns:
            Names of the jobs that ran
        """
        now = self.clock.now()
        ran = []
        for job in sorted(self._jobs.values(), key=lambda j: (j.next_run, j.name)):
            if job.next_run > now:
                continue
            try:
                job.action()
                job.runs += 1
            except Exception as e:
                job.failures += 1
                logger.error(f"Maintenance job {job.name} failed: {e}", exc_info=True)
            job.next_run = now + job.interval
            ran.append(job.name)
        return ran

    def seconds_until_next(self) -> Optional[float]:
        if not self._jobs:
            return None
        next_run = min(job.next_run for job in self._jobs.values())
        return max(0.0, (next_run - self.clock.now()).total_seconds())

    async def run(self, token: CancellationToken, poll_seconds: float = 1.0) -> None:
        """Run jobs until the token is cancelled"""
        logger.info(f"Maintenance scheduler started with jobs: {', '.join(self._jobs) or '(none)'}")
        while not token.cancelled:
            self.run_pending()
            wait = self.seconds_until_next()
            await asyncio.sleep(min(poll_seconds, wait) if wait is not None else poll_seconds)
        logger.info("Maintenance scheduler stopped")
