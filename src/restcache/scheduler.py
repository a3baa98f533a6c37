"""Interval scheduling of the background jobs with APScheduler.

The refresh job runs every ``jobs.refresh.interval_minutes``; the expiry
sweep and the trash collection every ``interval_hours``.  Every job is
registered with ``max_instances=1`` and ``coalesce=True``: a run that is
still going when the next one is due makes APScheduler skip the newcomer,
and runs missed while the process was busy collapse into one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from restcache.jobs import JobSummary
from restcache.models import JobsConfig

logger = logging.getLogger(__name__)

JobRunner = Callable[[str], JobSummary]


def trigger_for(name: str, jobs: JobsConfig) -> IntervalTrigger:
    """Return the interval trigger configured for job *name*."""
    if name == "refresh":
        return IntervalTrigger(minutes=jobs.refresh.interval_minutes, timezone="UTC")
    if name == "expired":
        return IntervalTrigger(hours=jobs.expired.interval_hours, timezone="UTC")
    if name == "trash":
        return IntervalTrigger(hours=jobs.trash.interval_hours, timezone="UTC")
    raise ValueError(f"No schedule for job {name!r}")


class JobScheduler:
    """Runs the background jobs on their intervals in a worker thread pool.

    Args:
        jobs: Interval settings.
        runner: Called with a job name on every trigger, typically
            :meth:`~restcache.runtime.Runtime.run_job`.
        names: Jobs to schedule.
        scheduler: APScheduler instance.  Defaults to a UTC
            :class:`BackgroundScheduler`.
    """

    def __init__(
        self,
        jobs: JobsConfig,
        runner: JobRunner,
        names: tuple[str, ...] = ("refresh", "expired", "trash"),
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self._jobs = jobs
        self._runner = runner
        self._names = names
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._registered = False

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def register(self) -> list[str]:
        """Add every job to the scheduler, replacing earlier registrations."""
        for name in self._names:
            self._scheduler.add_job(
                self._run,
                trigger=trigger_for(name, self._jobs),
                args=[name],
                id=name,
                name=f"restcache-{name}",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info("[Scheduler] Registered %s", name)
        self._registered = True
        return list(self._names)

    def start(self) -> None:
        """Register the jobs if needed and start the scheduler thread."""
        if not self._registered:
            self.register()
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("[Scheduler] Started")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the scheduler, waiting for running jobs unless *wait* is ``False``."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("[Scheduler] Shutdown")

    def next_runs(self) -> dict[str, Optional[datetime]]:
        """Return the next fire time of each registered job.

        Jobs added before :meth:`start` have no fire time yet and map to
        ``None``.
        """
        return {
            job.id: getattr(job, "next_run_time", None)
            for job in self._scheduler.get_jobs()
        }

    def _run(self, name: str) -> None:
        try:
            summary = self._runner(name)
        except Exception:
            logger.exception("[Scheduler] Job %s failed", name)
            return
        logger.info("[Scheduler] %s finished: %s", name, summary)
