"""Shared job scaffolding: the run summary and the guarded run template."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from restcache.expiration import utcnow
from restcache.jobs.guard import RunGuard, ThreadRunGuard
from restcache.joblog import JobLogger, null_logger


@dataclass
class JobSummary:
    """Counts reported by one job run.

    Attributes:
        job: Job name.
        attempted: Records the run tried to process (refresh only).
        succeeded: Records refreshed successfully (refresh only).
        failed: Records or statements that failed.
        deleted: Records removed (reapers only).
        batches: Delete statements issued (reapers only).
        skipped: ``True`` when the run did not start because another run
            of the same job held the guard, or the job is disabled.
    """

    job: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    deleted: int = 0
    batches: int = 0
    skipped: bool = False


class Job(ABC):
    """Base class for the background jobs.

    :meth:`run` takes the guard, delegates to :meth:`_run`, and always gives
    the guard back.

    Args:
        log: Run logger.  Defaults to a silent one.
        guard: Overlap guard.  Defaults to an in-process lock owned by this job.
        clock: Current time provider.
    """

    name: str = "job"

    def __init__(
        self,
        log: Optional[JobLogger] = None,
        guard: Optional[RunGuard] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._log = log or null_logger(self.name)
        self._guard = guard or ThreadRunGuard()
        self._clock = clock

    def run(self) -> JobSummary:
        """Execute one run of the job unless another run is in progress."""
        if not self._guard.acquire():
            self._log.warn(f"{self.name} is already running; skipping this run.")
            return JobSummary(job=self.name, skipped=True)
        try:
            return self._run()
        finally:
            self._guard.release()

    @abstractmethod
    def _run(self) -> JobSummary:
        ...
