"""Reaper jobs: delete records past their retention window.

Two independent policies:

* :class:`ExpiredSweep` -- one bounded delete of records whose
  ``expires_at`` lies more than ``retention_days`` in the past and that are
  not queued for refresh.  Records awaiting a refresh are always kept.
* :class:`TrashCollector` -- repeated bounded deletes of records whose
  ``last_requested`` date is older than ``older_than_days``, until a delete
  removes nothing, followed by an optional store compaction.

Failures go to the :class:`~restcache.notify.ErrorNotifier`; they are never
raised to whoever scheduled the job.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from restcache.expiration import as_utc, utcnow
from restcache.jobs.base import Job, JobSummary
from restcache.jobs.guard import RunGuard
from restcache.joblog import JobLogger
from restcache.models import CacheRecord, ExpiredJobConfig, TrashJobConfig
from restcache.notify import ErrorNotifier, LogNotifier
from restcache.store.base import CacheStore


class ExpiredSweep(Job):
    """Hard-expiry sweep.

    Args:
        store: Record store.
        config: Batch limit and retention window.
        notifier: Receives a message when the delete fails.
        log: Run logger.
        guard: Overlap guard.
        clock: Current time provider.
    """

    name = "expired"

    def __init__(
        self,
        store: CacheStore,
        config: Optional[ExpiredJobConfig] = None,
        notifier: Optional[ErrorNotifier] = None,
        log: Optional[JobLogger] = None,
        guard: Optional[RunGuard] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(log=log, guard=guard, clock=clock)
        self._store = store
        self._config = config or ExpiredJobConfig()
        self._notifier = notifier or LogNotifier()

    def _run(self) -> JobSummary:
        summary = JobSummary(job=self.name)
        limit = self._config.limit
        cutoff = as_utc(self._clock()) - timedelta(days=self._config.retention_days)

        def expired_and_idle(record: CacheRecord) -> bool:
            return as_utc(record.expires_at) < cutoff and not record.needs_refresh

        try:
            summary.deleted = self._store.delete_where(expired_and_idle, limit)
            summary.batches = 1
        except Exception as exc:
            summary.failed = 1
            self._notifier.notify(
                f"CRON FAIL: {exc}. Limit {limit}, Expired {cutoff.date().isoformat()}"
            )
            self._log.error("Unable to perform cleanup on un-requested old API cache.", [str(exc)])
            return summary

        self._log.log(
            f"Deleted {summary.deleted} records that expired before {cutoff.date().isoformat()}."
        )
        return summary


class TrashCollector(Job):
    """Rolling trash collection.

    With ``N`` records older than the cutoff and a batch limit of ``L`` the
    loop issues ``ceil(N / L)`` deleting statements and one final statement
    that removes nothing.

    Args:
        store: Record store.
        config: Retention window, batch limit and compaction flag.
        notifier: Receives a message when a delete or the compaction fails.
        log: Run logger.
        guard: Overlap guard.
        clock: Current time provider.
    """

    name = "trash"

    def __init__(
        self,
        store: CacheStore,
        config: Optional[TrashJobConfig] = None,
        notifier: Optional[ErrorNotifier] = None,
        log: Optional[JobLogger] = None,
        guard: Optional[RunGuard] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(log=log, guard=guard, clock=clock)
        self._store = store
        self._config = config or TrashJobConfig()
        self._notifier = notifier or LogNotifier()

    def _run(self) -> JobSummary:
        summary = JobSummary(job=self.name)
        days = self._config.older_than_days
        if days == 0:
            self._log.log("Trash collection is disabled.")
            summary.skipped = True
            return summary

        cutoff = as_utc(self._clock()).date() - timedelta(days=days)
        batch_limit = self._config.batch_limit

        try:
            while True:
                deleted = self._store.delete_where(
                    lambda record: record.last_requested < cutoff, batch_limit
                )
                summary.batches += 1
                if deleted <= 0:
                    break
                summary.deleted += deleted
                if not self._guard.touch():
                    self._log.warn("Trash lock was taken over; stopping this run.")
                    break
        except Exception as exc:
            summary.failed = 1
            self._notifier.notify(
                f"CRON FAIL: Unable to delete cache not requested since "
                f"{cutoff.isoformat()}: {exc}. Limit {batch_limit}"
            )
            self._log.error("Trash collection failed.", [str(exc)])
            return summary

        self._log.log(
            f"Deleted {summary.deleted} records not requested since {cutoff.isoformat()} "
            f"in {summary.batches} batches."
        )

        if summary.deleted and self._config.compact:
            try:
                self._store.compact()
            except Exception as exc:
                summary.failed = 1
                self._notifier.notify(f"CRON FAIL: Unable to compact the cache store: {exc}")
                self._log.error("Compaction failed.", [str(exc)])
        return summary
