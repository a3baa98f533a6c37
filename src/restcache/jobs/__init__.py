"""Background maintenance jobs.

Three independent jobs run against the store on their own timers, never
against live traffic:

* :class:`RefreshJob` -- replays requests whose records were flagged stale
  and writes the fresh responses back.
* :class:`ExpiredSweep` -- deletes records that expired long ago and are not
  queued for refresh.
* :class:`TrashCollector` -- deletes records nobody requested within the
  retention window, in bounded batches, then compacts the store.

Each job holds a :class:`RunGuard` so two runs of the same job never
overlap.  Runs return a :class:`JobSummary`; summaries are informational
and never change control flow.
"""

from restcache.jobs.base import Job, JobSummary
from restcache.jobs.guard import DiskRunGuard, RunGuard, ThreadRunGuard
from restcache.jobs.reaper import ExpiredSweep, TrashCollector
from restcache.jobs.refresh import RefreshJob

__all__ = [
    "DiskRunGuard",
    "ExpiredSweep",
    "Job",
    "JobSummary",
    "RefreshJob",
    "RunGuard",
    "ThreadRunGuard",
    "TrashCollector",
]
