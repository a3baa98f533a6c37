"""Wiring of the store, engine, client and jobs from a :class:`GlobalConfig`.

:class:`Runtime` is what the CLI and the scheduler use to get a working
cache without assembling the pieces by hand.  It owns the
:class:`~restcache.store.DiskCacheStore` and the
:class:`~restcache.client.CachedClient` and closes both on exit.

Jobs are built fresh for every run so that each run writes to the log of
the day it actually runs on.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import httpx

from restcache.client import CachedClient
from restcache.config import get_data_dir, store_dir
from restcache.engine import CacheEngine
from restcache.exceptions import InvalidUsageError
from restcache.expiration import utcnow
from restcache.jobs import DiskRunGuard, ExpiredSweep, Job, JobSummary, RefreshJob, TrashCollector
from restcache.joblog import JobLogger
from restcache.models import GlobalConfig
from restcache.notify import ErrorNotifier, LogNotifier
from restcache.store import CacheStore, DiskCacheStore

JOB_NAMES = ("refresh", "expired", "trash")


class Runtime:
    """Open store, engine and client built from one configuration.

    Args:
        config: Effective configuration.
        store: Record store.  Defaults to a :class:`DiskCacheStore` in the
            configured cache directory.
        transport: Network transport for the client (tests pass an
            :class:`httpx.MockTransport`).
        notifier: Failure sink for the reaper jobs.
        data_dir: Directory for job logs and run locks.  Defaults to the
            XDG data directory.
        clock: Current time provider shared by the engine and the jobs.

    Example::

        with Runtime(resolve_config()) as runtime:
            runtime.client.get("https://api.example.com/things")
            runtime.run_job("refresh")
    """

    def __init__(
        self,
        config: GlobalConfig,
        store: Optional[CacheStore] = None,
        transport: Optional[httpx.BaseTransport] = None,
        notifier: Optional[ErrorNotifier] = None,
        data_dir: Optional[Path] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._store = store
        self._transport = transport
        self._notifier = notifier or LogNotifier()
        self._data_dir = data_dir
        self._clock = clock
        self._engine: Optional[CacheEngine] = None
        self._client: Optional[CachedClient] = None

    def __enter__(self) -> Runtime:
        if self._store is None:
            self._store = DiskCacheStore(store_dir(self._config))
        self._engine = CacheEngine(self._store, self._config.cache, clock=self._clock)
        self._client = CachedClient(self._engine, self._config.request, transport=self._transport)
        self._client.__enter__()
        return self

    def __exit__(self, *args: object) -> None:
        if self._client is not None:
            self._client.__exit__(*args)
            self._client = None
        if self._store is not None:
            self._store.close()

    @property
    def config(self) -> GlobalConfig:
        return self._config

    @property
    def store(self) -> CacheStore:
        assert self._store is not None, "Runtime not opened -- use as context manager"
        return self._store

    @property
    def engine(self) -> CacheEngine:
        assert self._engine is not None, "Runtime not opened -- use as context manager"
        return self._engine

    @property
    def client(self) -> CachedClient:
        assert self._client is not None, "Runtime not opened -- use as context manager"
        return self._client

    @property
    def data_dir(self) -> Path:
        return self._data_dir if self._data_dir is not None else get_data_dir()

    # ------------------------------------------------------------------ #
    # Jobs
    # ------------------------------------------------------------------ #

    def job_logger(self, name: str) -> JobLogger:
        """Return a run logger for job *name* in the configured mode."""
        return JobLogger(
            name,
            mode=self._config.logging.mode,
            log_dir=self.data_dir / "logs",
            store_dir=self.data_dir / "joblogs",
            clock=self._clock,
        )

    def build_job(self, name: str, log: Optional[JobLogger] = None) -> Job:
        """Build job *name* (``refresh``, ``expired`` or ``trash``).

        Raises:
            InvalidUsageError: For an unknown job name.
        """
        guard = DiskRunGuard(self.data_dir / "locks", name)
        jobs = self._config.jobs
        if name == "refresh":
            return RefreshJob(
                self.engine,
                self.client.raw,
                config=jobs.refresh,
                request_config=self._config.request,
                log=log,
                guard=guard,
                clock=self._clock,
            )
        if name == "expired":
            return ExpiredSweep(
                self.store,
                config=jobs.expired,
                notifier=self._notifier,
                log=log,
                guard=guard,
                clock=self._clock,
            )
        if name == "trash":
            return TrashCollector(
                self.store,
                config=jobs.trash,
                notifier=self._notifier,
                log=log,
                guard=guard,
                clock=self._clock,
            )
        raise InvalidUsageError(
            f"Unknown job: {name!r}. Choose one of: {', '.join(JOB_NAMES)}"
        )

    def run_job(self, name: str) -> JobSummary:
        """Build job *name* with a fresh run logger and run it once."""
        with self.job_logger(name) as log:
            return self.build_job(name, log).run()
