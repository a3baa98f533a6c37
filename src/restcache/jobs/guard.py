"""Single-run guards for background jobs.

A guard is acquired without blocking at the start of a run.  When it is
already held the run is skipped; the next scheduled run tries again.
"""

from __future__ import annotations

import os
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import diskcache


class RunGuard(ABC):
    """Non-blocking mutual exclusion for one job type."""

    @abstractmethod
    def acquire(self) -> bool:
        """Take the guard.  Returns ``False`` if another run holds it."""

    @abstractmethod
    def release(self) -> None:
        """Give the guard back."""

    def touch(self) -> bool:
        """Signal that the holder is still making progress.

        Returns ``False`` when this guard no longer holds the lock.
        """
        return True


class ThreadRunGuard(RunGuard):
    """Guard shared by the threads of one process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()


class DiskRunGuard(RunGuard):
    """Guard shared by every process that points at the same directory.

    Uses :meth:`diskcache.Cache.add`, which only succeeds when the key is
    absent.  The stored value is a token unique to this guard instance,
    and :meth:`touch` and :meth:`release` act only while the key still
    holds it.  The key expires *expire* seconds after the last acquire or
    touch so that a run killed mid-batch cannot block the job forever;
    long runs call :meth:`touch` as they make progress.

    Args:
        directory: diskcache directory holding the lock keys.
        name: Job name; one key per job type.
        expire: Seconds without progress after which a held guard is
            considered abandoned.
    """

    def __init__(self, directory: str | Path, name: str, expire: float = 3600.0) -> None:
        self._directory = str(directory)
        self._key = f"restcache-job-lock-{name}"
        self._expire = expire
        self._token = f"{os.getpid()}-{uuid.uuid4().hex}"

    def acquire(self) -> bool:
        with diskcache.Cache(self._directory) as cache:
            return cache.add(self._key, self._token, expire=self._expire)

    def touch(self) -> bool:
        with diskcache.Cache(self._directory) as cache:
            with cache.transact():
                if cache.get(self._key) != self._token:
                    return False
                return cache.touch(self._key, expire=self._expire)

    def release(self) -> None:
        with diskcache.Cache(self._directory) as cache:
            with cache.transact():
                if cache.get(self._key) == self._token:
                    cache.delete(self._key)
