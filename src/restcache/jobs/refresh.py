"""Refresh job: replay stale requests and restore their records.

Each run selects up to ``limit`` records with ``needs_refresh`` set.  For
every record the captured request arguments are decoded, the URL is rebuilt
from the stored components, and the request is replayed through the raw
(non-caching) client.  A successful response goes through
:meth:`~restcache.engine.CacheEngine.store`, the same write path live
traffic uses, which clears ``needs_refresh`` and recomputes ``expires_at``.

Rows are independent.  A replay that fails at the network level, or whose
response the write path declines, leaves the record flagged for the next
run; the batch always continues to the last selected row.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional

import httpx

from restcache.client import send_with_retry
from restcache.codec import deserialize_args
from restcache.engine import CacheEngine
from restcache.exceptions import SerializationError, StorageError, TransportError
from restcache.expiration import utcnow
from restcache.jobs.base import Job, JobSummary
from restcache.jobs.guard import RunGuard
from restcache.joblog import JobLogger
from restcache.keys import rebuild_url
from restcache.models import CacheRecord, RefreshJobConfig, RequestArgs, RequestConfig


class RefreshJob(Job):
    """Re-fetch records flagged for refresh.

    Args:
        engine: Engine whose store is scanned and whose write path stores
            the replayed responses.
        client: Client that reaches the network without going through the
            cache (see :attr:`~restcache.client.CachedClient.raw`).
        config: Batch limit.
        request_config: Timeout and retry settings for replays.
        log: Run logger.
        guard: Overlap guard.
        clock: Current time provider.
        sleep: Delay function used between retries.
    """

    name = "refresh"

    def __init__(
        self,
        engine: CacheEngine,
        client: httpx.Client,
        config: Optional[RefreshJobConfig] = None,
        request_config: Optional[RequestConfig] = None,
        log: Optional[JobLogger] = None,
        guard: Optional[RunGuard] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(log=log, guard=guard, clock=clock)
        self._engine = engine
        self._client = client
        self._config = config or RefreshJobConfig()
        self._request_config = request_config or RequestConfig()
        self._sleep = sleep

    def _run(self) -> JobSummary:
        summary = JobSummary(job=self.name)
        try:
            records = self._engine.store_backend.scan_where(
                lambda record: record.needs_refresh, self._config.limit
            )
        except StorageError as exc:
            self._log.error("Unable to select records for refresh.", [str(exc)])
            summary.failed += 1
            return summary

        if not records:
            self._log.log("All cache looks to be up to date.")
        else:
            total = len(records)
            self._log.log(f"Found {total} records we need to update cache for.")
            for record in records:
                summary.attempted += 1
                if self._refresh(record, summary.attempted, total):
                    summary.succeeded += 1
                else:
                    summary.failed += 1
                if not self._guard.touch():
                    self._log.warn("Refresh lock was taken over; stopping this run.")
                    break

            if summary.succeeded == total:
                self._log.log("Everything has been cleared as it should!")
            if summary.failed:
                self._log.warn(f"Failed to update {summary.failed} of {total}")

        self._log.log(f"{type(self).__name__} has been completed.")
        return summary

    def _refresh(self, record: CacheRecord, position: int, total: int) -> bool:
        args = self._replay_args(record)
        url = rebuild_url(record.domain, record.path, record.query)

        try:
            response = send_with_retry(
                self._client,
                args.method,
                url,
                max_retries=self._request_config.max_retries,
                sleep=self._sleep,
                headers=args.headers,
                timeout=args.timeout or self._request_config.timeout,
            )
        except TransportError as exc:
            self._log.error(f"FAIL: {position} of {total} ( {url} )", [str(exc)])
            return False

        try:
            stored = self._engine.store(response, args, url)
        except Exception as exc:
            self._log.error(f"EXCEPTION: {exc}")
            return False

        if not stored:
            self._log.error(
                f"FAIL: {position} of {total} ( {url} )",
                [f"HTTP {response.status_code} was not written back to the cache"],
            )
            return False

        self._log.log(f"DONE: {position} of {total}")
        return True

    def _replay_args(self, record: CacheRecord) -> RequestArgs:
        """Decode the captured arguments with the ``update`` directive cleared."""
        args = RequestArgs()
        if record.pending_args:
            try:
                args = deserialize_args(record.pending_args)
            except SerializationError as exc:
                self._log.warn(f"Replaying {record.key} as a plain GET.", [str(exc)])

        directive = args.directive
        if directive.update:
            args = args.model_copy(
                update={"cache": directive.model_copy(update={"update": False})}
            )
        return args
