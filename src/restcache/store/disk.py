"""Disk-backed record store.

Uses :mod:`diskcache` to persist :class:`~restcache.models.CacheRecord`
documents under a ``records/`` directory.  Each record is stored as the
model's plain ``dict`` dump under its cache key, so writes are single
SQLite statements and therefore atomic.  diskcache's own expiry and
eviction are switched off: record lifetime is managed exclusively by the
reaper jobs.

Predicate operations read outside any transaction.  A bulk delete first
collects at most ``limit`` matching keys, then removes only those keys in
one short transaction, checking each record against the predicate again
so that a record rewritten in between is kept.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Optional

import diskcache
from pydantic import ValidationError

from restcache.exceptions import StorageError
from restcache.models import CacheRecord
from restcache.store.base import CacheStore, Predicate

_STORE_ERRORS = (diskcache.Timeout, sqlite3.Error, OSError)


class DiskCacheStore(CacheStore):
    """Persistent :class:`~restcache.store.base.CacheStore` on top of :class:`diskcache.Cache`.

    Args:
        directory: Root directory for the store.  A ``records/``
            subdirectory is created inside it.
        timeout: SQLite busy timeout in seconds.

    Raises:
        StorageError: From any operation when the underlying database
            cannot be used.

    Example::

        from restcache.store import DiskCacheStore

        with DiskCacheStore("/tmp/restcache") as store:
            print(store.count())
    """

    def __init__(self, directory: str | Path, timeout: float = 60.0) -> None:
        self._directory = Path(directory) / "records"
        try:
            self._cache: Optional[diskcache.Cache] = diskcache.Cache(
                str(self._directory),
                timeout=timeout,
                eviction_policy="none",
            )
        except _STORE_ERRORS as exc:
            raise StorageError(f"Cannot open cache store at {self._directory}: {exc}") from exc

    @property
    def directory(self) -> Path:
        return self._directory

    def upsert(self, record: CacheRecord) -> None:
        cache = self._require_open()
        try:
            cache.set(record.key, record.model_dump())
        except _STORE_ERRORS as exc:
            raise StorageError(f"Failed to write record {record.key}: {exc}") from exc

    def get(self, key: str) -> Optional[CacheRecord]:
        cache = self._require_open()
        try:
            raw = cache.get(key)
        except _STORE_ERRORS as exc:
            raise StorageError(f"Failed to read record {key}: {exc}") from exc
        return self._load(key, raw)

    def delete_where(self, predicate: Predicate, limit: int) -> int:
        if limit <= 0:
            return 0
        cache = self._require_open()
        candidates = [record.key for record in self.scan_where(predicate, limit)]
        if not candidates:
            return 0
        deleted = 0
        try:
            with cache.transact():
                for key in candidates:
                    record = self._load(key, cache.get(key))
                    if record is not None and predicate(record) and cache.delete(key):
                        deleted += 1
        except _STORE_ERRORS as exc:
            raise StorageError(f"Bulk delete failed: {exc}") from exc
        return deleted

    def scan_where(self, predicate: Predicate, limit: int) -> list[CacheRecord]:
        if limit <= 0:
            return []
        cache = self._require_open()
        matches: list[CacheRecord] = []
        try:
            for key in cache.iterkeys():
                record = self._load(key, cache.get(key))
                if record is not None and predicate(record):
                    matches.append(record)
                    if len(matches) >= limit:
                        break
        except _STORE_ERRORS as exc:
            raise StorageError(f"Scan failed: {exc}") from exc
        return matches

    def compact(self) -> None:
        """Vacuum the SQLite database backing the store."""
        cache = self._require_open()
        try:
            cache.check(fix=True)
        except _STORE_ERRORS as exc:
            raise StorageError(f"Compaction failed: {exc}") from exc

    def count(self) -> int:
        cache = self._require_open()
        try:
            return len(cache)
        except _STORE_ERRORS as exc:
            raise StorageError(f"Count failed: {exc}") from exc

    def stats(self) -> dict[str, Any]:
        """Return record count, on-disk volume in bytes, and the store directory."""
        cache = self._require_open()
        return {
            "records": len(cache),
            "volume_bytes": cache.volume(),
            "directory": str(self._directory),
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`.  Safe to call twice."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    def _require_open(self) -> diskcache.Cache:
        if self._cache is None:
            raise StorageError(f"Cache store at {self._directory} is closed")
        return self._cache

    @staticmethod
    def _load(key: str, raw: Any) -> Optional[CacheRecord]:
        if raw is None:
            return None
        try:
            return CacheRecord.model_validate(raw)
        except ValidationError:
            # Rows written by an incompatible schema read as absent.
            return None
