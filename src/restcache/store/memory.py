"""In-process record store."""

from __future__ import annotations

import threading
from typing import Optional

from restcache.models import CacheRecord
from restcache.store.base import CacheStore, Predicate


class MemoryStore(CacheStore):
    """Dict-backed :class:`~restcache.store.base.CacheStore`.

    All operations run under one re-entrant lock. Records are copied on the
    way in and on the way out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._records: dict[str, CacheRecord] = {}
        self._lock = threading.RLock()

    def upsert(self, record: CacheRecord) -> None:
        with self._lock:
            self._records[record.key] = record.model_copy()

    def get(self, key: str) -> Optional[CacheRecord]:
        with self._lock:
            record = self._records.get(key)
            return record.model_copy() if record is not None else None

    def delete_where(self, predicate: Predicate, limit: int) -> int:
        if limit <= 0:
            return 0
        with self._lock:
            doomed = [key for key, record in self._records.items() if predicate(record)][:limit]
            for key in doomed:
                del self._records[key]
            return len(doomed)

    def scan_where(self, predicate: Predicate, limit: int) -> list[CacheRecord]:
        if limit <= 0:
            return []
        with self._lock:
            matches = [record for record in self._records.values() if predicate(record)]
            return [record.model_copy() for record in matches[:limit]]

    def count(self) -> int:
        with self._lock:
            return len(self._records)
