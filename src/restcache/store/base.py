"""Abstract store contract.

The engine and the background jobs depend only on the operations declared
here.  Implementations must make :meth:`CacheStore.upsert` atomic: a
concurrent reader observes either the previous record or the new one,
never a mix of both.

Predicates are plain callables over :class:`~restcache.models.CacheRecord`
so that each job expresses its own filter (``needs_refresh``, expired
before a cutoff, last requested before a cutoff) without the store knowing
about it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from restcache.models import CacheRecord

Predicate = Callable[[CacheRecord], bool]


class CacheStore(ABC):
    """Base class for all record stores.

    Stores are context managers; leaving the ``with`` block calls
    :meth:`close`.
    """

    @abstractmethod
    def upsert(self, record: CacheRecord) -> None:
        """Insert *record*, replacing any existing record with the same key."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheRecord]:
        """Return the record stored under *key*, or ``None``."""

    @abstractmethod
    def delete_where(self, predicate: Predicate, limit: int) -> int:
        """Delete at most *limit* records matching *predicate*.

        Returns:
            The number of records deleted.
        """

    @abstractmethod
    def scan_where(self, predicate: Predicate, limit: int) -> list[CacheRecord]:
        """Return at most *limit* records matching *predicate*."""

    def compact(self) -> None:
        """Reclaim space after large deletes.  A no-op unless overridden."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored records."""

    def close(self) -> None:
        """Release any resources held by the store."""

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
