"""Persistence layer for cache records.

This package defines :class:`CacheStore`, the contract every other
component talks to, and two implementations:

* :class:`DiskCacheStore` -- records persisted with :mod:`diskcache`
  (SQLite under the hood), safe to share between processes.
* :class:`MemoryStore` -- a process-local dict, used for tests and
  short-lived scripts.
"""

from restcache.store.base import CacheStore, Predicate
from restcache.store.disk import DiskCacheStore
from restcache.store.memory import MemoryStore

__all__ = ["CacheStore", "DiskCacheStore", "MemoryStore", "Predicate"]
