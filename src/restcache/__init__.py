"""restcache -- a transparent cache for outbound HTTP(S) requests.

This package sits between an application and its :mod:`httpx` transport.
Outgoing GET requests are keyed by their normalized URL; a stored response is
served when one exists (stale entries are still served and queued for a
background refresh), otherwise the request proceeds and its result is
recorded for reuse.

Typical usage::

    from restcache import CachedClient, CacheEngine, DiskCacheStore
    from restcache.models import CacheConfig

    store = DiskCacheStore("/tmp/restcache")
    engine = CacheEngine(store, CacheConfig())
    with CachedClient(engine) as client:
        client.get("https://api.example.com/v1/things?x=2&x=1")

Modules:
    keys: Cache key derivation from request URLs.
    engine: Per-request cache decisions and the write path.
    expiration: TTL parsing and the staleness state machine.
    store: The persistence contract and its implementations.
    jobs: Background refresh and reaper jobs.
    transport: httpx transports that route calls through the engine.
    app: Typer application factory and CLI entry point.
"""

__version__ = "0.3.0"

from restcache.client import CachedClient
from restcache.engine import CacheEngine
from restcache.store import CacheStore, DiskCacheStore, MemoryStore

__all__ = [
    "CachedClient",
    "CacheEngine",
    "CacheStore",
    "DiskCacheStore",
    "MemoryStore",
]
