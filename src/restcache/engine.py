"""Per-request cache decisions and the single write path.

:class:`CacheEngine` answers two questions for the transport layer:

1. *Before dispatch* -- :meth:`CacheEngine.intercept`: is there a stored
   response for this request?  A stored record is served whether it is
   fresh or stale (stale-while-revalidate); reading a stale record flags it
   for the background refresh job and captures the request arguments so the
   job can replay the call.  Only an absent record lets the request proceed.
2. *After dispatch* -- :meth:`CacheEngine.store`: should the real response
   be written, and with which expiration?

A request is excluded from both when it downloads to a file, opts out with
the ``"exclude"`` directive, is not a GET, targets an excluded host, or runs
under :meth:`CacheEngine.force_fresh`.

Caching is best-effort.  Storage and serialization failures are logged and
swallowed here so that they never reach the caller of the HTTP request.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Optional, Union
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError

from restcache.codec import deserialize_response, serialize_response
from restcache.exceptions import InvalidURLError, SerializationError, StorageError
from restcache.expiration import ExpirationPolicy, as_utc, check_staleness, utcnow
from restcache.interceptor import Interceptor
from restcache.keys import normalize_url
from restcache.models import CacheConfig, CacheDirective, CacheRecord, RequestArgs
from restcache.store.base import CacheStore

logger = logging.getLogger(__name__)

EXTENSION = "restcache"
"""Key of the httpx request extension that carries per-request cache arguments."""

_force_fresh: ContextVar[bool] = ContextVar("restcache_force_fresh", default=False)

Exclusions = Union[Iterable[str], str, Callable[[], Union[Iterable[str], str]]]


def args_from_request(request: httpx.Request) -> RequestArgs:
    """Build :class:`~restcache.models.RequestArgs` for an httpx request.

    The ``restcache`` extension may hold a :class:`RequestArgs`, a
    :class:`CacheDirective`, a plain ``dict`` of either, or the string
    ``"exclude"``.  Method, headers and read timeout always come from the
    request itself.
    """
    extension: Any = request.extensions.get(EXTENSION)
    fields: dict[str, Any] = {}
    if isinstance(extension, RequestArgs):
        fields = extension.model_dump(exclude={"method", "headers"})
    elif isinstance(extension, CacheDirective) or extension == "exclude":
        fields = {"cache": extension}
    elif isinstance(extension, dict):
        if {"expires", "tag", "update"} & extension.keys() and "cache" not in extension:
            fields = {"cache": extension}
        else:
            fields = dict(extension)

    timeout = request.extensions.get("timeout")
    if isinstance(timeout, dict) and fields.get("timeout") is None:
        fields["timeout"] = timeout.get("read")

    try:
        return RequestArgs(method=request.method, headers=dict(request.headers), **fields)
    except ValidationError:
        logger.warning("Ignoring malformed %s extension on %s", EXTENSION, request.url)
        return RequestArgs(method=request.method, headers=dict(request.headers))


class CacheEngine(Interceptor):
    """Stateless cache service holding its injected collaborators.

    Args:
        store: Record store shared with the background jobs.
        config: Live-path settings.  Defaults to :class:`CacheConfig`.
        clock: Returns the current time; injected so tests control "now".
        exclusions: Hosts that are never cached.  A list (re-read on every
            request, so later mutations apply), a comma-separated string, or
            a callable returning either.  Defaults to ``config.exclusions``.

    Example::

        engine = CacheEngine(MemoryStore())
        engine.intercept("https://api.example.com/things", RequestArgs())
    """

    def __init__(
        self,
        store: CacheStore,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        exclusions: Optional[Exclusions] = None,
    ) -> None:
        self._store = store
        self._config = config or CacheConfig()
        self._policy = ExpirationPolicy.from_config(self._config)
        self._clock = clock
        self._exclusions: Exclusions = (
            exclusions if exclusions is not None else self._config.exclusions
        )

    @property
    def name(self) -> str:
        return "restcache"

    @property
    def store_backend(self) -> CacheStore:
        return self._store

    @property
    def config(self) -> CacheConfig:
        return self._config

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------ #
    # Exclusion rules
    # ------------------------------------------------------------------ #

    @staticmethod
    @contextmanager
    def force_fresh() -> Iterator[None]:
        """Bypass the cache for every request made inside the block.

        Bypassed requests are neither served from nor written to the cache.
        """
        token = _force_fresh.set(True)
        try:
            yield
        finally:
            _force_fresh.reset(token)

    def excluded_hosts(self) -> set[str]:
        """Evaluate the exclusion setting now and return lowercased hosts."""
        value = self._exclusions() if callable(self._exclusions) else self._exclusions
        if isinstance(value, str):
            value = value.split(",")
        return {host.strip().lower() for host in value if host and host.strip()}

    def is_cacheable(self, args: RequestArgs, url: str) -> bool:
        """Return ``True`` when a request may be served from or written to the cache."""
        if not self._config.enabled:
            return False
        if args.filename or args.cache == "exclude":
            return False
        if args.method.lower() != "get":
            return False
        if args.force_fresh or _force_fresh.get():
            return False
        try:
            host = urlsplit(url).hostname or ""
        except ValueError:
            return False
        return host.lower() not in self.excluded_hosts()

    # ------------------------------------------------------------------ #
    # Read path
    # ------------------------------------------------------------------ #

    def lookup(self, url: str, args: RequestArgs) -> Optional[CacheRecord]:
        """Fetch the record for *url* and apply the staleness check.

        A record that turns (or already is) stale is written back at once
        with ``needs_refresh`` set.  Storage failures read as a miss.
        """
        try:
            key = normalize_url(url).key
            record = self._store.get(key)
        except (InvalidURLError, StorageError) as exc:
            logger.warning("Cache lookup failed for %s: %s", url, exc)
            return None
        if record is None:
            return None

        updated = check_staleness(record, args, self._clock())
        if updated is not None:
            try:
                self._store.upsert(updated)
            except StorageError as exc:
                logger.warning("Could not flag %s for refresh: %s", url, exc)
            record = updated
        return record

    def intercept(
        self,
        url: str,
        args: RequestArgs,
        request: Optional[httpx.Request] = None,
    ) -> Optional[httpx.Response]:
        """Return the cached response for a request, or ``None`` to proceed."""
        if not self.is_cacheable(args, url):
            return None
        record = self.lookup(url, args)
        if record is None:
            return None
        try:
            response = deserialize_response(record.payload, request)
        except SerializationError as exc:
            logger.warning("Treating unreadable cache entry for %s as a miss: %s", url, exc)
            return None
        logger.debug(
            "Cache hit: %s (%s)", url, "stale" if record.needs_refresh else "fresh"
        )
        return response

    # ------------------------------------------------------------------ #
    # Write path
    # ------------------------------------------------------------------ #

    def store(self, response: httpx.Response, args: RequestArgs, url: str) -> bool:
        """Write *response* for *url* if policy allows.

        The new record replaces any existing one, clears replay arguments,
        and takes ``needs_refresh`` from the request's ``update`` directive.

        Returns:
            ``True`` when a record was written.
        """
        status_code = response.status_code
        if self._config.only_cache_200 and status_code != 200:
            return False
        if not self.is_cacheable(args, url):
            return False

        directive = args.directive
        now = self._clock()
        try:
            normalized = normalize_url(url)
            record = CacheRecord(
                key=normalized.key,
                domain=normalized.domain,
                path=normalized.path,
                query=normalized.query,
                payload=serialize_response(response),
                expires_at=self._policy.expiration_for(directive.expires, status_code, now),
                last_requested=as_utc(now).date(),
                tag=directive.tag,
                needs_refresh=directive.update,
                pending_args=None,
                status_code=status_code,
            )
        except (InvalidURLError, SerializationError) as exc:
            logger.warning("Skipping cache write for %s: %s", url, exc)
            return False

        try:
            self._store.upsert(record)
        except StorageError as exc:
            logger.warning("Cache write failed for %s: %s", url, exc)
            return False
        logger.debug("Cached %s until %s", url, record.expires_at.isoformat())
        return True

    # ------------------------------------------------------------------ #
    # Interceptor hooks
    # ------------------------------------------------------------------ #

    def before_dispatch(self, request: httpx.Request) -> Optional[httpx.Response]:
        return self.intercept(str(request.url), args_from_request(request), request)

    def after_dispatch(self, request: httpx.Request, response: httpx.Response) -> None:
        self.store(response, args_from_request(request), str(request.url))
