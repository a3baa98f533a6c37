"""Synchronous HTTP client with transparent caching and retry.

This module provides :class:`CachedClient`, a context-managed wrapper around
two :class:`httpx.Client` instances that share one network transport:

- **Caching client** -- routes every request through a
  :class:`~restcache.transport.CachingTransport` so GET responses are served
  from and written to the cache.
- **Raw client** -- talks to the network transport directly.  The refresh
  job replays stale requests through it, which keeps the replay from being
  answered by the very record it is trying to refresh.

Both go through :func:`send_with_retry`, which retries network errors with
exponential delay (1 s, 2 s, 4 s, ...).  Replays through the raw client also
retry 5xx responses.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx

from restcache.engine import EXTENSION, CacheEngine
from restcache.exceptions import TransportError
from restcache.interceptor import Interceptor
from restcache.models import CacheDirective, RequestArgs, RequestConfig
from restcache.transport import CachingTransport

logger = logging.getLogger(__name__)

CacheOption = Union[CacheDirective, dict, str, None]


def send_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    max_retries: int = 0,
    sleep: Callable[[float], None] = time.sleep,
    retry_server_errors: bool = True,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying network errors and 5xx responses.

    Args:
        client: The client to send through.
        method: HTTP method.
        url: Absolute URL, or a path relative to the client's ``base_url``.
        max_retries: Additional attempts after the first one.
        sleep: Delay function, replaceable in tests.
        retry_server_errors: Also retry 5xx responses.  Must be ``False``
            for a caching client, where the stored 5xx would answer the
            retry.
        **kwargs: Forwarded to :meth:`httpx.Client.request`.

    Returns:
        The final response.  A 5xx response on the last attempt is returned,
        not raised.

    Raises:
        TransportError: When every attempt failed at the network level.
    """
    max_retries = max(0, max_retries)
    for attempt in range(max_retries + 1):
        try:
            response = client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            if attempt < max_retries:
                delay = 2 ** attempt  # 1, 2, 4, ...
                logger.debug(
                    "Connection error: %s, retrying in %ss (attempt %s/%s)",
                    exc, delay, attempt + 1, max_retries,
                )
                sleep(delay)
                continue
            raise TransportError(
                f"{method} {url} failed after {max_retries + 1} attempts: {exc}"
            ) from exc

        if retry_server_errors and response.status_code >= 500 and attempt < max_retries:
            delay = 2 ** attempt
            logger.debug(
                "Server error %s, retrying in %ss (attempt %s/%s)",
                response.status_code, delay, attempt + 1, max_retries,
            )
            sleep(delay)
            continue
        return response

    raise TransportError(f"{method} {url} failed after all retries")  # pragma: no cover


class CachedClient:
    """HTTP client whose GET requests go through a :class:`CacheEngine`.

    Must be used as a context manager so that the underlying transport is
    opened and closed properly.

    Args:
        engine: The cache engine, registered as the first interceptor.
        config: Timeout, SSL verification and retry settings.
        transport: Network transport.  Defaults to
            :class:`httpx.HTTPTransport` honouring ``config.verify_ssl``.
        interceptors: Extra interceptors run after the engine.
        sleep: Delay function used between retries.

    Example::

        with CachedClient(engine) as client:
            response = client.get(
                "https://api.example.com/things",
                cache={"expires": "10m", "tag": "things"},
            )
    """

    def __init__(
        self,
        engine: CacheEngine,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
        interceptors: Optional[list[Interceptor]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._engine = engine
        self._config = config or RequestConfig()
        self._transport = transport
        self._interceptors = [engine, *(interceptors or [])]
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None
        self._raw: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> CachedClient:
        inner = self._transport or httpx.HTTPTransport(verify=self._config.verify_ssl)
        self._client = httpx.Client(
            transport=CachingTransport(self._interceptors, inner),
            timeout=self._config.timeout,
            follow_redirects=True,
        )
        self._raw = httpx.Client(
            transport=inner,
            timeout=self._config.timeout,
            follow_redirects=True,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None
        if self._raw:
            self._raw.close()
            self._raw = None

    @property
    def engine(self) -> CacheEngine:
        return self._engine

    @property
    def config(self) -> RequestConfig:
        return self._config

    @property
    def raw(self) -> httpx.Client:
        """Client that bypasses the cache, used for refresh replays."""
        assert self._raw is not None, "Client not initialised -- use as context manager"
        return self._raw

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        cache: CacheOption = None,
        json_body: Optional[Any] = None,
        body: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> httpx.Response:
        """Make an HTTP request through the cache.

        Args:
            method: HTTP method.  Only GET is ever cached.
            url: Absolute request URL.
            params: Query parameters merged into the URL.
            headers: Extra request headers.
            cache: A :class:`CacheDirective` (or its ``dict`` form) with
                ``expires``, ``tag`` and ``update``, or ``"exclude"`` to
                bypass the cache for this request.
            json_body: JSON-serialisable body.
            body: Raw string body.
            filename: Save the response body to this path.  Downloads are
                never cached.

        Returns:
            The live or cached :class:`httpx.Response`.

        Raises:
            TransportError: When the request failed at the network level
                after all retries.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        args = RequestArgs(method=method.upper(), cache=cache, filename=filename)
        kwargs: dict[str, Any] = {
            "params": params,
            "headers": headers,
            "extensions": {EXTENSION: args},
        }
        if json_body is not None:
            kwargs["json"] = json_body
        elif body is not None:
            kwargs["content"] = body

        response = send_with_retry(
            self._client,
            method.upper(),
            url,
            max_retries=self._config.max_retries,
            sleep=self._sleep,
            retry_server_errors=False,
            **kwargs,
        )

        if filename:
            Path(filename).expanduser().write_bytes(response.content)
        return response

    def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Send a GET request; see :meth:`request`."""
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """Send a POST request; see :meth:`request`.  Never cached."""
        return self.request("POST", url, **kwargs)
