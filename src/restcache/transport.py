"""httpx transports that route every request through an interceptor chain.

:class:`CachingTransport` wraps the host's real transport.  It is registered
once, when the :class:`httpx.Client` is built, and from then on every request
made with that client is offered to the interceptors first::

    engine = CacheEngine(DiskCacheStore(cache_dir))
    client = httpx.Client(transport=CachingTransport(engine))

A request that no interceptor answers is forwarded to the wrapped transport;
its body is read in full before the ``after_dispatch`` hooks run so that the
engine can store it.

:class:`AsyncCachingTransport` is the :class:`httpx.AsyncClient` counterpart.
The interceptor hooks are synchronous store calls, so it runs them in a
worker thread to keep the event loop free.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import anyio.to_thread
import httpx

from restcache.interceptor import Interceptor, InterceptorChain

Interceptors = Union[Interceptor, Sequence[Interceptor]]


def _chain(interceptors: Interceptors) -> InterceptorChain:
    if isinstance(interceptors, Interceptor):
        return InterceptorChain([interceptors])
    return InterceptorChain(list(interceptors))


class CachingTransport(httpx.BaseTransport):
    """Synchronous transport wrapper.

    Args:
        interceptors: One interceptor (typically a
            :class:`~restcache.engine.CacheEngine`) or an ordered sequence.
        transport: The transport that performs real network I/O.  Defaults
            to :class:`httpx.HTTPTransport`.
    """

    def __init__(
        self,
        interceptors: Interceptors,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._chain = _chain(interceptors)
        self._transport = transport or httpx.HTTPTransport()

    @property
    def inner(self) -> httpx.BaseTransport:
        """The wrapped transport, for callers that must bypass the interceptors."""
        return self._transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        cached = self._chain.run_before(request)
        if cached is not None:
            return cached

        response = self._transport.handle_request(request)
        response.read()
        self._chain.run_after(request, response)
        return response

    def close(self) -> None:
        self._transport.close()


class AsyncCachingTransport(httpx.AsyncBaseTransport):
    """Asynchronous transport wrapper; see :class:`CachingTransport`.

    Args:
        interceptors: One interceptor or an ordered sequence.
        transport: The async transport that performs real network I/O.
            Defaults to :class:`httpx.AsyncHTTPTransport`.
    """

    def __init__(
        self,
        interceptors: Interceptors,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._chain = _chain(interceptors)
        self._transport = transport or httpx.AsyncHTTPTransport()

    @property
    def inner(self) -> httpx.AsyncBaseTransport:
        return self._transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        cached = await anyio.to_thread.run_sync(self._chain.run_before, request)
        if cached is not None:
            return cached

        response = await self._transport.handle_async_request(request)
        await response.aread()
        await anyio.to_thread.run_sync(self._chain.run_after, request, response)
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()
