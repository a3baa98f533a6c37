"""Interceptor interface and the chain that runs interceptors around a dispatch.

An :class:`Interceptor` gets two chances to act on every outgoing request:

* :meth:`Interceptor.before_dispatch` -- may short-circuit the call by
  returning a response; returning ``None`` lets the request proceed.
* :meth:`Interceptor.after_dispatch` -- sees the real response once the
  transport returns it.

:class:`InterceptorChain` runs a list of interceptors in registration order,
the same pipeline shape the transport layer installs once per client (see
:class:`~restcache.transport.CachingTransport`).  An interceptor that raises
is logged and skipped: interceptors must never break the underlying call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class Interceptor(ABC):
    """Base class for transport interceptors.

    Subclasses must implement :attr:`name`.  Both hooks default to no-ops so
    an interceptor only overrides the stage it cares about.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a short identifier used in log messages."""
        ...

    def before_dispatch(self, request: httpx.Request) -> Optional[httpx.Response]:
        """Called before *request* reaches the network.

        Returns:
            A response to use instead of performing the call, or ``None``
            to let the request proceed.
        """
        return None

    def after_dispatch(self, request: httpx.Request, response: httpx.Response) -> None:
        """Called with the real response after the network call completed.

        The response body has already been read when this hook runs.
        """


class InterceptorChain:
    """Runs interceptor hooks in registration order.

    Args:
        interceptors: Ordered list of interceptors.  The chain keeps its own
            copy, so later changes to the caller's list have no effect.
    """

    def __init__(self, interceptors: list[Interceptor]) -> None:
        self._interceptors = list(interceptors)

    def __len__(self) -> int:
        return len(self._interceptors)

    def run_before(self, request: httpx.Request) -> Optional[httpx.Response]:
        """Return the first short-circuit response, or ``None`` to proceed."""
        for interceptor in self._interceptors:
            try:
                response = interceptor.before_dispatch(request)
            except Exception:
                logger.warning(
                    "Interceptor %s failed before %s %s",
                    interceptor.name, request.method, request.url, exc_info=True,
                )
                continue
            if response is not None:
                return response
        return None

    def run_after(self, request: httpx.Request, response: httpx.Response) -> None:
        """Hand the real response to every interceptor."""
        for interceptor in self._interceptors:
            try:
                interceptor.after_dispatch(request, response)
            except Exception:
                logger.warning(
                    "Interceptor %s failed after %s %s",
                    interceptor.name, request.method, request.url, exc_info=True,
                )
