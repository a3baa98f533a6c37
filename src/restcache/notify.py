"""Error notification sinks for the reaper jobs.

Reaper failures are reported, never raised.  A sink accepts one
human-readable string per failure; where it goes (a log, an APM error
feed, a chat hook) is up to the deployment.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)


class ErrorNotifier(ABC):
    """Receives human-readable failure messages."""

    @abstractmethod
    def notify(self, message: str) -> None:
        ...


class LogNotifier(ErrorNotifier):
    """Writes each failure to the ``restcache.notify`` logger at ERROR level."""

    def notify(self, message: str) -> None:
        logger.error(message)


class CallbackNotifier(ErrorNotifier):
    """Forwards each failure to a callable.

    A callback that raises is logged and otherwise ignored so that a broken
    sink cannot turn a reported failure into a crashed job.
    """

    def __init__(self, callback: Callable[[str], None]) -> None:
        self._callback = callback

    def notify(self, message: str) -> None:
        try:
            self._callback(message)
        except Exception:
            logger.exception("Error notifier callback failed for: %s", message)
