"""Run logs for the background jobs.

Each job is handed a :class:`JobLogger` when it is built; nothing here is
global.  The logger's *mode* picks where lines go:

* ``off`` -- nowhere.
* ``file`` -- appended to ``<log_dir>/restcache-logs-<handler>-<date>.log``.
  If the file cannot be opened the logger falls back to ``store``.
* ``store`` -- appended to a list kept in a :class:`diskcache.Cache` under
  the same ``restcache-logs-<handler>-<date>`` key, readable with
  :func:`read_stored_log`.
* ``console`` -- printed to stderr through a Rich console.

Every line is ``YYYY-mm-dd HH:MM:SS [LEVEL] message``; optional detail
strings follow on their own lines, prefixed with :data:`DETAIL_GLUE`.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path
from typing import IO, Callable, Iterable, Optional

import diskcache
from rich.console import Console
from rich.markup import escape

from restcache.expiration import utcnow

DETAIL_GLUE = "------------------- [DETAIL] "
LOGGING_PREFIX = "restcache-logs-"

_LEVEL_STYLES = {"LOG": "dim", "WARN": "yellow", "ERROR": "bold red"}


def logging_key(handler: str, day: date) -> str:
    """Return the per-handler, per-day key used for log files and stored logs."""
    slug = re.sub(r"[^a-z0-9]", "-", handler.lower())
    return f"{LOGGING_PREFIX}{slug}-{day.isoformat()}"


def read_stored_log(store_dir: str | Path, handler: str, day: date) -> list[str]:
    """Return the lines a ``store``-mode logger wrote for *handler* on *day*."""
    with diskcache.Cache(str(store_dir)) as cache:
        return list(cache.get(logging_key(handler, day), []))


class JobLogger:
    """Writes run logs for one job.

    Args:
        handler: Name of the job, used in the logging key.
        mode: ``off``, ``file``, ``store`` or ``console``.
        log_dir: Directory for ``file`` mode.
        store_dir: diskcache directory for ``store`` mode.
        clock: Current time provider for timestamps and the key date.
        console: Rich console for ``console`` mode (stderr by default).
    """

    def __init__(
        self,
        handler: str,
        mode: str = "off",
        log_dir: Optional[Path] = None,
        store_dir: Optional[Path] = None,
        clock: Callable[[], datetime] = utcnow,
        console: Optional[Console] = None,
    ) -> None:
        self._handler = handler
        self._clock = clock
        self._key = logging_key(handler, clock().date())
        self._log_dir = log_dir
        self._store_dir = store_dir
        self._console = console
        self._file: Optional[IO[str]] = None
        self._store: Optional[diskcache.Cache] = None
        self._mode = mode
        self._open()

    @property
    def mode(self) -> str:
        """The effective mode, after any fallback from ``file`` to ``store``."""
        return self._mode

    @property
    def key(self) -> str:
        return self._key

    def log(self, message: str, details: Iterable[str] = ()) -> None:
        self._write("LOG", message, details)

    def warn(self, message: str, details: Iterable[str] = ()) -> None:
        self._write("WARN", message, details)

    def error(self, message: str, details: Iterable[str] = ()) -> None:
        self._write("ERROR", message, details)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._store is not None:
            self._store.close()
            self._store = None

    def __enter__(self) -> JobLogger:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _open(self) -> None:
        if self._mode == "file":
            if self._log_dir is None:
                self._mode = "store"
            else:
                try:
                    self._log_dir.mkdir(parents=True, exist_ok=True)
                    self._file = open(self._log_dir / f"{self._key}.log", "a", encoding="utf-8")
                except OSError:
                    self._mode = "store"
        if self._mode == "store":
            if self._store_dir is None:
                self._mode = "off"
            else:
                self._store = diskcache.Cache(str(self._store_dir))
        elif self._mode == "console" and self._console is None:
            self._console = Console(stderr=True)
        elif self._mode not in ("file", "console"):
            self._mode = "off"

    def _write(self, level: str, message: str, details: Iterable[str]) -> None:
        if self._mode == "off":
            return
        stamp = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        lines = [f"{stamp} [{level}] {message.strip()}"]
        lines.extend(DETAIL_GLUE + str(detail).strip() for detail in details)

        if self._mode == "file" and self._file is not None:
            self._file.write("".join(line + "\n" for line in lines))
            self._file.flush()
        elif self._mode == "store" and self._store is not None:
            with self._store.transact():
                entries = self._store.get(self._key, [])
                entries.extend(lines)
                self._store.set(self._key, entries)
        elif self._mode == "console" and self._console is not None:
            style = _LEVEL_STYLES[level]
            for line in lines:
                self._console.print(f"[{style}]{escape(line)}[/{style}]")


def null_logger(handler: str = "restcache") -> JobLogger:
    """Return a logger that discards everything."""
    return JobLogger(handler, mode="off")
