"""Shared test fixtures for restcache.

Provides isolated config directories, a controllable clock, stores and
engines wired to that clock, a mock network, and a CLI runner.  These
fixtures are discovered by pytest and available to every test module.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import httpx
import pytest

from restcache.engine import CacheEngine
from restcache.models import CacheConfig
from restcache.output import reset_output
from restcache.store import MemoryStore

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class Network:
    """Mock origin server that counts calls and serves a configurable response."""

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.status_code = 200
        self.body: Callable[[httpx.Request], bytes] = (
            lambda request: f'{{"call": {len(self.calls)}}}'.encode()
        )
        self.fail_urls: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if str(request.url) in self.fail_urls:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(
            self.status_code,
            headers={"content-type": "application/json"},
            content=self.body(request),
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The manager keeps references to the stdout/stderr objects it was
    created with; CliRunner swaps and closes those streams.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Time, stores, engines
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine(memory_store: MemoryStore, clock: FakeClock) -> CacheEngine:
    return CacheEngine(memory_store, CacheConfig(), clock=clock)


@pytest.fixture
def network() -> Network:
    return Network()


# ---------------------------------------------------------------------------
# Isolated config environment
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME, XDG_CACHE_HOME and XDG_DATA_HOME at
    subdirectories of tmp_path, forces the XDG layout on every platform,
    clears RESTCACHE_* variables and changes into tmp_path.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("restcache.config._is_xdg_platform", lambda: True)
    for var in ["RESTCACHE_CACHE_DIR", "RESTCACHE_LOG_MODE", "RESTCACHE_EXCLUSIONS"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
