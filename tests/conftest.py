"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable so no .env file is loaded, and makes
sure no real Redis URL leaks into the settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.pop("REDIS_URL", None)
os.environ.pop("APP_RATE_LIMIT_ROUTES", None)
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from starlette.requests import Request

from route_limiter.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from route_limiter.core.errors import StoreAppError, StoreUnavailableError


class FakeClock:
    """Deterministic clock returning UNIX time in seconds."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FailingCounterStore(AbstractCounterStore):
    """Connected store whose every operation errors."""

    def __init__(self) -> None:
        self.calls = 0

    @property
    def connected(self) -> bool:
        return True

    async def get(self, key: str) -> CounterSnapshot | None:
        self.calls += 1
        raise StoreAppError(code="store_error", message="Counter store operation failed")

    async def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        self.calls += 1
        raise StoreAppError(code="store_error", message="Counter store operation failed")


class DisconnectedCounterStore(AbstractCounterStore):
    """Store whose client reports itself disconnected."""

    def __init__(self) -> None:
        self.calls = 0

    @property
    def connected(self) -> bool:
        return False

    async def get(self, key: str) -> CounterSnapshot | None:
        self.calls += 1
        raise StoreUnavailableError(code="store_disconnected", message="not connected")

    async def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        self.calls += 1
        raise StoreUnavailableError(code="store_disconnected", message="not connected")


def make_request(path: str = "/route", method: str = "GET", headers: dict | None = None) -> Request:
    """Build a bare Starlette request for unit tests."""
    raw_headers = [
        (name.lower().encode(), value.encode()) for name, value in (headers or {}).items()
    ]
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "root_path": "",
            "scheme": "http",
            "query_string": b"",
            "headers": raw_headers,
            "server": ("testserver", 80),
            "client": ("testclient", 50000),
        }
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def failing_store() -> FailingCounterStore:
    return FailingCounterStore()


@pytest.fixture
def disconnected_store() -> DisconnectedCounterStore:
    return DisconnectedCounterStore()
