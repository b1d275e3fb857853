"""Counter store adapters.

The limiter talks to a shared store through ``AbstractCounterStore``: Redis
in production, an in-memory implementation for tests and single-process use.
"""

from __future__ import annotations

from route_limiter.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from route_limiter.adapters.counter_store.factory import build_counter_store
from route_limiter.adapters.counter_store.in_memory import InMemoryCounterStore
from route_limiter.adapters.counter_store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "CounterSnapshot",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "build_counter_store",
]
