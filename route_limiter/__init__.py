"""Per-route fixed-window rate limiting backed by a shared counter store."""

from __future__ import annotations

from route_limiter.adapters.counter_store import (
    AbstractCounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
)
from route_limiter.core.errors import ConfigurationAppError, StoreAppError, StoreUnavailableError
from route_limiter.limiter import AdmissionDecision, RateLimiter

__all__ = [
    "AbstractCounterStore",
    "AdmissionDecision",
    "ConfigurationAppError",
    "InMemoryCounterStore",
    "RateLimiter",
    "RedisCounterStore",
    "StoreAppError",
    "StoreUnavailableError",
]
