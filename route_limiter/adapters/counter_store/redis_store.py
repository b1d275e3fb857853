"""Redis-backed counter store.

Increments run as a single Lua script so that INCR, the first-request
PEXPIRE and the PTTL read happen atomically on the server. Concurrent
requests for the same key are serialized by Redis, never by this process.

Connectivity:
- ``connect()`` PINGs the server and records the outcome.
- A connection-level failure during a command marks the store disconnected.
- While disconnected, ``is_available()`` re-probes at most once per
  ``reconnect_interval_seconds``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from route_limiter.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from route_limiter.core.errors import StoreAppError, StoreUnavailableError

logger = logging.getLogger(__name__)

# KEYS[1] = counter key, ARGV[1] = window in milliseconds.
# Returns {count, ttl_ms}. A key left without a TTL gets the window re-applied.
INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('PTTL', KEYS[1])
if count == 1 or ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError)


class RedisCounterStore(AbstractCounterStore):
    """Counter store talking to Redis through ``redis.asyncio``."""

    def __init__(
        self,
        client: Redis | None,
        *,
        reconnect_interval_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            client: Async Redis client, or None when no store is configured.
            reconnect_interval_seconds: Minimum delay between PINGs while
                disconnected.
            clock: Monotonic time source used to throttle reconnect probes.
        """
        self._client = client
        self._reconnect_interval = reconnect_interval_seconds
        self._clock = clock
        self._connected = False
        self._last_probe: float | None = None
        self._increment_script = (
            client.register_script(INCREMENT_SCRIPT) if client is not None else None
        )

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCounterStore":
        """Build a store from a Redis URL.

        Args:
            url: Redis connection URL.
            **kwargs: ``socket_timeout``, ``socket_connect_timeout`` are passed
                to the client; ``reconnect_interval_seconds`` to the store.
        """
        reconnect_interval = kwargs.pop("reconnect_interval_seconds", 5.0)
        client = Redis.from_url(url, decode_responses=True, **kwargs)
        return cls(client, reconnect_interval_seconds=reconnect_interval)

    @property
    def connected(self) -> bool:
        return self._client is not None and self._connected

    async def connect(self) -> bool:
        if self._client is None:
            return False

        self._last_probe = self._clock()
        try:
            await self._client.ping()
        except RedisError as exc:
            logger.warning(
                "counter_store.unavailable",
                extra={"store": "redis", "error_type": type(exc).__name__},
            )
            self._connected = False
            return False

        if not self._connected:
            logger.info("counter_store.connected", extra={"store": "redis"})
        self._connected = True
        return True

    async def is_available(self) -> bool:
        if self._client is None:
            return False
        if self._connected:
            return True
        if (
            self._last_probe is not None
            and self._clock() - self._last_probe < self._reconnect_interval
        ):
            return False
        return await self.connect()

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._connected = False

    def _ensure_usable(self) -> Redis:
        if self._client is None:
            raise StoreUnavailableError(
                code="store_not_configured",
                message="No counter store client is configured",
                details={"store": "redis"},
            )
        if not self._connected:
            raise StoreUnavailableError(
                code="store_disconnected",
                message="Counter store client is not connected",
                details={"store": "redis"},
            )
        return self._client

    def _store_error(self, exc: RedisError, key: str) -> StoreAppError:
        if isinstance(exc, _CONNECTION_ERRORS):
            self._connected = False
            self._last_probe = self._clock()
        return StoreAppError(
            code="store_error",
            message="Counter store operation failed",
            details={"store": "redis", "key": key, "error_type": type(exc).__name__},
        )

    async def get(self, key: str) -> CounterSnapshot | None:
        client = self._ensure_usable()
        try:
            value = await client.get(key)
            ttl_ms = await client.pttl(key)
        except RedisError as exc:
            raise self._store_error(exc, key) from exc

        # PTTL is -2 when the key vanished between the two reads
        if value is None or int(ttl_ms) == -2:
            return None
        return CounterSnapshot(count=int(value), ttl_ms=max(0, int(ttl_ms)))

    async def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        self._ensure_usable()
        try:
            count, ttl_ms = await self._increment_script(keys=[key], args=[window_ms])
        except RedisError as exc:
            raise self._store_error(exc, key) from exc

        return CounterSnapshot(count=int(count), ttl_ms=int(ttl_ms))
