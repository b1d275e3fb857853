"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- The clock is injectable so tests can move time deterministically.
- Expired records are swept every `sweep_interval` increments, so keys that
  are never seen again (per-client keys) do not accumulate.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from route_limiter.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot


@dataclass
class _CounterRecord:
    count: int
    expires_at_ms: int


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping records in a process-local dict.

    Mirrors the Redis semantics the limiter relies on: a record expires
    ``window_ms`` after it was created, and increments never extend it.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval: int = 1000,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_interval: Increments between two sweeps of expired records.

        Raises:
            ValueError: If sweep_interval is not positive.
        """
        if sweep_interval < 1:
            raise ValueError("sweep_interval must be >= 1")

        self._clock = clock
        self._sweep_interval = sweep_interval
        self._increments_since_sweep = 0
        self._lock = threading.RLock()
        self._records: dict[str, _CounterRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def connected(self) -> bool:
        return True

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _live_record(self, key: str, now_ms: int) -> _CounterRecord | None:
        """Return the record for key, dropping it if it has expired."""
        record = self._records.get(key)
        if record is not None and now_ms >= record.expires_at_ms:
            del self._records[key]
            return None
        return record

    def _sweep(self, now_ms: int) -> None:
        """Drop every expired record. Caller holds the lock."""
        expired = [k for k, r in self._records.items() if now_ms >= r.expires_at_ms]
        for key in expired:
            del self._records[key]
        self._increments_since_sweep = 0

    async def get(self, key: str) -> CounterSnapshot | None:
        if not key:
            raise ValueError("key must be a non-empty string")

        now_ms = self._now_ms()
        with self._lock:
            record = self._live_record(key, now_ms)
            if record is None:
                return None
            return CounterSnapshot(
                count=record.count,
                ttl_ms=record.expires_at_ms - now_ms,
            )

    async def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        """Increment the counter for key, starting a new window when needed.

        Raises:
            ValueError: If key is empty or window_ms is not positive.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        now_ms = self._now_ms()
        with self._lock:
            self._increments_since_sweep += 1
            if self._increments_since_sweep >= self._sweep_interval:
                self._sweep(now_ms)
            record = self._live_record(key, now_ms)
            if record is None:
                record = _CounterRecord(count=0, expires_at_ms=now_ms + window_ms)
                self._records[key] = record
            record.count += 1
            return CounterSnapshot(
                count=record.count,
                ttl_ms=record.expires_at_ms - now_ms,
            )

    def clear(self) -> None:
        """Remove all records."""

        with self._lock:
            self._records.clear()
