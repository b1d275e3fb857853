"""Fixed-window admission decisions against a shared counter store."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from typing import Callable

from route_limiter.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of evaluating one request against its window.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (never negative).
        reset_at: UNIX epoch seconds, rounded up, when the window resets.
        retry_after_seconds: Seconds to wait before retrying when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AdmissionEngine:
    """Count a request in its window and decide whether it is admitted.

    The engine performs exactly one store round trip per evaluation and never
    retries; store failures propagate to the caller. Zero-quota routes are not
    special-cased: the first increment already exceeds ``total``.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Shared counter store.
            clock: Time source function returning UNIX time in seconds.
        """
        self._store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _decide(self, snapshot: CounterSnapshot, total: int, now_ms: int) -> AdmissionDecision:
        allowed = snapshot.count <= total
        reset_at = math.ceil((now_ms + snapshot.ttl_ms) / 1000)
        retry_after = None if allowed else max(1, math.ceil(snapshot.ttl_ms / 1000))
        return AdmissionDecision(
            allowed=allowed,
            limit=total,
            remaining=max(0, total - snapshot.count),
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    async def evaluate(self, key: str, total: int, window_ms: int) -> AdmissionDecision:
        """Increment the counter for key and build the decision.

        Args:
            key: Counter key for the route.
            total: Requests allowed per window.
            window_ms: Window duration in milliseconds.

        Returns:
            AdmissionDecision reflecting the post-increment count.

        Raises:
            StoreUnavailableError: If the store is absent or disconnected.
            StoreAppError: If the increment fails.
        """
        snapshot = await self._store.increment(key, window_ms=window_ms)
        return self._decide(snapshot, total, self._now_ms())

    async def peek(self, key: str, total: int, window_ms: int) -> AdmissionDecision:
        """Describe the current window without consuming quota.

        ``allowed`` tells whether the next request would be admitted. A key
        with no live record reports the full quota and a reset one window from
        now.
        """
        snapshot = await self._store.get(key)
        if snapshot is None:
            snapshot = CounterSnapshot(count=0, ttl_ms=window_ms)
        decision = self._decide(snapshot, total, self._now_ms())
        if snapshot.count < total:
            return decision
        return replace(
            decision,
            allowed=False,
            retry_after_seconds=max(1, math.ceil(snapshot.ttl_ms / 1000)),
        )
