"""Counter store interfaces.

The limiter depends on this abstraction (not a concrete client) so the shared
store can be Redis in production and an in-memory fake in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterSnapshot:
    """State of a counter record as returned by the store.

    Attributes:
        count: Requests counted in the current window.
        ttl_ms: Milliseconds left before the record expires.
    """

    count: int
    ttl_ms: int


class AbstractCounterStore(ABC):
    """Interface for shared counter stores with atomic increment and expiry."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Last known connectivity of the underlying client."""
        raise NotImplementedError

    async def is_available(self) -> bool:
        """Return whether the store can currently serve requests."""
        return self.connected

    async def connect(self) -> bool:
        """Establish connectivity. Returns the resulting ``connected`` state."""
        return self.connected

    async def close(self) -> None:
        """Release client resources."""
        return None

    @abstractmethod
    async def get(self, key: str) -> CounterSnapshot | None:
        """Read a counter without incrementing it.

        Args:
            key: Counter key.

        Returns:
            Snapshot of the live record, or None when absent/expired.

        Raises:
            StoreUnavailableError: When the client is absent or disconnected.
            StoreAppError: When the read itself fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        """Atomically increment the counter for ``key``.

        A missing or expired record is (re)created with count 1 and a TTL of
        ``window_ms``; an existing record keeps its TTL.

        Args:
            key: Counter key.
            window_ms: Window duration applied when a new record is created.

        Returns:
            Snapshot with the new count and the time left in the window.

        Raises:
            StoreUnavailableError: When the client is absent or disconnected.
            StoreAppError: When the increment itself fails.
        """
        raise NotImplementedError
