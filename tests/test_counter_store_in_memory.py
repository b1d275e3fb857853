"""Unit tests for the in-memory counter store."""

from unittest.mock import Mock

import pytest

from route_limiter.adapters.counter_store.in_memory import InMemoryCounterStore


@pytest.mark.asyncio
async def test_first_increment_starts_window_with_full_ttl() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    snapshot = await store.increment("k", window_ms=60_000)

    assert snapshot.count == 1
    assert snapshot.ttl_ms == 60_000


@pytest.mark.asyncio
async def test_increments_keep_original_expiry() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    await store.increment("k", window_ms=60_000)
    clock.return_value = 1010.0
    snapshot = await store.increment("k", window_ms=60_000)

    assert snapshot.count == 2
    assert snapshot.ttl_ms == 50_000


@pytest.mark.asyncio
async def test_expired_record_restarts_at_one() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    await store.increment("k", window_ms=10_000)
    await store.increment("k", window_ms=10_000)

    clock.return_value = 1010.0
    snapshot = await store.increment("k", window_ms=10_000)

    assert snapshot.count == 1
    assert snapshot.ttl_ms == 10_000


@pytest.mark.asyncio
async def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    await store.increment("k1", window_ms=60_000)
    await store.increment("k1", window_ms=60_000)

    assert (await store.increment("k2", window_ms=60_000)).count == 1


@pytest.mark.asyncio
async def test_get_reads_without_incrementing() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    assert await store.get("k") is None

    await store.increment("k", window_ms=60_000)
    clock.return_value = 1030.0
    snapshot = await store.get("k")

    assert snapshot is not None
    assert snapshot.count == 1
    assert snapshot.ttl_ms == 30_000
    assert (await store.get("k")).count == 1

    clock.return_value = 1060.0
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_clear_drops_all_records() -> None:
    store = InMemoryCounterStore()
    await store.increment("k", window_ms=60_000)

    store.clear()

    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_always_connected() -> None:
    store = InMemoryCounterStore()

    assert store.connected is True
    assert await store.is_available() is True
    assert await store.connect() is True


@pytest.mark.asyncio
async def test_invalid_arguments() -> None:
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        await store.increment("", window_ms=1000)

    with pytest.raises(ValueError):
        await store.increment("k", window_ms=0)

    with pytest.raises(ValueError):
        await store.get("")


@pytest.mark.asyncio
async def test_expired_keys_never_seen_again_are_swept() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock, sweep_interval=3)
    await store.increment("client-a", window_ms=1_000)
    await store.increment("client-b", window_ms=1_000)
    assert len(store) == 2

    clock.return_value = 1002.0
    await store.increment("client-c", window_ms=1_000)

    assert len(store) == 1
    assert await store.get("client-c") is not None


@pytest.mark.asyncio
async def test_sweep_keeps_live_records() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock, sweep_interval=2)

    await store.increment("k", window_ms=60_000)
    await store.increment("other", window_ms=60_000)
    snapshot = await store.increment("k", window_ms=60_000)

    assert len(store) == 2
    assert snapshot.count == 2


def test_sweep_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        InMemoryCounterStore(sweep_interval=0)
