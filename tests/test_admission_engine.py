"""Unit tests for the fixed-window admission engine."""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeClock
from route_limiter.adapters.counter_store.base import CounterSnapshot
from route_limiter.adapters.counter_store.in_memory import InMemoryCounterStore
from route_limiter.core.errors import StoreAppError
from route_limiter.limiter.engine import AdmissionEngine

HOUR_MS = 60 * 60 * 1000


def _engine(clock: FakeClock) -> AdmissionEngine:
    return AdmissionEngine(InMemoryCounterStore(clock=clock.time), clock=clock.time)


@pytest.mark.asyncio
async def test_remaining_decreases_until_quota_is_spent(clock: FakeClock) -> None:
    engine = _engine(clock)

    decisions = [await engine.evaluate("k", 10, HOUR_MS) for _ in range(10)]

    assert [d.remaining for d in decisions] == [9, 8, 7, 6, 5, 4, 3, 2, 1, 0]
    assert all(d.allowed for d in decisions)
    assert all(d.limit == 10 for d in decisions)
    assert all(d.retry_after_seconds is None for d in decisions)


@pytest.mark.asyncio
async def test_request_over_quota_is_rejected(clock: FakeClock) -> None:
    engine = _engine(clock)
    for _ in range(10):
        await engine.evaluate("k", 10, HOUR_MS)

    decision = await engine.evaluate("k", 10, HOUR_MS)

    assert decision.allowed is False
    assert decision.remaining == 0
    assert decision.reset_at == 3600
    assert decision.retry_after_seconds == 3600


@pytest.mark.asyncio
async def test_reset_is_constant_within_window(clock: FakeClock) -> None:
    engine = _engine(clock)

    resets = set()
    for _ in range(5):
        resets.add((await engine.evaluate("k", 10, HOUR_MS)).reset_at)
        clock.advance(12.345)

    assert resets == {3600}


@pytest.mark.asyncio
async def test_new_window_after_expiry(clock: FakeClock) -> None:
    engine = _engine(clock)
    for _ in range(11):
        await engine.evaluate("k", 10, HOUR_MS)

    clock.advance(3600.001)
    decision = await engine.evaluate("k", 10, HOUR_MS)

    assert decision.allowed is True
    assert decision.remaining == 9
    assert decision.reset_at == 7201


@pytest.mark.asyncio
async def test_reset_rounds_up_to_next_second() -> None:
    clock = FakeClock(start=1_700_000_000.25)
    engine = _engine(clock)

    decision = await engine.evaluate("k", 5, 1_500)

    assert decision.reset_at == 1_700_000_002


@pytest.mark.asyncio
async def test_zero_total_denies_every_request(clock: FakeClock) -> None:
    engine = _engine(clock)

    for _ in range(3):
        decision = await engine.evaluate("k", 0, HOUR_MS)
        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.retry_after_seconds > 0


@pytest.mark.asyncio
async def test_single_store_call_and_no_retry(clock: FakeClock) -> None:
    store = AsyncMock()
    store.increment.side_effect = StoreAppError(code="store_error", message="boom")
    engine = AdmissionEngine(store, clock=clock.time)

    with pytest.raises(StoreAppError):
        await engine.evaluate("k", 10, HOUR_MS)

    store.increment.assert_awaited_once_with("k", window_ms=HOUR_MS)


@pytest.mark.asyncio
async def test_retry_after_is_at_least_one_second(clock: FakeClock) -> None:
    store = AsyncMock()
    store.increment.return_value = CounterSnapshot(count=3, ttl_ms=20)
    engine = AdmissionEngine(store, clock=clock.time)

    decision = await engine.evaluate("k", 2, HOUR_MS)

    assert decision.allowed is False
    assert decision.retry_after_seconds == 1


class TestPeek:
    """Read-only quota inspection."""

    @pytest.mark.asyncio
    async def test_peek_on_fresh_key_reports_full_quota(self, clock: FakeClock) -> None:
        engine = _engine(clock)

        decision = await engine.peek("k", 3, HOUR_MS)

        assert decision.allowed is True
        assert decision.remaining == 3
        assert decision.reset_at == 3600

    @pytest.mark.asyncio
    async def test_peek_does_not_consume(self, clock: FakeClock) -> None:
        engine = _engine(clock)
        await engine.evaluate("k", 3, HOUR_MS)

        first = await engine.peek("k", 3, HOUR_MS)
        second = await engine.peek("k", 3, HOUR_MS)

        assert first == second
        assert first.remaining == 2

    @pytest.mark.asyncio
    async def test_peek_on_spent_quota_reports_next_request_rejected(self, clock: FakeClock) -> None:
        engine = _engine(clock)
        for _ in range(3):
            await engine.evaluate("k", 3, HOUR_MS)

        decision = await engine.peek("k", 3, HOUR_MS)

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.retry_after_seconds == 3600
