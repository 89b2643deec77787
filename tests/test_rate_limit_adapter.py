"""Unit tests for the fixed-window rate limiter."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from civicsync.adapters.counter_store.base import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    AbstractCounterStore,
    CounterStoreError,
)
from civicsync.adapters.counter_store.in_memory import InMemoryCounterStore
from civicsync.adapters.rate_limit.fixed_window import FixedWindowRateLimiter, build_counter_key
from civicsync.core.errors import RateLimiterUnavailableError

DAY = 86_400


def _failing_store(**overrides) -> AsyncMock:
    store = AsyncMock(spec=AbstractCounterStore)
    store.incr.return_value = 1
    store.expire.return_value = True
    store.ttl.return_value = 60
    for name, value in overrides.items():
        setattr(store, name, value)
    return store


async def _admit(limiter, principal="p1", *, namespace="issue_limit", limit=2, window=DAY):
    return await limiter.admit(principal, namespace=namespace, limit=limit, window_seconds=window)


@pytest.mark.asyncio
async def test_allows_up_to_limit_in_same_window(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)

    first = await _admit(limiter, limit=3)
    second = await _admit(limiter, limit=3)
    third = await _admit(limiter, limit=3)

    assert [first.allowed, second.allowed, third.allowed] == [True, True, True]
    assert third.remaining == 0
    assert third.count == 3


@pytest.mark.asyncio
async def test_third_issue_in_first_hour_waits_for_rest_of_day(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)

    assert (await _admit(limiter)).allowed is True
    fake_clock.advance(1800)
    assert (await _admit(limiter)).allowed is True
    fake_clock.advance(1800)

    blocked = await _admit(limiter)

    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == DAY - 3600


@pytest.mark.asyncio
async def test_rejected_requests_still_count(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)

    for _ in range(5):
        await _admit(limiter, limit=1)

    key = build_counter_key("issue_limit", "p1")
    assert await counter_store.incr(key) == 6


@pytest.mark.asyncio
async def test_resets_on_new_window(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)

    assert (await _admit(limiter, limit=1, window=10)).allowed is True
    assert (await _admit(limiter, limit=1, window=10)).allowed is False

    fake_clock.advance(10)

    fresh = await _admit(limiter, limit=1, window=10)
    assert fresh.allowed is True
    assert fresh.count == 1


@pytest.mark.asyncio
async def test_window_starts_at_first_request_not_clock_boundary(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)
    fake_clock.advance(7)

    await _admit(limiter, limit=1, window=10)
    fake_clock.advance(9)
    blocked = await _admit(limiter, limit=1, window=10)

    assert blocked.allowed is False
    assert blocked.retry_after_seconds == 1


@pytest.mark.asyncio
async def test_zero_limit_always_denies(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)

    first = await _admit(limiter, limit=0, window=10)
    assert first.allowed is False
    assert first.retry_after_seconds == 10

    fake_clock.advance(11)
    assert (await _admit(limiter, limit=0, window=10)).allowed is False


@pytest.mark.asyncio
async def test_isolated_by_principal_and_namespace(counter_store, fake_clock) -> None:
    limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)

    assert (await _admit(limiter, "p1", limit=1)).allowed is True
    assert (await _admit(limiter, "p1", limit=1)).allowed is False

    assert (await _admit(limiter, "p2", limit=1)).allowed is True
    assert (await _admit(limiter, "p1", namespace="other", limit=1)).allowed is True


@pytest.mark.asyncio
async def test_concurrent_requests_never_exceed_limit(fake_clock) -> None:
    store = InMemoryCounterStore(clock=fake_clock)
    limiter = FixedWindowRateLimiter(store, clock=fake_clock)

    results = await asyncio.gather(*(_admit(limiter, limit=3) for _ in range(20)))

    assert sum(r.allowed for r in results) == 3
    assert sorted(r.count for r in results) == list(range(1, 21))
    assert all(r.retry_after_seconds and r.retry_after_seconds > 0 for r in results if not r.allowed)


@pytest.mark.asyncio
async def test_expiry_is_set_only_by_first_increment() -> None:
    store = _failing_store()
    limiter = FixedWindowRateLimiter(store)

    await _admit(limiter, limit=5, window=30)
    store.incr.return_value = 2
    await _admit(limiter, limit=5, window=30)

    store.expire.assert_awaited_once_with("issue_limit:p1", 30)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"principal": "", "limit": 1, "window": 60},
        {"namespace": "", "limit": 1, "window": 60},
        {"limit": -1, "window": 60},
        {"limit": 1, "window": 0},
    ],
)
@pytest.mark.asyncio
async def test_invalid_admit_args_skip_the_store(kwargs: dict) -> None:
    store = _failing_store()
    limiter = FixedWindowRateLimiter(store)

    with pytest.raises(ValueError):
        await _admit(limiter, **kwargs)

    store.incr.assert_not_awaited()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"timeout_seconds": 0},
        {"fallback_retry_after_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(InMemoryCounterStore(), **kwargs)


class TestFailClosed:
    """Counter store failures must reject, never allow."""

    @pytest.mark.asyncio
    async def test_incr_failure_raises_unavailable(self) -> None:
        store = _failing_store(incr=AsyncMock(side_effect=CounterStoreError("connection refused")))
        limiter = FixedWindowRateLimiter(store)

        with pytest.raises(RateLimiterUnavailableError) as exc_info:
            await _admit(limiter)

        assert exc_info.value.code == "rate_limiter_unavailable"

    @pytest.mark.asyncio
    async def test_expire_failure_raises_unavailable(self) -> None:
        store = _failing_store(expire=AsyncMock(side_effect=CounterStoreError("timeout")))
        limiter = FixedWindowRateLimiter(store)

        with pytest.raises(RateLimiterUnavailableError):
            await _admit(limiter)

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self) -> None:
        async def hang(key: str) -> int:
            await asyncio.sleep(5)
            return 1

        store = _failing_store(incr=AsyncMock(side_effect=hang))
        limiter = FixedWindowRateLimiter(store, timeout_seconds=0.01)

        with pytest.raises(RateLimiterUnavailableError):
            await _admit(limiter)


class TestRetryAfter:
    """Retry hints on the denial path."""

    @pytest.mark.asyncio
    async def test_ttl_failure_falls_back_to_window(self) -> None:
        store = _failing_store(ttl=AsyncMock(side_effect=CounterStoreError("boom")))
        store.incr.return_value = 3
        limiter = FixedWindowRateLimiter(store)

        blocked = await _admit(limiter, limit=2, window=DAY)

        assert blocked.allowed is False
        assert blocked.retry_after_seconds == DAY

    @pytest.mark.asyncio
    async def test_ttl_failure_uses_configured_fallback(self) -> None:
        store = _failing_store(ttl=AsyncMock(side_effect=CounterStoreError("boom")))
        store.incr.return_value = 3
        limiter = FixedWindowRateLimiter(store, fallback_retry_after_seconds=120)

        blocked = await _admit(limiter, limit=2)

        assert blocked.retry_after_seconds == 120

    @pytest.mark.asyncio
    async def test_key_without_expiry_is_repaired(self, counter_store, fake_clock) -> None:
        key = build_counter_key("issue_limit", "p1")
        # Simulates a worker that died between INCR and EXPIRE.
        await counter_store.incr(key)
        assert await counter_store.ttl(key) == TTL_NO_EXPIRY

        limiter = FixedWindowRateLimiter(counter_store, clock=fake_clock)
        blocked = await _admit(limiter, limit=1, window=60)

        assert blocked.allowed is False
        assert blocked.retry_after_seconds == 60
        assert await counter_store.ttl(key) == 60

        fake_clock.advance(60)
        assert (await _admit(limiter, limit=1, window=60)).allowed is True

    @pytest.mark.asyncio
    async def test_key_expired_before_ttl_lookup_reports_one_second(self) -> None:
        store = _failing_store()
        store.incr.return_value = 5
        store.ttl.return_value = TTL_MISSING
        limiter = FixedWindowRateLimiter(store)

        blocked = await _admit(limiter, limit=2)

        assert blocked.retry_after_seconds == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_is_never_reported(self) -> None:
        store = _failing_store()
        store.incr.return_value = 5
        store.ttl.return_value = 0
        limiter = FixedWindowRateLimiter(store)

        blocked = await _admit(limiter, limit=2)

        assert blocked.retry_after_seconds == 1
