import asyncio

import pytest

from graphguard.infrastructure.resilience.rate_limiter import RateLimiter


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_requests=3, time_window=10.0, clock=clock, sleep=clock.sleep)


def test_grants_up_to_limit_without_waiting(limiter, clock):
    waits = [asyncio.run(limiter.acquire()) for _ in range(3)]
    assert waits == [0.0, 0.0, 0.0]
    assert clock.sleeps == []
    assert limiter.snapshot()['in_window'] == 3


def test_blocks_until_oldest_entry_expires(limiter, clock):
    for _ in range(3):
        asyncio.run(limiter.acquire())
        clock.advance(1.0)
    # Calls at t=0,1,2 (relative); now t=3, oldest expires at t=10
    waited = asyncio.run(limiter.acquire())
    assert waited == pytest.approx(7.0)
    assert clock.sleeps == [pytest.approx(7.0)]
    assert limiter.total_deferred == 1
    assert limiter.total_granted == 4


def test_never_more_than_limit_in_any_window(clock):
    limiter = RateLimiter(max_requests=2, time_window=5.0, clock=clock, sleep=clock.sleep)
    granted_at = []

    async def burst():
        for _ in range(7):
            await limiter.acquire()
            granted_at.append(clock())

    asyncio.run(burst())
    for i, start in enumerate(granted_at):
        in_window = [t for t in granted_at[i:] if t - start < 5.0]
        assert len(in_window) <= 2


def test_concurrent_callers_are_serialized(clock):
    limiter = RateLimiter(max_requests=2, time_window=1.0, clock=clock, sleep=clock.sleep)

    async def many():
        return await asyncio.gather(*(limiter.acquire() for _ in range(5)))

    waits = asyncio.run(many())
    assert waits[0] == waits[1] == 0.0
    assert waits[2] == pytest.approx(1.0)
    assert limiter.total_granted == 5


def test_try_acquire_does_not_wait(limiter, clock):
    assert all(asyncio.run(limiter.try_acquire()) for _ in range(3))
    assert asyncio.run(limiter.try_acquire()) is False
    clock.advance(10.0)
    assert asyncio.run(limiter.try_acquire()) is True
    assert clock.sleeps == []


def test_get_wait_time_reports_without_recording(limiter, clock):
    assert asyncio.run(limiter.get_wait_time()) == 0.0
    for _ in range(3):
        asyncio.run(limiter.acquire())
    clock.advance(4.0)
    assert asyncio.run(limiter.get_wait_time()) == pytest.approx(6.0)
    assert limiter.total_granted == 3


def test_reset_clears_state(limiter):
    for _ in range(3):
        asyncio.run(limiter.acquire())
    limiter.reset()
    assert limiter.snapshot()['in_window'] == 0
    assert asyncio.run(limiter.try_acquire()) is True


@pytest.mark.parametrize("max_requests, time_window", [(0, 1.0), (1, 0), (3, -1.0)])
def test_rejects_invalid_configuration(max_requests, time_window):
    with pytest.raises(ValueError):
        RateLimiter(max_requests=max_requests, time_window=time_window)
