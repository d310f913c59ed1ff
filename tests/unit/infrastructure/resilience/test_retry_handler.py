import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from graphguard.domain.exceptions import (
    CircuitOpenError, GraphNotFoundError, GraphTransportError, ServiceUnavailableError, ThrottledError,
)
from graphguard.domain.events.api_events import RetryScheduled
from graphguard.infrastructure.monitoring.event_dispatcher import EventDispatcher, EventRecorder
from graphguard.infrastructure.resilience.retry_handler import RetryHandler


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def handler(clock, recorder):
    dispatcher = EventDispatcher()
    dispatcher.subscribe(recorder)
    return RetryHandler(max_retries=3, initial_delay=1.0, factor=2.0, max_delay=30.0,
                        dispatcher=dispatcher, sleep=clock.sleep)


def test_returns_first_success_without_sleeping(handler, clock):
    func = AsyncMock(return_value="ok")
    assert asyncio.run(handler.execute(func, 1, key="v")) == "ok"
    func.assert_awaited_once_with(1, key="v")
    assert clock.sleeps == []


def test_recovers_after_transient_failures(handler, clock):
    func = AsyncMock(side_effect=[ServiceUnavailableError("busy", status_code=503), GraphTransportError("reset"), "ok"])
    assert asyncio.run(handler.execute(func)) == "ok"
    assert func.await_count == 3
    assert clock.sleeps == [1.0, 2.0]


def test_exhausts_retries_and_reraises_last_exception(handler, clock, recorder):
    errors = [ServiceUnavailableError(f"busy {i}", status_code=503) for i in range(4)]
    func = AsyncMock(side_effect=errors)
    with pytest.raises(ServiceUnavailableError) as exc_info:
        asyncio.run(handler.execute(func, endpoint_name="list_users"))
    assert exc_info.value is errors[-1]
    assert func.await_count == 4  # first attempt + 3 retries
    assert clock.sleeps == [1.0, 2.0, 4.0]
    scheduled = recorder.of_type(RetryScheduled)
    assert [e.attempt_number for e in scheduled] == [1, 2, 3]
    assert all(e.endpoint == "list_users" for e in scheduled)


@pytest.mark.parametrize("error", [
    GraphNotFoundError("missing", status_code=404),
    CircuitOpenError("graph", 5.0),
    ValueError("bad input"),
    RuntimeError("unexpected"),
])
def test_non_retryable_errors_propagate_immediately(handler, clock, error):
    func = AsyncMock(side_effect=error)
    with pytest.raises(type(error)):
        asyncio.run(handler.execute(func))
    func.assert_awaited_once()
    assert clock.sleeps == []


def test_retry_after_overrides_backoff(handler, clock):
    func = AsyncMock(side_effect=[ThrottledError("slow down", retry_after=7.0, status_code=429), "ok"])
    asyncio.run(handler.execute(func))
    assert clock.sleeps == [7.0]


def test_delay_is_capped(clock):
    handler = RetryHandler(max_retries=6, initial_delay=1.0, factor=10.0, max_delay=5.0, sleep=clock.sleep)
    assert [handler.compute_delay(a) for a in range(3)] == [1.0, 5.0, 5.0]
    assert handler.compute_delay(0, ThrottledError("x", retry_after=120.0)) == 5.0


def test_zero_retries_means_single_attempt(clock):
    handler = RetryHandler(max_retries=0, sleep=clock.sleep)
    func = AsyncMock(side_effect=ThrottledError("x", status_code=429))
    with pytest.raises(ThrottledError):
        asyncio.run(handler.execute(func))
    func.assert_awaited_once()


def test_from_policy():
    handler = RetryHandler.from_policy({'max_retries': 2, 'initial_delay': 0.5, 'factor': 3.0, 'max_delay': 9.0})
    assert (handler.max_retries, handler.initial_delay, handler.factor, handler.max_delay) == (2, 0.5, 3.0, 9.0)


def test_broken_event_subscriber_does_not_break_retries(clock):
    dispatcher = EventDispatcher()
    dispatcher.subscribe(MagicMock(side_effect=RuntimeError("subscriber bug")))
    handler = RetryHandler(max_retries=1, initial_delay=1.0, dispatcher=dispatcher, sleep=clock.sleep)
    func = AsyncMock(side_effect=[GraphTransportError("reset"), "ok"])
    assert asyncio.run(handler.execute(func)) == "ok"


@pytest.mark.parametrize("kwargs", [{'max_retries': -1}, {'initial_delay': -1.0}, {'factor': 0.5}])
def test_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        RetryHandler(**kwargs)
