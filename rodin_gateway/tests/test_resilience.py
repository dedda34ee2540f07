"""
Tests for the shared retry helper and circuit breaker.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitBreakerState
from shared.errors import NotFoundError, UpstreamError
from shared.retry import RetryConfig, RetryError, call_with_retry


NO_DELAY = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


class TestCallWithRetry:
    """Test cases for call_with_retry()."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        func = AsyncMock(return_value="ok")

        assert await call_with_retry(func, config=NO_DELAY) == "ok"
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_attempts(self):
        func = AsyncMock(side_effect=UpstreamError("down"))

        with pytest.raises(RetryError) as exc_info:
            await call_with_retry(func, config=NO_DELAY, name="fetch")

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, UpstreamError)
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_give_up_on_is_reraised_immediately(self):
        func = AsyncMock(side_effect=NotFoundError("unknown"))

        with pytest.raises(NotFoundError):
            await call_with_retry(func, config=NO_DELAY, give_up_on=(NotFoundError,))

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_unlisted_exception_propagates(self):
        func = AsyncMock(side_effect=KeyError("x"))

        with pytest.raises(KeyError):
            await call_with_retry(func, config=NO_DELAY, exceptions=(UpstreamError,))

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_attempt(self):
        calls = []

        async def slow():
            calls.append(1)
            await asyncio.sleep(1)

        with pytest.raises(RetryError) as exc_info:
            await call_with_retry(slow, config=RetryConfig(max_attempts=2, base_delay=0), timeout=0.01)

        assert isinstance(exc_info.value.last_exception, asyncio.TimeoutError)
        assert len(calls) == 2

    def test_max_attempts_is_at_least_one(self):
        assert RetryConfig(max_attempts=0).max_attempts == 1


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=2, recovery_timeout=10, name="rodin_api", clock=clock)

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        failing = AsyncMock(side_effect=UpstreamError("down"))

        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_half_open_then_closed(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        clock.now = 10
        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"

        state = breaker.get_state()
        assert state["state"] == CircuitBreakerState.CLOSED.value
        assert state["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_failure_in_half_open_reopens(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        clock.now = 10
        with pytest.raises(UpstreamError):
            await breaker.call(failing)

        assert breaker.is_open()

    @pytest.mark.asyncio
    async def test_caller_errors_are_not_counted(self, breaker):
        missing = AsyncMock(side_effect=NotFoundError("unknown"))

        for _ in range(5):
            with pytest.raises(NotFoundError):
                await breaker.call(missing)

        assert not breaker.is_open()
        assert breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_timed_out_calls_open_the_breaker(self, breaker):
        async def hang():
            await asyncio.sleep(10)

        for _ in range(2):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(breaker.call(hang), timeout=0.01)

        assert breaker.is_open()
        assert breaker.get_state()["failure_count"] == 2

    @pytest.mark.asyncio
    async def test_retry_timeouts_reach_the_breaker(self, breaker):
        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(RetryError):
            await call_with_retry(
                lambda: breaker.call(hang),
                config=RetryConfig(max_attempts=3, base_delay=0),
                timeout=0.01,
            )

        assert breaker.is_open()

    def test_open_error_maps_to_bad_gateway(self):
        error = CircuitBreakerOpenError("rodin_api")

        assert isinstance(error, UpstreamError)
        assert error.status_code == 502
        assert error.details == {"circuit_breaker": "rodin_api"}
