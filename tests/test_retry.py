"""Tests for retry and circuit breaker utilities."""

from __future__ import annotations

import pytest

from whitelabel.retry import (
    BreakerState,
    CircuitBreaker,
    CircuitOpenError,
    RetryExhaustedError,
    async_with_retry,
    backoff_delay,
)


def _counter():
    return {"count": 0}


class TestAsyncWithRetry:
    async def test_succeeds_first_try(self):
        async def ok():
            return 42

        assert await async_with_retry(ok, max_retries=3, base_delay=0.01) == 42

    async def test_succeeds_after_failures(self):
        attempts = _counter()

        async def flaky():
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise ValueError("not yet")
            return "ok"

        result = await async_with_retry(flaky, max_retries=3, base_delay=0.01)
        assert result == "ok"
        assert attempts["count"] == 3

    async def test_exhausted_raises(self):
        async def always_fail():
            raise ValueError("fail")

        with pytest.raises(RetryExhaustedError, match="Failed after 4 attempts") as exc_info:
            await async_with_retry(always_fail, max_retries=3, base_delay=0.01)
        assert isinstance(exc_info.value.__cause__, ValueError)

    async def test_non_retryable_raises_immediately(self):
        attempts = _counter()

        async def fail_type_error():
            attempts["count"] += 1
            raise TypeError("bad type")

        with pytest.raises(TypeError):
            await async_with_retry(
                fail_type_error,
                max_retries=3,
                base_delay=0.01,
                retryable=(ValueError,),
            )
        assert attempts["count"] == 1  # No retries

    async def test_no_jitter(self):
        attempts = _counter()

        async def fail_once():
            attempts["count"] += 1
            if attempts["count"] < 2:
                raise ValueError("retry")
            return "done"

        result = await async_with_retry(fail_once, max_retries=3, base_delay=0.01, jitter=False)
        assert result == "done"

    async def test_zero_retries_calls_once(self):
        attempts = _counter()

        async def fail():
            attempts["count"] += 1
            raise ValueError("fail")

        with pytest.raises(RetryExhaustedError):
            await async_with_retry(fail, max_retries=0, base_delay=0.01)
        assert attempts["count"] == 1


async def _boom():
    raise ValueError("fail")


async def _value():
    return 42


class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker(name="test")
        assert cb.is_open is False

    async def test_stays_closed_on_success(self):
        cb = CircuitBreaker(name="test")
        assert await cb.call(_value) == 42
        assert cb.is_open is False

    async def test_trips_after_threshold(self):
        cb = CircuitBreaker(name="test", failure_threshold=3)

        for _ in range(3):
            with pytest.raises(ValueError):
                await cb.call(_boom)

        assert cb.is_open is True

    async def test_open_circuit_raises(self):
        cb = CircuitBreaker(name="test", failure_threshold=1)
        with pytest.raises(ValueError):
            await cb.call(_boom)

        assert cb.is_open is True
        with pytest.raises(CircuitOpenError):
            await cb.call(_value)

    async def test_success_resets_failure_count(self):
        cb = CircuitBreaker(name="test", failure_threshold=3)

        for _ in range(2):
            with pytest.raises(ValueError):
                await cb.call(_boom)

        await cb.call(_value)
        assert cb.is_open is False

        for _ in range(2):
            with pytest.raises(ValueError):
                await cb.call(_boom)

        assert cb.is_open is False  # Still only 2 after reset

    async def test_auto_reset_after_timeout(self):
        cb = CircuitBreaker(name="test", failure_threshold=1, reset_timeout=0.0)

        with pytest.raises(ValueError):
            await cb.call(_boom)

        assert cb._state is BreakerState.OPEN
        # With reset_timeout=0 the next check goes half-open
        assert cb.is_open is False
        assert cb.state is BreakerState.HALF_OPEN

    async def test_half_open_failure_reopens_immediately(self):
        cb = CircuitBreaker(name="test", failure_threshold=3, reset_timeout=0.0)
        for _ in range(3):
            with pytest.raises(ValueError):
                await cb.call(_boom)

        assert cb.state is BreakerState.HALF_OPEN
        with pytest.raises(ValueError):
            await cb.call(_boom)
        assert cb._state is BreakerState.OPEN

    async def test_half_open_success_closes(self):
        cb = CircuitBreaker(name="test", failure_threshold=1, reset_timeout=0.0)
        with pytest.raises(ValueError):
            await cb.call(_boom)

        assert await cb.call(_value) == 42
        assert cb.state is BreakerState.CLOSED


class TestBackoffDelay:
    def test_doubles_without_jitter(self):
        delays = [backoff_delay(n, 0.5, 60.0, jitter=False) for n in range(4)]
        assert delays == [0.5, 1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self):
        assert backoff_delay(10, 1.0, 5.0, jitter=False) == 5.0

    def test_jitter_stays_in_range(self):
        for _ in range(50):
            assert 0.5 <= backoff_delay(0, 1.0, 60.0) < 1.5
