"""Backoff retries and a circuit breaker for provider calls."""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

import structlog

from whitelabel.metrics import (
    circuit_breaker_state,
    retry_attempts_total,
    retry_exhausted_total,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """All retry attempts failed."""


class CircuitOpenError(Exception):
    """Calls are being refused until the breaker's reset timeout passes."""


def backoff_delay(
    attempt: int, base_delay: float, max_delay: float, jitter: bool = True
) -> float:
    """Delay before retry number *attempt* (0-based), capped at *max_delay*.

    Jitter scales the capped delay by a factor in [0.5, 1.5).
    """
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


async def async_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True,
    retryable: tuple[type[Exception], ...] = (Exception,),
    name: str = "",
) -> T:
    """Await *fn*, retrying *retryable* errors up to *max_retries* times.

    Other exceptions propagate on the first occurrence. When every attempt
    fails, RetryExhaustedError is raised from the last error.
    """
    label = name or getattr(fn, "__name__", "fn")
    attempt = 0
    while True:
        try:
            return await fn()
        except retryable as exc:
            if attempt >= max_retries:
                retry_exhausted_total.labels(fn_name=label).inc()
                raise RetryExhaustedError(f"Failed after {attempt + 1} attempts") from exc
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            attempt += 1
            retry_attempts_total.labels(fn_name=label).inc()
            logger.warning(
                "Retrying provider call",
                fn=label,
                attempt=attempt,
                max_retries=max_retries,
                delay_s=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_GAUGE_VALUES = {BreakerState.CLOSED: 0, BreakerState.OPEN: 1, BreakerState.HALF_OPEN: 2}


@dataclass
class CircuitBreaker:
    """Refuses calls to a provider after repeated consecutive failures.

    The breaker opens after *failure_threshold* failures in a row. Once
    *reset_timeout* seconds have passed it goes half-open: the next call is
    let through, and its outcome either closes the breaker or re-opens it.
    """

    name: str
    failure_threshold: int = 5
    reset_timeout: float = 60.0

    _state: BreakerState = field(default=BreakerState.CLOSED, init=False, repr=False)
    _failures: int = field(default=0, init=False, repr=False)
    _opened_at: float = field(default=0.0, init=False, repr=False)

    @property
    def state(self) -> BreakerState:
        if (
            self._state is BreakerState.OPEN
            and time.monotonic() - self._opened_at >= self.reset_timeout
        ):
            logger.info("Circuit breaker half-open", breaker=self.name)
            self._set_state(BreakerState.HALF_OPEN)
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    def _set_state(self, state: BreakerState) -> None:
        self._state = state
        circuit_breaker_state.labels(name=self.name).set(_GAUGE_VALUES[state])

    def record_success(self) -> None:
        self._failures = 0
        if self._state is not BreakerState.CLOSED:
            logger.info("Circuit breaker closed", breaker=self.name)
        self._set_state(BreakerState.CLOSED)

    def record_failure(self) -> None:
        self._failures += 1
        if self._state is BreakerState.HALF_OPEN or self._failures >= self.failure_threshold:
            logger.warning("Circuit breaker opened", breaker=self.name, failures=self._failures)
            self._opened_at = time.monotonic()
            self._set_state(BreakerState.OPEN)

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await *fn* unless the breaker is open."""
        if self.is_open:
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is open")
        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result
