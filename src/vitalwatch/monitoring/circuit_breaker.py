"""Circuit breaker for calls to a remote dependency.

States:
- closed: normal operation, consecutive failures are counted
- open: calls are rejected without being attempted until reset_timeout elapses
- half-open: one trial call at a time; success_threshold consecutive
  successes close the circuit, any failure opens it again
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from vitalwatch.core.clock import DEFAULT_CLOCK
from vitalwatch.core.errors import CircuitOpenError
from vitalwatch.core.models import CircuitState
from vitalwatch.core.ports import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Consecutive half-open successes that close it.
        timeout: Seconds a single call may take before it counts as failed.
        reset_timeout: Seconds the circuit stays open before a trial call.
    """

    failure_threshold: int = 5
    success_threshold: int = 3
    timeout: float = 10.0
    reset_timeout: float = 60.0


@dataclass(frozen=True)
class CircuitBreakerMetrics:
    state: CircuitState
    total_calls: int
    successful_calls: int
    failed_calls: int
    rejected_calls: int
    consecutive_failures: int
    consecutive_successes: int
    last_failure_time: float | None


class CircuitBreaker:
    """
    Async circuit breaker with a per-call timeout.

    Usage:
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3))
        result = await breaker.call(lambda: client.post(url, body))
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
        name: str = "remote-logging",
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._clock = clock or DEFAULT_CLOCK

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._next_attempt_time = 0.0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False

        self._total_calls = 0
        self._successful_calls = 0
        self._failed_calls = 0
        self._rejected_calls = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    def _transition(self, state: CircuitState) -> None:
        if state is self._state:
            return
        log = logger.warning if state is CircuitState.OPEN else logger.info
        log("Circuit %s: %s -> %s", self.name, self._state.value, state.value)
        self._state = state

    def _admit(self) -> bool:
        """Raise CircuitOpenError unless a call may proceed now.

        Returns:
            True when the admitted call is the half-open trial.
        """
        if self._state is CircuitState.OPEN:
            if self._clock.now() < self._next_attempt_time:
                self._rejected_calls += 1
                raise CircuitOpenError()
            self._transition(CircuitState.HALF_OPEN)
            self._consecutive_successes = 0

        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                self._rejected_calls += 1
                raise CircuitOpenError(
                    "Circuit breaker is half-open, trial call in progress"
                )
            self._trial_in_flight = True
            return True
        return False

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Invoke fn through the breaker.

        Args:
            fn: Zero-argument callable returning an awaitable.

        Returns:
            Whatever fn's awaitable returns.

        Raises:
            CircuitOpenError: If the circuit rejects the call; fn is not invoked.
            TimeoutError: If fn takes longer than config.timeout.
            Exception: Whatever fn raises, after recording the failure.
        """
        is_trial = self._admit()
        self._total_calls += 1
        try:
            result = await asyncio.wait_for(fn(), timeout=self.config.timeout)
        except Exception:
            self._on_failure()
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False
        self._on_success()
        return result

    def _on_success(self) -> None:
        self._successful_calls += 1
        if self._state is CircuitState.HALF_OPEN:
            self._consecutive_successes += 1
            if self._consecutive_successes >= self.config.success_threshold:
                self._transition(CircuitState.CLOSED)
                self._consecutive_failures = 0
                self._consecutive_successes = 0
        else:
            self._consecutive_failures = 0

    def _on_failure(self) -> None:
        now = self._clock.now()
        self._failed_calls += 1
        self._consecutive_failures += 1
        self._consecutive_successes = 0
        self._last_failure_time = now
        if (
            self._state is CircuitState.HALF_OPEN
            or self._consecutive_failures >= self.config.failure_threshold
        ):
            self._transition(CircuitState.OPEN)
            self._next_attempt_time = now + self.config.reset_timeout

    def get_metrics(self) -> CircuitBreakerMetrics:
        return CircuitBreakerMetrics(
            state=self._state,
            total_calls=self._total_calls,
            successful_calls=self._successful_calls,
            failed_calls=self._failed_calls,
            rejected_calls=self._rejected_calls,
            consecutive_failures=self._consecutive_failures,
            consecutive_successes=self._consecutive_successes,
            last_failure_time=self._last_failure_time,
        )
