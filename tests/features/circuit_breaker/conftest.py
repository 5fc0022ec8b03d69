"""BDD step definitions for circuit breaker features."""

import pytest
from pytest_bdd import given, parsers, then, when
from tests.features.circuit_breaker.steps_helpers import (
    BreakerScenarioContext,
    call_failing,
    run_async,
)

from vitalwatch.core.errors import CircuitOpenError
from vitalwatch.core.models import CircuitState
from vitalwatch.monitoring.circuit_breaker import CircuitBreaker, CircuitBreakerConfig


@pytest.fixture
def ctx() -> BreakerScenarioContext:
    """Fresh scenario context for each test."""
    return BreakerScenarioContext()


def _breaker(ctx: BreakerScenarioContext) -> CircuitBreaker:
    assert ctx.breaker is not None, "no circuit breaker configured"
    return ctx.breaker


# === Given ===
@given(
    parsers.parse(
        "a circuit breaker with failure threshold {threshold:d} "
        "and reset timeout {reset:d} seconds"
    )
)
def given_breaker(ctx: BreakerScenarioContext, threshold: int, reset: int) -> None:
    ctx.breaker = CircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=threshold,
            success_threshold=2,
            timeout=5,
            reset_timeout=reset,
        ),
        clock=ctx.clock,
    )


@given("the circuit has been opened")
def given_open_circuit(ctx: BreakerScenarioContext) -> None:
    breaker = _breaker(ctx)

    async def trip() -> None:
        for _ in range(breaker.config.failure_threshold):
            await call_failing(breaker, ctx.endpoint)

    run_async(trip())
    assert breaker.state is CircuitState.OPEN


# === When ===
@when(
    parsers.re(r"(?P<count>\d+) calls? fails?"),
    converters={"count": int},
)
def when_calls_fail(ctx: BreakerScenarioContext, count: int) -> None:
    breaker = _breaker(ctx)

    async def fail_calls() -> None:
        for _ in range(count):
            await call_failing(breaker, ctx.endpoint)

    run_async(fail_calls())


@when(
    parsers.re(r"(?P<count>\d+) calls? succeeds?"),
    converters={"count": int},
)
def when_calls_succeed(ctx: BreakerScenarioContext, count: int) -> None:
    breaker = _breaker(ctx)

    async def succeed_calls() -> None:
        for _ in range(count):
            assert await breaker.call(ctx.endpoint.succeed) == "ok"

    run_async(succeed_calls())


@when(parsers.parse("{seconds:d} seconds pass"))
def when_time_passes(ctx: BreakerScenarioContext, seconds: int) -> None:
    ctx.clock.advance(seconds)


# === Then ===
@then("the circuit is open")
def then_open(ctx: BreakerScenarioContext) -> None:
    assert _breaker(ctx).state is CircuitState.OPEN


@then("the circuit is closed")
def then_closed(ctx: BreakerScenarioContext) -> None:
    assert _breaker(ctx).state is CircuitState.CLOSED


@then("the next call is rejected without reaching the endpoint")
def then_rejected(ctx: BreakerScenarioContext) -> None:
    calls_before = ctx.endpoint.calls
    with pytest.raises(CircuitOpenError):
        run_async(_breaker(ctx).call(ctx.endpoint.succeed))
    assert ctx.endpoint.calls == calls_before


@then(
    parsers.parse(
        "the breaker reports {failed:d} failed and {rejected:d} rejected calls"
    )
)
def then_metrics(ctx: BreakerScenarioContext, failed: int, rejected: int) -> None:
    metrics = _breaker(ctx).get_metrics()
    assert metrics.failed_calls == failed
    assert metrics.rejected_calls == rejected
