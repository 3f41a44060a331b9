from __future__ import annotations

import asyncio

import pytest

from spendwatch.errors import CircuitOpenError, ConfigError, RetryableTransportError
from spendwatch.resilience.circuit_breaker import (
    Admission,
    BreakerPhase,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    admit,
    record_failure,
    record_success,
)


async def _ok():
    return "ok"


async def _boom():
    raise RetryableTransportError("down")


def test_admit_closed_is_always_admitted() -> None:
    config = CircuitBreakerConfig()
    state = CircuitBreakerState()
    assert admit(state, config, now=0.0) == (state, Admission.ADMITTED)


def test_failures_open_at_threshold() -> None:
    config = CircuitBreakerConfig(failure_threshold=3)
    state = CircuitBreakerState()

    state = record_failure(state, config, now=1.0)
    state = record_failure(state, config, now=2.0)
    assert state.phase is BreakerPhase.CLOSED
    assert state.consecutive_failures == 2

    state = record_failure(state, config, now=3.0)
    assert state.phase is BreakerPhase.OPEN
    assert state.last_failure_time == 3.0


def test_success_resets_failure_count() -> None:
    config = CircuitBreakerConfig(failure_threshold=3)
    state = record_failure(CircuitBreakerState(), config, now=1.0)
    state = record_success(state)
    assert state == CircuitBreakerState(last_failure_time=1.0)


def test_open_rejects_until_recovery_timeout() -> None:
    config = CircuitBreakerConfig(failure_threshold=1, recovery_timeout=10.0)
    state = record_failure(CircuitBreakerState(), config, now=100.0)

    _, admission = admit(state, config, now=109.9)
    assert admission is Admission.REJECTED_OPEN

    state, admission = admit(state, config, now=110.0)
    assert admission is Admission.ADMITTED
    assert state.phase is BreakerPhase.HALF_OPEN
    assert state.half_open_calls_issued == 1


def test_half_open_limits_trial_calls() -> None:
    config = CircuitBreakerConfig(failure_threshold=1, recovery_timeout=0.0, half_open_max_calls=2)
    state = record_failure(CircuitBreakerState(), config, now=0.0)

    state, first = admit(state, config, now=1.0)
    state, second = admit(state, config, now=1.0)
    state, third = admit(state, config, now=1.0)

    assert (first, second, third) == (
        Admission.ADMITTED,
        Admission.ADMITTED,
        Admission.REJECTED_TRIAL_LIMIT,
    )


def test_half_open_failure_reopens_and_success_closes() -> None:
    config = CircuitBreakerConfig(failure_threshold=5, recovery_timeout=0.0)
    opened = CircuitBreakerState(phase=BreakerPhase.OPEN, consecutive_failures=5, last_failure_time=0.0)
    half_open, _ = admit(opened, config, now=1.0)

    reopened = record_failure(half_open, config, now=2.0)
    assert reopened.phase is BreakerPhase.OPEN
    assert reopened.last_failure_time == 2.0

    closed = record_success(half_open)
    assert closed.phase is BreakerPhase.CLOSED
    assert closed.consecutive_failures == 0
    assert closed.half_open_calls_issued == 0


def test_stale_success_does_not_close_open_breaker() -> None:
    opened = CircuitBreakerState(phase=BreakerPhase.OPEN, consecutive_failures=5, last_failure_time=5.0)
    assert record_success(opened) == opened


def test_config_validation() -> None:
    with pytest.raises(ConfigError):
        CircuitBreakerConfig(failure_threshold=0)
    with pytest.raises(ConfigError):
        CircuitBreakerConfig(half_open_max_calls=0)


@pytest.mark.anyio
async def test_breaker_opens_and_rejects_without_calling(clock, logger) -> None:
    breaker = CircuitBreaker(
        "model",
        CircuitBreakerConfig(failure_threshold=1, recovery_timeout=1000.0),
        clock=clock,
        logger=logger,
    )
    calls = []

    async def failing():
        calls.append(1)
        raise RetryableTransportError("down")

    with pytest.raises(RetryableTransportError):
        await breaker.execute(failing)

    clock.advance(0.001)
    with pytest.raises(CircuitOpenError) as excinfo:
        await breaker.execute(failing)

    assert len(calls) == 1
    assert excinfo.value.retry_after_seconds == pytest.approx(999.999)
    assert breaker.get_status()["phase"] == "OPEN"


@pytest.mark.anyio
async def test_breaker_recovers_through_half_open(clock, logger) -> None:
    breaker = CircuitBreaker(
        "model",
        CircuitBreakerConfig(failure_threshold=2, recovery_timeout=30.0),
        clock=clock,
        logger=logger,
    )

    for _ in range(2):
        with pytest.raises(RetryableTransportError):
            await breaker.execute(_boom)
    assert breaker.state.phase is BreakerPhase.OPEN

    clock.advance(30.0)
    assert await breaker.execute(_ok) == "ok"
    assert breaker.state.phase is BreakerPhase.CLOSED
    assert breaker.state.consecutive_failures == 0


@pytest.mark.anyio
async def test_breaker_reset(clock, logger) -> None:
    breaker = CircuitBreaker("model", CircuitBreakerConfig(failure_threshold=1), clock=clock, logger=logger)
    with pytest.raises(RetryableTransportError):
        await breaker.execute(_boom)

    breaker.reset()

    assert breaker.get_status() == {
        "name": "model",
        "phase": "CLOSED",
        "consecutive_failures": 0,
        "last_failure_time": 0.0,
        "half_open_calls_issued": 0,
    }


@pytest.mark.anyio
async def test_concurrent_half_open_calls_respect_trial_limit(clock, logger) -> None:
    breaker = CircuitBreaker(
        "model",
        CircuitBreakerConfig(failure_threshold=1, recovery_timeout=10.0, half_open_max_calls=2),
        clock=clock,
        logger=logger,
    )
    with pytest.raises(RetryableTransportError):
        await breaker.execute(_boom)
    clock.advance(10.0)

    release = asyncio.Event()
    started = []

    def trial(index: int):
        async def operation():
            started.append(index)
            await release.wait()
            return index

        return operation

    tasks = [asyncio.create_task(breaker.execute(trial(i))) for i in range(3)]
    for _ in range(5):
        await asyncio.sleep(0)

    assert sorted(started) == [0, 1]
    assert breaker.state.phase is BreakerPhase.HALF_OPEN
    assert breaker.state.half_open_calls_issued == 2

    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    rejected = [i for i, result in enumerate(results) if isinstance(result, CircuitOpenError)]
    assert len(rejected) == 1
    assert rejected[0] not in started
    assert sorted(r for r in results if not isinstance(r, BaseException)) == [0, 1]
    assert breaker.state.phase is BreakerPhase.CLOSED


@pytest.mark.anyio
async def test_concurrent_failures_are_all_counted(clock, logger) -> None:
    breaker = CircuitBreaker(
        "model",
        CircuitBreakerConfig(failure_threshold=3, recovery_timeout=60.0),
        clock=clock,
        logger=logger,
    )
    release = asyncio.Event()

    async def failing():
        await release.wait()
        raise RetryableTransportError("down")

    tasks = [asyncio.create_task(breaker.execute(failing)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(r, RetryableTransportError) for r in results)
    assert breaker.state.phase is BreakerPhase.OPEN
    assert breaker.state.consecutive_failures == 3
