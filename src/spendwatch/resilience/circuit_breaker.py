from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from ..clock import Clock, SystemClock
from ..errors import CircuitOpenError, ConfigError
from ..logging import SpendLogger

T = TypeVar("T")


class BreakerPhase(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ConfigError("failure_threshold must be >= 1")
        if self.half_open_max_calls < 1:
            raise ConfigError("half_open_max_calls must be >= 1")
        if self.recovery_timeout < 0:
            raise ConfigError("recovery_timeout must be >= 0")


@dataclass(frozen=True)
class CircuitBreakerState:
    phase: BreakerPhase = BreakerPhase.CLOSED
    consecutive_failures: int = 0
    last_failure_time: float = 0.0
    half_open_calls_issued: int = 0


class Admission(str, Enum):
    ADMITTED = "admitted"
    REJECTED_OPEN = "rejected_open"
    REJECTED_TRIAL_LIMIT = "rejected_trial_limit"


# Pure transitions: (state, event) -> state'. No clock reads, no I/O.


def admit(
    state: CircuitBreakerState, config: CircuitBreakerConfig, now: float
) -> Tuple[CircuitBreakerState, Admission]:
    """Decide whether a call may proceed, moving OPEN -> HALF_OPEN when due."""
    if state.phase is BreakerPhase.OPEN:
        if now - state.last_failure_time < config.recovery_timeout:
            return state, Admission.REJECTED_OPEN
        state = replace(state, phase=BreakerPhase.HALF_OPEN, half_open_calls_issued=0)

    if state.phase is BreakerPhase.HALF_OPEN:
        if state.half_open_calls_issued >= config.half_open_max_calls:
            return state, Admission.REJECTED_TRIAL_LIMIT
        return replace(state, half_open_calls_issued=state.half_open_calls_issued + 1), Admission.ADMITTED

    return state, Admission.ADMITTED


def record_success(state: CircuitBreakerState) -> CircuitBreakerState:
    if state.phase is BreakerPhase.OPEN:
        # Stale result from a call admitted before the breaker opened.
        return state
    return replace(
        state,
        phase=BreakerPhase.CLOSED,
        consecutive_failures=0,
        half_open_calls_issued=0,
    )


def record_failure(
    state: CircuitBreakerState, config: CircuitBreakerConfig, now: float
) -> CircuitBreakerState:
    failures = state.consecutive_failures + 1
    if state.phase is BreakerPhase.HALF_OPEN or failures >= config.failure_threshold:
        return replace(
            state,
            phase=BreakerPhase.OPEN,
            consecutive_failures=failures,
            last_failure_time=now,
            half_open_calls_issued=0,
        )
    return replace(state, consecutive_failures=failures, last_failure_time=now)


class CircuitBreaker:
    """Stops calling a chronically failing dependency and tests for recovery with trial calls."""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[SpendLogger] = None,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.clock = clock or SystemClock()
        self.logger = logger or SpendLogger("CircuitBreaker")
        self._state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            now = self.clock.now()
            previous = self._state
            self._state, admission = admit(previous, self.config, now)
            self._log_transition(previous, self._state)
            snapshot = self._state

        if admission is Admission.REJECTED_OPEN:
            retry_after = self.config.recovery_timeout - (now - snapshot.last_failure_time)
            self.logger.warning("circuit_rejected", breaker=self.name, retry_after_s=retry_after)
            raise CircuitOpenError(self.name, retry_after_seconds=retry_after)
        if admission is Admission.REJECTED_TRIAL_LIMIT:
            self.logger.warning(
                "circuit_trial_limit",
                breaker=self.name,
                half_open_calls=snapshot.half_open_calls_issued,
            )
            raise CircuitOpenError(self.name, reason="half-open trial call limit reached")

        try:
            result = await operation()
        except Exception:
            async with self._lock:
                previous = self._state
                self._state = record_failure(previous, self.config, self.clock.now())
                self._log_transition(previous, self._state)
            raise

        async with self._lock:
            previous = self._state
            self._state = record_success(previous)
            self._log_transition(previous, self._state)
        return result

    def reset(self) -> None:
        """Operator override: force CLOSED with all counters zeroed."""
        self._state = CircuitBreakerState()
        self.logger.info("circuit_manual_reset", breaker=self.name)

    def get_status(self) -> Dict[str, Any]:
        state = self._state
        return {
            "name": self.name,
            "phase": state.phase.value,
            "consecutive_failures": state.consecutive_failures,
            "last_failure_time": state.last_failure_time,
            "half_open_calls_issued": state.half_open_calls_issued,
        }

    def _log_transition(self, before: CircuitBreakerState, after: CircuitBreakerState) -> None:
        if before.phase is after.phase:
            return
        self.logger.info(
            "circuit_transition",
            breaker=self.name,
            from_phase=before.phase.value,
            to_phase=after.phase.value,
            consecutive_failures=after.consecutive_failures,
        )
