"""Retry, circuit breaking and rate limiting for the model call."""

from .circuit_breaker import (
    Admission,
    BreakerPhase,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    admit,
    record_failure,
    record_success,
)
from .rate_limiter import RateLimiter, RateWindow
from .retry import (
    DEFAULT_RETRY_POLICY,
    ErrorDescriptor,
    Retryability,
    RetryExecutor,
    RetryPolicy,
    calculate_delay,
    classify,
    describe_error,
    is_retryable,
)

__all__ = [
    "Admission",
    "BreakerPhase",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "DEFAULT_RETRY_POLICY",
    "ErrorDescriptor",
    "RateLimiter",
    "RateWindow",
    "RetryExecutor",
    "RetryPolicy",
    "Retryability",
    "admit",
    "calculate_delay",
    "classify",
    "describe_error",
    "is_retryable",
    "record_failure",
    "record_success",
]
