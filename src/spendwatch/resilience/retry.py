from __future__ import annotations

import asyncio
import random
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from ..clock import Clock, SystemClock
from ..errors import CircuitOpenError, ConfigError, ErrorKind, TransportError
from ..logging import SpendLogger

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Exception class names / error codes raised by SDKs and sockets.
KNOWN_ERROR_NAMES = {
    "ThrottlingException": ErrorKind.THROTTLING,
    "TooManyRequestsException": ErrorKind.THROTTLING,
    "RateLimitError": ErrorKind.THROTTLING,
    "ServiceUnavailableException": ErrorKind.SERVICE_UNAVAILABLE,
    "InternalServerErrorException": ErrorKind.SERVICE_UNAVAILABLE,
    "InternalServerError": ErrorKind.SERVICE_UNAVAILABLE,
    "OverloadedError": ErrorKind.SERVICE_UNAVAILABLE,
    "ModelTimeoutException": ErrorKind.TIMEOUT,
    "APITimeoutError": ErrorKind.TIMEOUT,
    "TimeoutError": ErrorKind.TIMEOUT,
    "TimeoutException": ErrorKind.TIMEOUT,
    "ReadTimeout": ErrorKind.TIMEOUT,
    "ConnectTimeout": ErrorKind.TIMEOUT,
    "ETIMEDOUT": ErrorKind.TIMEOUT,
    "APIConnectionError": ErrorKind.CONNECTION,
    "ConnectError": ErrorKind.CONNECTION,
    "NetworkError": ErrorKind.CONNECTION,
    "RemoteProtocolError": ErrorKind.CONNECTION,
    "NetworkingError": ErrorKind.CONNECTION,
    "ECONNRESET": ErrorKind.CONNECTION,
    "ECONNREFUSED": ErrorKind.CONNECTION,
    "ENOTFOUND": ErrorKind.DNS,
    "BadRequestError": ErrorKind.VALIDATION,
    "ValidationException": ErrorKind.VALIDATION,
    "AuthenticationError": ErrorKind.VALIDATION,
    "PermissionDeniedError": ErrorKind.VALIDATION,
    "NotFoundError": ErrorKind.VALIDATION,
}

_MESSAGE_PATTERNS = (
    (re.compile(r"timed? ?out", re.IGNORECASE), ErrorKind.TIMEOUT),
    (re.compile(r"\bdns\b|name resolution", re.IGNORECASE), ErrorKind.DNS),
    (re.compile(r"network|connection|socket", re.IGNORECASE), ErrorKind.CONNECTION),
)

RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.THROTTLING,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.TIMEOUT,
        ErrorKind.CONNECTION,
        ErrorKind.DNS,
    }
)


class Retryability(str, Enum):
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


@dataclass(frozen=True)
class ErrorDescriptor:
    kind: ErrorKind
    status_code: Optional[int] = None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigError("retry delays must be >= 0")
        if self.backoff_multiplier <= 1:
            raise ConfigError("backoff_multiplier must be > 1")


DEFAULT_RETRY_POLICY = RetryPolicy()


def _status_code_of(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "statusCode", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def describe_error(exc: BaseException) -> ErrorDescriptor:
    """Normalize an arbitrary exception into a kind + optional status code."""
    status = _status_code_of(exc)

    if isinstance(exc, TransportError):
        return ErrorDescriptor(exc.kind, exc.status_code if exc.status_code is not None else status)
    if isinstance(exc, CircuitOpenError):
        return ErrorDescriptor(ErrorKind.CIRCUIT_OPEN)
    if isinstance(exc, ConfigError):
        return ErrorDescriptor(ErrorKind.CONFIGURATION)
    if isinstance(exc, socket.gaierror):
        return ErrorDescriptor(ErrorKind.DNS, status)
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorDescriptor(ErrorKind.TIMEOUT, status)
    if isinstance(exc, ConnectionError):
        return ErrorDescriptor(ErrorKind.CONNECTION, status)

    names = [cls.__name__ for cls in type(exc).__mro__]
    names += [getattr(exc, "code", None), getattr(exc, "name", None)]
    for name in names:
        if isinstance(name, str) and name in KNOWN_ERROR_NAMES:
            return ErrorDescriptor(KNOWN_ERROR_NAMES[name], status)

    if status is not None:
        if status == 429:
            return ErrorDescriptor(ErrorKind.THROTTLING, status)
        if status >= 500:
            return ErrorDescriptor(ErrorKind.SERVICE_UNAVAILABLE, status)
        return ErrorDescriptor(ErrorKind.VALIDATION, status)

    message = str(exc)
    for pattern, kind in _MESSAGE_PATTERNS:
        if pattern.search(message):
            return ErrorDescriptor(kind)
    return ErrorDescriptor(ErrorKind.UNKNOWN)


def classify(descriptor: ErrorDescriptor) -> Retryability:
    if descriptor.status_code is not None and descriptor.status_code in RETRYABLE_STATUS_CODES:
        return Retryability.RETRYABLE
    if descriptor.kind in RETRYABLE_KINDS:
        return Retryability.RETRYABLE
    return Retryability.NON_RETRYABLE


def is_retryable(exc: BaseException) -> bool:
    return classify(describe_error(exc)) is Retryability.RETRYABLE


def calculate_delay(attempt: int, policy: RetryPolicy, rng: Optional[random.Random] = None) -> float:
    """Backoff delay in seconds before the attempt following ``attempt``."""
    exponential = policy.base_delay * policy.backoff_multiplier ** (max(attempt, 1) - 1)
    capped = min(exponential, policy.max_delay)
    if not policy.jitter:
        return capped
    spread = capped * 0.25
    jittered = capped + (rng or random).uniform(-spread, spread)
    return min(max(0.0, jittered), policy.max_delay)


class RetryExecutor:
    """Re-invokes an async operation with exponential backoff and jitter."""

    def __init__(
        self,
        default_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[SpendLogger] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.default_policy = default_policy
        self.clock = clock or SystemClock()
        self.logger = logger or SpendLogger("RetryExecutor")
        self.rng = rng or random.Random()

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        label: str = "operation",
    ) -> T:
        """
        Run ``operation`` until it succeeds or retries are exhausted.

        The error raised on give-up is exactly the one from the last attempt.
        """
        policy = policy or self.default_policy
        last_exc: Optional[Exception] = None
        attempts = 0

        for attempt in range(1, policy.max_attempts + 1):
            attempts = attempt
            try:
                result = await operation()
            except Exception as exc:
                last_exc = exc
                descriptor = describe_error(exc)
                retryable = classify(descriptor) is Retryability.RETRYABLE
                self.logger.warning(
                    "retry_attempt_failed",
                    operation=label,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    error_kind=descriptor.kind.value,
                    status_code=descriptor.status_code,
                    retryable=retryable,
                )
                if not retryable or attempt == policy.max_attempts:
                    break

                delay = calculate_delay(attempt, policy, self.rng)
                self.logger.debug("retry_backoff", operation=label, attempt=attempt, delay_s=delay)
                await self.clock.sleep(delay)
                continue

            if attempt > 1:
                self.logger.info("retry_succeeded", operation=label, attempts=attempt)
            return result

        self.logger.error(
            "retry_gave_up",
            operation=label,
            attempts=attempts,
            error=str(last_exc),
        )
        raise last_exc
