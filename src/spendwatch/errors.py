from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Normalized failure kinds used for retry classification."""

    THROTTLING = "throttling"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    DNS = "dns"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


class SpendWatchError(Exception):
    """Base exception for all spendwatch errors."""


class ConfigError(SpendWatchError):
    """Configuration validation failed."""


class AnalysisDisabledError(SpendWatchError):
    """Model analysis was requested while disabled in configuration."""


class TransportError(SpendWatchError):
    """Failure talking to the model endpoint."""

    default_kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str = "",
        *,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind
        self.status_code = status_code


class RetryableTransportError(TransportError):
    """Throttling, 5xx/429, timeout, connection reset/refused or DNS failure."""

    default_kind = ErrorKind.SERVICE_UNAVAILABLE


class NonRetryableError(TransportError):
    """Validation/4xx or malformed configuration. Never retried."""

    default_kind = ErrorKind.VALIDATION


class ModelResponseError(NonRetryableError):
    """Provider answered but the payload carried no usable text."""


class CircuitOpenError(SpendWatchError):
    """Breaker rejected the call without invoking the dependency."""

    def __init__(self, name: str, retry_after_seconds: float = 0.0, reason: str = "open") -> None:
        super().__init__(f"Circuit breaker {name} rejected call: {reason}")
        self.name = name
        self.retry_after_seconds = max(0.0, retry_after_seconds)
        self.reason = reason


class ParseError(SpendWatchError):
    """Model text did not decode to the expected shape."""
