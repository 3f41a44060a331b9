from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type

from ...errors import ErrorKind, NonRetryableError, RetryableTransportError, TransportError
from ...resilience.retry import RETRYABLE_STATUS_CODES


@dataclass(frozen=True)
class CompletionRequest:
    """One analysis prompt, as sent to a hosted model."""

    model: str
    system: str
    user: str
    max_tokens: int
    temperature: float
    timeout: float


@dataclass(frozen=True)
class ProviderResponse:
    content: str
    input_tokens: int
    output_tokens: int
    model: str


def error_for_status(message: str, status_code: int) -> TransportError:
    """Map an HTTP-like status from a model endpoint to a transport error."""
    if status_code == 429:
        return RetryableTransportError(message, kind=ErrorKind.THROTTLING, status_code=status_code)
    if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
        return RetryableTransportError(message, kind=ErrorKind.SERVICE_UNAVAILABLE, status_code=status_code)
    return NonRetryableError(message, kind=ErrorKind.VALIDATION, status_code=status_code)


class LLMProvider(ABC):
    """
    SDK-backed model provider.

    ``complete`` is the only entry point. It enforces the request timeout and
    converts SDK failures into ``TransportError`` subclasses with an explicit
    kind, so retry classification never has to inspect SDK exception names.
    """

    name: str = ""

    # model -> (USD per million input tokens, USD per million output tokens)
    pricing_per_million: Dict[str, Tuple[float, float]] = {}
    default_pricing: Tuple[float, float] = (0.0, 0.0)

    async def complete(self, request: CompletionRequest) -> ProviderResponse:
        try:
            return await asyncio.wait_for(self._send(request), timeout=request.timeout)
        except TransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise RetryableTransportError(
                f"{self.name} call timed out after {request.timeout}s",
                kind=ErrorKind.TIMEOUT,
            ) from exc
        except Exception as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc

    def translate_error(self, exc: Exception) -> Optional[TransportError]:
        """Convert a known SDK exception; None leaves it to propagate unchanged."""
        timeout_error, connection_error, status_error = self._sdk_errors()
        if isinstance(exc, timeout_error):
            return RetryableTransportError(f"{self.name} request timed out: {exc}", kind=ErrorKind.TIMEOUT)
        if isinstance(exc, connection_error):
            return RetryableTransportError(f"{self.name} connection failed: {exc}", kind=ErrorKind.CONNECTION)
        if isinstance(exc, status_error):
            status_code = getattr(exc, "status_code", None)
            if isinstance(status_code, int):
                return error_for_status(f"{self.name} API error ({status_code}): {exc}", status_code)
        return None

    def estimate_cost(self, model: str, tokens_in: int, tokens_out: int) -> float:
        """Estimate cost in USD for a given model + token usage."""
        input_rate, output_rate = self.pricing_per_million.get(model, self.default_pricing)
        return (tokens_in / 1_000_000 * input_rate) + (tokens_out / 1_000_000 * output_rate)

    @abstractmethod
    async def _send(self, request: CompletionRequest) -> ProviderResponse:
        """Issue the SDK call. Retries are layered on top by RetryExecutor."""

    @abstractmethod
    def _sdk_errors(self) -> Tuple[Type[BaseException], Type[BaseException], Type[BaseException]]:
        """The SDK's (timeout, connection, status) exception classes."""
