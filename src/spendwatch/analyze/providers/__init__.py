from __future__ import annotations

from .anthropic_provider import AnthropicProvider
from .base import CompletionRequest, LLMProvider, ProviderResponse, error_for_status
from .openai_provider import OpenAIProvider

PROVIDERS: dict[str, type[LLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

__all__ = [
    "PROVIDERS",
    "AnthropicProvider",
    "CompletionRequest",
    "LLMProvider",
    "OpenAIProvider",
    "ProviderResponse",
    "error_for_status",
]
