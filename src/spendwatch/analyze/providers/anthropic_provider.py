from __future__ import annotations

from typing import Any, Optional

import anthropic

from .base import CompletionRequest, LLMProvider, ProviderResponse


class AnthropicProvider(LLMProvider):
    """Cost analysis over the Anthropic Messages API."""

    name = "anthropic"
    pricing_per_million = {
        "claude-sonnet-4-5-20250929": (3.0, 15.0),
        "claude-haiku-4-5-20251001": (0.80, 4.0),
    }
    default_pricing = (3.0, 15.0)

    def __init__(self, api_key: str, *, client: Optional[Any] = None) -> None:
        self.api_key = api_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    async def _send(self, request: CompletionRequest) -> ProviderResponse:
        response = await self.client.messages.create(
            model=request.model,
            system=request.system,
            messages=[{"role": "user", "content": request.user}],
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        # Concatenate text blocks; other block types have no text.
        text = "".join(getattr(block, "text", "") or "" for block in getattr(response, "content", None) or [])
        usage = getattr(response, "usage", None)
        return ProviderResponse(
            content=text,
            input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
            output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
            model=request.model,
        )

    def _sdk_errors(self):
        return anthropic.APITimeoutError, anthropic.APIConnectionError, anthropic.APIStatusError
