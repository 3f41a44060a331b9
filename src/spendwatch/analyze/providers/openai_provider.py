from __future__ import annotations

from typing import Any, Optional

import openai

from .base import CompletionRequest, LLMProvider, ProviderResponse


class OpenAIProvider(LLMProvider):
    """Cost analysis over the OpenAI Responses API."""

    name = "openai"
    pricing_per_million = {
        "gpt-4.1": (2.0, 8.0),
        "gpt-4.1-mini": (0.4, 1.6),
        "gpt-4.1-nano": (0.1, 0.4),
        "gpt-4o": (2.5, 10.0),
        "gpt-4o-mini": (0.15, 0.6),
    }
    default_pricing = (2.0, 8.0)

    def __init__(self, api_key: str, *, client: Optional[Any] = None) -> None:
        self.api_key = api_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            # RetryExecutor owns retries.
            self._client = openai.AsyncOpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    async def _send(self, request: CompletionRequest) -> ProviderResponse:
        response = await self.client.responses.create(
            model=request.model,
            instructions=request.system,
            input=request.user,
            max_output_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        usage = getattr(response, "usage", None)
        return ProviderResponse(
            content=getattr(response, "output_text", "") or "",
            input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
            output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
            model=request.model,
        )

    def _sdk_errors(self):
        return openai.APITimeoutError, openai.APIConnectionError, openai.APIStatusError
