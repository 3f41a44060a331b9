from __future__ import annotations

import math
from abc import ABC, abstractmethod

import httpx

from ..config import SpendWatchConfig
from ..errors import ConfigError, ModelResponseError
from .prompts import SYSTEM_PROMPT
from .providers import PROVIDERS, CompletionRequest, LLMProvider, error_for_status

CHARS_PER_TOKEN = 4


def approx_tokens(text: str) -> int:
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


class ModelInvoker(ABC):
    """
    The single boundary to the external analysis model: prompt in, raw text out.

    Implementations do not retry; RetryExecutor and CircuitBreaker wrap them.
    """

    model_id: str = ""

    @abstractmethod
    async def invoke(self, prompt: str) -> str:
        """Send ``prompt`` and return the model's raw text."""

    def estimate_cost(self, prompt: str, response: str) -> float:
        """Rough USD cost of one call, from character counts."""
        return 0.0


class ProviderInvoker(ModelInvoker):
    """Invokes a hosted model through an SDK-backed LLMProvider."""

    def __init__(
        self,
        provider: LLMProvider,
        model_id: str,
        *,
        system_prompt: str = SYSTEM_PROMPT,
        max_tokens: int = 1024,
        temperature: float = 0.1,
        timeout_seconds: int = 60,
    ) -> None:
        self.provider = provider
        self.model_id = model_id
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout_seconds

    async def invoke(self, prompt: str) -> str:
        response = await self.provider.complete(
            CompletionRequest(
                model=self.model_id,
                system=self.system_prompt,
                user=prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        )
        if not response.content.strip():
            raise ModelResponseError(f"Empty response from model {self.model_id}")
        return response.content

    def estimate_cost(self, prompt: str, response: str) -> float:
        cost = self.provider.estimate_cost(self.model_id, approx_tokens(prompt), approx_tokens(response))
        return round(cost, 5)


class EndpointInvoker(ModelInvoker):
    """Invokes a managed analysis endpoint over HTTP."""

    def __init__(
        self,
        endpoint_url: str,
        model_id: str,
        *,
        token: str = "",
        system_prompt: str = SYSTEM_PROMPT,
        max_tokens: int = 1024,
        temperature: float = 0.1,
        timeout_seconds: int = 60,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.model_id = model_id
        self.token = token
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout_seconds

    async def invoke(self, prompt: str) -> str:
        endpoint = f"{self.endpoint_url.rstrip('/')}/api/v1/analyze"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {
            "model": self.model_id,
            "system_prompt": self.system_prompt,
            "user_content": prompt,
            "max_tokens": int(self.max_tokens),
            "temperature": float(self.temperature),
        }

        # Timeouts and connection failures propagate as httpx errors.
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(endpoint, json=payload, headers=headers)

        if response.status_code != 200:
            raise error_for_status(
                f"Analysis endpoint failed ({response.status_code}) at {endpoint}",
                response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ModelResponseError(f"Analysis endpoint returned invalid JSON: {exc}") from exc

        content = str(body.get("content") or "") if isinstance(body, dict) else ""
        if not content.strip():
            raise ModelResponseError("Empty response from analysis endpoint")
        return content

    def estimate_cost(self, prompt: str, response: str) -> float:
        # Pricing is owned by the endpoint; report a generic per-token estimate.
        cost = approx_tokens(prompt) / 1000 * 0.0008 + approx_tokens(response) / 1000 * 0.0016
        return round(cost, 5)


def build_invoker(config: SpendWatchConfig) -> ModelInvoker:
    """Create the invoker selected by configuration."""
    common = dict(
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout_seconds=config.request_timeout_seconds,
    )
    if config.llm_provider == "endpoint":
        return EndpointInvoker(
            config.endpoint_url,
            config.model_id,
            token=config.endpoint_token.get_secret_value(),
            **common,
        )

    provider_cls = PROVIDERS.get(config.llm_provider)
    if provider_cls is None:
        raise ConfigError(f"Unknown LLM provider: {config.llm_provider}")
    api_key = getattr(config, f"{config.llm_provider}_api_key").get_secret_value()
    return ProviderInvoker(provider_cls(api_key=api_key), config.model_id, **common)
