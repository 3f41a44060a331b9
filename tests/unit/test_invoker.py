from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from spendwatch.analyze import invoker as invoker_module
from spendwatch.analyze.invoker import (
    EndpointInvoker,
    ProviderInvoker,
    approx_tokens,
    build_invoker,
)
from spendwatch.analyze.providers import AnthropicProvider, OpenAIProvider
from spendwatch.analyze.providers.base import ProviderResponse
from spendwatch.config import SpendWatchConfig
from spendwatch.errors import ModelResponseError, NonRetryableError, RetryableTransportError
from spendwatch.resilience import is_retryable


class DummyResponse:
    def __init__(self, status_code: int = 200, json_data=None, text: str = "") -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self):
        if self._json_data is None:
            raise json.JSONDecodeError("Expecting value", self.text, 0)
        return self._json_data


class DummyAsyncClient:
    def __init__(self, responses=None, exceptions=None) -> None:
        self._responses = list(responses or [])
        self._exceptions = list(exceptions or [])
        self.requests = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def post(self, url, json=None, headers=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        if self._exceptions:
            raise self._exceptions.pop(0)
        return self._responses.pop(0)


def _patch_client(monkeypatch: pytest.MonkeyPatch, client: DummyAsyncClient) -> None:
    monkeypatch.setattr(invoker_module.httpx, "AsyncClient", lambda *args, **kwargs: client)


class FakeProvider:
    name = "fake"

    def __init__(self, content: str = "{}") -> None:
        self.complete = AsyncMock(
            return_value=ProviderResponse(content=content, input_tokens=10, output_tokens=5, model="m")
        )

    def estimate_cost(self, model: str, tokens_in: int, tokens_out: int) -> float:
        return tokens_in * 0.001 + tokens_out * 0.002


def test_approx_tokens() -> None:
    assert approx_tokens("") == 0
    assert approx_tokens("abcd") == 1
    assert approx_tokens("abcde") == 2


@pytest.mark.anyio
async def test_provider_invoker_passes_generation_settings() -> None:
    provider = FakeProvider('{"summary": "ok"}')
    invoker = ProviderInvoker(provider, "gpt-4.1-mini", max_tokens=256, temperature=0.2, timeout_seconds=5)

    assert await invoker.invoke("PROMPT") == '{"summary": "ok"}'

    [request] = provider.complete.call_args.args
    assert request.model == "gpt-4.1-mini"
    assert request.user == "PROMPT"
    assert request.max_tokens == 256
    assert request.temperature == 0.2
    assert request.timeout == 5
    assert "JSON" in request.system


@pytest.mark.anyio
async def test_provider_invoker_rejects_empty_content() -> None:
    invoker = ProviderInvoker(FakeProvider("   "), "gpt-4.1-mini")
    with pytest.raises(ModelResponseError):
        await invoker.invoke("PROMPT")


def test_provider_invoker_estimates_cost() -> None:
    invoker = ProviderInvoker(FakeProvider(), "m")
    assert invoker.estimate_cost("a" * 40, "b" * 8) == pytest.approx(10 * 0.001 + 2 * 0.002)


@pytest.mark.anyio
async def test_endpoint_invoker_posts_prompt(monkeypatch: pytest.MonkeyPatch) -> None:
    client = DummyAsyncClient(responses=[DummyResponse(200, {"content": '{"summary": "s"}'})])
    _patch_client(monkeypatch, client)

    invoker = EndpointInvoker("https://analysis.example/", "gpt-4.1-mini", token="tok")
    assert await invoker.invoke("PROMPT") == '{"summary": "s"}'

    request = client.requests[0]
    assert request["url"] == "https://analysis.example/api/v1/analyze"
    assert request["headers"]["Authorization"] == "Bearer tok"
    assert request["json"]["user_content"] == "PROMPT"
    assert request["json"]["model"] == "gpt-4.1-mini"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status, error_type, retryable",
    [
        (503, RetryableTransportError, True),
        (429, RetryableTransportError, True),
        (400, NonRetryableError, False),
        (401, NonRetryableError, False),
    ],
)
async def test_endpoint_invoker_maps_status(
    monkeypatch: pytest.MonkeyPatch, status: int, error_type: type, retryable: bool
) -> None:
    _patch_client(monkeypatch, DummyAsyncClient(responses=[DummyResponse(status, {})]))
    invoker = EndpointInvoker("https://analysis.example", "m")

    with pytest.raises(error_type) as excinfo:
        await invoker.invoke("PROMPT")

    assert excinfo.value.status_code == status
    assert is_retryable(excinfo.value) is retryable


@pytest.mark.anyio
async def test_endpoint_invoker_rejects_invalid_json(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_client(monkeypatch, DummyAsyncClient(responses=[DummyResponse(200, None, "<html>")]))
    with pytest.raises(ModelResponseError):
        await EndpointInvoker("https://analysis.example", "m").invoke("PROMPT")


@pytest.mark.anyio
async def test_endpoint_invoker_propagates_transport_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_client(monkeypatch, DummyAsyncClient(exceptions=[httpx.ConnectError("refused")]))
    with pytest.raises(httpx.ConnectError) as excinfo:
        await EndpointInvoker("https://analysis.example", "m").invoke("PROMPT")
    assert is_retryable(excinfo.value) is True


def test_build_invoker_selects_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPENDWATCH_LLM_PROVIDER", raising=False)

    openai_invoker = build_invoker(SpendWatchConfig(openai_api_key="sk-test"))
    assert isinstance(openai_invoker, ProviderInvoker)
    assert isinstance(openai_invoker.provider, OpenAIProvider)

    anthropic_invoker = build_invoker(
        SpendWatchConfig(llm_provider="anthropic", anthropic_api_key="sk-ant", model_id="claude-haiku-4-5-20251001")
    )
    assert isinstance(anthropic_invoker.provider, AnthropicProvider)
    assert anthropic_invoker.model_id == "claude-haiku-4-5-20251001"

    endpoint_invoker = build_invoker(
        SpendWatchConfig(llm_provider="endpoint", endpoint_url="https://analysis.example")
    )
    assert isinstance(endpoint_invoker, EndpointInvoker)
