from __future__ import annotations

import json

from spendwatch.errors import (
    CircuitOpenError,
    ErrorKind,
    ModelResponseError,
    NonRetryableError,
    RetryableTransportError,
    SpendWatchError,
)
from spendwatch.logging import SpendLogger


def _lines(captured) -> list:
    return [json.loads(line) for line in captured.err.strip().splitlines()]


def test_logger_emits_json(capsys) -> None:
    logger = SpendLogger("pipeline", correlation_id="run-1")
    logger.info("hello", detail="world")

    payload = _lines(capsys.readouterr())[0]
    assert payload["correlation_id"] == "run-1"
    assert payload["context"] == "pipeline"
    assert payload["level"] == "info"
    assert payload["message"] == "hello"
    assert payload["detail"] == "world"


def test_logger_redacts_sensitive_keys(capsys) -> None:
    logger = SpendLogger("pipeline")
    logger.info("secret", api_key="sk-test", endpoint_token="tok", model="gpt")

    payload = _lines(capsys.readouterr())[0]
    assert payload["api_key"] == "***"
    assert payload["endpoint_token"] == "***"
    assert payload["model"] == "gpt"


def test_child_logger_shares_correlation_id(capsys) -> None:
    parent = SpendLogger("pipeline", correlation_id="run-2")
    parent.child("RetryExecutor").warning("retry")

    payload = _lines(capsys.readouterr())[0]
    assert payload["context"] == "RetryExecutor"
    assert payload["correlation_id"] == "run-2"


def test_debug_only_when_enabled(capsys, monkeypatch) -> None:
    logger = SpendLogger("pipeline")
    monkeypatch.delenv("SPENDWATCH_LOG_LEVEL", raising=False)
    logger.debug("hidden")
    assert capsys.readouterr().err == ""

    monkeypatch.setenv("SPENDWATCH_LOG_LEVEL", "debug")
    logger.debug("shown")
    assert _lines(capsys.readouterr())[0]["message"] == "shown"


def test_logger_serializes_unknown_values(capsys) -> None:
    SpendLogger("pipeline").log("INFO", "kind", error_kind=ErrorKind.TIMEOUT, value=object())
    payload = _lines(capsys.readouterr())[0]
    assert payload["error_kind"] == "timeout"


def test_error_hierarchy() -> None:
    assert issubclass(ModelResponseError, NonRetryableError)
    assert issubclass(CircuitOpenError, SpendWatchError)
    assert RetryableTransportError("x").kind is ErrorKind.SERVICE_UNAVAILABLE
    assert NonRetryableError("x", status_code=404).status_code == 404


def test_circuit_open_error_message() -> None:
    err = CircuitOpenError("model:gpt", retry_after_seconds=-5)
    assert "model:gpt" in str(err)
    assert err.retry_after_seconds == 0.0
