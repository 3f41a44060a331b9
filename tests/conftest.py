from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from spendwatch.config import SpendWatchConfig
from spendwatch.logging import SpendLogger
from spendwatch.models import CostBreakdown


class FakeClock:
    """Manually advanced clock; ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += max(0.0, seconds)
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def logger() -> SpendLogger:
    return SpendLogger("test", correlation_id="test-run")


@pytest.fixture
def config(monkeypatch: pytest.MonkeyPatch) -> SpendWatchConfig:
    monkeypatch.delenv("SPENDWATCH_LLM_PROVIDER", raising=False)
    monkeypatch.delenv("SPENDWATCH_ENABLED", raising=False)
    return SpendWatchConfig(
        openai_api_key="sk-test",
        retry_max_attempts=2,
        retry_jitter=False,
    )


@pytest.fixture
def cost() -> CostBreakdown:
    return CostBreakdown(
        total_cost=1000.0,
        service_breakdown={"compute": 700.0, "storage": 300.0},
        period_start="2024-01-01",
        period_end="2024-01-31",
    )
