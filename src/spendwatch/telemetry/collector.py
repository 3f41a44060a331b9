from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class OperationStats:
    calls: int = 0
    successes: int = 0
    failures: int = 0
    fallbacks: int = 0
    durations_ms: List[int] = field(default_factory=list)

    def average_duration_ms(self) -> float:
        if not self.durations_ms:
            return 0.0
        return sum(self.durations_ms) / len(self.durations_ms)


class OperationTimer:
    """Measures one operation; ``stop`` records duration and outcome once."""

    def __init__(self, collector: "MetricsCollector", operation: str) -> None:
        self._collector = collector
        self._operation = operation
        self._start = time.monotonic()
        self._stopped = False

    def stop(self, success: bool) -> int:
        duration_ms = int((time.monotonic() - self._start) * 1000)
        if not self._stopped:
            self._stopped = True
            self._collector.record_execution_duration(self._operation, duration_ms, success)
            self._collector.record_execution_result(self._operation, success)
        return duration_ms


@dataclass
class MetricsCollector:
    """
    Accumulates per-operation durations and outcomes for a process.

    ``snapshot()`` produces the payload handed to ``upload_metrics``.
    """

    namespace: str = "SpendWatch/Analysis"
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _operations: Dict[str, OperationStats] = field(default_factory=dict)

    def create_timer(self, operation: str) -> OperationTimer:
        return OperationTimer(self, operation)

    def record_execution_duration(self, operation: str, duration_ms: int, success: bool) -> None:
        self._stats(operation).durations_ms.append(int(duration_ms))

    def record_execution_result(self, operation: str, success: bool) -> None:
        stats = self._stats(operation)
        stats.calls += 1
        if success:
            stats.successes += 1
        else:
            stats.failures += 1

    def record_fallback(self, operation: str) -> None:
        self._stats(operation).fallbacks += 1

    def operation(self, operation: str) -> OperationStats:
        return self._stats(operation)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "since": self.start_time.isoformat(),
            "operations": {
                name: {
                    "calls": stats.calls,
                    "successes": stats.successes,
                    "failures": stats.failures,
                    "fallbacks": stats.fallbacks,
                    "avg_duration_ms": round(stats.average_duration_ms(), 1),
                }
                for name, stats in self._operations.items()
            },
        }

    def _stats(self, operation: str) -> OperationStats:
        if operation not in self._operations:
            self._operations[operation] = OperationStats()
        return self._operations[operation]
