from __future__ import annotations

from spendwatch.telemetry.collector import MetricsCollector


def test_timer_records_duration_and_result() -> None:
    metrics = MetricsCollector()
    timer = metrics.create_timer("analyze_spending")

    duration = timer.stop(success=True)

    stats = metrics.operation("analyze_spending")
    assert duration >= 0
    assert stats.calls == 1
    assert stats.successes == 1
    assert stats.durations_ms == [duration]


def test_timer_stop_is_idempotent() -> None:
    metrics = MetricsCollector()
    timer = metrics.create_timer("detect_anomalies")
    timer.stop(success=False)
    timer.stop(success=True)

    stats = metrics.operation("detect_anomalies")
    assert stats.calls == 1
    assert stats.failures == 1
    assert stats.successes == 0


def test_snapshot_aggregates_operations() -> None:
    metrics = MetricsCollector(namespace="Test/Spend")
    metrics.record_execution_duration("op", 100, True)
    metrics.record_execution_duration("op", 300, False)
    metrics.record_execution_result("op", True)
    metrics.record_execution_result("op", False)
    metrics.record_fallback("op")

    snapshot = metrics.snapshot()

    assert snapshot["namespace"] == "Test/Spend"
    assert snapshot["operations"]["op"] == {
        "calls": 2,
        "successes": 1,
        "failures": 1,
        "fallbacks": 1,
        "avg_duration_ms": 200.0,
    }
    assert "since" in snapshot
