"""Metrics collection for analysis runs."""

from .collector import MetricsCollector, OperationStats, OperationTimer
from .uploader import upload_metrics

__all__ = [
    "MetricsCollector",
    "OperationStats",
    "OperationTimer",
    "upload_metrics",
]
