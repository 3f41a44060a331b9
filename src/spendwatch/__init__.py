"""Resilient model-assisted cloud cost analysis."""

__version__ = "0.1.0"

from .analyze import CostAnalysisPipeline
from .config import SpendWatchConfig
from .models import (
    AnalysisResult,
    Anomaly,
    AnomalyReport,
    CostBreakdown,
    OptimizationRecommendation,
)

__all__ = [
    "AnalysisResult",
    "Anomaly",
    "AnomalyReport",
    "CostAnalysisPipeline",
    "CostBreakdown",
    "OptimizationRecommendation",
    "SpendWatchConfig",
    "__version__",
]
