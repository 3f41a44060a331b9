from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .constants import (
    Complexity,
    Priority,
    RecommendationCategory,
    ResultSource,
    Severity,
)


@dataclass(frozen=True)
class CostBreakdown:
    """Already-fetched billing data for one period."""

    total_cost: float
    service_breakdown: Dict[str, float] = field(default_factory=dict)
    period_start: str = ""
    period_end: str = ""
    projected_monthly: Optional[float] = None
    currency: str = "USD"

    @property
    def projected(self) -> float:
        return self.total_cost if self.projected_monthly is None else self.projected_monthly

    def service_cost(self, service: str) -> float:
        return float(self.service_breakdown.get(service, 0.0) or 0.0)

    def share_of(self, service: str) -> float:
        """Fraction of total cost spent on ``service`` (0 when total is 0)."""
        if self.total_cost <= 0:
            return 0.0
        return self.service_cost(service) / self.total_cost

    def top_services(self, limit: Optional[int] = None) -> List[Tuple[str, float]]:
        ranked = sorted(self.service_breakdown.items(), key=lambda item: item[1], reverse=True)
        return ranked if limit is None else ranked[:limit]


@dataclass(frozen=True)
class AnalysisResult:
    summary: str
    key_insights: Tuple[str, ...]
    confidence_score: float
    source: ResultSource = ResultSource.MODEL
    model_used: str = ""
    analysis_timestamp: str = ""
    processing_cost: float = 0.0


@dataclass(frozen=True)
class Anomaly:
    service: str
    severity: Severity
    description: str
    confidence_score: float
    suggested_action: str = ""
    source: ResultSource = ResultSource.MODEL


@dataclass(frozen=True)
class AnomalyReport:
    anomalies: Tuple[Anomaly, ...] = ()
    source: ResultSource = ResultSource.MODEL

    @property
    def anomalies_detected(self) -> bool:
        return len(self.anomalies) > 0


@dataclass(frozen=True)
class OptimizationRecommendation:
    category: RecommendationCategory
    service: str
    description: str
    estimated_savings: float
    priority: Priority = Priority.MEDIUM
    implementation_complexity: Complexity = Complexity.MEDIUM
    source: ResultSource = ResultSource.MODEL


@dataclass(frozen=True)
class ConfidenceFactors:
    """
    Objective signals behind an anomaly's confidence. Derived, never stored.

    ``pattern_consistency`` is the share of prior periods in which the service
    had any cost. It is reported for diagnostics only and does not feed
    ``confidence_adjustment``.
    """

    has_historical_data: bool
    historical_point_count: int
    cost_percentage_of_total: float
    pattern_consistency: float
    deviation_ratio: float
    severity: Severity


def historical_mean(history: Sequence[CostBreakdown], service: Optional[str] = None) -> float:
    """Mean total cost (or one service's cost) across prior periods."""
    if not history:
        return 0.0
    if service is None:
        return sum(item.total_cost for item in history) / len(history)
    return sum(item.service_cost(service) for item in history) / len(history)


def deviation_ratio(current: float, mean: float) -> float:
    return abs(current - mean) / max(mean, 1.0)
