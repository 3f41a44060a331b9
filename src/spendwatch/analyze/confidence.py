"""
Deterministic re-scoring of model output.

The model's self-reported confidence is untrusted. Scores are re-derived
from data-quality signals (history depth, cost share, deviation from the
historical mean, severity) and low-value findings are dropped. Nothing
here touches the network.
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from ..constants import (
    Limits,
    PRIORITY_RANK,
    SAVINGS_RATIOS,
    Priority,
    RecommendationCategory,
    Severity,
)
from ..models import (
    Anomaly,
    AnomalyReport,
    ConfidenceFactors,
    CostBreakdown,
    OptimizationRecommendation,
    deviation_ratio,
    historical_mean,
)

RICH_HISTORY_POINTS = 5


def confidence_factors(
    anomaly: Anomaly,
    cost: CostBreakdown,
    history: Optional[Sequence[CostBreakdown]] = None,
) -> ConfidenceFactors:
    history = list(history or [])
    current = cost.service_cost(anomaly.service)
    deviation = deviation_ratio(current, historical_mean(history, anomaly.service)) if history else 0.0
    seen = sum(1 for period in history if period.service_cost(anomaly.service) > 0)
    return ConfidenceFactors(
        has_historical_data=bool(history),
        historical_point_count=len(history),
        cost_percentage_of_total=cost.share_of(anomaly.service),
        pattern_consistency=seen / len(history) if history else 0.0,
        deviation_ratio=deviation,
        severity=anomaly.severity,
    )


def confidence_adjustment(factors: ConfidenceFactors) -> float:
    """Additive confidence boost; pattern_consistency is informational and ignored."""
    adjustment = 0.0

    if factors.has_historical_data:
        adjustment += 0.2
        if factors.historical_point_count > RICH_HISTORY_POINTS:
            adjustment += 0.1
    else:
        adjustment -= 0.2

    share = factors.cost_percentage_of_total
    if share > 0.3:
        adjustment += 0.2
    elif share > 0.1:
        adjustment += 0.1
    elif share < 0.01:
        adjustment -= 0.3

    if factors.deviation_ratio > 2.0:
        adjustment += 0.3
    elif factors.deviation_ratio > 1.0:
        adjustment += 0.1

    if factors.severity is Severity.HIGH:
        adjustment += 0.1
    elif factors.severity is Severity.LOW:
        adjustment -= 0.1

    return adjustment


def clamp_score(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 2)


def enhance_anomalies(
    report: AnomalyReport,
    cost: CostBreakdown,
    history: Optional[Sequence[CostBreakdown]] = None,
) -> AnomalyReport:
    """Re-score every anomaly and drop those below the confidence floor."""
    kept: List[Anomaly] = []
    for anomaly in report.anomalies:
        factors = confidence_factors(anomaly, cost, history)
        score = clamp_score(anomaly.confidence_score + confidence_adjustment(factors))
        if score < Limits.MIN_ANOMALY_CONFIDENCE:
            continue
        kept.append(replace(anomaly, confidence_score=score))
    return replace(report, anomalies=tuple(kept))


def estimate_savings(category: RecommendationCategory, service_cost: float) -> float:
    """Category ratio of the service's cost, capped at what is plausible."""
    ratio = SAVINGS_RATIOS.get(category, SAVINGS_RATIOS[RecommendationCategory.OTHER])
    return cap_savings(service_cost * ratio, service_cost)


def cap_savings(savings: float, service_cost: float) -> float:
    return max(0.0, min(savings, service_cost * Limits.MAX_SAVINGS_FRACTION))


def round_savings(savings: float, service_cost: float) -> float:
    """Round to cents without rounding past the cap."""
    cap = service_cost * Limits.MAX_SAVINGS_FRACTION
    rounded = round(cap_savings(savings, service_cost), 2)
    if rounded > cap:
        rounded = math.floor(cap * 100) / 100
    return max(0.0, rounded)


def derive_priority(current: Priority, savings_fraction: float, cost_fraction: float) -> Priority:
    if savings_fraction > 0.1 and cost_fraction > 0.2:
        return Priority.HIGH
    if savings_fraction < 0.01 and cost_fraction < 0.05 and current is not Priority.HIGH:
        return Priority.LOW
    return current


def enhance_recommendation(rec: OptimizationRecommendation, cost: CostBreakdown) -> OptimizationRecommendation:
    service_cost = cost.service_cost(rec.service)
    savings = rec.estimated_savings
    if not savings or savings <= 0:
        savings = estimate_savings(rec.category, service_cost)
    savings = round_savings(savings, service_cost)

    total = cost.total_cost
    savings_fraction = savings / total if total > 0 else 0.0
    priority = derive_priority(rec.priority, savings_fraction, cost.share_of(rec.service))
    return replace(rec, estimated_savings=savings, priority=priority)


def rank_recommendations(recs: Iterable[OptimizationRecommendation]) -> List[OptimizationRecommendation]:
    """HIGH before MEDIUM before LOW, then larger savings first."""
    return sorted(recs, key=lambda rec: (-PRIORITY_RANK[rec.priority], -rec.estimated_savings))


def enhance_recommendations(
    recs: Iterable[OptimizationRecommendation], cost: CostBreakdown
) -> List[OptimizationRecommendation]:
    return rank_recommendations(enhance_recommendation(rec, cost) for rec in recs)


class ConfidenceEnhancer:
    """Thin object wrapper so the pipeline can swap scoring rules."""

    def enhance_anomalies(
        self,
        report: AnomalyReport,
        cost: CostBreakdown,
        history: Optional[Sequence[CostBreakdown]] = None,
    ) -> AnomalyReport:
        return enhance_anomalies(report, cost, history)

    def enhance_recommendations(
        self, recs: Iterable[OptimizationRecommendation], cost: CostBreakdown
    ) -> List[OptimizationRecommendation]:
        return enhance_recommendations(recs, cost)
