from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from ..constants import (
    Complexity,
    Limits,
    Priority,
    RecommendationCategory,
    ResultSource,
    Severity,
)
from ..models import (
    AnalysisResult,
    Anomaly,
    AnomalyReport,
    CostBreakdown,
    OptimizationRecommendation,
    deviation_ratio,
    historical_mean,
)
from .confidence import estimate_savings, round_savings

FALLBACK_MODEL = "fallback"

COMPUTE_MARKERS = ("ec2", "elastic compute", "compute", "virtual machine", "lambda")
STORAGE_MARKERS = ("s3", "ebs", "storage", "glacier", "blob")
DATABASE_MARKERS = ("rds", "dynamodb", "database", "aurora", "sql")

SERVICE_NOISE_FRACTION = 0.05
RECOMMEND_MIN_FRACTION = 0.1


def _matches(service: str, markers: Tuple[str, ...]) -> bool:
    lowered = service.lower()
    return any(marker in lowered for marker in markers)


def _fallback_score(value: float) -> float:
    return round(min(Limits.MAX_FALLBACK_CONFIDENCE, max(0.0, value)), 2)


class FallbackGenerator:
    """Model-free, lower-confidence results computed from the cost breakdown alone."""

    def spending_summary(self, cost: CostBreakdown) -> AnalysisResult:
        top = cost.top_services(1)
        if top:
            top_name, top_cost = top[0]
        else:
            top_name, top_cost = "Unknown", 0.0

        return AnalysisResult(
            summary=(
                f"Current spending is ${cost.total_cost:.2f} with projected monthly cost "
                f"of ${cost.projected:.2f}."
            ),
            key_insights=(
                f"Top cost driver: {top_name} (${top_cost:.2f})",
                "Model-based analysis unavailable - using basic cost breakdown",
                "Consider reviewing high-cost services for optimization opportunities",
            ),
            confidence_score=Limits.FALLBACK_SUMMARY_CONFIDENCE,
            source=ResultSource.FALLBACK,
            model_used=FALLBACK_MODEL,
            analysis_timestamp=datetime.now(timezone.utc).isoformat(),
            processing_cost=0.0,
        )

    def anomalies(
        self,
        cost: CostBreakdown,
        history: Optional[Sequence[CostBreakdown]] = None,
    ) -> AnomalyReport:
        """Flag large deviations from the historical mean. Needs history."""
        history = list(history or [])
        if not history:
            return AnomalyReport(anomalies=(), source=ResultSource.FALLBACK)

        found: List[Anomaly] = []

        mean_total = historical_mean(history)
        ratio = deviation_ratio(cost.total_cost, mean_total)
        if ratio > 1.5:
            found.append(
                Anomaly(
                    service="Overall Spending",
                    severity=Severity.HIGH if ratio > 3.0 else Severity.MEDIUM,
                    description=(
                        f"Current spending ({cost.total_cost:.2f}) is {ratio * 100:.0f}% different "
                        f"from historical average ({mean_total:.2f})"
                    ),
                    confidence_score=_fallback_score(min(0.7, ratio / 5)),
                    suggested_action="Review recent changes in resource usage and configuration",
                    source=ResultSource.FALLBACK,
                )
            )

        for service, current in cost.service_breakdown.items():
            if current <= cost.total_cost * SERVICE_NOISE_FRACTION:
                continue
            mean_service = historical_mean(history, service)
            service_ratio = deviation_ratio(current, mean_service)
            if service_ratio <= 2.0:
                continue
            found.append(
                Anomaly(
                    service=service,
                    severity=Severity.HIGH if service_ratio > 4.0 else Severity.MEDIUM,
                    description=(
                        f"{service} cost ({current:.2f}) is {service_ratio * 100:.0f}% different "
                        f"from historical average ({mean_service:.2f})"
                    ),
                    confidence_score=_fallback_score(min(0.6, service_ratio / 6)),
                    suggested_action=f"Review {service} usage patterns and recent configuration changes",
                    source=ResultSource.FALLBACK,
                )
            )

        found.sort(key=lambda anomaly: anomaly.confidence_score, reverse=True)
        return AnomalyReport(
            anomalies=tuple(found[: Limits.MAX_FALLBACK_ANOMALIES]),
            source=ResultSource.FALLBACK,
        )

    def recommendations(self, cost: CostBreakdown) -> List[OptimizationRecommendation]:
        recs: List[OptimizationRecommendation] = []

        for service, service_cost in cost.top_services(Limits.FALLBACK_TOP_SERVICES):
            share = cost.share_of(service)
            if share <= RECOMMEND_MIN_FRACTION:
                continue

            if _matches(service, COMPUTE_MARKERS):
                recs.append(
                    self._recommendation(
                        RecommendationCategory.RIGHTSIZING,
                        service,
                        service_cost,
                        f"Review instance types and sizes of {service} for rightsizing opportunities",
                        Priority.HIGH if share > 0.3 else Priority.MEDIUM,
                        Complexity.MEDIUM,
                    )
                )
                recs.append(
                    self._recommendation(
                        RecommendationCategory.RESERVED_CAPACITY,
                        service,
                        service_cost,
                        f"Consider reserved capacity for steady {service} workloads",
                        Priority.MEDIUM,
                        Complexity.EASY,
                    )
                )
            elif _matches(service, STORAGE_MARKERS):
                recs.append(
                    self._recommendation(
                        RecommendationCategory.STORAGE_TIERING,
                        service,
                        service_cost,
                        f"Optimize storage classes and lifecycle policies for {service}",
                        Priority.HIGH if share > 0.2 else Priority.MEDIUM,
                        Complexity.EASY,
                    )
                )
            elif _matches(service, DATABASE_MARKERS):
                recs.append(
                    self._recommendation(
                        RecommendationCategory.RIGHTSIZING,
                        service,
                        service_cost,
                        f"Review database instance sizes and performance requirements for {service}",
                        Priority.MEDIUM,
                        Complexity.MEDIUM,
                    )
                )

        return recs[: Limits.MAX_FALLBACK_RECOMMENDATIONS]

    @staticmethod
    def _recommendation(
        category: RecommendationCategory,
        service: str,
        service_cost: float,
        description: str,
        priority: Priority,
        complexity: Complexity,
    ) -> OptimizationRecommendation:
        return OptimizationRecommendation(
            category=category,
            service=service,
            description=description,
            estimated_savings=round_savings(estimate_savings(category, service_cost), service_cost),
            priority=priority,
            implementation_complexity=complexity,
            source=ResultSource.FALLBACK,
        )
