from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Anomaly severity."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Priority(str, Enum):
    """Recommendation priority."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Complexity(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    COMPLEX = "COMPLEX"


class RecommendationCategory(str, Enum):
    RIGHTSIZING = "RIGHTSIZING"
    RESERVED_CAPACITY = "RESERVED_CAPACITY"
    SPOT_CAPACITY = "SPOT_CAPACITY"
    STORAGE_TIERING = "STORAGE_TIERING"
    OTHER = "OTHER"


class ResultSource(str, Enum):
    """Where an analysis result came from."""

    MODEL = "model"
    FALLBACK = "fallback"


class AnalysisKind(str, Enum):
    SPENDING_SUMMARY = "spending_summary"
    ANOMALIES = "anomalies"
    OPTIMIZATIONS = "optimizations"


PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}
SEVERITY_RANK = {Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}

# Typical savings as a fraction of the service's cost.
SAVINGS_RATIOS = {
    RecommendationCategory.RIGHTSIZING: 0.30,
    RecommendationCategory.RESERVED_CAPACITY: 0.40,
    RecommendationCategory.SPOT_CAPACITY: 0.60,
    RecommendationCategory.STORAGE_TIERING: 0.25,
    RecommendationCategory.OTHER: 0.15,
}


class Limits:
    """Shared hard limits."""

    MAX_SAVINGS_FRACTION = 0.8
    MIN_ANOMALY_CONFIDENCE = 0.3
    FALLBACK_SUMMARY_CONFIDENCE = 0.3
    # Fallback findings stay strictly below a nominal model result.
    MAX_FALLBACK_CONFIDENCE = 0.69
    MAX_FALLBACK_ANOMALIES = 5
    MAX_FALLBACK_RECOMMENDATIONS = 8
    FALLBACK_TOP_SERVICES = 5
    SUMMARY_PROMPT_SERVICES = 10
