from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from ..constants import (
    AnalysisKind,
    Complexity,
    Priority,
    RecommendationCategory,
    ResultSource,
    Severity,
)
from ..errors import ParseError
from ..models import AnalysisResult, Anomaly, AnomalyReport, OptimizationRecommendation

CATEGORY_ALIASES = {
    "RESERVED_INSTANCES": RecommendationCategory.RESERVED_CAPACITY,
    "SAVINGS_PLANS": RecommendationCategory.RESERVED_CAPACITY,
    "SPOT_INSTANCES": RecommendationCategory.SPOT_CAPACITY,
    "PREEMPTIBLE": RecommendationCategory.SPOT_CAPACITY,
    "STORAGE_OPTIMIZATION": RecommendationCategory.STORAGE_TIERING,
}


@dataclass(frozen=True)
class Unparseable:
    """Sentinel for model text that could not be turned into a typed result."""

    kind: AnalysisKind
    reason: str
    raw_response: str


ParsedValue = Union[AnalysisResult, AnomalyReport, List[OptimizationRecommendation]]


class ResponseParser:
    """Parse raw model text into typed analysis results. Never raises."""

    def parse(self, raw: str, kind: AnalysisKind) -> Union[ParsedValue, Unparseable]:
        """
        Parse ``raw`` for the given analysis ``kind``.

        Handles:
        - Bare JSON objects
        - JSON wrapped in prose or markdown code fences
        - Out-of-range confidence scores (clamped to [0, 1])
        Unknown fields are ignored.
        """
        text = raw or ""
        try:
            payload = self._load_object(text)
            if kind is AnalysisKind.SPENDING_SUMMARY:
                return self._to_summary(payload)
            if kind is AnalysisKind.ANOMALIES:
                return self._to_anomaly_report(payload)
            return self._to_recommendations(payload)
        except (ParseError, ValueError, OverflowError, RecursionError) as exc:
            return Unparseable(kind=kind, reason=str(exc), raw_response=text)

    def _load_object(self, text: str) -> dict:
        content = text.strip()
        if not content:
            raise ParseError("Empty response")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            parsed = None

        if not isinstance(parsed, dict):
            span = find_balanced_object(content)
            if span is None:
                raise ParseError("No JSON object found in response")
            try:
                parsed = json.loads(span)
            except json.JSONDecodeError as exc:
                raise ParseError(f"Invalid JSON object: {exc}") from exc

        if not isinstance(parsed, dict):
            raise ParseError("Response is not a JSON object")
        return parsed

    def _to_summary(self, obj: dict) -> AnalysisResult:
        summary = obj.get("summary")
        insights = obj.get("keyInsights")
        if not isinstance(summary, str) or not summary.strip():
            raise ParseError("summary must be a non-empty string")
        if not isinstance(insights, list) or not all(isinstance(item, str) for item in insights):
            raise ParseError("keyInsights must be a list of strings")
        confidence = _confidence(obj.get("confidenceScore"))
        if confidence is None:
            raise ParseError("confidenceScore must be a number")
        return AnalysisResult(
            summary=summary.strip(),
            key_insights=tuple(insights),
            confidence_score=confidence,
            source=ResultSource.MODEL,
        )

    def _to_anomaly_report(self, obj: dict) -> AnomalyReport:
        items = obj.get("anomalies")
        if items is None and obj.get("anomaliesDetected") is False:
            return AnomalyReport(anomalies=(), source=ResultSource.MODEL)
        if not isinstance(items, list):
            raise ParseError("anomalies must be a list")

        anomalies, errors = [], []
        for idx, item in enumerate(items):
            try:
                anomalies.append(self._to_anomaly(item))
            except ParseError as exc:
                errors.append(f"Item {idx + 1}: {exc}")
        if items and not anomalies:
            raise ParseError("; ".join(errors))
        return AnomalyReport(anomalies=tuple(anomalies), source=ResultSource.MODEL)

    def _to_anomaly(self, item: Any) -> Anomaly:
        if not isinstance(item, dict):
            raise ParseError("Not an object")
        service = item.get("service")
        if not isinstance(service, str) or not service.strip():
            raise ParseError("service must be a non-empty string")
        severity = _enum_value(Severity, item.get("severity"))
        if severity is None:
            raise ParseError("severity must be LOW, MEDIUM or HIGH")
        confidence = _confidence(item.get("confidenceScore"))
        if confidence is None:
            raise ParseError("confidenceScore must be a number")
        return Anomaly(
            service=service.strip(),
            severity=severity,
            description=str(item.get("description") or ""),
            confidence_score=confidence,
            suggested_action=str(item.get("suggestedAction") or ""),
            source=ResultSource.MODEL,
        )

    def _to_recommendations(self, obj: dict) -> List[OptimizationRecommendation]:
        items = obj.get("recommendations")
        if not isinstance(items, list):
            raise ParseError("recommendations must be a list")

        recommendations, errors = [], []
        for idx, item in enumerate(items):
            try:
                recommendations.append(self._to_recommendation(item))
            except ParseError as exc:
                errors.append(f"Item {idx + 1}: {exc}")
        if items and not recommendations:
            raise ParseError("; ".join(errors))
        return recommendations

    def _to_recommendation(self, item: Any) -> OptimizationRecommendation:
        if not isinstance(item, dict):
            raise ParseError("Not an object")
        service = item.get("service")
        description = item.get("description")
        if not isinstance(service, str) or not service.strip():
            raise ParseError("service must be a non-empty string")
        if not isinstance(description, str):
            raise ParseError("description must be a string")

        savings = _number(item.get("estimatedSavings"))
        return OptimizationRecommendation(
            category=_category(item.get("category")),
            service=service.strip(),
            description=description,
            estimated_savings=max(0.0, savings) if savings is not None else 0.0,
            priority=_enum_value(Priority, item.get("priority")) or Priority.MEDIUM,
            implementation_complexity=(
                _enum_value(Complexity, item.get("implementationComplexity")) or Complexity.MEDIUM
            ),
            source=ResultSource.MODEL,
        )


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span in ``text``, honoring JSON strings."""
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _confidence(value: Any) -> Optional[float]:
    number = _number(value)
    if number is None:
        return None
    return min(1.0, max(0.0, number))


def _enum_value(enum_cls, value: Any):
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        return None


def _category(value: Any) -> RecommendationCategory:
    if not isinstance(value, str):
        return RecommendationCategory.OTHER
    key = value.strip().upper().replace("-", "_").replace(" ", "_")
    if key in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[key]
    try:
        return RecommendationCategory(key)
    except ValueError:
        return RecommendationCategory.OTHER

