from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from ..clock import Clock, SystemClock
from ..config import SpendWatchConfig
from ..constants import AnalysisKind
from ..errors import AnalysisDisabledError
from ..logging import SpendLogger
from ..models import AnalysisResult, AnomalyReport, CostBreakdown, OptimizationRecommendation
from ..resilience import CircuitBreaker, RateLimiter, RetryExecutor, describe_error
from ..telemetry import MetricsCollector, OperationTimer
from .confidence import ConfidenceEnhancer
from .fallback import FallbackGenerator
from .invoker import ModelInvoker, build_invoker
from .prompts import build_anomaly_prompt, build_optimization_prompt, build_spending_prompt
from .response_parser import ResponseParser, Unparseable

T = TypeVar("T")

ACCESS_CHECK_PROMPT = 'Respond with the JSON object {"status": "ok"}.'


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CostAnalysisPipeline:
    """
    Model-assisted cost analysis with graceful degradation.

    Every model call goes through the same chain:
    rate limiter -> circuit breaker -> retry executor -> invoker.
    Unusable model output is always replaced by a heuristic result;
    infrastructure failures are replaced only when ``fallback_on_error`` is set.
    """

    def __init__(
        self,
        config: SpendWatchConfig,
        invoker: ModelInvoker,
        logger: Optional[SpendLogger] = None,
        metrics: Optional[MetricsCollector] = None,
        rate_limiter: Optional[RateLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry_executor: Optional[RetryExecutor] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config
        self.invoker = invoker
        self.logger = logger or SpendLogger("CostAnalysisPipeline")
        self.metrics = metrics or MetricsCollector()
        self.clock = clock or SystemClock()

        self.rate_limiter = rate_limiter or RateLimiter(
            config.rate_limit_per_minute,
            config.rate_limit_window_seconds,
            clock=self.clock,
            logger=self.logger.child("RateLimiter"),
        )
        self.breaker = breaker or CircuitBreaker(
            f"model:{invoker.model_id or 'default'}",
            config.breaker_config(),
            clock=self.clock,
            logger=self.logger.child("CircuitBreaker"),
        )
        self.retry_executor = retry_executor or RetryExecutor(
            config.retry_policy(),
            clock=self.clock,
            logger=self.logger.child("RetryExecutor"),
        )

        self.parser = ResponseParser()
        self.enhancer = ConfidenceEnhancer()
        self.fallback = FallbackGenerator()
        self._last_access_check: Optional[Dict[str, Any]] = None

    @classmethod
    def from_config(
        cls,
        config: SpendWatchConfig,
        logger: Optional[SpendLogger] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "CostAnalysisPipeline":
        """Build a pipeline whose invoker is selected by ``config.llm_provider``."""
        return cls(config, build_invoker(config), logger=logger, metrics=metrics)

    async def analyze_spending(self, cost: CostBreakdown) -> AnalysisResult:
        def finish(parsed: AnalysisResult, processing_cost: float) -> AnalysisResult:
            return replace(
                parsed,
                model_used=self.invoker.model_id,
                analysis_timestamp=_utc_now(),
                processing_cost=processing_cost,
            )

        return await self._analyze(
            "analyze_spending",
            AnalysisKind.SPENDING_SUMMARY,
            build_spending_prompt(cost),
            finish,
            lambda: self.fallback.spending_summary(cost),
        )

    async def detect_anomalies(
        self,
        cost: CostBreakdown,
        history: Optional[Sequence[CostBreakdown]] = None,
    ) -> AnomalyReport:
        def finish(parsed: AnomalyReport, processing_cost: float) -> AnomalyReport:
            return self.enhancer.enhance_anomalies(parsed, cost, history)

        return await self._analyze(
            "detect_anomalies",
            AnalysisKind.ANOMALIES,
            build_anomaly_prompt(cost, history),
            finish,
            lambda: self.fallback.anomalies(cost, history),
        )

    async def recommend_optimizations(self, cost: CostBreakdown) -> List[OptimizationRecommendation]:
        def finish(
            parsed: List[OptimizationRecommendation], processing_cost: float
        ) -> List[OptimizationRecommendation]:
            return self.enhancer.enhance_recommendations(parsed, cost)

        return await self._analyze(
            "recommend_optimizations",
            AnalysisKind.OPTIMIZATIONS,
            build_optimization_prompt(cost),
            finish,
            lambda: self.fallback.recommendations(cost),
        )

    async def validate_model_access(self) -> bool:
        """Single direct call to the model. No retry, no breaker."""
        try:
            await self.invoker.invoke(ACCESS_CHECK_PROMPT)
        except Exception as exc:
            self._last_access_check = {"ok": False, "checked_at": _utc_now(), "error": str(exc)}
            self.logger.warning(
                "model_access_check_failed",
                model=self.invoker.model_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return False

        self._last_access_check = {"ok": True, "checked_at": _utc_now(), "error": None}
        self.logger.info("model_access_check_passed", model=self.invoker.model_id)
        return True

    def health_status(self) -> Dict[str, Any]:
        breaker = self.breaker.get_status()
        rate_limit = self.rate_limiter.get_status()

        if breaker["phase"] == "OPEN" or (self._last_access_check and not self._last_access_check["ok"]):
            overall = "critical"
        elif (
            breaker["phase"] == "HALF_OPEN"
            or breaker["consecutive_failures"] > 0
            or rate_limit["status"] != "normal"
        ):
            overall = "warning"
        else:
            overall = "healthy"

        return {
            "overall": overall,
            "enabled": self.config.enabled,
            "model": self.invoker.model_id,
            "circuit_breaker": breaker,
            "rate_limit": rate_limit,
            "last_model_access_check": self._last_access_check,
        }

    async def _analyze(
        self,
        operation: str,
        kind: AnalysisKind,
        prompt: str,
        finish: Callable[[Any, float], T],
        fallback: Callable[[], T],
    ) -> T:
        if not self.config.enabled:
            raise AnalysisDisabledError(f"Model analysis is disabled; cannot run {operation}")

        timer = self._start_timer(operation)
        try:
            raw = await self._call_model(prompt, operation)
        except Exception as exc:
            self._stop_timer(timer, success=False)
            descriptor = describe_error(exc)
            if not self.config.fallback_on_error:
                self.logger.error(
                    "analysis_failed",
                    operation=operation,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    error_kind=descriptor.kind.value,
                )
                raise
            self.logger.warning(
                "analysis_fallback",
                operation=operation,
                reason="model_unavailable",
                error_type=type(exc).__name__,
                error=str(exc),
                error_kind=descriptor.kind.value,
            )
            self._record_fallback(operation)
            return fallback()

        parsed = self.parser.parse(raw, kind)
        if isinstance(parsed, Unparseable):
            self._stop_timer(timer, success=False)
            self.logger.warning(
                "analysis_fallback",
                operation=operation,
                reason="unparseable_response",
                error=parsed.reason,
                response_chars=len(parsed.raw_response),
            )
            self._record_fallback(operation)
            return fallback()

        result = finish(parsed, self.invoker.estimate_cost(prompt, raw))
        self._stop_timer(timer, success=True)
        self.logger.info("analysis_complete", operation=operation, model=self.invoker.model_id)
        return result

    async def _call_model(self, prompt: str, operation: str) -> str:
        await self.rate_limiter.acquire()
        return await self.breaker.execute(
            lambda: self.retry_executor.run(
                lambda: self.invoker.invoke(prompt),
                label=operation,
            )
        )

    # Metrics are best-effort: a failing sink never changes the analysis outcome.

    def _start_timer(self, operation: str) -> Optional[OperationTimer]:
        try:
            return self.metrics.create_timer(operation)
        except Exception as exc:
            self.logger.warning("metrics_error", operation=operation, error=str(exc))
            return None

    def _stop_timer(self, timer: Optional[OperationTimer], success: bool) -> None:
        if timer is None:
            return
        try:
            timer.stop(success)
        except Exception as exc:
            self.logger.warning("metrics_error", error=str(exc))

    def _record_fallback(self, operation: str) -> None:
        try:
            self.metrics.record_fallback(operation)
        except Exception as exc:
            self.logger.warning("metrics_error", operation=operation, error=str(exc))
