"""Model-assisted analysis and its heuristic fallback."""

from .confidence import ConfidenceEnhancer
from .fallback import FallbackGenerator
from .invoker import EndpointInvoker, ModelInvoker, ProviderInvoker, build_invoker
from .orchestrator import CostAnalysisPipeline
from .response_parser import ResponseParser, Unparseable

__all__ = [
    "ConfidenceEnhancer",
    "CostAnalysisPipeline",
    "EndpointInvoker",
    "FallbackGenerator",
    "ModelInvoker",
    "ProviderInvoker",
    "ResponseParser",
    "Unparseable",
    "build_invoker",
]
