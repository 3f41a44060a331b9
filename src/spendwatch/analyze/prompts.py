from __future__ import annotations

from typing import Optional, Sequence

from ..constants import Limits
from ..models import CostBreakdown

SYSTEM_PROMPT = (
    "You are a cloud cost analyst. Answer only with the JSON object requested, "
    "with no surrounding prose."
)


def _service_lines(cost: CostBreakdown, limit: Optional[int] = None) -> str:
    lines = [f"{service}: ${amount:.2f}" for service, amount in cost.top_services(limit)]
    return "\n".join(lines) if lines else "(no service costs reported)"


def _header(cost: CostBreakdown) -> str:
    header = (
        f"Current Cost: ${cost.total_cost:.2f}\n"
        f"Projected Monthly Cost: ${cost.projected:.2f}"
    )
    if cost.period_start or cost.period_end:
        header += f"\nPeriod: {cost.period_start} to {cost.period_end}"
    return header


def build_spending_prompt(cost: CostBreakdown) -> str:
    return f"""
Analyze the following cloud cost data and provide insights:

{_header(cost)}

Top Services by Cost:
{_service_lines(cost, Limits.SUMMARY_PROMPT_SERVICES)}

Please provide:
1. A concise summary of spending patterns (2-3 sentences)
2. Key insights about cost drivers and trends (3-5 bullet points)
3. Confidence score (0.0 to 1.0) for this analysis

Format your response as JSON:
{{
  "summary": "Brief summary of spending patterns",
  "keyInsights": ["Insight 1", "Insight 2", "Insight 3"],
  "confidenceScore": 0.85
}}

Ensure the response is valid JSON and confidence score is between 0.0 and 1.0.
""".strip()


def build_anomaly_prompt(cost: CostBreakdown, history: Optional[Sequence[CostBreakdown]] = None) -> str:
    prompt = f"""
Analyze the following cloud cost data for anomalies:

{_header(cost)}

Service Breakdown:
{_service_lines(cost)}
""".rstrip()

    if history:
        prompt += "\n\nHistorical Data for Comparison:"
        for index, period in enumerate(history, start=1):
            prompt += f"\nPeriod {index}: ${period.total_cost:.2f}"

    prompt += """

Identify any spending anomalies and respond in JSON format:
{
  "anomaliesDetected": true,
  "anomalies": [
    {
      "service": "Service Name",
      "severity": "LOW/MEDIUM/HIGH",
      "description": "Description of anomaly",
      "confidenceScore": 0.85,
      "suggestedAction": "Recommended action"
    }
  ]
}"""
    return prompt.strip()


def build_optimization_prompt(cost: CostBreakdown) -> str:
    return f"""
Analyze the following cloud cost data and provide optimization recommendations:

{_header(cost)}

Service Costs:
{_service_lines(cost)}

Provide cost optimization recommendations in JSON format:
{{
  "recommendations": [
    {{
      "category": "RIGHTSIZING/RESERVED_CAPACITY/SPOT_CAPACITY/STORAGE_TIERING/OTHER",
      "service": "Service Name",
      "description": "Detailed recommendation",
      "estimatedSavings": 100.50,
      "priority": "LOW/MEDIUM/HIGH",
      "implementationComplexity": "EASY/MEDIUM/COMPLEX"
    }}
  ]
}}
""".strip()
