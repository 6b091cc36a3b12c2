import json
import math
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from revenue_advisor.errors import ParseError
from revenue_advisor.models import (
    PRIORITIES,
    GroundingSource,
    HotelContext,
    MarketAnalysis,
    MetricCard,
    ProjectionPoint,
    Recommendation,
)

BASE_PROFIT = 100000
ACTUAL_MONTHS = 3  # months with an illustrative "actual" series
ACTUAL_DAMPING = 0.95
MAX_MONTHS = 120  # longest plan the projection will chart


class SchemaVariant(BaseModel):
    """Which optional sections the Gemini response schema asks for."""
    model_config = ConfigDict(frozen=True)

    include_segments: bool = True
    include_rate_adjustments: bool = True

    @classmethod
    def from_name(cls, name: str) -> "SchemaVariant":
        if name == "basic":
            return BASIC_VARIANT
        if name == "full":
            return FULL_VARIANT
        raise ValueError(f"Unknown schema variant: {name!r} (expected 'basic' or 'full')")


BASIC_VARIANT = SchemaVariant(include_segments=False, include_rate_adjustments=False)
FULL_VARIANT = SchemaVariant()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# --- Local projections ---

def project_profit(target_profitability: float, timeframe: int) -> List[ProjectionPoint]:
    """
    Linear profit projection from BASE_PROFIT to the target over the timeframe.

    Month i is projected at BASE_PROFIT * (1 + rate * i) where rate is the
    target spread evenly over the months. The first ACTUAL_MONTHS months also
    carry a damped "actual" series for the actual-vs-plan chart.
    A timeframe of 0 (or less) means no growth and a single point; longer
    timeframes are clamped to MAX_MONTHS.
    """
    months = min(max(timeframe, 0), MAX_MONTHS)
    monthly_growth = (target_profitability / 100) / months if months > 0 else 0.0

    points = []
    for i in range(months + 1):
        actual = None
        if i <= ACTUAL_MONTHS:
            actual = _round_half_up(BASE_PROFIT * (1 + monthly_growth * i * ACTUAL_DAMPING))
        points.append(ProjectionPoint(
            month=f"M{i}",
            projected=_round_half_up(BASE_PROFIT * (1 + monthly_growth * i)),
            actual=actual,
        ))
    return points


def build_projection(context: HotelContext) -> List[ProjectionPoint]:
    return project_profit(context.target_profitability, context.timeframe)


def build_metric_cards(context: HotelContext) -> List[MetricCard]:
    """Headline KPI cards shown above the projection chart."""
    velocity = context.target_profitability / context.timeframe if context.timeframe > 0 else 0.0
    return [
        MetricCard(label="Current RevPAR", value=f"${_format_number(context.current_revpar)}", trend=3.2),
        MetricCard(label="Average Daily Rate", value=f"${_format_number(context.current_adr)}", trend=1.8),
        MetricCard(label="Occupancy Rate", value=f"{_format_number(context.current_occupancy)}%", trend=-0.5),
        MetricCard(label="Profit Velocity", value=f"{velocity:+.1f}%/mo"),
    ]


# --- Prompt & schema ---

def build_prompt(context: HotelContext, variant: SchemaVariant = FULL_VARIANT) -> str:
    """
    Builds the consultant prompt sent to Gemini for one hotel context.
    """
    city = context.city
    tasks = [
        f"Use Google Search for real-time market data in {city} (competitor rates, upcoming events, local demand).",
        "Analyze (simulated) transaction patterns: High business travel during weekdays, "
        "family leisure on weekends, significant untapped spa/dining potential.",
    ]
    if variant.include_segments:
        tasks.append("Identify 3 distinct guest segments with specific characteristics.")
        tasks.append(
            "Create personalized offers for each segment (upgrades, spa, dining, local tours) with delivery "
            "channel strategies (pre-arrival email, app notification, check-in)."
        )
    if variant.include_rate_adjustments:
        tasks.append(
            "Provide Dynamic Pricing recommendations: Adjust room rates based on current market trends found via search."
        )
    tasks.append("Provide a structured action plan for Revenue, Ops, Guest Exp, and Tech.")

    task_lines = "\n".join(f"{n}. {task}" for n, task in enumerate(tasks, start=1))
    return (
        f"Act as a Senior Revenue & Guest Experience Consultant for a mid-sized city hotel in {city}.\n"
        f"Goal: Increase profitability by {_format_number(context.target_profitability)}% "
        f"in {context.timeframe} months.\n\n"
        f"Current Metrics:\n"
        f"- RevPAR: ${_format_number(context.current_revpar)} | ADR: ${_format_number(context.current_adr)} "
        f"| Occupancy: {_format_number(context.current_occupancy)}%\n\n"
        f"Tasks:\n{task_lines}\n\n"
        f"Return the response in JSON format."
    )


def _string() -> dict:
    return {"type": "STRING"}


def _number() -> dict:
    return {"type": "NUMBER"}


def _array(items: dict) -> dict:
    return {"type": "ARRAY", "items": items}


def _object(properties: dict, required: Optional[List[str]] = None) -> dict:
    return {
        "type": "OBJECT",
        "properties": properties,
        "required": list(properties) if required is None else required,
    }


def build_response_schema(variant: SchemaVariant = FULL_VARIANT) -> dict:
    """
    Output schema in the Gemini OpenAPI subset (type / properties / items /
    required / enum). The same dict is sent with the request and used to
    check required fields on the reply.
    """
    recommendation = _object({
        "category": _string(),
        "action": _string(),
        "goal": _string(),
        "impact": _string(),
        "priority": {"type": "STRING", "enum": list(PRIORITIES)},
    })
    properties = {
        "marketSentiment": _string(),
        "competitorTrends": _string(),
        "recommendations": _array(recommendation),
    }

    if variant.include_segments:
        offer = _object({
            "title": _string(),
            "description": _string(),
            "deliveryChannel": _string(),
        })
        properties["segments"] = _array(_object({
            "name": _string(),
            "percentage": _number(),
            "characteristics": _array(_string()),
            "personalizedOffers": _array(offer),
        }))

    if variant.include_rate_adjustments:
        properties["rateAdjustments"] = _array(_object({
            "segment": _string(),
            "currentRate": _number(),
            "recommendedRate": _number(),
            "reason": _string(),
        }))

    return _object(properties)


# --- Response handling ---

def find_missing_fields(value, schema: dict, path: str = "") -> List[str]:
    """Paths of required fields absent (or null) anywhere in value."""
    missing = []
    if schema.get("type") == "OBJECT" and isinstance(value, dict):
        for name in schema.get("required", []):
            if value.get(name) is None:
                missing.append(f"{path}.{name}" if path else name)
        for name, sub_schema in schema.get("properties", {}).items():
            if value.get(name) is not None:
                missing.extend(find_missing_fields(value[name], sub_schema, f"{path}.{name}" if path else name))
    elif schema.get("type") == "ARRAY" and isinstance(value, list):
        for i, item in enumerate(value):
            missing.extend(find_missing_fields(item, schema["items"], f"{path}[{i}]"))
    return missing


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rstrip()
        if text.endswith("```"):
            text = text[:-3]
    return text


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}"


def parse_analysis(
    text: Optional[str],
    variant: SchemaVariant = FULL_VARIANT,
    sources: Optional[List[GroundingSource]] = None,
) -> MarketAnalysis:
    """
    Turn the raw Gemini text into a MarketAnalysis.

    The reply must be a JSON object carrying every required field of the
    variant's schema; anything else raises ParseError rather than yielding a
    partially filled analysis. Fields the variant did not ask for are dropped.
    """
    if not text or not text.strip():
        raise ParseError("Gemini returned an empty response")

    try:
        payload = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ParseError(f"Gemini response is not valid JSON: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ParseError("Gemini response is not a JSON object")

    schema = build_response_schema(variant)
    missing = find_missing_fields(payload, schema)
    if missing:
        raise ParseError(f"Gemini response is missing required fields: {', '.join(missing)}")

    data = {key: payload[key] for key in schema["properties"] if key in payload}
    data["groundingSources"] = [source.model_dump() for source in sources or []]

    try:
        return MarketAnalysis.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Gemini response does not match the schema: {_describe_validation_error(e)}") from e


def extract_grounding_sources(response) -> List[GroundingSource]:
    """
    Collect {title, uri} for every web chunk in the first candidate's
    grounding metadata, in order. Non-web chunks are skipped and a response
    without grounding metadata yields an empty list.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []

    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = (getattr(metadata, "grounding_chunks", None) or []) if metadata else []

    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if not web:
            continue
        sources.append(GroundingSource(
            title=getattr(web, "title", None) or "",
            uri=getattr(web, "uri", None) or "",
        ))
    return sources


def group_by_category(recommendations: List[Recommendation]) -> Dict[str, List[Recommendation]]:
    grouped: Dict[str, List[Recommendation]] = {}
    for rec in recommendations:
        grouped.setdefault(rec.category, []).append(rec)
    return grouped
