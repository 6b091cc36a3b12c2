import math
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictStr, field_validator
from pydantic.alias_generators import to_camel

PRIORITIES = ("High", "Medium", "Low")


def to_number(value) -> float:
    """Read a form value as a number; anything unreadable collapses to 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


class HotelContext(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    city: str = "London"
    target_profitability: float = Field(15, alias="targetProfitability")  # percent
    timeframe: int = 18  # months
    current_revpar: float = Field(145, alias="currentRevPAR")
    current_adr: float = Field(180, alias="currentADR")
    current_occupancy: float = Field(82, alias="currentOccupancy")  # percent

    @field_validator("city", mode="before")
    @classmethod
    def _coerce_city(cls, value):
        return "" if value is None else str(value)

    @field_validator("target_profitability", "current_revpar", "current_adr", "current_occupancy", mode="before")
    @classmethod
    def _coerce_number(cls, value):
        return to_number(value)

    @field_validator("timeframe", mode="before")
    @classmethod
    def _coerce_months(cls, value):
        return int(to_number(value))


# --- Gemini response ---

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Recommendation(_CamelModel):
    category: StrictStr
    action: StrictStr
    goal: StrictStr
    impact: StrictStr
    priority: Literal["High", "Medium", "Low"]

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value):
        # "high", " HIGH " -> "High"; anything else is left for Literal to reject
        if isinstance(value, str):
            for priority in PRIORITIES:
                if value.strip().lower() == priority.lower():
                    return priority
        return value


class PersonalizedOffer(_CamelModel):
    title: StrictStr
    description: StrictStr
    delivery_channel: StrictStr


class GuestSegment(_CamelModel):
    name: StrictStr
    percentage: StrictFloat
    characteristics: List[StrictStr]
    personalized_offers: List[PersonalizedOffer]


class RateAdjustment(_CamelModel):
    segment: StrictStr
    current_rate: StrictFloat
    recommended_rate: StrictFloat
    reason: StrictStr


class GroundingSource(_CamelModel):
    title: str
    uri: str


class MarketAnalysis(_CamelModel):
    market_sentiment: StrictStr
    competitor_trends: StrictStr
    recommendations: List[Recommendation]
    segments: Optional[List[GuestSegment]] = None
    rate_adjustments: Optional[List[RateAdjustment]] = None
    grounding_sources: List[GroundingSource] = []


# --- Dashboard ---

class ProjectionPoint(_CamelModel):
    month: str
    projected: int
    actual: Optional[int] = None


class MetricCard(_CamelModel):
    label: str
    value: str
    trend: Optional[float] = None


class DashboardView(_CamelModel):
    context: HotelContext
    metrics: List[MetricCard]
    projections: List[ProjectionPoint]
    analysis: Optional[MarketAnalysis] = None
    error: Optional[str] = None
    is_loading: bool = False
    top_sources: List[GroundingSource] = []
    action_plan: Dict[str, List[Recommendation]] = {}
