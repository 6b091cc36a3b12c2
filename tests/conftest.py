import copy
from types import SimpleNamespace

import pytest

from revenue_advisor.config import Settings
from revenue_advisor.gemini_client import ActionPlanClient

SAMPLE_PAYLOAD = {
    "marketSentiment": "Demand in London is firm with several large conferences in Q3.",
    "competitorTrends": "Nearby 4-star hotels are pricing weekday rooms 6% above last year.",
    "recommendations": [
        {
            "category": "Revenue",
            "action": "Introduce weekday corporate packages",
            "goal": "Lift weekday ADR",
            "impact": "+4% RevPAR",
            "priority": "High",
        },
        {
            "category": "Guest Exp",
            "action": "Pre-arrival spa upsell email",
            "goal": "Grow ancillary spend",
            "impact": "+£12 per stay",
            "priority": "Medium",
        },
        {
            "category": "Revenue",
            "action": "Length-of-stay discounts on weekends",
            "goal": "Fill Sunday nights",
            "impact": "+2 pts occupancy",
            "priority": "Low",
        },
    ],
    "segments": [
        {
            "name": "Corporate travellers",
            "percentage": 45,
            "characteristics": ["Weekday stays", "Short lead time"],
            "personalizedOffers": [
                {
                    "title": "Executive upgrade",
                    "description": "Club lounge access for stays of three nights or more",
                    "deliveryChannel": "pre-arrival email",
                }
            ],
        }
    ],
    "rateAdjustments": [
        {
            "segment": "Corporate travellers",
            "currentRate": 180,
            "recommendedRate": 192.5,
            "reason": "Competitor weekday rates are up",
        }
    ],
}


class FakeResponse:
    def __init__(self, text, chunks=None):
        self.text = text
        metadata = SimpleNamespace(grounding_chunks=chunks) if chunks is not None else None
        self.candidates = [SimpleNamespace(grounding_metadata=metadata)]


class FakeModels:
    def __init__(self, owner):
        self.owner = owner

    def generate_content(self, model=None, contents=None, config=None):
        self.owner.calls.append({"model": model, "prompt": contents, "config": config})
        if self.owner.error is not None:
            raise self.owner.error
        return FakeResponse(self.owner.text, self.owner.chunks)


class FakeGenai:
    """Stands in for google.genai.Client; records every generate_content call."""

    def __init__(self, text=None, chunks=None, error=None):
        self.text = text
        self.chunks = chunks
        self.error = error
        self.calls = []
        self.models = FakeModels(self)


def web_chunk(title, uri):
    return SimpleNamespace(web=SimpleNamespace(title=title, uri=uri))


@pytest.fixture
def payload():
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def settings():
    return Settings(gemini_api_key="test-key", gemini_model="gemini-test", request_timeout=5)


@pytest.fixture
def make_client(settings):
    def _make(genai, variant=None):
        return ActionPlanClient(settings, genai_client=genai, variant=variant)
    return _make
