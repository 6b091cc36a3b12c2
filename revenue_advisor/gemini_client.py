import logging
from typing import Optional

from google import genai
from google.genai import types

from revenue_advisor.config import Settings
from revenue_advisor.errors import ParseError, RequestError
from revenue_advisor.logic import (
    SchemaVariant,
    build_prompt,
    build_response_schema,
    extract_grounding_sources,
    parse_analysis,
)
from revenue_advisor.models import HotelContext, MarketAnalysis

logger = logging.getLogger("revenue_advisor.gemini")


class ActionPlanClient:
    """
    Wraps the single Gemini call behind the dashboard.

    Built once at startup from explicit Settings. A genai.Client (or any
    object exposing models.generate_content) can be passed in; otherwise one
    is created on first use from the configured API key.
    """

    def __init__(self, settings: Settings, genai_client=None, variant: Optional[SchemaVariant] = None):
        self.settings = settings
        self.variant = variant or SchemaVariant.from_name(settings.schema_variant)
        self._client = genai_client

    def _get_client(self):
        if self._client is None:
            if not self.settings.gemini_api_key:
                raise RequestError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(
                api_key=self.settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(self.settings.request_timeout * 1000)),
            )
        return self._client

    def generation_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())],
            response_mime_type="application/json",
            response_schema=build_response_schema(self.variant),
        )

    def generate_action_plan(self, context: HotelContext) -> MarketAnalysis:
        """
        Ask Gemini for a market analysis of the given context.

        Raises RequestError when the call itself fails and ParseError when
        the reply cannot be turned into a MarketAnalysis.
        """
        logger.info(f"Requesting action plan for {context.city} from {self.settings.gemini_model}")
        try:
            client = self._get_client()
            response = client.models.generate_content(
                model=self.settings.gemini_model,
                contents=build_prompt(context, self.variant),
                config=self.generation_config(),
            )
        except RequestError:
            raise
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise RequestError(str(e) or f"Gemini request failed: {type(e).__name__}") from e

        try:
            text = response.text
            sources = extract_grounding_sources(response)
        except Exception as e:
            logger.error(f"Unreadable Gemini response: {e}")
            raise ParseError(str(e) or f"Unreadable Gemini response: {type(e).__name__}") from e

        analysis = parse_analysis(text, self.variant, sources)
        logger.info(
            f"Action plan for {context.city}: {len(analysis.recommendations)} recommendations, "
            f"{len(sources)} sources"
        )
        return analysis
