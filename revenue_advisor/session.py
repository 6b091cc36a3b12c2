import logging
import threading
from typing import Optional

from revenue_advisor.errors import AdvisorError, RequestError
from revenue_advisor.gemini_client import ActionPlanClient
from revenue_advisor.logic import build_metric_cards, build_projection, group_by_category
from revenue_advisor.models import DashboardView, HotelContext, MarketAnalysis

logger = logging.getLogger("revenue_advisor.session")

DEFAULT_ERROR_MESSAGE = "Failed to fetch market analysis"
TOP_SOURCES = 3


class DashboardSession:
    """
    Dashboard state: the editable hotel context plus the latest analysis.

    Every refresh gets a generation number. Only the newest refresh may
    commit its analysis or error, so a slow reply can never overwrite the
    result of a later trigger. A refresh never waits for an older one.
    """

    def __init__(self, client: ActionPlanClient, context: Optional[HotelContext] = None):
        self.client = client
        self._lock = threading.Lock()
        self._context = context or HotelContext()
        self._analysis: Optional[MarketAnalysis] = None
        self._error: Optional[str] = None
        self._generation = 0
        self._in_flight = 0

    @property
    def context(self) -> HotelContext:
        return self._context

    @property
    def analysis(self) -> Optional[MarketAnalysis]:
        return self._analysis

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def update_context(self, changes: dict) -> HotelContext:
        """Apply a partial update; keys may be field names or their camelCase aliases."""
        aliases = {name: field.alias or name for name, field in HotelContext.model_fields.items()}
        with self._lock:
            data = self._context.model_dump(by_alias=True)
            for key, value in changes.items():
                data[aliases.get(key, key)] = value
            self._context = HotelContext.model_validate(data)
            return self._context

    def refresh(self) -> MarketAnalysis:
        """
        Run one analysis for a snapshot of the current context.

        Errors are recorded for the dashboard and re-raised for the caller as
        AdvisorError; anything else the client raises is wrapped in RequestError.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            snapshot = self._context
            self._in_flight += 1
            self._error = None

        try:
            analysis = self.client.generate_action_plan(snapshot)
        except AdvisorError as e:
            self._record_error(generation, e)
            raise
        except Exception as e:
            failure = RequestError(str(e) or f"Analysis failed: {type(e).__name__}")
            self._record_error(generation, failure)
            raise failure from e
        else:
            with self._lock:
                if generation == self._generation:
                    self._analysis = analysis
                else:
                    logger.info(f"Dropping stale analysis from request #{generation} (latest is #{self._generation})")
            return analysis
        finally:
            with self._lock:
                self._in_flight -= 1

    def _record_error(self, generation: int, error: AdvisorError):
        with self._lock:
            if generation == self._generation:
                self._error = str(error) or DEFAULT_ERROR_MESSAGE
            else:
                logger.info(f"Dropping stale error from request #{generation}: {error}")

    def view(self) -> DashboardView:
        with self._lock:
            context = self._context
            analysis = self._analysis
            error = self._error
            is_loading = self._in_flight > 0

        return DashboardView(
            context=context,
            metrics=build_metric_cards(context),
            projections=build_projection(context),
            analysis=analysis,
            error=error,
            is_loading=is_loading,
            top_sources=analysis.grounding_sources[:TOP_SOURCES] if analysis else [],
            action_plan=group_by_category(analysis.recommendations) if analysis else {},
        )
