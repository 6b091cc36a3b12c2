import json
import threading

import pytest

from revenue_advisor.errors import ParseError, RequestError
from revenue_advisor.logic import parse_analysis
from revenue_advisor.models import GroundingSource, HotelContext
from revenue_advisor.session import DEFAULT_ERROR_MESSAGE, DashboardSession


class ScriptedClient:
    """Runs one scripted step per generate_action_plan call."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.contexts = []

    def generate_action_plan(self, context):
        self.contexts.append(context)
        step = self.steps.pop(0)
        return step(context)


def returns(analysis):
    return lambda context: analysis


def raises(error):
    def step(context):
        raise error
    return step


@pytest.fixture
def analysis(payload):
    return parse_analysis(json.dumps(payload))


def test_initial_state():
    session = DashboardSession(ScriptedClient())

    assert session.context == HotelContext()
    assert session.analysis is None
    assert session.error is None
    assert session.is_loading is False


def test_refresh_commits_analysis(analysis):
    session = DashboardSession(ScriptedClient(returns(analysis)))

    assert session.refresh() is analysis
    assert session.analysis is analysis
    assert session.error is None
    assert session.is_loading is False


def test_refresh_replaces_previous_analysis(analysis, payload):
    payload["marketSentiment"] = "Softening demand"
    second = parse_analysis(json.dumps(payload))
    session = DashboardSession(ScriptedClient(returns(analysis), returns(second)))

    session.refresh()
    session.refresh()

    assert session.analysis is second


def test_refresh_failure_records_message_and_reraises():
    session = DashboardSession(ScriptedClient(raises(RequestError("quota exceeded"))))

    with pytest.raises(RequestError):
        session.refresh()
    assert session.error == "quota exceeded"
    assert session.analysis is None
    assert session.is_loading is False


def test_failure_without_message_uses_default():
    session = DashboardSession(ScriptedClient(raises(ParseError())))

    with pytest.raises(ParseError):
        session.refresh()
    assert session.error == DEFAULT_ERROR_MESSAGE


def test_successful_refresh_clears_error(analysis):
    session = DashboardSession(ScriptedClient(raises(RequestError("down")), returns(analysis)))

    with pytest.raises(RequestError):
        session.refresh()
    session.refresh()

    assert session.error is None
    assert session.analysis is analysis


def test_failed_refresh_keeps_last_good_analysis(analysis):
    session = DashboardSession(ScriptedClient(returns(analysis), raises(RequestError("down"))))

    session.refresh()
    with pytest.raises(RequestError):
        session.refresh()

    assert session.analysis is analysis
    assert session.error == "down"


def test_refresh_uses_context_snapshot(analysis):
    client = ScriptedClient(returns(analysis))
    session = DashboardSession(client)
    session.update_context({"city": "Madrid"})

    session.refresh()

    assert client.contexts[0].city == "Madrid"


def test_update_context_merges_and_coerces():
    session = DashboardSession(ScriptedClient())

    context = session.update_context({"targetProfitability": "abc", "timeframe": "12", "current_adr": 210})

    assert context.target_profitability == 0
    assert context.timeframe == 12
    assert context.current_adr == 210
    assert context.city == "London"
    assert session.context is context


def test_stale_response_does_not_overwrite_newer(analysis, payload):
    payload["marketSentiment"] = "Newest"
    newest = parse_analysis(json.dumps(payload))

    started = threading.Event()
    release = threading.Event()

    def slow(context):
        started.set()
        release.wait(5)
        return analysis

    session = DashboardSession(ScriptedClient(slow, returns(newest)))
    results = []
    worker = threading.Thread(target=lambda: results.append(session.refresh()))
    worker.start()
    started.wait(5)

    assert session.is_loading is True
    session.refresh()
    assert session.analysis is newest
    assert session.is_loading is True

    release.set()
    worker.join(5)

    assert results == [analysis]
    assert session.analysis is newest
    assert session.is_loading is False


def test_stale_error_is_dropped(analysis):
    started = threading.Event()
    release = threading.Event()

    def slow_failure(context):
        started.set()
        release.wait(5)
        raise RequestError("late failure")

    session = DashboardSession(ScriptedClient(slow_failure, returns(analysis)))
    errors = []

    def run():
        try:
            session.refresh()
        except RequestError as e:
            errors.append(e)

    worker = threading.Thread(target=run)
    worker.start()
    started.wait(5)
    session.refresh()
    release.set()
    worker.join(5)

    assert len(errors) == 1
    assert session.error is None
    assert session.analysis is analysis


def test_view_before_first_analysis():
    view = DashboardSession(ScriptedClient()).view()

    assert view.analysis is None
    assert view.top_sources == []
    assert view.action_plan == {}
    assert len(view.metrics) == 4
    assert len(view.projections) == 19


def test_view_with_analysis(payload):
    sources = [GroundingSource(title=f"Source {n}", uri=f"https://example.com/{n}") for n in range(5)]
    analysis = parse_analysis(json.dumps(payload), sources=sources)
    session = DashboardSession(ScriptedClient(returns(analysis)))
    session.refresh()

    view = session.view()

    assert [s.title for s in view.top_sources] == ["Source 0", "Source 1", "Source 2"]
    assert list(view.action_plan) == ["Revenue", "Guest Exp"]
    dumped = view.model_dump(by_alias=True)
    assert dumped["context"]["currentRevPAR"] == 145
    assert dumped["isLoading"] is False


def test_unexpected_client_failure_is_wrapped_and_clears_loading():
    session = DashboardSession(ScriptedClient(raises(ValueError("response has no text parts"))))

    with pytest.raises(RequestError, match="response has no text parts") as exc_info:
        session.refresh()

    assert isinstance(exc_info.value.__cause__, ValueError)
    assert session.is_loading is False
    assert session.error == "response has no text parts"


def test_retry_after_unexpected_failure(analysis):
    session = DashboardSession(ScriptedClient(raises(KeyError()), returns(analysis)))

    with pytest.raises(RequestError):
        session.refresh()
    assert session.error == "Analysis failed: KeyError"
    session.refresh()

    assert session.analysis is analysis
    assert session.error is None
    assert session.is_loading is False
