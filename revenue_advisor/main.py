import asyncio
from contextlib import asynccontextmanager
import time
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from revenue_advisor.config import configure_logging, load_settings
from revenue_advisor.errors import AdvisorError
from revenue_advisor.gemini_client import ActionPlanClient
from revenue_advisor.logic import MAX_MONTHS, build_metric_cards, build_response_schema, project_profit
from revenue_advisor.models import DashboardView, HotelContext, MarketAnalysis, MetricCard, ProjectionPoint
from revenue_advisor.session import DashboardSession

settings = load_settings()
logger = configure_logging(settings.log_level)


def initial_load(session: DashboardSession):
    """First analysis at startup, like the dashboard fetching on mount."""
    try:
        session.refresh()
    except AdvisorError as e:
        logger.warning(f"Initial analysis failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the Gemini client and dashboard session once per process."""
    client = ActionPlanClient(settings)
    app.state.session = DashboardSession(client)
    logger.info(f"Revenue advisor ready (model={settings.gemini_model}, schema={settings.schema_variant})")
    if settings.gemini_api_key:
        asyncio.get_running_loop().run_in_executor(None, initial_load, app.state.session)
    else:
        logger.warning("GEMINI_API_KEY not set. Analysis requests will fail until it is configured.")
    yield


app = FastAPI(
    title="Hotel Revenue Advisor API",
    description="Market intelligence and action plans for a city hotel, grounded with Gemini search.",
    version="1.0.0",
    lifespan=lifespan,
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware: Process Time
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

@app.get("/")
def read_root():
    return {"message": "Welcome to the Hotel Revenue Advisor API! Visit /docs to explore it."}

# --- Dependencies ---
def get_session(request: Request) -> DashboardSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Advisor not initialised")
    return session

def _analysis_failed(e: AdvisorError) -> HTTPException:
    logger.error(f"Analysis failed: {e}")
    return HTTPException(status_code=502, detail=str(e) or "Failed to fetch market analysis")

@app.get("/health")
def health(session: DashboardSession = Depends(get_session)):
    return {
        "status": "ok",
        "model": session.client.settings.gemini_model,
        "api_key_configured": bool(session.client.settings.gemini_api_key),
    }

# --- Context ---

@app.get("/context", response_model=HotelContext)
def get_context(session: DashboardSession = Depends(get_session)):
    return session.context

@app.put("/context", response_model=HotelContext)
def update_context(changes: dict = Body(...), session: DashboardSession = Depends(get_session)):
    """
    Partially update the hotel context. Non-numeric values for numeric fields become 0.
    """
    return session.update_context(changes)

# --- Local figures ---

@app.get("/projections", response_model=List[ProjectionPoint])
def get_projections(
    target: Optional[float] = Query(None, description="Target profitability override (%)"),
    timeframe: Optional[int] = Query(None, le=MAX_MONTHS, description="Timeframe override (months)"),
    session: DashboardSession = Depends(get_session),
):
    context = session.context
    return project_profit(
        context.target_profitability if target is None else target,
        context.timeframe if timeframe is None else timeframe,
    )

@app.get("/metrics", response_model=List[MetricCard])
def get_metrics(session: DashboardSession = Depends(get_session)):
    return build_metric_cards(session.context)

# --- Analysis ---

@app.post("/analysis", response_model=MarketAnalysis)
def refresh_analysis(session: DashboardSession = Depends(get_session)):
    """
    Run a fresh Gemini analysis for the current context.
    """
    try:
        return session.refresh()
    except AdvisorError as e:
        raise _analysis_failed(e) from e

@app.post("/analysis/preview", response_model=MarketAnalysis)
def preview_analysis(context: HotelContext, session: DashboardSession = Depends(get_session)):
    """
    Analyse a posted context without touching the dashboard state.
    """
    try:
        return session.client.generate_action_plan(context)
    except AdvisorError as e:
        raise _analysis_failed(e) from e

@app.get("/analysis", response_model=MarketAnalysis)
def get_analysis(session: DashboardSession = Depends(get_session)):
    if session.analysis is None:
        raise HTTPException(status_code=404, detail="No analysis available yet")
    return session.analysis

@app.get("/dashboard", response_model=DashboardView)
def get_dashboard(session: DashboardSession = Depends(get_session)):
    return session.view()

@app.get("/schema")
def get_schema(session: DashboardSession = Depends(get_session)):
    return build_response_schema(session.client.variant)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("revenue_advisor.main:app", host="0.0.0.0", port=8000, reload=False)
