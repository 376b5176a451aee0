"""
FastAPI application entry point.

On startup:
  1. Initialise the database schema.
  2. Run one full score sweep (unless SCORE_ON_STARTUP is false).
  3. Start the APScheduler with the score sweep every
     SCORING_INTERVAL_HOURS (default 1h).

Endpoints (v1):
  GET  /health
  GET  /scores/top?limit=<n>          GET /scores/worst?limit=<n>
  GET  /scores/stats                  GET /scores/route/{route_id}
  POST /scores/recalculate            POST /scores/recalculate/{route_id}
  GET  /analytics/efficiency/{route_id}
  POST /analytics/efficiency/bulk
  GET  /analytics/travel-time?route_id=&from_stop=&to_stop=&time_of_day=
  GET  /analytics/alternatives?from_stop=&to_stop=&max_time=&max_cost=
  GET  /analytics/trends/{route_id}?period=daily|weekly|monthly
  GET  /analytics/demand/{route_id}?time_slot=HH:MM[-HH:MM]
  GET  /analytics/recommendations/{user_id}
"""

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from analytics.demand import forecast_demand
from analytics.efficiency import bulk_efficiency, calculate_route_efficiency
from analytics.recommendations import recommend_for_user
from analytics.travel_time import find_alternatives, predict_travel_time
from analytics.trends import analyze_trends
from api.schemas import (
    AlternativesResponse,
    BulkEfficiencyRequest,
    BulkEfficiencyResponse,
    DemandForecast,
    HealthResponse,
    RecomputeResponse,
    RouteEfficiencyScore,
    RouteScore,
    RunSummaryOut,
    ScoringStats,
    TravelTimePrediction,
    TrendAnalysis,
    UserRecommendation,
)
from config import ADMIN_API_KEY, CORS_ORIGINS, LOG_LEVEL, SCORE_ON_STARTUP, SCORING_INTERVAL_HOURS
from db import store
from db.models import utcnow
from db.session import SessionLocal, get_session, init_db
from errors import InvalidInput, NotFound, StoreUnavailable
from scoring.scheduler import RunSummary, ScoringScheduler
from scoring.service import get_scoring_stats, ranked_scores, recompute_route, score_to_dict

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

_recalc_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _require_admin_key(key: str | None = Security(_recalc_key_header)) -> None:
    """
    Gate the score recalculation endpoints behind ADMIN_API_KEY.

    Recalculation writes every route's Score row, so once a key is configured
    only callers presenting it in X-API-Key may trigger it.  With no key
    configured, recalculation stays open for local runs.
    """
    if not ADMIN_API_KEY:
        return
    if key is None or not secrets.compare_digest(key, ADMIN_API_KEY):
        raise HTTPException(status_code=401, detail="Recalculation requires a valid X-API-Key.")


scoring_scheduler = ScoringScheduler(SessionLocal)


def get_scoring_scheduler() -> ScoringScheduler:
    return scoring_scheduler


async def _scheduled_sweep() -> None:
    """
    Scheduled job: recompute every active route's score.

    The sweep is synchronous database work, so it runs in a worker thread.
    Exceptions are caught and logged so a failure cannot crash the
    scheduler process.
    """
    try:
        summary = await asyncio.to_thread(scoring_scheduler.run_full_recompute)
    except Exception as exc:
        logger.error("Scheduled score sweep failed: %s", exc, exc_info=True)
        return
    if summary is None:
        logger.info("Scheduled score sweep skipped: previous sweep still running.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    logger.info("Database initialised.")

    if SCORE_ON_STARTUP:
        await _scheduled_sweep()
        logger.info("Startup score sweep complete.")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _scheduled_sweep,
        "interval",
        hours=SCORING_INTERVAL_HOURS,
        id="score_sweep",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("Scheduler started. Score sweep every %dh.", SCORING_INTERVAL_HOURS)

    yield

    # Shutdown
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title="Route Quality Scores",
    description="Incident-report driven route scores and route analytics.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidInput)
async def _invalid_input(request: Request, exc: InvalidInput) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable while serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Score store unavailable."})


def _summary_payload(summary: RunSummary) -> dict[str, Any]:
    return {
        "started_at": summary.started_at,
        "finished_at": summary.finished_at,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "error": summary.error,
        "outcomes": [vars(o) for o in summary.outcomes],
    }


@app.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    session: Session = Depends(get_session),
    sweeper: ScoringScheduler = Depends(get_scoring_scheduler),
) -> HealthResponse:
    """Liveness plus score freshness and scheduler state."""
    next_run_at: str | None = None
    scheduler = getattr(request.app.state, "scheduler", None)
    job = scheduler.get_job("score_sweep") if scheduler is not None else None
    if job and job.next_run_time:
        next_run_at = job.next_run_time.isoformat()

    last = sweeper.last_summary
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "routes": store.count_active_routes(session),
        "scored_routes": store.count_scores(session),
        "scheduler": {
            "state": sweeper.state.value,
            "next_run_at": next_run_at,
            "last_run_at": last.finished_at if last else None,
            "last_run_succeeded": last.succeeded if last else None,
            "last_run_failed": last.failed if last else None,
        },
    }


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

@app.get("/scores/top", response_model=list[RouteScore])
async def top_scores(
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
) -> list[RouteScore]:
    return ranked_scores(session, limit=limit)


@app.get("/scores/worst", response_model=list[RouteScore])
async def worst_scores(
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
) -> list[RouteScore]:
    return ranked_scores(session, limit=limit, worst=True)


@app.get("/scores/stats", response_model=ScoringStats)
async def scoring_stats(session: Session = Depends(get_session)) -> ScoringStats:
    return get_scoring_stats(session)


@app.get("/scores/route/{route_id}", response_model=RouteScore)
async def route_score(route_id: str, session: Session = Depends(get_session)) -> RouteScore:
    score = store.get_score(session, route_id)
    if score is None:
        raise HTTPException(status_code=404, detail="Score not found for this route.")
    return score_to_dict(score)


# Recalculation handlers are plain `def` so FastAPI runs them in its thread
# pool; the sweep guard is a threading.Lock.
@app.post("/scores/recalculate", response_model=RunSummaryOut)
def recalculate_all(
    _: None = Depends(_require_admin_key),
    sweeper: ScoringScheduler = Depends(get_scoring_scheduler),
) -> RunSummaryOut:
    """Run a full sweep now.  409 if a sweep is already in progress."""
    summary = sweeper.run_full_recompute()
    if summary is None:
        raise HTTPException(status_code=409, detail="A score sweep is already in progress.")
    return _summary_payload(summary)


@app.post("/scores/recalculate/{route_id}", response_model=RecomputeResponse)
def recalculate_route(
    route_id: str,
    session: Session = Depends(get_session),
    _: None = Depends(_require_admin_key),
) -> RecomputeResponse:
    vector = recompute_route(route_id, session)
    return {"status": "ok", "route_id": route_id, "score": vector.as_dict()}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

@app.get("/analytics/efficiency/{route_id}", response_model=RouteEfficiencyScore)
async def route_efficiency(
    route_id: str, session: Session = Depends(get_session)
) -> RouteEfficiencyScore:
    return calculate_route_efficiency(route_id, session)


@app.post("/analytics/efficiency/bulk", response_model=BulkEfficiencyResponse)
async def route_efficiency_bulk(
    body: BulkEfficiencyRequest, session: Session = Depends(get_session)
) -> BulkEfficiencyResponse:
    return bulk_efficiency(body.route_ids, session)


@app.get("/analytics/travel-time", response_model=TravelTimePrediction)
async def travel_time(
    route_id: str = Query(...),
    from_stop: str = Query(..., min_length=1),
    to_stop: str = Query(..., min_length=1),
    time_of_day: str | None = Query(None, description="Departure time as HH:MM"),
    session: Session = Depends(get_session),
) -> TravelTimePrediction:
    return predict_travel_time(route_id, from_stop, to_stop, session, time_of_day=time_of_day)


@app.get("/analytics/alternatives", response_model=AlternativesResponse)
async def alternatives(
    from_stop: str = Query(..., min_length=1),
    to_stop: str = Query(..., min_length=1),
    max_time: float | None = Query(None, gt=0, description="Maximum minutes"),
    max_cost: float | None = Query(None, ge=0, description="Maximum fare"),
    session: Session = Depends(get_session),
) -> AlternativesResponse:
    found = find_alternatives(from_stop, to_stop, session, max_time=max_time, max_cost=max_cost)
    return {"alternatives": found, "count": len(found)}


@app.get("/analytics/trends/{route_id}", response_model=TrendAnalysis)
async def trends(
    route_id: str,
    period: str = Query("weekly", description="daily, weekly or monthly"),
    session: Session = Depends(get_session),
) -> TrendAnalysis:
    return analyze_trends(route_id, period, session)


@app.get("/analytics/demand/{route_id}", response_model=DemandForecast)
async def demand(
    route_id: str,
    time_slot: str = Query(..., description="HH:MM or HH:MM-HH:MM"),
    session: Session = Depends(get_session),
) -> DemandForecast:
    return forecast_demand(route_id, time_slot, session)


@app.get("/analytics/recommendations/{user_id}", response_model=UserRecommendation)
async def recommendations(
    user_id: str, session: Session = Depends(get_session)
) -> UserRecommendation:
    return recommend_for_user(user_id, session)


if __name__ == "__main__":
    import uvicorn

    from config import API_HOST, API_PORT

    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT)
