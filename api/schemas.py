from __future__ import annotations
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# /scores
# ---------------------------------------------------------------------------

class ScoreVectorOut(BaseModel):
    reliability: float = Field(ge=0, le=5)
    safety: float = Field(ge=0, le=5)
    punctuality: float = Field(ge=0, le=5)
    comfort: float = Field(ge=0, le=5)
    overall: float = Field(ge=0, le=5)
    total_reports: int = Field(ge=0)


class RouteScore(ScoreVectorOut):
    route_id: str
    route_name: str | None
    last_calculated: datetime | None


class RecomputeResponse(BaseModel):
    status: Literal["ok"]
    route_id: str
    score: ScoreVectorOut


class RouteOutcomeOut(BaseModel):
    route_id: str
    route_name: str
    ok: bool
    overall: float | None = None
    total_reports: int | None = None
    error: str | None = None


class RunSummaryOut(BaseModel):
    started_at: datetime
    finished_at: datetime | None
    succeeded: int
    failed: int
    error: str | None
    outcomes: list[RouteOutcomeOut]


class ScoringStats(BaseModel):
    total_routes: int
    scored_routes: int
    total_reports: int
    average_score: float
    last_calculated: datetime | None


# ---------------------------------------------------------------------------
# /analytics: efficiency
# ---------------------------------------------------------------------------

class EfficiencyFactors(BaseModel):
    reliability: int = Field(ge=0, le=100)
    speed: int = Field(ge=0, le=100)
    safety: int = Field(ge=0, le=100)
    comfort: int = Field(ge=0, le=100)
    cost: int = Field(ge=0, le=100)
    frequency: int = Field(ge=0, le=100)


class RouteEfficiencyScore(BaseModel):
    route_id: str
    route_name: str
    efficiency_score: int = Field(ge=0, le=100)
    factors: EfficiencyFactors
    recommendations: list[str]
    last_updated: datetime


class BulkEfficiencyRequest(BaseModel):
    route_ids: list[str] = Field(min_length=1)


class BulkEfficiencyResponse(BaseModel):
    scores: list[RouteEfficiencyScore]
    count: int
    total: int


# ---------------------------------------------------------------------------
# /analytics: travel time & alternatives
# ---------------------------------------------------------------------------

class TravelTimeFactors(BaseModel):
    time_of_day: float
    day_of_week: float
    weather: float
    traffic: float
    historical: float


class TimeBands(BaseModel):
    optimistic: int
    realistic: int
    pessimistic: int


class TravelTimePrediction(BaseModel):
    route_id: str
    from_stop: str
    to_stop: str
    base_time: int
    predicted_time: int
    confidence: float = Field(ge=0, le=100)
    factors: TravelTimeFactors
    alternative_times: TimeBands
    last_updated: datetime


class AlternativeRoute(BaseModel):
    route_id: str
    route_name: str
    total_time: int
    total_cost: float
    efficiency: int = Field(ge=0, le=100)
    reasons: list[str]
    stops: list[str]


class AlternativesResponse(BaseModel):
    alternatives: list[AlternativeRoute]
    count: int


# ---------------------------------------------------------------------------
# /analytics: trends, demand, recommendations
# ---------------------------------------------------------------------------

class Trend(BaseModel):
    current: float
    previous: float
    change: float
    trend: str


class Trends(BaseModel):
    ridership: Trend
    efficiency: Trend
    safety: Trend
    cost: Trend


class TrendAnalysis(BaseModel):
    route_id: str
    period: Literal["daily", "weekly", "monthly"]
    trends: Trends
    insights: list[str]
    last_updated: datetime


class DemandFactors(BaseModel):
    historical: float
    weather: float
    events: float
    seasonality: float


class DemandForecast(BaseModel):
    route_id: str
    time_slot: str
    predicted_demand: int = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=100)
    factors: DemandFactors
    recommendations: list[str]
    last_updated: datetime


class Recommendation(BaseModel):
    route_id: str
    route_name: str
    reason: str
    score: int
    type: Literal["efficiency", "safety", "cost", "convenience"]


class Preferences(BaseModel):
    efficiency: float
    safety: float
    cost: float
    convenience: float


class UserRecommendation(BaseModel):
    user_id: str
    recommendations: list[Recommendation]
    preferences: Preferences
    last_updated: datetime


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class SchedulerStats(BaseModel):
    state: Literal["idle", "running"]
    next_run_at: str | None
    last_run_at: datetime | None
    last_run_succeeded: int | None
    last_run_failed: int | None


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: str
    routes: int
    scored_routes: int
    scheduler: SchedulerStats
