"""
Route efficiency scoring (0–100) from the trailing report window and route
metadata.

Six factors, each 0–100:

  reliability  share of low-severity "reliability" reports among all
               countable reports                          (no data → 50)
  speed        mean of low 80 / medium 60 / worse 40 over "efficiency"
               reports                                    (no data → 60)
  safety       100 − mean penalty of low 5 / medium 15 / worse 30 over
               "safety" reports                           (no data → 80)
  comfort      mean of low 90 / medium 70 / worse 50 over "comfort"
               reports                                    (no data → 70)
  cost         100 − (fare − 30) × 2, clamped to [0, 100]
  frequency    operating-hours span × 2, capped at 100

The overall efficiency score is the weighted sum of the factors.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any

from sqlalchemy.orm import Session

from analytics.common import clamp, hour_or_none, resolve_now, trailing_window
from config import ANALYTICS_WINDOW_DAYS
from db import store
from db.models import COUNTED_STATUSES, Report, Route
from errors import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_FARE = 50.0
DEFAULT_OPERATING_HOURS = 12
FARE_BASELINE = 30.0


@dataclass(frozen=True)
class EfficiencyConfig:
    weights: Mapping[str, float]
    # factor → report_type read for that factor
    factor_report_types: Mapping[str, str]
    speed_scores: Mapping[str, float]
    safety_penalties: Mapping[str, float]
    comfort_scores: Mapping[str, float]
    window_days: int = ANALYTICS_WINDOW_DAYS


DEFAULT_EFFICIENCY_CONFIG = EfficiencyConfig(
    weights=MappingProxyType({
        "reliability": 0.25,
        "speed": 0.20,
        "safety": 0.25,
        "comfort": 0.15,
        "cost": 0.10,
        "frequency": 0.05,
    }),
    factor_report_types=MappingProxyType({
        "reliability": "reliability",
        "speed": "efficiency",
        "safety": "safety",
        "comfort": "comfort",
    }),
    speed_scores=MappingProxyType({"low": 80, "medium": 60, "high": 40, "critical": 40}),
    safety_penalties=MappingProxyType({"low": 5, "medium": 15, "high": 30, "critical": 30}),
    comfort_scores=MappingProxyType({"low": 90, "medium": 70, "high": 50, "critical": 50}),
)

# (factor, threshold, recommendation); each fires independently below its threshold
_RECOMMENDATION_RULES = (
    ("reliability", 70, "Improve on-time performance through better scheduling"),
    ("speed", 60, "Optimize route to reduce travel time"),
    ("safety", 80, "Address safety concerns and improve driver training"),
    ("comfort", 70, "Upgrade vehicles and improve passenger comfort"),
    ("cost", 60, "Review fare structure for better value proposition"),
    ("frequency", 50, "Increase service frequency during peak hours"),
)


def operating_hours_span(route: Route) -> int:
    """End hour minus start hour, wrapping past midnight; 12 if unknown."""
    start = hour_or_none(route.operating_start)
    end = hour_or_none(route.operating_end)
    if start is None or end is None:
        return DEFAULT_OPERATING_HOURS
    return (end - start) % 24


def cost_factor(fare: float | None) -> float:
    fare = DEFAULT_FARE if fare is None else fare
    return clamp(100 - (fare - FARE_BASELINE) * 2, 0, 100)


def frequency_factor(route: Route) -> float:
    return min(100, operating_hours_span(route) * 2)


def _mean_mapped(reports: Sequence[Report], table: Mapping[str, float], default: float) -> float:
    if not reports:
        return default
    worst = min(table.values())
    return sum(table.get(r.severity, worst) for r in reports) / len(reports)


def compute_factors(
    route: Route,
    reports: Iterable[Report],
    config: EfficiencyConfig = DEFAULT_EFFICIENCY_CONFIG,
) -> dict[str, float]:
    """Unrounded factor values for a route and its countable reports."""
    reports = list(reports)
    by_type = config.factor_report_types

    def of_type(factor: str) -> list[Report]:
        return [r for r in reports if r.report_type == by_type[factor]]

    on_time = [r for r in of_type("reliability") if r.severity == "low"]
    reliability = len(on_time) / len(reports) * 100 if reports else 50.0

    speed = _mean_mapped(of_type("speed"), config.speed_scores, 60.0)

    safety_reports = of_type("safety")
    if safety_reports:
        worst_penalty = max(config.safety_penalties.values())
        penalty = sum(
            config.safety_penalties.get(r.severity, worst_penalty) for r in safety_reports
        ) / len(safety_reports)
        safety = 100 - penalty
    else:
        safety = 80.0

    comfort = _mean_mapped(of_type("comfort"), config.comfort_scores, 70.0)

    factors = {
        "reliability": reliability,
        "speed": speed,
        "safety": safety,
        "comfort": comfort,
        "cost": cost_factor(route.fare),
        "frequency": frequency_factor(route),
    }
    return {name: clamp(value, 0, 100) for name, value in factors.items()}


def efficiency_recommendations(factors: Mapping[str, float]) -> list[str]:
    return [text for factor, threshold, text in _RECOMMENDATION_RULES if factors[factor] < threshold]


def efficiency_from_reports(
    route: Route,
    reports: Iterable[Report],
    now: datetime,
    config: EfficiencyConfig = DEFAULT_EFFICIENCY_CONFIG,
) -> dict[str, Any]:
    """Build a RouteEfficiencyScore dict from already-fetched reports."""
    factors = compute_factors(route, reports, config)
    score = sum(factors[name] * weight for name, weight in config.weights.items())
    return {
        "route_id": route.id,
        "route_name": route.name,
        "efficiency_score": round(clamp(score, 0, 100)),
        "factors": {name: round(value) for name, value in factors.items()},
        "recommendations": efficiency_recommendations(factors),
        "last_updated": now,
    }


def efficiency_for_window(
    route: Route,
    session: Session,
    since: datetime,
    until: datetime,
    config: EfficiencyConfig = DEFAULT_EFFICIENCY_CONFIG,
) -> dict[str, Any]:
    reports = store.find_reports_by_route(
        session, route.id, statuses=COUNTED_STATUSES, since=since, until=until
    )
    return efficiency_from_reports(route, reports, until, config)


def efficiency_for_route(
    route: Route,
    session: Session,
    now: datetime | None = None,
    config: EfficiencyConfig = DEFAULT_EFFICIENCY_CONFIG,
) -> dict[str, Any]:
    now = resolve_now(now)
    since, until = trailing_window(now, config.window_days)
    return efficiency_for_window(route, session, since, until, config)


def calculate_route_efficiency(
    route_id: str,
    session: Session,
    now: datetime | None = None,
    config: EfficiencyConfig = DEFAULT_EFFICIENCY_CONFIG,
) -> dict[str, Any]:
    """
    Efficiency score for one route over the trailing window.

    Returns:
        {
          "route_id":         str,
          "route_name":       str,
          "efficiency_score": int (0–100),
          "factors":          {reliability, speed, safety, comfort, cost, frequency},
          "recommendations":  list[str],
          "last_updated":     datetime,
        }

    Raises:
        NotFound: route_id does not exist.
    """
    route = store.find_route_by_id(session, route_id)
    if route is None:
        raise NotFound(f"Route '{route_id}' not found.")
    return efficiency_for_route(route, session, now=now, config=config)


def bulk_efficiency(
    route_ids: Sequence[str],
    session: Session,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Efficiency for many routes; missing or failing routes are skipped."""
    now = resolve_now(now)
    scores = []
    for route_id in route_ids:
        try:
            scores.append(calculate_route_efficiency(route_id, session, now=now))
        except (NotFound, StoreUnavailable) as exc:
            logger.warning("Skipping efficiency for route %s: %s", route_id, exc)
    return {"scores": scores, "count": len(scores), "total": len(route_ids)}
