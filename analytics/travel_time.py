"""
Travel-time prediction between two stops on a route, and alternative routes
between two stop names.

Base time is 3 minutes per stop hop (minimum 5).  The prediction multiplies
it by independent factors:

  time of day   07–09 × 1.3, 17–19 × 1.4, 22–05 × 0.8, otherwise × 1.0
  day of week   weekend × 0.9
  weather       flat WEATHER_DELAY_FACTOR
  traffic       07–09 × 1.2, 17–19 × 1.3
  historical    max(0.8, 2.0 − mean severity value) over recent
                "efficiency" reports (low 1, medium 1.2, worse 1.5)

Hour bands are inclusive on both ends, matching how riders describe rush
hour ("seven to nine").
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from analytics.common import is_weekend, parse_hour, resolve_now, trailing_window
from analytics.efficiency import DEFAULT_FARE, efficiency_for_route
from config import ANALYTICS_WINDOW_DAYS, WEATHER_DELAY_FACTOR
from db import store
from db.models import COUNTED_STATUSES, Report, Route
from errors import NotFound

logger = logging.getLogger(__name__)

MINUTES_PER_STOP = 3
MIN_TRAVEL_MINUTES = 5

_SEVERITY_VALUES = {"low": 1.0, "medium": 1.2, "high": 1.5, "critical": 1.5}


def base_travel_minutes(from_index: int, to_index: int) -> int:
    return max(MIN_TRAVEL_MINUTES, (to_index - from_index) * MINUTES_PER_STOP)


def time_of_day_multiplier(hour: int | None) -> float:
    if hour is None:
        return 1.0
    if 7 <= hour <= 9:
        return 1.3
    if 17 <= hour <= 19:
        return 1.4
    if hour >= 22 or hour <= 5:
        return 0.8
    return 1.0


def traffic_multiplier(hour: int | None) -> float:
    if hour is None:
        return 1.0
    if 7 <= hour <= 9:
        return 1.2
    if 17 <= hour <= 19:
        return 1.3
    return 1.0


def day_of_week_multiplier(dt: datetime) -> float:
    return 0.9 if is_weekend(dt) else 1.0


def historical_multiplier(reports: Sequence[Report]) -> float:
    if not reports:
        return 1.0
    mean = sum(_SEVERITY_VALUES.get(r.severity, 1.5) for r in reports) / len(reports)
    return max(0.8, 2.0 - mean)


def _stop_indexes(route: Route, from_stop: str, to_stop: str) -> tuple[int, int]:
    from_index = route.stop_index(from_stop)
    to_index = route.stop_index(to_stop)
    missing = [name for name, idx in ((from_stop, from_index), (to_stop, to_index)) if idx < 0]
    if missing:
        raise NotFound(f"Stop(s) {', '.join(missing)} not on route '{route.id}'.")
    return from_index, to_index


def predict_travel_time(
    route_id: str,
    from_stop: str,
    to_stop: str,
    session: Session,
    time_of_day: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Predict minutes from `from_stop` to `to_stop` on a route.

    Args:
        route_id:    Route to travel on.
        from_stop:   Boarding stop name.
        to_stop:     Alighting stop name.
        session:     SQLAlchemy session.
        time_of_day: Optional departure time as HH:MM.
        now:         Clock override; drives the day-of-week factor.

    Returns:
        TravelTimePrediction dict with predicted_time, confidence, factors
        and optimistic / realistic / pessimistic bands.

    Raises:
        NotFound:     unknown route or stop name.
        InvalidInput: malformed time_of_day.
    """
    hour = parse_hour(time_of_day, "time_of_day") if time_of_day else None
    now = resolve_now(now)

    route = store.find_route_by_id(session, route_id)
    if route is None:
        raise NotFound(f"Route '{route_id}' not found.")
    from_index, to_index = _stop_indexes(route, from_stop, to_stop)

    since, until = trailing_window(now, ANALYTICS_WINDOW_DAYS)
    reports = store.find_reports_by_route(
        session, route_id,
        statuses=COUNTED_STATUSES, report_type="efficiency", since=since, until=until,
    )

    factors = {
        "time_of_day": time_of_day_multiplier(hour),
        "day_of_week": day_of_week_multiplier(now),
        "weather": WEATHER_DELAY_FACTOR,
        "traffic": traffic_multiplier(hour),
        "historical": historical_multiplier(reports),
    }
    base = base_travel_minutes(from_index, to_index)
    product = 1.0
    for value in factors.values():
        product *= value
    predicted = round(base * product)

    return {
        "route_id": route_id,
        "from_stop": from_stop,
        "to_stop": to_stop,
        "base_time": base,
        "predicted_time": predicted,
        "confidence": min(95, 50 + 2 * len(reports)),
        "factors": factors,
        "alternative_times": {
            "optimistic": round(predicted * 0.8),
            "realistic": predicted,
            "pessimistic": round(predicted * 1.3),
        },
        "last_updated": now,
    }


def _alternative_reasons(route: Route, travel_time: int, cost: float, efficiency: int) -> list[str]:
    reasons = []
    if efficiency > 80:
        reasons.append("Highly efficient route")
    if travel_time < 20:
        reasons.append("Fast travel time")
    if cost < 40:
        reasons.append("Affordable fare")
    if len(route.stops) > 5:
        reasons.append("Multiple stops available")
    return reasons


def find_alternatives(
    from_stop: str,
    to_stop: str,
    session: Session,
    max_time: float | None = None,
    max_cost: float | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """
    Active routes that run from `from_stop` to `to_stop` in stop order,
    filtered by optional time / cost ceilings and sorted by efficiency
    (highest first).
    """
    now = resolve_now(now)
    alternatives: list[dict[str, Any]] = []

    for route in store.find_routes_serving(session, [from_stop, to_stop]):
        from_index = route.stop_index(from_stop)
        to_index = route.stop_index(to_stop)
        if from_index < 0 or to_index < 0 or from_index >= to_index:
            continue

        travel_time = base_travel_minutes(from_index, to_index)
        cost = route.fare if route.fare is not None else DEFAULT_FARE
        if max_time is not None and travel_time > max_time:
            continue
        if max_cost is not None and cost > max_cost:
            continue

        efficiency = efficiency_for_route(route, session, now=now)["efficiency_score"]
        alternatives.append({
            "route_id": route.id,
            "route_name": route.name,
            "total_time": travel_time,
            "total_cost": cost,
            "efficiency": efficiency,
            "reasons": _alternative_reasons(route, travel_time, cost, efficiency),
            "stops": route.stop_names[from_index:to_index + 1],
        })

    logger.debug(
        "Found %d alternative route(s) from %s to %s.", len(alternatives), from_stop, to_stop
    )
    return sorted(alternatives, key=lambda a: (-a["efficiency"], a["route_id"]))
