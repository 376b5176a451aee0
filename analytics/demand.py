"""
Demand forecast for a route time slot.

  historical  min(100, 2 × reports in the trailing window)
  weather     WEATHER_DEMAND_FACTOR
  events      EVENT_DEMAND_FACTOR
  seasonality Mar–May 1.1, Sep–Nov 1.05, otherwise 1.0

predicted = clamp(historical × weather × events × seasonality, 0, 100)
"""

import re
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from analytics.common import clamp, parse_hour, resolve_now, trailing_window
from config import ANALYTICS_WINDOW_DAYS, EVENT_DEMAND_FACTOR, WEATHER_DEMAND_FACTOR
from db import store
from errors import InvalidInput, NotFound

_SLOT = re.compile(r"^\s*([^-\s]+)\s*(?:-\s*([^-\s]+)\s*)?$")


def validate_time_slot(time_slot: str) -> str:
    """Accept "HH:MM" or "HH:MM-HH:MM"; InvalidInput otherwise."""
    match = _SLOT.match(time_slot or "")
    if match is None:
        raise InvalidInput(f"time_slot must be HH:MM or HH:MM-HH:MM, got {time_slot!r}.")
    for part in match.groups():
        if part is not None:
            parse_hour(part, "time_slot")
    return time_slot.strip()


def seasonality_factor(dt: datetime) -> float:
    if 3 <= dt.month <= 5:
        return 1.1
    if 9 <= dt.month <= 11:
        return 1.05
    return 1.0


def demand_recommendations(demand: float) -> list[str]:
    if demand > 80:
        return ["Consider increasing frequency during this time"]
    if demand < 30:
        return ["Low demand period, consider reducing frequency"]
    return []


def forecast_demand(
    route_id: str,
    time_slot: str,
    session: Session,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Forecast 0–100 demand for a route during `time_slot`.

    Raises:
        InvalidInput: malformed time_slot.
        NotFound:     route_id does not exist.
    """
    time_slot = validate_time_slot(time_slot)
    now = resolve_now(now)
    if store.find_route_by_id(session, route_id) is None:
        raise NotFound(f"Route '{route_id}' not found.")

    since, until = trailing_window(now, ANALYTICS_WINDOW_DAYS)
    reports = store.find_reports_by_route(
        session, route_id, since=since, until=until, exclude_statuses=("dismissed",)
    )

    factors = {
        "historical": min(100, len(reports) * 2),
        "weather": WEATHER_DEMAND_FACTOR,
        "events": EVENT_DEMAND_FACTOR,
        "seasonality": seasonality_factor(now),
    }
    predicted = clamp(
        factors["historical"] * factors["weather"] * factors["events"] * factors["seasonality"],
        0,
        100,
    )

    return {
        "route_id": route_id,
        "time_slot": time_slot,
        "predicted_demand": round(predicted),
        "confidence": min(95, 60 + 1.5 * len(reports)),
        "factors": factors,
        "recommendations": demand_recommendations(predicted),
        "last_updated": now,
    }
