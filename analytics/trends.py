"""
Trend analysis: a route's current window against the equally long window
immediately before it.

  period   window
  daily    1 day
  weekly   7 days
  monthly  30 days

Ridership and safety are activity counts, so they include every report that
was not dismissed.  Efficiency is recomputed for each window from that
window's countable reports, which makes the report history itself the
historical efficiency snapshot.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from analytics.common import resolve_now
from analytics.efficiency import DEFAULT_FARE, efficiency_from_reports
from db import store
from db.models import COUNTED_STATUSES
from errors import InvalidInput, NotFound

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}

# (positive label, negative label, threshold %)
_LABELS = {
    "ridership": ("increasing", "decreasing", 5),
    "efficiency": ("improving", "declining", 5),
    "safety": ("riskier", "safer", 10),
    "cost": ("increasing", "decreasing", 5),
}


def percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def trend_label(metric: str, change: float) -> str:
    up, down, threshold = _LABELS[metric]
    if change > threshold:
        return up
    if change < -threshold:
        return down
    return "stable"


def _trend(metric: str, current: float, previous: float) -> dict[str, Any]:
    change = percent_change(current, previous)
    return {
        "current": current,
        "previous": previous,
        "change": round(change, 2),
        "trend": trend_label(metric, change),
    }


def trend_insights(trends: dict[str, dict[str, Any]]) -> list[str]:
    insights = []

    ridership = trends["ridership"]["change"]
    if ridership > 10:
        insights.append("Ridership is increasing significantly")
    elif ridership < -10:
        insights.append("Ridership is declining, consider promotional activities")

    efficiency = trends["efficiency"]["change"]
    if efficiency > 5:
        insights.append("Route efficiency is improving")
    elif efficiency < -5:
        insights.append("Route efficiency needs attention")

    safety = trends["safety"]["change"]
    if safety < -10:
        insights.append("Safety incidents have decreased")
    elif safety > 10:
        insights.append("Safety concerns are increasing")

    return insights


def analyze_trends(
    route_id: str,
    period: str,
    session: Session,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Compare the current `period` window against the previous one.

    Raises:
        InvalidInput: period is not daily / weekly / monthly.
        NotFound:     route_id does not exist.
    """
    if period not in PERIOD_DAYS:
        raise InvalidInput(f"period must be one of {', '.join(PERIOD_DAYS)}, got {period!r}.")
    now = resolve_now(now)
    route = store.find_route_by_id(session, route_id)
    if route is None:
        raise NotFound(f"Route '{route_id}' not found.")

    span = timedelta(days=PERIOD_DAYS[period])
    start = now - span
    previous_start = start - span

    current = store.find_reports_by_route(
        session, route_id, since=start, until=now, exclude_statuses=("dismissed",)
    )
    previous = store.find_reports_by_route(
        session, route_id, since=previous_start, until=start, exclude_statuses=("dismissed",)
    )

    def counted(reports):
        return [r for r in reports if r.status in COUNTED_STATUSES]

    def safety_count(reports):
        return sum(1 for r in reports if r.report_type == "safety")

    current_efficiency = efficiency_from_reports(route, counted(current), now)["efficiency_score"]
    previous_efficiency = efficiency_from_reports(route, counted(previous), start)["efficiency_score"]
    fare = route.fare if route.fare is not None else DEFAULT_FARE

    trends = {
        "ridership": _trend("ridership", len(current), len(previous)),
        "efficiency": _trend("efficiency", current_efficiency, previous_efficiency),
        "safety": _trend("safety", safety_count(current), safety_count(previous)),
        # No fare history is kept; cost is reported flat.
        "cost": _trend("cost", fare, fare),
    }
    logger.debug("Trend analysis for route %s (%s): %s", route_id, period, trends)

    return {
        "route_id": route_id,
        "period": period,
        "trends": trends,
        "insights": trend_insights(trends),
        "last_updated": now,
    }
