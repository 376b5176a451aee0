"""
Route recommendations for a rider.

Each active route's efficiency factors are mapped onto four recommendation
types and weighted by the rider's preferences:

  efficiency   ← reliability factor
  safety       ← safety factor
  cost         ← cost factor (higher = better value)
  convenience  ← comfort factor

Routes scoring above 60 are kept; the best five are returned.  Each is
labelled with its strongest factor, regardless of preference weights.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from types import MappingProxyType
from typing import Any

from sqlalchemy.orm import Session

from analytics.common import resolve_now
from analytics.efficiency import efficiency_for_route
from db import store
from db.models import Report

logger = logging.getLogger(__name__)

MIN_RECOMMENDATION_SCORE = 60
MAX_RECOMMENDATIONS = 5

DEFAULT_PREFERENCES: Mapping[str, float] = MappingProxyType({
    "efficiency": 0.3,
    "safety": 0.3,
    "cost": 0.2,
    "convenience": 0.2,
})

_REASONS = {
    "efficiency": "Very reliable service",
    "safety": "High safety rating",
    "cost": "Great value for money",
    "convenience": "Comfortable ride",
}


def infer_user_preferences(user_reports: Sequence[Report]) -> dict[str, float]:
    """
    Preference weights for a rider.

    Report history does not yet carry enough signal to personalize, so every
    rider gets DEFAULT_PREFERENCES; this is the hook for doing better.
    """
    return dict(DEFAULT_PREFERENCES)


def type_scores(factors: Mapping[str, float]) -> dict[str, float]:
    return {
        "efficiency": factors["reliability"],
        "safety": factors["safety"],
        "cost": factors["cost"],
        "convenience": factors["comfort"],
    }


def recommendation_score(factors: Mapping[str, float], preferences: Mapping[str, float]) -> float:
    scores = type_scores(factors)
    return sum(scores[kind] * preferences.get(kind, 0.0) for kind in scores)


def strongest_type(factors: Mapping[str, float]) -> str:
    """The route's strongest type by raw factor value; ties keep declaration order."""
    scores = type_scores(factors)
    return max(scores, key=scores.get)


def recommend_for_user(
    user_id: str,
    session: Session,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = resolve_now(now)
    preferences = infer_user_preferences(store.find_reports_by_user(session, user_id))

    candidates = []
    for route in store.find_active_routes(session):
        efficiency = efficiency_for_route(route, session, now=now)
        score = recommendation_score(efficiency["factors"], preferences)
        if score <= MIN_RECOMMENDATION_SCORE:
            continue
        kind = strongest_type(efficiency["factors"])
        candidates.append({
            "route_id": route.id,
            "route_name": route.name,
            "reason": _REASONS[kind],
            "score": round(score),
            "type": kind,
        })

    candidates.sort(key=lambda c: (-c["score"], c["route_id"]))
    logger.debug("User %s: %d route(s) above threshold.", user_id, len(candidates))
    return {
        "user_id": user_id,
        "recommendations": candidates[:MAX_RECOMMENDATIONS],
        "preferences": preferences,
        "last_updated": now,
    }
