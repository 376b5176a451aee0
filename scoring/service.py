"""
Single-route score recomputation and read-side score queries.

recompute_route() is the unit of work shared by the scheduler's sweep and the
administrative "recalculate one route" call.  It is safe to run alongside a
sweep: the Score upsert is keyed by route_id.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from db import store
from db.models import COUNTED_STATUSES
from errors import NotFound
from scoring.aggregator import DEFAULT_WEIGHTS, ScoreVector, ScoringWeights, aggregate

logger = logging.getLogger(__name__)


def recompute_route(
    route_id: str,
    session: Session,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ScoreVector:
    """
    Aggregate a route's countable reports and upsert its Score row.

    Raises:
        NotFound:         route_id does not exist.
        StoreUnavailable: a read or the upsert failed.
    """
    route = store.find_route_by_id(session, route_id)
    if route is None:
        raise NotFound(f"Route '{route_id}' not found.")
    return score_route(route_id, session, weights)


def score_route(
    route_id: str,
    session: Session,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ScoreVector:
    """Score a route already known to exist (the sweep's per-route step)."""
    reports = store.find_reports_by_route(session, route_id, statuses=COUNTED_STATUSES)
    vector = aggregate(route_id, reports, weights=weights)
    store.upsert_score(session, route_id, vector)
    logger.debug(
        "Route %s scored overall=%.2f from %d reports.",
        route_id, vector.overall, vector.total_reports,
    )
    return vector


def get_scoring_stats(session: Session) -> dict[str, Any]:
    """Fleet-wide scoring statistics."""
    return {
        "total_routes": store.count_active_routes(session),
        "scored_routes": store.count_scores(session),
        "total_reports": store.count_counted_reports(session),
        "average_score": round(store.average_overall_score(session), 2),
        "last_calculated": store.latest_calculation(session),
    }


def score_to_dict(score) -> dict[str, Any]:
    return {
        "route_id": score.route_id,
        "route_name": score.route.name if score.route is not None else None,
        "reliability": score.reliability,
        "safety": score.safety,
        "punctuality": score.punctuality,
        "comfort": score.comfort,
        "overall": score.overall,
        "total_reports": score.total_reports,
        "last_calculated": score.last_calculated,
    }


def ranked_scores(session: Session, limit: int = 10, worst: bool = False) -> list[dict[str, Any]]:
    return [score_to_dict(s) for s in store.ranked_scores(session, limit=limit, worst=worst)]
