"""
Periodic full recomputation of route scores ("sweeps").

At most one sweep runs at a time.  The IDLE → RUNNING transition is a
non-blocking acquire of a threading.Lock, which is atomic, so concurrent
triggers (the interval job, the startup run, an admin request served from
FastAPI's thread pool) cannot admit two sweeps.  A trigger that loses the
race is logged and dropped; it is not queued.

Inside a sweep each route is an isolated unit: its failure is logged, the
session rolled back, and a failed RouteOutcome recorded before moving on.
If the active-route list itself cannot be loaded the sweep still returns a
summary, with zero outcomes and the error attached.
"""

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from db.models import utcnow
from db.store import find_active_routes
from errors import StoreUnavailable
from scoring.aggregator import DEFAULT_WEIGHTS, ScoreVector, ScoringWeights
from scoring.service import recompute_route, score_route

logger = logging.getLogger(__name__)


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class RouteOutcome:
    route_id: str
    route_name: str
    ok: bool
    overall: float | None = None
    total_reports: int | None = None
    error: str | None = None


@dataclass
class RunSummary:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[RouteOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    def top(self, n: int = 5) -> list[RouteOutcome]:
        scored = [o for o in self.outcomes if o.ok]
        return sorted(scored, key=lambda o: (-o.overall, o.route_id))[:n]


class ScoringScheduler:
    """Owns the single-flight guard around full sweeps."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ):
        self._session_factory = session_factory
        self._weights = weights
        self._running = threading.Lock()
        self.last_summary: RunSummary | None = None

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._running.locked() else SchedulerState.IDLE

    def run_full_recompute(self) -> RunSummary | None:
        """
        Recompute every active route.

        Returns the run summary, or None when another sweep was already in
        progress and this trigger was dropped.
        """
        if not self._running.acquire(blocking=False):
            logger.info("Score sweep already in progress, skipping trigger.")
            return None
        try:
            summary = self._sweep()
            self.last_summary = summary
            return summary
        finally:
            self._running.release()

    def recompute_route(self, route_id: str) -> ScoreVector:
        """Out-of-band single-route recomputation; bypasses the sweep guard."""
        session = self._session_factory()
        try:
            return recompute_route(route_id, session, weights=self._weights)
        finally:
            session.close()

    def _sweep(self) -> RunSummary:
        summary = RunSummary(started_at=utcnow())
        logger.info("Starting score sweep for all active routes.")
        session = self._session_factory()
        try:
            try:
                routes = [(r.id, r.name) for r in find_active_routes(session)]
            except StoreUnavailable as exc:
                logger.error("Score sweep aborted, active routes unavailable: %s", exc)
                summary.error = str(exc)
                return summary

            for route_id, route_name in routes:
                summary.outcomes.append(self._score_one(session, route_id, route_name))
        finally:
            session.close()
            summary.finished_at = utcnow()

        logger.info(
            "Score sweep completed: %d routes scored, %d failed.",
            summary.succeeded, summary.failed,
        )
        top = summary.top(5)
        if top:
            logger.info(
                "Top %d performing routes: %s",
                len(top),
                ", ".join(f"{o.route_name}: {o.overall:.2f}" for o in top),
            )
        return summary

    def _score_one(self, session: Session, route_id: str, route_name: str) -> RouteOutcome:
        try:
            vector = score_route(route_id, session, self._weights)
        except Exception as exc:
            logger.error("Score calculation failed for route %s: %s", route_id, exc, exc_info=True)
            session.rollback()
            return RouteOutcome(route_id=route_id, route_name=route_name, ok=False, error=str(exc))
        return RouteOutcome(
            route_id=route_id,
            route_name=route_name,
            ok=True,
            overall=vector.overall,
            total_reports=vector.total_reports,
        )
