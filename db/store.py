"""
Query layer between the scoring core and the database.

Every function takes the caller's Session and translates SQLAlchemy failures
into StoreUnavailable (rolling the session back first), so the core only ever
sees its own error kinds.  Only upsert_score writes.
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from db.models import COUNTED_STATUSES, Report, Route, RouteStop, Score, utcnow
from errors import StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def _store_call(session: Session, what: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Store call %s failed: %s", what, exc)
        raise StoreUnavailable(f"{what} failed: {exc}") from exc


def find_route_by_id(session: Session, route_id: str) -> Route | None:
    with _store_call(session, "find_route_by_id"):
        return (
            session.query(Route)
            .options(selectinload(Route.stops))
            .filter(Route.id == route_id)
            .first()
        )


def find_active_routes(session: Session) -> list[Route]:
    with _store_call(session, "find_active_routes"):
        return (
            session.query(Route)
            .options(selectinload(Route.stops))
            .filter(Route.is_active.is_(True))
            .order_by(Route.id)
            .all()
        )


def find_routes_serving(session: Session, stop_names: Sequence[str]) -> list[Route]:
    """Active routes with at least one stop whose name is in `stop_names`."""
    with _store_call(session, "find_routes_serving"):
        return (
            session.query(Route)
            .options(selectinload(Route.stops))
            .join(RouteStop, RouteStop.route_id == Route.id)
            .filter(Route.is_active.is_(True), RouteStop.name.in_(list(stop_names)))
            .distinct()
            .order_by(Route.id)
            .all()
        )


def find_reports_by_route(
    session: Session,
    route_id: str,
    statuses: Sequence[str] | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    report_type: str | None = None,
    exclude_statuses: Sequence[str] | None = None,
) -> list[Report]:
    """
    Reports for one route, optionally narrowed by status, type and a
    half-open created_at window [since, until).
    """
    with _store_call(session, "find_reports_by_route"):
        query = session.query(Report).filter(Report.route_id == route_id)
        if statuses is not None:
            query = query.filter(Report.status.in_(list(statuses)))
        if exclude_statuses:
            query = query.filter(Report.status.notin_(list(exclude_statuses)))
        if report_type is not None:
            query = query.filter(Report.report_type == report_type)
        if since is not None:
            query = query.filter(Report.created_at >= since)
        if until is not None:
            query = query.filter(Report.created_at < until)
        return query.order_by(Report.id).all()


def find_reports_by_user(session: Session, user_id: str) -> list[Report]:
    with _store_call(session, "find_reports_by_user"):
        return (
            session.query(Report)
            .filter(Report.user_id == user_id)
            .order_by(Report.created_at.desc())
            .all()
        )


def get_score(session: Session, route_id: str) -> Score | None:
    with _store_call(session, "get_score"):
        return session.query(Score).filter_by(route_id=route_id).first()


def ranked_scores(session: Session, limit: int = 10, worst: bool = False) -> list[Score]:
    """Scores ordered by overall, best first unless `worst`."""
    order = Score.overall.asc() if worst else Score.overall.desc()
    with _store_call(session, "ranked_scores"):
        return (
            session.query(Score)
            .options(selectinload(Score.route))
            .order_by(order, Score.route_id)
            .limit(limit)
            .all()
        )


# Dialects with a native INSERT ... ON CONFLICT on scores.route_id.
_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def upsert_score(session: Session, route_id: str, vector) -> Score:
    """
    Create or overwrite the Score row for `route_id` from a ScoreVector.

    `overall` is copied from the vector, never computed here, so the row
    always matches what the aggregator produced.

    The write is a single INSERT ... ON CONFLICT (route_id) DO UPDATE, so a
    single-route recompute and a sweep scoring the same new route cannot
    collide on the unique route_id.  Other dialects retry once as an update
    when the insert loses that race.
    """
    values = {
        "reliability": vector.reliability,
        "safety": vector.safety,
        "punctuality": vector.punctuality,
        "comfort": vector.comfort,
        "overall": vector.overall,
        "total_reports": vector.total_reports,
        "last_calculated": utcnow(),
    }
    with _store_call(session, "upsert_score"):
        insert = _CONFLICT_INSERTS.get(session.get_bind().dialect.name)
        if insert is None:
            return _upsert_score_orm(session, route_id, values)

        statement = insert(Score).values(route_id=route_id, **values)
        session.execute(
            statement.on_conflict_do_update(index_elements=[Score.route_id], set_=values)
        )
        session.commit()
        return (
            session.query(Score)
            .filter_by(route_id=route_id)
            .populate_existing()
            .one()
        )


def _upsert_score_orm(session: Session, route_id: str, values: dict) -> Score:
    def write() -> Score:
        record = session.query(Score).filter_by(route_id=route_id).first()
        if record is None:
            record = Score(route_id=route_id)
            session.add(record)
        for name, value in values.items():
            setattr(record, name, value)
        session.commit()
        return record

    try:
        return write()
    except IntegrityError:
        # Another writer created the row between our read and insert.
        session.rollback()
        return write()


def count_active_routes(session: Session) -> int:
    with _store_call(session, "count_active_routes"):
        return session.query(func.count(Route.id)).filter(Route.is_active.is_(True)).scalar() or 0


def count_scores(session: Session) -> int:
    with _store_call(session, "count_scores"):
        return session.query(func.count(Score.id)).scalar() or 0


def count_counted_reports(session: Session) -> int:
    with _store_call(session, "count_counted_reports"):
        return (
            session.query(func.count(Report.id))
            .filter(Report.status.in_(COUNTED_STATUSES))
            .scalar()
            or 0
        )


def average_overall_score(session: Session) -> float:
    with _store_call(session, "average_overall_score"):
        return float(session.query(func.avg(Score.overall)).scalar() or 0.0)


def latest_calculation(session: Session) -> datetime | None:
    with _store_call(session, "latest_calculation"):
        return session.query(func.max(Score.last_calculated)).scalar()
