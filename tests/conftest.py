"""
Shared fixtures: a fresh in-memory SQLite database per test plus small
factories for routes and reports.

StaticPool is required so that create_all and every session use the same
single connection; otherwise each pool checkout gets a new in-memory DB
that has no tables.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base, Report, Route, RouteStop

# Monday 2026-02-09, noon
FIXED_NOW = datetime(2026, 2, 9, 12, 0)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_route(db):
    def _make(
        route_id="R1",
        name=None,
        stops=("Kencom", "Railways", "Muthurwa", "Jogoo Road", "Makadara"),
        fare=30.0,
        start="06:00",
        end="22:00",
        active=True,
    ):
        route = Route(
            id=route_id,
            name=name or f"Route {route_id}",
            operator="City Shuttle Sacco",
            description="Test route",
            fare=fare,
            operating_start=start,
            operating_end=end,
            is_active=active,
        )
        route.stops = [
            RouteStop(sequence=i, name=stop, longitude=36.82 + i / 100, latitude=-1.28)
            for i, stop in enumerate(stops)
        ]
        db.add(route)
        db.commit()
        return route

    return _make


@pytest.fixture
def make_report(db):
    def _make(
        route_id="R1",
        report_type="delay",
        severity="medium",
        status="verified",
        created_at=None,
        user_id=None,
    ):
        report = Report(
            route_id=route_id,
            user_id=user_id,
            report_type=report_type,
            severity=severity,
            status=status,
            description=f"{severity} {report_type}",
            longitude=36.82,
            latitude=-1.28,
            created_at=created_at or FIXED_NOW - timedelta(days=1),
        )
        db.add(report)
        db.commit()
        return report

    return _make
