"""
SQLAlchemy ORM models for routes, rider reports and computed route scores.

Routes and reports are written by the surrounding application; the scoring
core only reads them.  Scores are owned by the core: one row per route,
overwritten on every recomputation.

Operating hours are stored as HH:MM strings, mirroring how operators publish
them.  Timestamps are naive UTC datetimes.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

REPORT_TYPES = ("delay", "safety", "crowding", "breakdown", "other")
SEVERITIES = ("low", "medium", "high", "critical")
STATUSES = ("pending", "verified", "resolved", "dismissed")

# Only these statuses ever influence a published score.
COUNTED_STATUSES = ("verified", "resolved")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Route(Base):
    __tablename__ = "routes"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    operator = Column(String)
    description = Column(String)
    fare = Column(Float, nullable=True)
    operating_start = Column(String, nullable=True)  # HH:MM
    operating_end = Column(String, nullable=True)    # HH:MM
    is_active = Column(Boolean, default=True, index=True)

    stops = relationship(
        "RouteStop",
        back_populates="route",
        order_by="RouteStop.sequence",
        cascade="all, delete-orphan",
    )
    reports = relationship("Report", back_populates="route")
    score = relationship("Score", back_populates="route", uselist=False)

    @property
    def stop_names(self) -> list[str]:
        return [s.name for s in self.stops]

    def stop_index(self, name: str) -> int:
        """Position of the first stop called `name`, or -1."""
        for idx, stop in enumerate(self.stops):
            if stop.name == name:
                return idx
        return -1


class RouteStop(Base):
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String, ForeignKey("routes.id"), index=True)
    sequence = Column(Integer, nullable=False)
    name = Column(String, nullable=False, index=True)
    longitude = Column(Float)
    latitude = Column(Float)

    route = relationship("Route", back_populates="stops")


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String, ForeignKey("routes.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=True)  # anonymous reports allowed
    # Incident types (REPORT_TYPES) plus the rider-rating categories read by
    # the efficiency analyzer ("reliability", "efficiency", "comfort").
    report_type = Column(String, nullable=False, index=True)
    severity = Column(String, nullable=False, default="medium")
    status = Column(String, nullable=False, default="pending", index=True)
    description = Column(String)
    longitude = Column(Float)
    latitude = Column(Float)
    created_at = Column(DateTime, default=utcnow, index=True)

    route = relationship("Route", back_populates="reports")


class Score(Base):
    """Latest score vector per route.  `overall` is always the mean of the
    four dimensions; it is written from ScoreVector.overall only."""
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String, ForeignKey("routes.id"), unique=True, nullable=False)
    reliability = Column(Float, nullable=False, default=0.0)
    safety = Column(Float, nullable=False, default=0.0)
    punctuality = Column(Float, nullable=False, default=0.0)
    comfort = Column(Float, nullable=False, default=0.0)
    overall = Column(Float, nullable=False, default=0.0, index=True)
    total_reports = Column(Integer, nullable=False, default=0)
    last_calculated = Column(DateTime, default=utcnow, index=True)

    route = relationship("Route", back_populates="score")
