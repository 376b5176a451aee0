"""
Engine and session factory for the score store.

SessionLocal backs both request-scoped sessions (get_session) and the
scheduler's sweep sessions; each sweep opens and closes its own.
"""

import logging
from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from config import DATABASE_URL
from db.models import Base

logger = logging.getLogger(__name__)

_is_sqlite = DATABASE_URL.startswith("sqlite")

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    pool_pre_ping=not _is_sqlite,
)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        # SQLite ignores REFERENCES clauses unless asked per connection.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create the routes / route_stops / reports / scores tables if missing."""
    Base.metadata.create_all(bind=engine)
    logger.debug("Schema ensured on %s", engine.url.render_as_string(hide_password=True))


def get_session() -> Iterator[Session]:
    """Dependency-injectable session for FastAPI routes."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
