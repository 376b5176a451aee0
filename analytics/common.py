"""Helpers shared by the analytics modules: clock, windows, time parsing."""

import re
from datetime import datetime, timedelta

from db.models import utcnow
from errors import InvalidInput

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def resolve_now(now: datetime | None) -> datetime:
    return now if now is not None else utcnow()


def trailing_window(now: datetime, days: int) -> tuple[datetime, datetime]:
    """Half-open window [now - days, now)."""
    return now - timedelta(days=days), now


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_hour(hhmm: str, field_name: str = "time") -> int:
    """Return the hour of an HH:MM string; InvalidInput if malformed."""
    match = _HHMM.match((hhmm or "").strip())
    if match is None:
        raise InvalidInput(f"{field_name} must be HH:MM, got {hhmm!r}.")
    return int(match.group(1))


def hour_or_none(hhmm: str | None) -> int | None:
    """Lenient variant for stored data: None instead of raising."""
    if not hhmm:
        return None
    try:
        return parse_hour(hhmm)
    except InvalidInput:
        return None


def is_weekend(dt: datetime) -> bool:
    return dt.weekday() >= 5
