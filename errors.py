"""
Error kinds raised by the scoring and analytics core.

  NotFound          unknown route id or stop name; surfaced, never retried
  StoreUnavailable  the database failed; callers decide whether to retry
  InvalidInput      malformed query parameters, rejected before computing
"""


class ScoringError(Exception):
    """Base class for errors raised by the core."""


class NotFound(ScoringError):
    pass


class StoreUnavailable(ScoringError):
    pass


class InvalidInput(ScoringError):
    pass
