"""
Report-to-score aggregation.

Every route starts from a perfect 5 on four dimensions (reliability, safety,
punctuality, comfort) and each countable report erodes the dimensions its
type touches:

  impact = -severity_weight * 0.5
  dimension_total += impact * type_weight[dimension]
  dimension = clamp(5 + dimension_total, 0, 5)

Only verified / resolved reports count.  With no countable reports the result
is the zero vector: no synthetic score without evidence.

Per-dimension totals are accumulated with math.fsum, which is exactly rounded,
so the result does not depend on report order.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from db.models import COUNTED_STATUSES

DIMENSIONS = ("reliability", "safety", "punctuality", "comfort")

MAX_SCORE = 5.0
IMPACT_PER_SEVERITY = 0.5


@dataclass(frozen=True)
class ScoringWeights:
    """Immutable weight tables used by aggregate()."""

    severity: Mapping[str, float]
    report_types: Mapping[str, Mapping[str, float]]
    fallback_type: Mapping[str, float]
    default_severity: float = 1.0
    counted_statuses: frozenset[str] = field(default_factory=lambda: frozenset(COUNTED_STATUSES))

    def severity_weight(self, severity: str) -> float:
        return self.severity.get(severity, self.default_severity)

    def type_distribution(self, report_type: str) -> Mapping[str, float]:
        return self.report_types.get(report_type, self.fallback_type)


def _frozen(table: dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(
        {k: MappingProxyType(dict(v)) if isinstance(v, dict) else v for k, v in table.items()}
    )


DEFAULT_WEIGHTS = ScoringWeights(
    severity=_frozen({"low": 1, "medium": 2, "high": 3, "critical": 4}),
    report_types=_frozen({
        "delay": {"reliability": 0.4, "punctuality": 0.6},
        "safety": {"safety": 1.0},
        "crowding": {"comfort": 0.8, "reliability": 0.2},
        "breakdown": {"reliability": 0.6, "safety": 0.4},
        "other": {d: 0.25 for d in DIMENSIONS},
    }),
    fallback_type=_frozen({d: 0.25 for d in DIMENSIONS}),
)


@dataclass(frozen=True)
class ScoreVector:
    reliability: float = 0.0
    safety: float = 0.0
    punctuality: float = 0.0
    comfort: float = 0.0
    total_reports: int = 0

    @property
    def overall(self) -> float:
        return math.fsum((self.reliability, self.safety, self.punctuality, self.comfort)) / 4

    def as_dict(self) -> dict[str, Any]:
        return {
            "reliability": self.reliability,
            "safety": self.safety,
            "punctuality": self.punctuality,
            "comfort": self.comfort,
            "overall": self.overall,
            "total_reports": self.total_reports,
        }


ZERO_VECTOR = ScoreVector()


def _normalize(total: float) -> float:
    return max(0.0, min(MAX_SCORE, MAX_SCORE + total))


def aggregate(
    route_id: str,
    reports: Iterable[Any],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ScoreVector:
    """
    Fold a route's reports into a ScoreVector.

    Args:
        route_id: Route the reports belong to (reports for other routes are
                  ignored).
        reports:  Objects exposing route_id, report_type, severity, status.
        weights:  Weight tables; defaults to DEFAULT_WEIGHTS.

    Returns:
        The score vector, or ZERO_VECTOR when nothing countable remains.
    """
    counted = [
        r for r in reports
        if r.status in weights.counted_statuses
        and getattr(r, "route_id", route_id) == route_id
    ]
    if not counted:
        return ZERO_VECTOR

    contributions: dict[str, list[float]] = {d: [] for d in DIMENSIONS}
    for report in counted:
        impact = -weights.severity_weight(report.severity) * IMPACT_PER_SEVERITY
        for dimension, weight in weights.type_distribution(report.report_type).items():
            if dimension in contributions:
                contributions[dimension].append(impact * weight)

    totals = {d: math.fsum(values) for d, values in contributions.items()}
    return ScoreVector(
        reliability=_normalize(totals["reliability"]),
        safety=_normalize(totals["safety"]),
        punctuality=_normalize(totals["punctuality"]),
        comfort=_normalize(totals["comfort"]),
        total_reports=len(counted),
    )
