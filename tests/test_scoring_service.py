"""
Tests for scoring.service: single-route recomputation against a real
(in-memory) database, plus the read-side stats and rankings.
"""

from datetime import timedelta

import pytest

from db.models import Score
from errors import NotFound
from scoring.aggregator import ZERO_VECTOR
from scoring.service import get_scoring_stats, ranked_scores, recompute_route


class TestRecomputeRoute:

    def test_unknown_route_raises(self, db):
        with pytest.raises(NotFound):
            recompute_route("NOPE", db)
        assert db.query(Score).count() == 0

    def test_route_without_reports_gets_zero_vector(self, db, make_route):
        make_route("R1")
        vector = recompute_route("R1", db)
        assert vector == ZERO_VECTOR
        row = db.query(Score).filter_by(route_id="R1").one()
        assert row.overall == 0.0
        assert row.total_reports == 0
        assert row.last_calculated is not None

    def test_persists_aggregated_vector(self, db, make_route, make_report):
        make_route("R1")
        make_report("R1", "safety", "critical")
        vector = recompute_route("R1", db)

        row = db.query(Score).filter_by(route_id="R1").one()
        assert row.safety == 3.0
        assert row.overall == vector.overall == 4.5
        assert row.total_reports == 1

    def test_pending_and_dismissed_are_ignored(self, db, make_route, make_report):
        make_route("R1")
        make_report("R1", "safety", "critical", status="pending")
        make_report("R1", "delay", "high", status="dismissed")
        assert recompute_route("R1", db) == ZERO_VECTOR

    def test_idempotent_and_overwrites(self, db, make_route, make_report):
        make_route("R1")
        make_report("R1", "delay", "high")
        first = recompute_route("R1", db)
        second = recompute_route("R1", db)
        assert first == second
        assert db.query(Score).filter_by(route_id="R1").count() == 1

        make_report("R1", "crowding", "critical")
        third = recompute_route("R1", db)
        assert third.total_reports == 2
        db.expire_all()
        assert db.query(Score).filter_by(route_id="R1").one().comfort == third.comfort

    def test_report_age_does_not_matter(self, db, make_route, make_report, now):
        make_route("R1")
        make_report("R1", "safety", "critical", created_at=now - timedelta(days=900))
        assert recompute_route("R1", db).safety == 3.0


class TestScoringStats:

    def test_empty_database(self, db):
        stats = get_scoring_stats(db)
        assert stats == {
            "total_routes": 0,
            "scored_routes": 0,
            "total_reports": 0,
            "average_score": 0.0,
            "last_calculated": None,
        }

    def test_counts_and_average(self, db, make_route, make_report):
        make_route("R1")
        make_route("R2")
        make_route("R3", active=False)
        make_report("R1", "safety", "critical")            # overall 4.5
        make_report("R2", "safety", "critical", status="pending")
        recompute_route("R1", db)
        recompute_route("R2", db)                           # zero vector

        stats = get_scoring_stats(db)
        assert stats["total_routes"] == 2
        assert stats["scored_routes"] == 2
        assert stats["total_reports"] == 1
        assert stats["average_score"] == 2.25
        assert stats["last_calculated"] is not None


class TestRankedScores:

    def _score_three(self, db, make_route, make_report):
        for route_id in ("R1", "R2", "R3"):
            make_route(route_id)
        make_report("R1", "safety", "critical")           # 4.5
        make_report("R2", "safety", "low")                # 4.875
        for route_id in ("R1", "R2", "R3"):
            recompute_route(route_id, db)

    def test_top_orders_best_first(self, db, make_route, make_report):
        self._score_three(db, make_route, make_report)
        ranked = ranked_scores(db, limit=2)
        assert [r["route_id"] for r in ranked] == ["R2", "R1"]
        assert ranked[0]["route_name"] == "Route R2"

    def test_worst_orders_lowest_first(self, db, make_route, make_report):
        self._score_three(db, make_route, make_report)
        ranked = ranked_scores(db, limit=10, worst=True)
        assert [r["route_id"] for r in ranked] == ["R3", "R1", "R2"]
