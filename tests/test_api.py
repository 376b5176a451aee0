"""
Integration tests for API endpoints.

The FastAPI lifespan's init_db and startup sweep are patched out for every
test.  Each test gets its own in-memory SQLite database via the conftest
fixtures; get_session and get_scoring_scheduler are overridden to use it.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from db.session import get_session
from errors import StoreUnavailable
from scoring.scheduler import ScoringScheduler


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def scheduler(session_factory):
    return ScoringScheduler(session_factory)


@pytest.fixture
def client(db, scheduler):
    """
    TestClient with:
      - lifespan init_db / startup sweep patched to no-ops
      - get_session dependency overridden to use the test session
      - get_scoring_scheduler overridden to sweep the test database
    """
    from api.main import app, get_scoring_scheduler

    def override_get_session():
        yield db

    with (
        patch("api.main.init_db"),
        patch("api.main._scheduled_sweep", new=AsyncMock()),
    ):
        app.dependency_overrides[get_session] = override_get_session
        app.dependency_overrides[get_scoring_scheduler] = lambda: scheduler
        with TestClient(app, raise_server_exceptions=True) as c:
            yield c
        app.dependency_overrides.clear()


@pytest.fixture
def two_routes(make_route, make_report):
    make_route("R1")
    make_route("R2", fare=80)
    make_report("R1", "safety", "critical")


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_returns_200(self, client):
        assert client.get("/health").status_code == 200

    def test_reports_counts_and_scheduler(self, client, two_routes):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["routes"] == 2
        assert body["scored_routes"] == 0
        assert body["scheduler"]["state"] == "idle"
        assert body["scheduler"]["next_run_at"] is not None
        assert body["scheduler"]["last_run_at"] is None


# ---------------------------------------------------------------------------
# /scores
# ---------------------------------------------------------------------------

class TestScores:
    def test_route_score_404_before_first_computation(self, client, two_routes):
        assert client.get("/scores/route/R1").status_code == 404

    def test_recalculate_single_route(self, client, two_routes):
        resp = client.post("/scores/recalculate/R1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["score"]["safety"] == 3.0
        assert body["score"]["overall"] == 4.5

        score = client.get("/scores/route/R1").json()
        assert score["route_name"] == "Route R1"
        assert score["overall"] == 4.5
        assert score["total_reports"] == 1

    def test_recalculate_unknown_route_404(self, client):
        resp = client.post("/scores/recalculate/NOPE")
        assert resp.status_code == 404
        assert "NOPE" in resp.json()["detail"]

    def test_recalculate_all(self, client, two_routes):
        resp = client.post("/scores/recalculate")
        assert resp.status_code == 200
        body = resp.json()
        assert body["succeeded"] == 2
        assert body["failed"] == 0
        assert {o["route_id"] for o in body["outcomes"]} == {"R1", "R2"}

    def test_recalculate_all_conflict_while_running(self, client):
        from api.main import app, get_scoring_scheduler

        busy = MagicMock()
        busy.run_full_recompute.return_value = None
        app.dependency_overrides[get_scoring_scheduler] = lambda: busy
        assert client.post("/scores/recalculate").status_code == 409

    def test_recalculate_requires_key_when_configured(self, client, two_routes):
        with patch("api.main.ADMIN_API_KEY", "secret"):
            assert client.post("/scores/recalculate/R1").status_code == 401
            assert client.post(
                "/scores/recalculate/R1", headers={"X-API-Key": "wrong"}
            ).status_code == 401
            assert client.post(
                "/scores/recalculate/R1", headers={"X-API-Key": "secret"}
            ).status_code == 200

    def test_full_recalculation_requires_key_when_configured(self, client, two_routes):
        with patch("api.main.ADMIN_API_KEY", "secret"):
            resp = client.post("/scores/recalculate")
            assert resp.status_code == 401
            assert "X-API-Key" in resp.json()["detail"]
            assert client.post(
                "/scores/recalculate", headers={"X-API-Key": "secret"}
            ).status_code == 200

    def test_top_worst_and_stats(self, client, two_routes):
        client.post("/scores/recalculate/R1")
        client.post("/scores/recalculate/R2")

        top = client.get("/scores/top?limit=1").json()
        assert [s["route_id"] for s in top] == ["R1"]
        worst = client.get("/scores/worst").json()
        assert [s["route_id"] for s in worst] == ["R2", "R1"]

        stats = client.get("/scores/stats").json()
        assert stats["total_routes"] == 2
        assert stats["scored_routes"] == 2
        assert stats["total_reports"] == 1
        assert stats["average_score"] == 2.25

    def test_limit_is_validated(self, client):
        assert client.get("/scores/top?limit=0").status_code == 422


# ---------------------------------------------------------------------------
# /analytics
# ---------------------------------------------------------------------------

class TestAnalytics:
    def test_efficiency(self, client, two_routes):
        body = client.get("/analytics/efficiency/R1").json()
        assert body["route_id"] == "R1"
        assert body["efficiency_score"] == 67
        assert set(body["factors"]) == {
            "reliability", "speed", "safety", "comfort", "cost", "frequency",
        }

    def test_efficiency_unknown_route(self, client):
        assert client.get("/analytics/efficiency/NOPE").status_code == 404

    def test_efficiency_store_down(self, client):
        with patch(
            "api.main.calculate_route_efficiency",
            side_effect=StoreUnavailable("find_route_by_id failed"),
        ):
            resp = client.get("/analytics/efficiency/R1")
        assert resp.status_code == 503

    def test_bulk_efficiency(self, client, two_routes):
        resp = client.post("/analytics/efficiency/bulk", json={"route_ids": ["R1", "NOPE", "R2"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 2
        assert body["total"] == 3

    def test_bulk_efficiency_rejects_empty_list(self, client):
        resp = client.post("/analytics/efficiency/bulk", json={"route_ids": []})
        assert resp.status_code == 422

    def test_travel_time(self, client, two_routes):
        resp = client.get(
            "/analytics/travel-time",
            params={"route_id": "R1", "from_stop": "Kencom", "to_stop": "Makadara",
                    "time_of_day": "08:00"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["base_time"] == 12
        assert body["factors"]["time_of_day"] == 1.3
        assert body["alternative_times"]["realistic"] == body["predicted_time"]

    def test_travel_time_bad_time(self, client, two_routes):
        resp = client.get(
            "/analytics/travel-time",
            params={"route_id": "R1", "from_stop": "Kencom", "to_stop": "Makadara",
                    "time_of_day": "25:00"},
        )
        assert resp.status_code == 422

    def test_travel_time_unknown_stop(self, client, two_routes):
        resp = client.get(
            "/analytics/travel-time",
            params={"route_id": "R1", "from_stop": "Kencom", "to_stop": "Westlands"},
        )
        assert resp.status_code == 404

    def test_alternatives(self, client, two_routes):
        body = client.get(
            "/analytics/alternatives",
            params={"from_stop": "Kencom", "to_stop": "Muthurwa", "max_cost": 50},
        ).json()
        assert body["count"] == 1
        assert body["alternatives"][0]["route_id"] == "R1"
        assert body["alternatives"][0]["stops"] == ["Kencom", "Railways", "Muthurwa"]

    def test_trends(self, client, two_routes):
        resp = client.get("/analytics/trends/R1?period=monthly")
        assert resp.status_code == 200
        assert set(resp.json()["trends"]) == {"ridership", "efficiency", "safety", "cost"}

    def test_trends_bad_period(self, client, two_routes):
        resp = client.get("/analytics/trends/R1?period=hourly")
        assert resp.status_code == 422
        assert "period" in resp.json()["detail"]

    def test_demand(self, client, two_routes):
        resp = client.get("/analytics/demand/R1?time_slot=07:00-09:00")
        assert resp.status_code == 200
        assert resp.json()["time_slot"] == "07:00-09:00"

    def test_demand_bad_slot(self, client, two_routes):
        assert client.get("/analytics/demand/R1?time_slot=dawn").status_code == 422

    def test_recommendations(self, client, two_routes):
        body = client.get("/analytics/recommendations/rider-1").json()
        assert body["user_id"] == "rider-1"
        assert [r["route_id"] for r in body["recommendations"]] == ["R1"]
