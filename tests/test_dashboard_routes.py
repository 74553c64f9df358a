"""
test_dashboard_routes.py — Tests for GET /api/v1/dashboard/metrics,
GET /api/v1/dashboard/feed and POST /api/v1/dashboard/cache/clear.

Services are built around the in-memory FakeDB and injected through
app.dependency_overrides, so no real MongoDB is needed.
"""

from datetime import timedelta

import pytest

from safepulse.services.container import get_metrics_service
from tests.fakes import LONDON, FakeDB, alert, incident, make_metrics_service


def _override(service):
    from safepulse.main import app

    app.dependency_overrides[get_metrics_service] = lambda: service


@pytest.fixture()
def fake_db():
    return FakeDB(
        [
            incident(severity="critical", type="fire"),
            incident(ago=timedelta(days=1)),
            incident(lat=48.8566, lng=2.3522, ago=timedelta(hours=2)),   # Paris
        ],
        [alert(deliveredAt=None)],
    )


@pytest.fixture()
def metrics_service(fake_db):
    service = make_metrics_service(fake_db)
    _override(service)
    return service


class TestDashboardMetrics:
    async def test_returns_camel_case_snapshot(self, client, metrics_service):
        r = await client.get("/api/v1/dashboard/metrics")
        assert r.status_code == 200

        data = r.json()
        for key in ("overview", "trends", "breakdown", "performance", "engagement", "alerts"):
            assert key in data
        assert data["overview"]["total"] == 3
        assert "changeFromYesterday" in data["overview"]
        assert data["refreshRateSeconds"] == 30
        assert data["location"] is None

    async def test_location_query(self, client, metrics_service):
        r = await client.get(f"/api/v1/dashboard/metrics?role=citizen&lat={LONDON[0]}&lng={LONDON[1]}")
        data = r.json()

        assert data["overview"]["total"] == 2
        assert data["location"]["nearbyCount"] == 2
        assert data["location"]["radiusKm"] == 10

    async def test_lone_latitude_is_ignored(self, client, metrics_service):
        data = (await client.get(f"/api/v1/dashboard/metrics?lat={LONDON[0]}")).json()
        assert data["location"] is None
        assert data["overview"]["total"] == 3

    async def test_out_of_range_latitude_is_rejected(self, client, metrics_service):
        r = await client.get("/api/v1/dashboard/metrics?lat=91&lng=0")
        assert r.status_code == 422

    async def test_second_request_served_from_cache(self, client, metrics_service, fake_db):
        await client.get("/api/v1/dashboard/metrics?role=admin")
        calls = fake_db["incidents"].calls
        await client.get("/api/v1/dashboard/metrics?role=admin")
        assert fake_db["incidents"].calls == calls

    async def test_store_unavailable_is_503(self, client):
        _override(make_metrics_service(None))
        r = await client.get("/api/v1/dashboard/metrics")
        assert r.status_code == 503
        assert r.json()["detail"] == "Database unavailable"

    async def test_aggregation_failure_is_generic_500(self, client):
        _override(make_metrics_service(FakeDB(fail={"incidents"})))
        r = await client.get("/api/v1/dashboard/metrics")
        assert r.status_code == 500
        assert r.json() == {"detail": "Failed to retrieve dashboard metrics"}


class TestFeedAndCache:
    async def test_feed(self, client, metrics_service):
        r = await client.get("/api/v1/dashboard/feed?limit=2")
        assert r.status_code == 200

        incidents = r.json()["incidents"]
        assert len(incidents) == 2
        assert incidents[0]["type"] == "fire"
        for field in ("id", "timeAgo", "impactScore", "createdAt"):
            assert field in incidents[0]

    async def test_feed_limit_bounds(self, client, metrics_service):
        r = await client.get("/api/v1/dashboard/feed?limit=0")
        assert r.status_code == 422

    async def test_clear_cache(self, client, metrics_service):
        await client.get("/api/v1/dashboard/metrics")
        assert len(metrics_service.cache) == 1

        r = await client.post("/api/v1/dashboard/cache/clear")
        assert r.status_code == 200
        assert r.json() == {"message": "Metrics cache cleared"}
        assert len(metrics_service.cache) == 0
