"""
test_admin_metrics.py — Operator metrics service and the
/api/v1/admin/metrics route group, over the in-memory FakeDB.
"""

from datetime import timedelta

import pytest

from safepulse.core.errors import MetricsUnavailableError, StoreUnavailableError
from safepulse.services.admin_metrics import AdminMetricsService
from safepulse.services.container import get_admin_metrics_service
from tests.fakes import FakeDB, alert, incident, make_engine


def _service(db) -> AdminMetricsService:
    return AdminMetricsService(make_engine(db))


def _override(service):
    from safepulse.main import app

    app.dependency_overrides[get_admin_metrics_service] = lambda: service


@pytest.fixture()
def admin_db():
    return FakeDB(
        [
            incident(type="theft", status="resolved", responseTime=40),
            incident(type="fire", status="resolved", responseTime=20, isActive=False),
            incident(type="theft", responseTime=100),
        ],
        [alert(), alert(isActive=False)],
    )


# ── Incident metrics ──────────────────────────────────────────────────────────

class TestIncidentMetrics:
    async def test_counts_include_inactive_incidents(self, admin_db):
        metrics = await _service(admin_db).get_incident_metrics()

        assert metrics.total == 3
        assert metrics.active == 2
        assert metrics.inactive == 1
        assert metrics.by_type == {"theft": 2, "fire": 1}
        assert metrics.by_status == {"resolved": 2, "reported": 1}
        assert metrics.by_severity == {"low": 3}
        # resolved incidents only: (40 + 20) / 2
        assert metrics.average_resolution_time == 30

    async def test_empty_collection(self):
        metrics = await _service(FakeDB()).get_incident_metrics()
        assert metrics.total == 0
        assert metrics.inactive == 0
        assert metrics.by_type == {}
        assert metrics.average_resolution_time == 0

    async def test_failure_is_generic(self):
        with pytest.raises(MetricsUnavailableError, match="^Failed to retrieve incident metrics$"):
            await _service(FakeDB(fail={"incidents"})).get_incident_metrics()

    async def test_no_database(self):
        with pytest.raises(StoreUnavailableError):
            await _service(None).get_incident_metrics()


# ── Performance metrics ───────────────────────────────────────────────────────

class TestPerformanceMetrics:
    async def test_daily_buckets_for_a_week(self):
        db = FakeDB([
            incident(ago=timedelta(hours=1), responseTime=30),
            incident(ago=timedelta(hours=2)),
            incident(ago=timedelta(days=1), responseTime=10, isActive=False),
            incident(ago=timedelta(days=10), responseTime=500),   # outside the week
        ])
        metrics = await _service(db).get_performance_metrics("7d")

        assert metrics.timeframe == "7d"
        assert [(p.timestamp, p.incidents, p.avg_response_time) for p in metrics.data_points] == [
            ("2026-03-17", 1, 10),
            ("2026-03-18", 2, 30),
        ]
        assert metrics.response_time.average == 20
        assert metrics.response_time.min == 10
        assert metrics.response_time.max == 30
        assert metrics.throughput.total == 3
        assert metrics.throughput.average == 2

    async def test_hourly_buckets_for_the_last_hour(self):
        db = FakeDB([
            incident(ago=timedelta(minutes=30)),
            incident(ago=timedelta(minutes=50)),
            incident(ago=timedelta(hours=2)),
        ])
        metrics = await _service(db).get_performance_metrics("1h")

        assert [(p.timestamp, p.incidents) for p in metrics.data_points] == [("2026-03-18 11:00", 2)]
        # no response times recorded
        assert metrics.response_time.max == 0

    async def test_unknown_timeframe_means_last_day(self):
        db = FakeDB([incident(ago=timedelta(hours=1)), incident(ago=timedelta(days=2))])
        metrics = await _service(db).get_performance_metrics("1y")

        assert metrics.timeframe == "24h"
        assert metrics.throughput.total == 1

    async def test_nothing_created(self):
        metrics = await _service(FakeDB()).get_performance_metrics()

        assert metrics.timeframe == "24h"
        assert metrics.data_points == []
        assert metrics.throughput.average == 0
        assert metrics.response_time.average == 0

    async def test_failure_is_generic(self):
        with pytest.raises(MetricsUnavailableError, match="^Failed to retrieve performance metrics$"):
            await _service(FakeDB(fail={"incidents"})).get_performance_metrics()


# ── Database metrics ──────────────────────────────────────────────────────────

class TestDatabaseMetrics:
    async def test_counts_and_storage_statistics(self, admin_db):
        metrics = await _service(admin_db).get_database_metrics()

        assert metrics.incidents.model_dump() == {"total": 3, "active": 2, "inactive": 1}
        assert metrics.alerts.model_dump() == {"total": 2, "active": 1, "inactive": 1}
        assert [c.name for c in metrics.collections] == ["incidents", "alerts"]
        assert metrics.collections[0].count == 3
        assert metrics.collections[0].size == 600
        assert metrics.collections[0].indexes == 2
        assert metrics.database.collections == 2
        assert metrics.database.objects == 5
        assert metrics.response_time_ms >= 0

    async def test_response_time_is_a_ping(self, admin_db):
        await _service(admin_db).get_database_metrics()

        assert admin_db.commands[0] == ("ping",)
        assert sorted(admin_db.commands[1:]) == [
            ("collStats", "alerts"),
            ("collStats", "incidents"),
            ("dbStats",),
        ]

    async def test_command_failure_is_generic(self):
        with pytest.raises(MetricsUnavailableError, match="^Failed to retrieve database metrics$"):
            await _service(FakeDB([incident()], fail={"command"})).get_database_metrics()

    async def test_no_database(self):
        with pytest.raises(StoreUnavailableError):
            await _service(None).get_database_metrics()


# ── Routes ────────────────────────────────────────────────────────────────────

class TestAdminRoutes:
    async def test_incident_metrics(self, client, admin_db):
        _override(_service(admin_db))
        r = await client.get("/api/v1/admin/metrics/incidents")
        assert r.status_code == 200

        data = r.json()
        assert data["total"] == 3
        assert data["byType"] == {"theft": 2, "fire": 1}
        assert data["averageResolutionTime"] == 30

    async def test_performance_metrics(self, client, admin_db):
        _override(_service(admin_db))
        r = await client.get("/api/v1/admin/metrics/performance?timeframe=30d")
        assert r.status_code == 200

        data = r.json()
        assert data["timeframe"] == "30d"
        assert data["throughput"]["total"] == 3
        assert data["dataPoints"][0]["incidents"] == 3
        assert set(data["responseTime"]) == {"average", "min", "max"}

    async def test_database_metrics(self, client, admin_db):
        _override(_service(admin_db))
        r = await client.get("/api/v1/admin/metrics/database")
        assert r.status_code == 200

        data = r.json()
        assert data["incidents"]["inactive"] == 1
        assert data["collections"][0]["storageSize"] == 4096
        assert data["database"]["dataSize"] == 1000
        assert "responseTimeMs" in data

    async def test_failure_is_generic_500(self, client):
        _override(_service(FakeDB(fail={"command"})))
        r = await client.get("/api/v1/admin/metrics/database")
        assert r.status_code == 500
        assert r.json() == {"detail": "Failed to retrieve database metrics"}

    async def test_no_database_is_503(self, client):
        _override(_service(None))
        r = await client.get("/api/v1/admin/metrics/incidents")
        assert r.status_code == 503
        assert r.json() == {"detail": "Database unavailable"}

    async def test_rate_limited(self, client, admin_db):
        _override(_service(admin_db))
        statuses = [
            (await client.get("/api/v1/admin/metrics/incidents")).status_code
            for _ in range(31)
        ]
        assert statuses[:30] == [200] * 30
        assert statuses[30] == 429
