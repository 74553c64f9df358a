"""
test_analytics_service.py — On-demand analytics, reports, trends and the
safety report, over the in-memory FakeDB.
"""

from datetime import datetime, timedelta, timezone

import pytest

from safepulse.core.errors import MetricsUnavailableError, StoreUnavailableError
from safepulse.models.analytics import AnalyticsOptions, IncidentStats
from safepulse.models.metrics import Location, ResponseMetrics
from safepulse.services.analytics_service import RAW_DATA_LIMIT, generate_recommendations
from tests.fakes import LONDON, NOW, FakeDB, alert, incident, make_analytics_service

LONDON_LOCATION = Location(lat=LONDON[0], lng=LONDON[1])
PARIS = {"lat": 48.8566, "lng": 2.3522}


# ── get_incident_analytics ────────────────────────────────────────────────────

class TestIncidentAnalytics:
    async def test_report_composition(self):
        db = FakeDB([
            incident(severity="high", type="theft", ago=timedelta(hours=2)),
            incident(severity="high", type="theft", ago=timedelta(days=1, hours=2)),
            incident(severity="high", type="fire", ago=timedelta(days=3)),
            incident(severity="low", status="resolved", ago=timedelta(days=40)),   # outside 30d
        ])
        report = await make_analytics_service(db).get_incident_analytics(AnalyticsOptions())

        assert report.time_range == "30d"
        assert report.generated_at == NOW
        assert report.stats.total == 3
        assert report.stats.type_breakdown == {"theft": 2, "fire": 1}
        assert [p.period for p in report.time_series] == ["2026-03-15", "2026-03-17", "2026-03-18"]
        assert len(report.geographic) == 1
        assert report.geographic[0].count == 3

        assert len(report.hotspots) == 1
        assert report.hotspots[0].incident_count == 3
        assert report.hotspots[0].severity_score == 9
        assert report.hotspots[0].risk_level == "high"

    async def test_trend_windows_serialize_with_short_names(self):
        db = FakeDB([incident(severity="critical"), incident(ago=timedelta(days=3))])
        report = await make_analytics_service(db).get_incident_analytics(AnalyticsOptions(time_range="7d"))
        trends = report.model_dump(by_alias=True)["trends"]

        assert trends["last24h"] == {"critical": 1}
        assert trends["last7d"] == {"critical": 1, "low": 1}

    async def test_hourly_buckets_for_last_day(self):
        db = FakeDB([incident(ago=timedelta(minutes=30)), incident(ago=timedelta(hours=5))])
        report = await make_analytics_service(db).get_incident_analytics(AnalyticsOptions(time_range="24h"))
        assert [p.period for p in report.time_series] == ["2026-03-18 07:00", "2026-03-18 11:00"]

    async def test_unknown_range_falls_back_to_30_days(self):
        db = FakeDB([incident(ago=timedelta(days=20))])
        report = await make_analytics_service(db).get_incident_analytics(AnalyticsOptions(time_range="5y"))
        assert report.time_range == "30d"
        assert report.stats.total == 1

    async def test_exclude_resolved(self):
        db = FakeDB([incident(status="resolved"), incident()])
        options = AnalyticsOptions(include_resolved=False)
        report = await make_analytics_service(db).get_incident_analytics(options)

        assert report.stats.total == 1
        assert "resolved" not in report.stats.status_breakdown

    async def test_location_filter(self):
        db = FakeDB([incident(), incident(**PARIS)])
        options = AnalyticsOptions(location=LONDON_LOCATION, radius_m=5000)
        report = await make_analytics_service(db).get_incident_analytics(options)
        assert report.stats.total == 1

    async def test_empty_store(self):
        report = await make_analytics_service(FakeDB()).get_incident_analytics()
        assert report.stats.total == 0
        assert report.time_series == []
        assert report.hotspots == []
        assert report.engagement.engagement_rate == 0

    async def test_failure_is_generic(self):
        service = make_analytics_service(FakeDB(fail={"incidents"}))
        with pytest.raises(MetricsUnavailableError, match="^Failed to generate analytics data$"):
            await service.get_incident_analytics()

    async def test_no_database(self):
        with pytest.raises(StoreUnavailableError):
            await make_analytics_service(None).get_incident_analytics()


# ── generate_report ───────────────────────────────────────────────────────────

class TestReport:
    async def test_executive_summary(self):
        db = FakeDB([
            incident(severity="critical", status="resolved", verificationScore=90,
                     responseTime=150, verifiedBy="officer-1"),
            incident(severity="low", verificationScore=90,
                     analytics={"views": 10, "engagements": 2}),
        ])
        report = await make_analytics_service(db).generate_report(AnalyticsOptions(time_range="7d"))

        assert report.metadata.time_range == "7d"
        assert report.metadata.version == "1.0"
        assert report.metadata.format == "json"
        summary = report.executive_summary
        assert summary.total_incidents == 2
        assert summary.critical_incidents == 1
        assert summary.resolution_rate == 50
        assert summary.avg_response_time == 150
        assert summary.engagement_rate == 20
        assert [r.type for r in report.recommendations] == ["alert", "performance"]
        assert report.raw_data is None

    async def test_raw_data_newest_first_with_string_ids(self):
        docs = [incident(ago=timedelta(hours=h)) for h in (5, 1, 3)]
        report = await make_analytics_service(FakeDB(docs)).generate_report(
            AnalyticsOptions(include_raw_data=True)
        )

        assert [row["_id"] for row in report.raw_data] == [str(docs[1]["_id"]), str(docs[2]["_id"]), str(docs[0]["_id"])]
        assert report.model_dump(mode="json")["raw_data"][0]["type"] == "theft"

    async def test_raw_data_is_capped(self):
        docs = [incident(ago=timedelta(minutes=i)) for i in range(RAW_DATA_LIMIT + 5)]
        report = await make_analytics_service(FakeDB(docs)).generate_report(
            AnalyticsOptions(include_raw_data=True)
        )
        assert len(report.raw_data) == RAW_DATA_LIMIT

    async def test_failure_is_generic(self):
        service = make_analytics_service(FakeDB(fail={"incidents"}))
        with pytest.raises(MetricsUnavailableError, match="^Failed to generate report$"):
            await service.generate_report()


class TestRecommendations:
    def test_critical_share_above_ten_percent(self):
        stats = IncidentStats(total=5, severity_breakdown={"critical": 1}, avg_verification_score=80)
        recs = generate_recommendations(stats)
        assert [(r.type, r.priority) for r in recs] == [("alert", "high")]

    def test_critical_share_at_ten_percent_is_fine(self):
        stats = IncidentStats(total=10, severity_breakdown={"critical": 1}, avg_verification_score=80)
        assert generate_recommendations(stats) == []

    def test_low_verification(self):
        stats = IncidentStats(total=4, avg_verification_score=40)
        assert [(r.type, r.priority) for r in generate_recommendations(stats)] == [("improvement", "medium")]

    def test_no_incidents_no_verification_warning(self):
        assert generate_recommendations(IncidentStats()) == []

    def test_slow_response(self):
        stats = IncidentStats(total=4, avg_verification_score=80)
        recs = generate_recommendations(stats, ResponseMetrics(avg_response_time=121))
        assert [(r.type, r.priority) for r in recs] == [("performance", "high")]


# ── Safety score / trends / safety report ─────────────────────────────────────

class TestSafety:
    async def test_calculate_safety_score(self):
        service = make_analytics_service(FakeDB([incident(severity="critical")]))
        assert await service.calculate_safety_score(LONDON[0], LONDON[1], 5) == 20
        assert await service.calculate_safety_score(91, LONDON[1], 5) == 50

    async def test_incident_trends(self):
        start = datetime(2026, 3, 10, tzinfo=timezone.utc)
        db = FakeDB([
            incident(created=datetime(2026, 3, 11, 9, tzinfo=timezone.utc), severity="critical", type="fire"),
            incident(created=datetime(2026, 3, 11, 15, tzinfo=timezone.utc), severity="high"),
            incident(created=datetime(2026, 3, 14, 9, tzinfo=timezone.utc)),
            incident(created=datetime(2026, 3, 1, tzinfo=timezone.utc)),   # before start
        ])
        trends = await make_analytics_service(db).get_incident_trends(start, NOW)

        assert trends.total_incidents == 3
        assert [(d.date, d.count, d.critical, d.high) for d in trends.daily_trends] == [
            ("2026-03-11", 2, 1, 1),
            ("2026-03-14", 1, 0, 0),
        ]
        assert trends.type_trends[0].name == "theft"
        assert trends.type_trends[0].count == 2
        assert trends.start_date == start
        assert trends.end_date == NOW

    async def test_incident_trends_failure(self):
        service = make_analytics_service(FakeDB(fail={"incidents"}))
        with pytest.raises(MetricsUnavailableError, match="^Failed to get incident trends$"):
            await service.get_incident_trends(NOW - timedelta(days=7), NOW)

    async def test_safety_report_for_location(self):
        db = FakeDB(
            [incident(severity="critical", verificationScore=90), incident(**PARIS)],
            [alert(type="weather_alert", location={"type": "Point", "coordinates": [LONDON[1], LONDON[0]]})],
        )
        options = AnalyticsOptions(location=LONDON_LOCATION, radius_m=10_000, time_range="7d")
        report = await make_analytics_service(db).generate_safety_report(options)

        assert report.safety_score == 20
        assert report.incident_summary.total == 1
        assert report.incident_summary.by_severity == {"critical": 1}
        assert report.alert_summary.total == 1
        assert report.alert_summary.by_type == {"weather_alert": 1}
        assert report.trends.total_incidents == 1
        assert report.location.coordinates == [LONDON[1], LONDON[0]]
        assert report.location.radius_m == 10_000
        assert report.timeframe == "7d"
        assert [r.type for r in report.recommendations] == ["alert"]

    async def test_safety_report_without_location_is_neutral(self):
        db = FakeDB([incident(severity="critical"), incident(**PARIS)])
        report = await make_analytics_service(db).generate_safety_report()

        assert report.safety_score == 50
        assert report.incident_summary.total == 2
        assert report.location is None
        assert report.timeframe == "30d"

    async def test_safety_report_survives_alert_failure(self):
        db = FakeDB([incident()], fail={"alerts"})
        report = await make_analytics_service(db).generate_safety_report()

        assert report.alert_summary.total == 0
        assert report.incident_summary.total == 1

    async def test_safety_report_failure(self):
        service = make_analytics_service(FakeDB(fail={"incidents"}))
        with pytest.raises(MetricsUnavailableError, match="^Failed to generate safety report$"):
            await service.generate_safety_report()
