"""
aggregation.py — Concurrent facet fan-out for snapshots and analytics reports.

HOW A SNAPSHOT IS BUILT
───────────────────────
1. A QueryScope (the base filter) is derived from the request: active
   incidents, optionally near a location, optionally inside a date window.
2. Every facet coroutine runs its own aggregation pipeline (pipelines.py)
   and hands the grouped rows to a shaping function in facets.py /
   clustering.py. Only result rows leave MongoDB, never whole collections.
3. All facets of one call are awaited together with asyncio.gather under a
   single timeout, then combined once into a frozen record.

FAILURE SEMANTICS
─────────────────
  - The alert-summary facet is best-effort: any error is logged as a warning
    and replaced by a zero-valued AlertMetrics.
  - Any other facet error (or the timeout) propagates out of the engine
    unchanged. MetricsService / AnalyticsService turn it into a generic
    MetricsUnavailableError and never cache a partial result.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from safepulse.models.analytics import (
    AnalyticsReport,
    GeoCell,
    Hotspot,
    IncidentStats,
    SeverityTrends,
    TimeSeriesPoint,
)
from safepulse.models.metrics import (
    AlertMetrics,
    Breakdown,
    EngagementMetrics,
    Location,
    LocationMetrics,
    MetricsSnapshot,
    OverviewMetrics,
    ResponseMetrics,
    SeverityBucket,
    TrendMetrics,
    TypeBucket,
)
from safepulse.services import clustering, facets, pipelines
from safepulse.services.store import IncidentStore, QueryScope
from safepulse.services.time_windows import Bucket

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AggregationEngine:
    """Runs facet queries against an IncidentStore and assembles the results."""

    def __init__(
        self,
        store: IncidentStore,
        *,
        clock: Clock = utcnow,
        query_timeout: Optional[float] = 15.0,
        dashboard_radius_km: float = 10.0,
    ):
        self.store = store
        self.clock = clock
        self.query_timeout = query_timeout
        self.dashboard_radius_km = dashboard_radius_km

    # ── Fan-out ──────────────────────────────────────────────────────────────

    async def gather(self, *coros):
        fan_out = asyncio.gather(*coros)
        if self.query_timeout is None:
            return await fan_out
        return await asyncio.wait_for(fan_out, timeout=self.query_timeout)

    def dashboard_scope(self, location: Optional[Location]) -> QueryScope:
        return QueryScope(location=location, radius_m=self.dashboard_radius_km * 1000)

    # ── Snapshot ─────────────────────────────────────────────────────────────

    async def dashboard_snapshot(
        self,
        location: Optional[Location] = None,
        refresh_rate_seconds: float = 30.0,
    ) -> MetricsSnapshot:
        now = self.clock()
        scope = self.dashboard_scope(location)

        (
            overview,
            trends,
            severity,
            types,
            performance,
            engagement,
            nearby,
            alerts,
        ) = await self.gather(
            self.overview(scope, now),
            self.trends(scope, now),
            self.severity_breakdown(scope),
            self.type_breakdown(scope),
            self.response(scope),
            self.engagement(scope),
            self.location(scope),
            self.alerts(now),
        )

        return MetricsSnapshot(
            timestamp=now,
            overview=overview,
            trends=trends,
            breakdown=Breakdown(severity=severity, type=types),
            performance=performance,
            engagement=engagement,
            location=nearby,
            alerts=alerts,
            refresh_rate_seconds=refresh_rate_seconds,
        )

    # ── Analytics report ─────────────────────────────────────────────────────

    async def analytics_report(self, scope: QueryScope, time_range: str, bucket: Bucket) -> AnalyticsReport:
        now = self.clock()

        (
            stats,
            series,
            geographic,
            trends,
            performance,
            engagement,
            hotspots,
        ) = await self.gather(
            self.stats(scope),
            self.time_series(scope, bucket),
            self.geographic(scope),
            self.severity_trends(scope, now),
            self.response(scope),
            self.engagement(scope),
            self.hotspots(scope, now),
        )

        return AnalyticsReport(
            time_range=time_range,
            generated_at=now,
            stats=stats,
            time_series=series,
            geographic=geographic,
            trends=trends,
            performance=performance,
            engagement=engagement,
            hotspots=hotspots,
        )

    # ── Facets ───────────────────────────────────────────────────────────────

    async def overview(self, scope: QueryScope, now: datetime) -> OverviewMetrics:
        rows = await self.store.aggregate_incidents(pipelines.overview(scope.to_filter(), now))
        return facets.overview_metrics(facets.single(rows))

    async def trends(self, scope: QueryScope, now: datetime) -> TrendMetrics:
        narrowed = scope.since_at_least(now - timedelta(days=14))
        rows = await self.store.aggregate_incidents(pipelines.trends(narrowed.to_filter(), now))
        return facets.trend_metrics(facets.single(rows))

    async def severity_breakdown(self, scope: QueryScope) -> dict[str, SeverityBucket]:
        rows = await self.store.aggregate_incidents(pipelines.severity_breakdown(scope.to_filter()))
        return facets.severity_breakdown(rows)

    async def type_breakdown(self, scope: QueryScope) -> list[TypeBucket]:
        rows = await self.store.aggregate_incidents(pipelines.type_breakdown(scope.to_filter()))
        return facets.type_breakdown(rows)

    async def response(self, scope: QueryScope) -> ResponseMetrics:
        query = scope.to_filter(
            responseTime={"$exists": True, "$ne": None},
            verifiedBy={"$exists": True},
        )
        rows = await self.store.aggregate_incidents(pipelines.response(query))
        return facets.response_metrics(facets.single(rows))

    async def engagement(self, scope: QueryScope) -> EngagementMetrics:
        rows = await self.store.aggregate_incidents(pipelines.engagement(scope.to_filter()))
        return facets.engagement_metrics(facets.single(rows))

    async def location(self, scope: QueryScope) -> Optional[LocationMetrics]:
        # Location metrics only mean something around a requested point
        if not scope.has_location:
            return None
        rows = await self.store.aggregate_incidents(pipelines.location(scope.to_filter()))
        return facets.location_metrics(facets.single(rows), radius_km=scope.radius_m / 1000)

    async def alerts(self, now: datetime) -> AlertMetrics:
        query = {"isActive": True, "createdAt": {"$gte": now - timedelta(hours=24)}}
        try:
            rows = await self.store.aggregate_alerts(pipelines.alert_metrics(query))
            return facets.alert_metrics(facets.single(rows))
        except Exception as exc:
            logger.warning("Alert metrics unavailable: %s", exc)
            return AlertMetrics()

    async def stats(self, scope: QueryScope) -> IncidentStats:
        rows = await self.store.aggregate_incidents(pipelines.stats(scope.to_filter()))
        return facets.incident_stats(facets.single(rows))

    async def time_series(self, scope: QueryScope, bucket: Bucket) -> list[TimeSeriesPoint]:
        rows = await self.store.aggregate_incidents(pipelines.time_series(scope.to_filter(), bucket))
        return facets.time_series(rows)

    async def severity_trends(self, scope: QueryScope, now: datetime) -> SeverityTrends:
        rows = await self.store.aggregate_incidents(pipelines.severity_trends(scope.to_filter(), now))
        return facets.severity_trends(facets.single(rows))

    async def geographic(self, scope: QueryScope) -> list[GeoCell]:
        rows = await self.store.aggregate_incidents(pipelines.geographic(scope.to_filter()))
        return clustering.geographic_distribution(rows)

    async def hotspots(self, scope: QueryScope, now: datetime) -> list[Hotspot]:
        rows = await self.store.aggregate_incidents(pipelines.hotspots(scope.to_filter()))
        return clustering.find_hotspots(rows, now)
