"""
analytics_service.py — On-demand analytics, reports and safety scoring.

Nothing produced here is cached: every call resolves its window against the
engine clock and runs a fresh facet fan-out.

    service = AnalyticsService(engine)
    report  = await service.get_incident_analytics(AnalyticsOptions(time_range="7d"))
    score   = await service.calculate_safety_score(51.5074, -0.1278, radius_km=5)

Failure model
─────────────
  get_incident_analytics / generate_report / get_incident_trends /
  generate_safety_report
      any aggregation error → logged, re-raised as MetricsUnavailableError
      with a generic message (StoreUnavailableError passes through).
  calculate_safety_score
      never raises; invalid input or store errors → 50.
  alert summary inside the safety report
      best-effort; errors → empty AlertSummary.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId

from safepulse.core.errors import MetricsUnavailableError, StoreUnavailableError
from safepulse.models.analytics import (
    AlertSummary,
    AnalyticsOptions,
    AnalyticsReport,
    ExecutiveSummary,
    IncidentCounts,
    IncidentStats,
    IncidentTrends,
    Recommendation,
    Report,
    ReportLocation,
    ReportMetadata,
    SafetyReport,
)
from safepulse.models.metrics import Location, ResponseMetrics
from safepulse.services import facets, pipelines, safety_score
from safepulse.services.aggregation import AggregationEngine
from safepulse.services.store import QueryScope
from safepulse.services.time_windows import resolve_window

logger = logging.getLogger(__name__)

RAW_DATA_LIMIT = 1000

CRITICAL_SHARE_THRESHOLD = 0.1
LOW_VERIFICATION_SCORE = 60
SLOW_RESPONSE_MINUTES = 120


def generate_recommendations(
    stats: IncidentStats,
    performance: Optional[ResponseMetrics] = None,
) -> list[Recommendation]:
    """Rule-based follow-ups for authorities, derived from report statistics."""
    recommendations = []

    critical = stats.severity_breakdown.get("critical", 0)
    if critical > stats.total * CRITICAL_SHARE_THRESHOLD:
        recommendations.append(
            Recommendation(
                type="alert",
                priority="high",
                message="High number of critical incidents detected. Consider increasing patrol frequency.",
                action="Deploy additional resources to high-risk areas",
            )
        )

    if stats.total and stats.avg_verification_score < LOW_VERIFICATION_SCORE:
        recommendations.append(
            Recommendation(
                type="improvement",
                priority="medium",
                message="Low average verification score indicates potential data quality issues.",
                action="Implement additional verification processes",
            )
        )

    if performance is not None and performance.avg_response_time > SLOW_RESPONSE_MINUTES:
        recommendations.append(
            Recommendation(
                type="performance",
                priority="high",
                message="Average response time exceeds 2 hours. Consider process optimization.",
                action="Review and streamline incident response workflow",
            )
        )

    return recommendations


def _plain(value: Any) -> Any:
    """BSON document → JSON-friendly structure (ObjectIds become strings)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class AnalyticsService:
    def __init__(self, engine: AggregationEngine):
        self.engine = engine

    @property
    def store(self):
        return self.engine.store

    def _scope(self, options: AnalyticsOptions, since: datetime) -> QueryScope:
        return QueryScope(
            since=since,
            location=options.location,
            radius_m=options.radius_m,
            exclude_resolved=not options.include_resolved,
        )

    # ── Analytics & reports ──────────────────────────────────────────────────

    async def get_incident_analytics(self, options: Optional[AnalyticsOptions] = None) -> AnalyticsReport:
        options = options or AnalyticsOptions()
        window = resolve_window(options.time_range, self.engine.clock())
        try:
            return await self.engine.analytics_report(
                self._scope(options, window.start), window.time_range, window.bucket,
            )
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Analytics generation error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to generate analytics data") from exc

    async def generate_report(self, options: Optional[AnalyticsOptions] = None) -> Report:
        options = options or AnalyticsOptions()
        try:
            analytics = await self.get_incident_analytics(options)
            raw_data = await self._raw_data(options) if options.include_raw_data else None
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Report generation error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to generate report") from exc

        stats = analytics.stats
        return Report(
            metadata=ReportMetadata(
                generated_at=self.engine.clock(),
                format=options.format,
                time_range=analytics.time_range,
            ),
            executive_summary=ExecutiveSummary(
                total_incidents=stats.total,
                critical_incidents=stats.severity_breakdown.get("critical", 0),
                resolution_rate=facets.percentage(stats.status_breakdown.get("resolved", 0), stats.total),
                avg_response_time=analytics.performance.avg_response_time,
                engagement_rate=analytics.engagement.engagement_rate,
            ),
            detailed_analytics=analytics,
            recommendations=generate_recommendations(stats, analytics.performance),
            raw_data=raw_data,
        )

    async def _raw_data(self, options: AnalyticsOptions) -> list[dict]:
        window = resolve_window(options.time_range, self.engine.clock())
        docs = await self.store.find_incidents(
            QueryScope(since=window.start).to_filter(),
            sort=("createdAt", -1),
            limit=RAW_DATA_LIMIT,
        )
        return [_plain(doc) for doc in docs]

    # ── Safety ───────────────────────────────────────────────────────────────

    async def calculate_safety_score(self, lat: Any, lng: Any, radius_km: Any = 5) -> int:
        return await safety_score.calculate_safety_score(
            self.store, lat, lng, radius_km, self.engine.clock(),
        )

    async def get_incident_trends(
        self,
        start: datetime,
        end: datetime,
        location: Optional[Location] = None,
        radius_m: float = 10_000,
    ) -> IncidentTrends:
        scope = QueryScope(since=start, until=end, location=location, radius_m=radius_m)
        try:
            rows = await self.store.aggregate_incidents(pipelines.incident_trends(scope.to_filter()))
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Incident trends error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to get incident trends") from exc

        row = facets.single(rows)
        daily = facets.daily_trends(row.get("daily", []))
        return IncidentTrends(
            total_incidents=sum(day.count for day in daily),
            daily_trends=daily,
            type_trends=facets.named_counts(row.get("byType", [])),
            severity_trends=facets.named_counts(row.get("bySeverity", [])),
            start_date=start,
            end_date=end,
        )

    async def get_alert_summary(self, scope: QueryScope) -> AlertSummary:
        try:
            rows = await self.store.aggregate_alerts(pipelines.alert_summary(scope.to_filter()))
        except Exception as exc:
            logger.warning("Alert summary unavailable: %s", exc)
            return AlertSummary()
        return facets.alert_summary(facets.single(rows))

    async def _incident_summary(self, scope: QueryScope) -> IncidentStats:
        return await self.engine.stats(scope)

    async def generate_safety_report(self, options: Optional[AnalyticsOptions] = None) -> SafetyReport:
        """
        Area report for citizens: score, incident mix, alerts and daily trends
        for the options' window (``time_range`` doubles as the timeframe).
        Without a location the whole dataset is summarised and the score is
        the neutral 50.
        """
        options = options or AnalyticsOptions(radius_m=10_000)
        now = self.engine.clock()
        window = resolve_window(options.time_range, now)
        scope = QueryScope(since=window.start, location=options.location, radius_m=options.radius_m)

        if options.location is not None:
            score_call = self.calculate_safety_score(
                options.location.lat, options.location.lng, options.radius_m / 1000,
            )
        else:
            score_call = asyncio.sleep(0, result=safety_score.NEUTRAL_SCORE)

        try:
            score, stats, alerts, trends = await self.engine.gather(
                score_call,
                self._incident_summary(scope),
                self.get_alert_summary(scope),
                self.get_incident_trends(window.start, now, options.location, options.radius_m),
            )
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Safety report generation error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to generate safety report") from exc

        location = None
        if options.location is not None:
            location = ReportLocation(
                coordinates=[options.location.lng, options.location.lat],
                radius_m=options.radius_m,
            )

        return SafetyReport(
            safety_score=score,
            incident_summary=IncidentCounts(
                total=stats.total,
                by_type=stats.type_breakdown,
                by_severity=stats.severity_breakdown,
                by_status=stats.status_breakdown,
            ),
            alert_summary=alerts,
            trends=trends,
            recommendations=generate_recommendations(stats),
            generated_at=now,
            location=location,
            timeframe=window.time_range,
        )
