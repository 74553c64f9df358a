"""
facets.py — Shape aggregation rows into typed metrics records.

The grouping itself happens in MongoDB (see pipelines.py); every function
here takes the rows one pipeline returned and builds one record. None of
them perform I/O or touch shared state, so the aggregation engine can run
the pipelines concurrently and combine the results in any order.

Conventions shared by every facet:
  - ratios and averages with a zero divisor are 0, never NaN/inf
  - an empty result (no rows, or None averages) gives a zero-valued record
  - a missing group key is reported as "unknown"
  - rows carry the camelCase accumulator names the pipelines assign
"""

from __future__ import annotations

import statistics
from datetime import datetime
from typing import Any, Optional

from safepulse.models.analytics import (
    AlertSummary,
    DailyTrend,
    IncidentStats,
    IncidentSummary,
    NamedCount,
    SeverityTrends,
    TimeSeriesPoint,
)
from safepulse.models.metrics import (
    AlertBucket,
    AlertMetrics,
    DayBucket,
    EngagementMetrics,
    LocationMetrics,
    OverviewMetrics,
    ResponseMetrics,
    SeverityBucket,
    TrendMetrics,
    TypeBucket,
)
from safepulse.services.time_windows import as_utc

SEVERITY_WEIGHTS = {"low": 1, "medium": 2, "high": 3, "critical": 4}

TYPE_WEIGHTS = {
    "theft": 2,
    "assault": 4,
    "vandalism": 1,
    "traffic_accident": 3,
    "suspicious_activity": 1,
    "fire": 4,
    "medical_emergency": 4,
    "natural_disaster": 5,
    "road_hazard": 2,
    "other": 1,
}

UNKNOWN = "unknown"


# ── Small helpers ─────────────────────────────────────────────────────────────

def severity_weight(severity: Optional[str]) -> int:
    return SEVERITY_WEIGHTS.get(severity, 1)


def percentage(part: float, whole: float) -> int:
    """round(part / whole * 100), 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return round(part / whole * 100)


def percent_change(current: float, previous: float) -> int:
    """Whole-percent change from ``previous`` to ``current``, 0 when previous is 0."""
    if not previous:
        return 0
    return round((current - previous) / previous * 100)


def rounded(value: Any, digits: Optional[int] = None) -> float:
    """Round an accumulator result; None (empty $avg, missing $max) is 0."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return 0
    return round(value, digits) if digits is not None else round(value)


def single(rows: list[dict]) -> dict:
    """The one row of a {"_id": None} group or a $facet, {} when there is none."""
    return rows[0] if rows else {}


def count_map(rows: list[dict]) -> dict[str, int]:
    """count_by() rows → {key: count}, keeping the pipeline's order."""
    return {_key(row.get("_id")): row["count"] for row in rows}


def _key(value: Any) -> str:
    return str(value) if value is not None else UNKNOWN


def _count(rows: list[dict]) -> int:
    """Result of a {"$count": "count"} sub-pipeline."""
    return single(rows).get("count", 0)


def created_at(doc: dict) -> Optional[datetime]:
    value = doc.get("createdAt")
    return as_utc(value) if isinstance(value, datetime) else None


def summarize_incident(doc: dict) -> IncidentSummary:
    return IncidentSummary(
        id=str(doc.get("_id", "")),
        type=doc.get("type"),
        severity=doc.get("severity"),
        status=doc.get("status"),
        created_at=created_at(doc),
    )


# ── Dashboard facets ──────────────────────────────────────────────────────────

def overview_metrics(row: dict) -> OverviewMetrics:
    total = row.get("total", 0)
    today = row.get("today", 0)
    yesterday = row.get("yesterday", 0)
    resolved = row.get("resolved", 0)

    return OverviewMetrics(
        total=total,
        today=today,
        yesterday=yesterday,
        critical=row.get("critical", 0),
        resolved=resolved,
        verified=row.get("verified", 0),
        change_from_yesterday=percent_change(today, yesterday),
        resolution_rate=percentage(resolved, total),
    )


def trend_metrics(row: dict) -> TrendMetrics:
    days = row.get("thisWeek", [])
    this_week = sum(day["count"] for day in days)
    last_week = _count(row.get("lastWeek", []))

    return TrendMetrics(
        this_week=this_week,
        last_week=last_week,
        weekly_change=percent_change(this_week, last_week),
        daily_breakdown=[
            DayBucket(day=day["_id"], count=day["count"], critical_count=day["criticalCount"])
            for day in days
            if day.get("_id") is not None
        ],
    )


def severity_breakdown(rows: list[dict]) -> dict[str, SeverityBucket]:
    return {
        _key(row.get("_id")): SeverityBucket(
            count=row["count"],
            avg_response_time=rounded(row.get("avgResponseTime")),
            avg_verification_score=rounded(row.get("avgVerificationScore")),
        )
        for row in rows
    }


def type_breakdown(rows: list[dict]) -> list[TypeBucket]:
    return [
        TypeBucket(
            type=_key(row.get("_id")),
            count=row["count"],
            avg_severity=rounded(row.get("avgSeverity"), 1),
            total_views=int(row.get("totalViews") or 0),
        )
        for row in rows
    ]


def response_metrics(row: dict) -> ResponseMetrics:
    summary = single(row.get("summary", []))
    times = [t for t in summary.get("times", []) if isinstance(t, (int, float))]
    if not times:
        return ResponseMetrics()

    return ResponseMetrics(
        avg_response_time=rounded(summary.get("avg")),
        median_response_time=statistics.median(times),
        min_response_time=summary.get("min") or 0,
        max_response_time=summary.get("max") or 0,
        total_verified=summary.get("count", 0),
        by_type={_key(t.get("_id")): rounded(t.get("avg"), 2) for t in row.get("byType", [])},
    )


def engagement_metrics(row: dict) -> EngagementMetrics:
    if not row:
        return EngagementMetrics()

    total_views = row.get("totalViews") or 0
    total_engagements = row.get("totalEngagements") or 0
    return EngagementMetrics(
        total_views=int(total_views),
        total_engagements=int(total_engagements),
        total_votes=int(row.get("totalVotes") or 0),
        avg_views_per_incident=rounded(row.get("avgViews")),
        avg_engagements_per_incident=rounded(row.get("avgEngagements"), 2),
        most_viewed_incident=int(rounded(row.get("mostViewed"))),
        incidents_with_images=row.get("withImages", 0),
        engagement_rate=percentage(total_engagements, total_views),
    )


def location_metrics(row: dict, radius_km: float) -> LocationMetrics:
    return LocationMetrics(
        nearby_count=row.get("count", 0),
        risk_score=rounded(row.get("riskScore"), 1),
        radius_km=radius_km,
    )


def _alert_buckets(rows: list[dict]) -> dict[str, AlertBucket]:
    return {
        _key(row.get("_id")): AlertBucket(count=row["count"], latest=row.get("latest"))
        for row in rows
    }


def alert_metrics(row: dict) -> AlertMetrics:
    summary = single(row.get("summary", []))
    total = summary.get("total", 0)
    return AlertMetrics(
        total=total,
        by_type=_alert_buckets(row.get("byType", [])),
        by_priority=_alert_buckets(row.get("byPriority", [])),
        delivery_rate=percentage(summary.get("delivered", 0), total),
        response_time=rounded(summary.get("avgResponseTime")),
    )


# ── Analytics facets ──────────────────────────────────────────────────────────

def incident_stats(row: dict) -> IncidentStats:
    totals = single(row.get("totals", []))
    if not totals:
        return IncidentStats()

    return IncidentStats(
        total=totals["total"],
        type_breakdown=count_map(row.get("byType", [])),
        severity_breakdown=count_map(row.get("bySeverity", [])),
        status_breakdown=count_map(row.get("byStatus", [])),
        avg_verification_score=rounded(totals.get("avgVerificationScore"), 2),
        total_views=int(totals.get("totalViews") or 0),
        total_engagements=int(totals.get("totalEngagements") or 0),
    )


def time_series(rows: list[dict]) -> list[TimeSeriesPoint]:
    return [
        TimeSeriesPoint(
            period=row["_id"],
            count=row["count"],
            critical=row["critical"],
            high=row["high"],
            resolved=row["resolved"],
            avg_response_time=rounded(row.get("avgResponseTime"), 2),
            total_views=int(row.get("totalViews") or 0),
        )
        for row in rows
        # documents without createdAt land in a None bucket
        if row.get("_id") is not None
    ]


def severity_trends(row: dict) -> SeverityTrends:
    return SeverityTrends(
        last_day=count_map(row.get("lastDay", [])),
        last_week=count_map(row.get("lastWeek", [])),
        overall=count_map(row.get("overall", [])),
    )


def daily_trends(rows: list[dict]) -> list[DailyTrend]:
    return [
        DailyTrend(date=row["_id"], count=row["count"], critical=row["critical"], high=row["high"])
        for row in rows
        if row.get("_id") is not None
    ]


def named_counts(rows: list[dict]) -> list[NamedCount]:
    return [NamedCount(name=name, count=count) for name, count in count_map(rows).items()]


def alert_summary(row: dict) -> AlertSummary:
    return AlertSummary(
        total=_count(row.get("total", [])),
        by_type=count_map(row.get("byType", [])),
        by_priority=count_map(row.get("byPriority", [])),
    )


# ── Feed helpers ──────────────────────────────────────────────────────────────

def time_ago(moment: Optional[datetime], now: datetime) -> str:
    if moment is None:
        return "Unknown"
    minutes = int((now - as_utc(moment)).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def impact_score(doc: dict) -> int:
    return severity_weight(doc.get("severity")) * TYPE_WEIGHTS.get(doc.get("type"), 1)
