"""
analytics.py — Pydantic models for on-demand analytics and reports.

AnalyticsReport is produced per request and never cached. Report and
SafetyReport wrap it (or parts of it) with executive summaries and
recommendations for the authority dashboard.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from safepulse.models.metrics import (
    EngagementMetrics,
    GeoPoint,
    Location,
    Record,
    ResponseMetrics,
)

RiskLevel = Literal["low", "medium", "high", "critical"]


# ── Request options ───────────────────────────────────────────────────────────

class AnalyticsOptions(BaseModel):
    """Inputs shared by analytics, report and safety-report generation."""

    time_range: str = "30d"
    location: Optional[Location] = None
    radius_m: float = Field(default=5000, gt=0)
    include_resolved: bool = True
    include_raw_data: bool = False
    format: str = "json"


# ── Facets ────────────────────────────────────────────────────────────────────

class IncidentStats(Record):
    total: int = 0
    type_breakdown: dict[str, int] = Field(default_factory=dict)
    severity_breakdown: dict[str, int] = Field(default_factory=dict)
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    avg_verification_score: float = 0.0
    total_views: int = 0
    total_engagements: int = 0


class TimeSeriesPoint(Record):
    period: str            # bucket label, e.g. "2026-02-22 14:00" / "2026-02-22" / "2026-02"
    count: int
    critical: int = 0
    high: int = 0
    resolved: int = 0
    avg_response_time: float = 0.0
    total_views: int = 0


class CommonType(Record):
    type: Optional[str] = None
    count: int = 0


class GeoCell(Record):
    location: GeoPoint
    count: int
    critical_count: int = 0
    most_common_type: CommonType
    avg_impact_score: float = 0.0


class SeverityTrends(Record):
    last_day: dict[str, int] = Field(default_factory=dict, alias="last24h")
    last_week: dict[str, int] = Field(default_factory=dict, alias="last7d")
    overall: dict[str, int] = Field(default_factory=dict)


class IncidentSummary(Record):
    id: str
    type: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None


class Hotspot(Record):
    center_point: GeoPoint
    incident_count: int
    severity_score: int
    risk_level: RiskLevel
    recent_incidents: list[IncidentSummary] = Field(default_factory=list)


# ── Reports ───────────────────────────────────────────────────────────────────

class AnalyticsReport(Record):
    time_range: str
    generated_at: datetime
    stats: IncidentStats
    time_series: list[TimeSeriesPoint]
    geographic: list[GeoCell]
    trends: SeverityTrends
    performance: ResponseMetrics
    engagement: EngagementMetrics
    hotspots: list[Hotspot]


class Recommendation(Record):
    type: str
    priority: str
    message: str
    action: str


class ReportMetadata(Record):
    generated_at: datetime
    format: str
    time_range: str
    version: str = "1.0"


class ExecutiveSummary(Record):
    total_incidents: int = 0
    critical_incidents: int = 0
    resolution_rate: int = 0
    avg_response_time: int = 0
    engagement_rate: int = 0


class Report(Record):
    metadata: ReportMetadata
    executive_summary: ExecutiveSummary
    detailed_analytics: AnalyticsReport
    recommendations: list[Recommendation]
    raw_data: Optional[list[dict[str, Any]]] = None


class NamedCount(Record):
    name: Optional[str] = None
    count: int


class DailyTrend(Record):
    date: str
    count: int
    critical: int = 0
    high: int = 0


class IncidentTrends(Record):
    total_incidents: int = 0
    daily_trends: list[DailyTrend] = Field(default_factory=list)
    type_trends: list[NamedCount] = Field(default_factory=list)
    severity_trends: list[NamedCount] = Field(default_factory=list)
    start_date: datetime
    end_date: datetime


class AlertSummary(Record):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)


class IncidentCounts(Record):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


class ReportLocation(Record):
    coordinates: list[float]   # [lng, lat]
    radius_m: float


class SafetyReport(Record):
    safety_score: int
    incident_summary: IncidentCounts
    alert_summary: AlertSummary
    trends: IncidentTrends
    recommendations: list[Recommendation]
    generated_at: datetime
    location: Optional[ReportLocation] = None
    timeframe: str
