"""
metrics.py — Pydantic models for the dashboard metrics snapshot.

MetricsSnapshot is the value cached per (role, location) and pushed to
dashboard subscribers by the refresh loop. Every record here is frozen:
a recomputation always produces a new snapshot, nothing is patched in
place.

Field names are snake_case in Python and camelCase on the wire
(``change_from_yesterday`` → ``changeFromYesterday``), matching the
incident documents stored in MongoDB.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Immutable base for every computed metrics/analytics record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ── Shared ────────────────────────────────────────────────────────────────────

class Location(BaseModel):
    """A query location in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class GeoPoint(Record):
    """GeoJSON point — coordinates are [lng, lat]."""

    type: Literal["Point"] = "Point"
    coordinates: list[float]


# ── Facets ────────────────────────────────────────────────────────────────────

class OverviewMetrics(Record):
    total: int = 0
    today: int = 0
    yesterday: int = 0
    critical: int = 0
    resolved: int = 0
    verified: int = 0
    change_from_yesterday: int = 0   # % vs yesterday, 0 when yesterday had none
    resolution_rate: int = 0         # resolved / total as a whole percentage


class DayBucket(Record):
    day: int                # 1 = Sunday … 7 = Saturday (MongoDB $dayOfWeek)
    count: int
    critical_count: int = 0


class TrendMetrics(Record):
    this_week: int = 0
    last_week: int = 0
    weekly_change: int = 0
    daily_breakdown: list[DayBucket] = Field(default_factory=list)


class SeverityBucket(Record):
    count: int = 0
    avg_response_time: int = 0
    avg_verification_score: int = 0


class TypeBucket(Record):
    type: str
    count: int
    avg_severity: float = 0.0   # mean severity weight, 1 decimal
    total_views: int = 0


class Breakdown(Record):
    severity: dict[str, SeverityBucket] = Field(default_factory=dict)
    type: list[TypeBucket] = Field(default_factory=list)


class ResponseMetrics(Record):
    """Response time (minutes) over verified incidents with a recorded response."""

    avg_response_time: int = 0
    median_response_time: float = 0
    min_response_time: float = 0
    max_response_time: float = 0
    total_verified: int = 0
    by_type: dict[str, float] = Field(default_factory=dict)


class EngagementMetrics(Record):
    total_views: int = 0
    total_engagements: int = 0
    total_votes: int = 0
    avg_views_per_incident: int = 0
    avg_engagements_per_incident: float = 0.0
    most_viewed_incident: int = 0
    incidents_with_images: int = 0
    engagement_rate: int = 0


class LocationMetrics(Record):
    nearby_count: int = 0
    risk_score: float = 0.0
    radius_km: float = 10


class AlertBucket(Record):
    count: int
    latest: Optional[datetime] = None


class AlertMetrics(Record):
    total: int = 0
    by_type: dict[str, AlertBucket] = Field(default_factory=dict)
    by_priority: dict[str, AlertBucket] = Field(default_factory=dict)
    delivery_rate: int = 0
    response_time: int = 0
    time_range: str = "24h"


# ── Snapshot ──────────────────────────────────────────────────────────────────

class MetricsSnapshot(Record):
    """One fully computed dashboard result for a (role, location) key."""

    timestamp: datetime
    overview: OverviewMetrics
    trends: TrendMetrics
    breakdown: Breakdown
    performance: ResponseMetrics
    engagement: EngagementMetrics
    location: Optional[LocationMetrics] = None
    alerts: AlertMetrics
    refresh_rate_seconds: float


# ── Realtime feed ─────────────────────────────────────────────────────────────

class FeedItem(Record):
    id: str
    title: str = ""
    type: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[str] = None
    location: Optional[GeoPoint] = None
    created_at: Optional[datetime] = None
    time_ago: str
    impact_score: int


class IncidentFeed(Record):
    incidents: list[FeedItem]
    location: Optional[Location] = None
    radius_km: Optional[float] = None
    generated_at: datetime
