"""
analytics.py — On-demand analytics, reports and safety scoring routes.

Routes:
  GET /api/v1/analytics                — full AnalyticsReport for a time range
  GET /api/v1/analytics/report         — report + executive summary + recommendations
  GET /api/v1/analytics/trends         — daily/type/severity trends between two dates
  GET /api/v1/analytics/safety-score   — 0–100 score around a point
  GET /api/v1/analytics/safety-report  — score + incident/alert summary for an area

None of these are cached, so each is rate limited per client IP
(settings.rate_limit_analytics). Radii are in metres except on
/safety-score, which takes kilometres.

  curl "http://localhost:8000/api/v1/analytics?timeRange=7d&lat=51.5074&lng=-0.1278&radius=5000"
  curl "http://localhost:8000/api/v1/analytics/safety-score?lat=51.5074&lng=-0.1278&radius=5"
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from safepulse.core.config import settings
from safepulse.core.rate_limit import limiter
from safepulse.models.analytics import (
    AnalyticsOptions,
    AnalyticsReport,
    IncidentTrends,
    Report,
    SafetyReport,
)
from safepulse.models.metrics import Location
from safepulse.routes.dashboard import optional_location
from safepulse.services.analytics_service import AnalyticsService
from safepulse.services.container import get_analytics_service
from safepulse.services.time_windows import as_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

DEFAULT_TRENDS_DAYS = 30


def finite_or_none(value: Optional[float]) -> Optional[float]:
    """Echo a query number back only if JSON can carry it (no NaN or infinities)."""
    if value is None or not math.isfinite(value):
        return None
    return value


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("", response_model=AnalyticsReport)
@limiter.limit(settings.rate_limit_analytics)
async def get_incident_analytics(
    request: Request,
    time_range: str = Query(default="30d", alias="timeRange", description="24h | 7d | 30d | 90d | 1y"),
    radius: float = Query(default=5000, gt=0, description="Radius in metres around lat/lng"),
    include_resolved: bool = Query(default=True, alias="includeResolved"),
    location: Optional[Location] = Depends(optional_location),
    service: AnalyticsService = Depends(get_analytics_service),
):
    options = AnalyticsOptions(
        time_range=time_range,
        location=location,
        radius_m=radius,
        include_resolved=include_resolved,
    )
    return await service.get_incident_analytics(options)


@router.get("/report", response_model=Report)
@limiter.limit(settings.rate_limit_analytics)
async def generate_report(
    request: Request,
    time_range: str = Query(default="30d", alias="timeRange"),
    radius: float = Query(default=5000, gt=0),
    include_resolved: bool = Query(default=True, alias="includeResolved"),
    include_raw_data: bool = Query(default=False, alias="includeRawData"),
    format: str = Query(default="json"),
    location: Optional[Location] = Depends(optional_location),
    service: AnalyticsService = Depends(get_analytics_service),
):
    options = AnalyticsOptions(
        time_range=time_range,
        location=location,
        radius_m=radius,
        include_resolved=include_resolved,
        include_raw_data=include_raw_data,
        format=format,
    )
    return await service.generate_report(options)


@router.get("/trends", response_model=IncidentTrends)
@limiter.limit(settings.rate_limit_analytics)
async def get_incident_trends(
    request: Request,
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    radius: float = Query(default=10_000, gt=0),
    location: Optional[Location] = Depends(optional_location),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Defaults to the last 30 days ending now. Naive dates are read as UTC."""
    end = as_utc(end_date) if end_date is not None else service.engine.clock()
    start = as_utc(start_date) if start_date is not None else end - timedelta(days=DEFAULT_TRENDS_DAYS)
    return await service.get_incident_trends(start, end, location, radius)


@router.get("/safety-score")
@limiter.limit(settings.rate_limit_analytics)
async def get_safety_score(
    request: Request,
    lat: Optional[float] = Query(default=None),
    lng: Optional[float] = Query(default=None),
    radius: float = Query(default=5, description="Radius in kilometres"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Out-of-range or missing coordinates are not rejected: the score simply
    falls back to the neutral 50, the same as for any other invalid input.
    NaN or infinite inputs are echoed back as null.
    """
    score = await service.calculate_safety_score(lat, lng, radius)
    return {
        "safetyScore": score,
        "lat": finite_or_none(lat),
        "lng": finite_or_none(lng),
        "radiusKm": finite_or_none(radius),
    }


@router.get("/safety-report", response_model=SafetyReport)
@limiter.limit(settings.rate_limit_analytics)
async def get_safety_report(
    request: Request,
    timeframe: str = Query(default="30d"),
    radius: float = Query(default=10_000, gt=0, description="Radius in metres"),
    location: Optional[Location] = Depends(optional_location),
    service: AnalyticsService = Depends(get_analytics_service),
):
    options = AnalyticsOptions(time_range=timeframe, location=location, radius_m=radius)
    return await service.generate_safety_report(options)
