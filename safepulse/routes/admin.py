"""
admin.py — Operator metrics routes.

Routes:
  GET /api/v1/admin/metrics/incidents    — whole-collection counts and breakdowns
  GET /api/v1/admin/metrics/performance  — creation throughput per bucket (?timeframe=1h|24h|7d|30d)
  GET /api/v1/admin/metrics/database     — collection counts, dbStats/collStats, ping time

Uncached and rate limited per client IP (settings.rate_limit_admin).
Errors: StoreUnavailableError → 503, MetricsUnavailableError → 500.

  curl "http://localhost:8000/api/v1/admin/metrics/performance?timeframe=7d"
"""

from fastapi import APIRouter, Depends, Query, Request

from safepulse.core.config import settings
from safepulse.core.rate_limit import limiter
from safepulse.models.admin import DatabaseMetrics, IncidentMetrics, PerformanceMetrics
from safepulse.services.admin_metrics import DEFAULT_TIMEFRAME, AdminMetricsService
from safepulse.services.container import get_admin_metrics_service

router = APIRouter(prefix="/api/v1/admin/metrics", tags=["admin"])


@router.get("/incidents", response_model=IncidentMetrics)
@limiter.limit(settings.rate_limit_admin)
async def get_incident_metrics(
    request: Request,
    service: AdminMetricsService = Depends(get_admin_metrics_service),
):
    return await service.get_incident_metrics()


@router.get("/performance", response_model=PerformanceMetrics)
@limiter.limit(settings.rate_limit_admin)
async def get_performance_metrics(
    request: Request,
    timeframe: str = Query(default=DEFAULT_TIMEFRAME, description="1h | 24h | 7d | 30d"),
    service: AdminMetricsService = Depends(get_admin_metrics_service),
):
    return await service.get_performance_metrics(timeframe)


@router.get("/database", response_model=DatabaseMetrics)
@limiter.limit(settings.rate_limit_admin)
async def get_database_metrics(
    request: Request,
    service: AdminMetricsService = Depends(get_admin_metrics_service),
):
    return await service.get_database_metrics()
