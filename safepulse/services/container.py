"""
container.py — Wires the metrics, analytics and admin services together for one process.

build_services() is called once from the FastAPI lifespan with the database
handle from core/database.py (None in degraded mode). The result lives on
``app.state.services``; routes reach it through the small dependency
functions below so tests can swap any of them via app.dependency_overrides.
"""

from dataclasses import dataclass

from fastapi import Request, WebSocket

from safepulse.core.config import Settings
from safepulse.core.publisher import WebSocketHub
from safepulse.services.admin_metrics import AdminMetricsService
from safepulse.services.aggregation import AggregationEngine
from safepulse.services.analytics_service import AnalyticsService
from safepulse.services.metrics_cache import MetricsCache
from safepulse.services.metrics_service import MetricsService
from safepulse.services.refresh_loop import MetricsRefreshLoop
from safepulse.services.store import IncidentStore


@dataclass
class Services:
    hub: WebSocketHub
    metrics: MetricsService
    analytics: AnalyticsService
    admin: AdminMetricsService
    refresh_loop: MetricsRefreshLoop


def build_services(db, settings: Settings) -> Services:
    store = IncidentStore(db, max_concurrent_queries=settings.metrics_max_concurrent_queries)
    engine = AggregationEngine(
        store,
        query_timeout=settings.metrics_query_timeout_seconds,
        dashboard_radius_km=settings.dashboard_radius_km,
    )
    metrics = MetricsService(
        engine,
        MetricsCache(expiry_seconds=settings.metrics_cache_expiry_seconds),
        refresh_interval_seconds=settings.metrics_refresh_interval_seconds,
        feed_radius_km=settings.feed_radius_km,
    )
    hub = WebSocketHub(send_timeout=settings.publisher_send_timeout_seconds)
    return Services(
        hub=hub,
        metrics=metrics,
        analytics=AnalyticsService(engine),
        admin=AdminMetricsService(engine),
        refresh_loop=MetricsRefreshLoop(
            metrics,
            hub,
            interval_seconds=settings.metrics_refresh_interval_seconds,
            enabled=settings.refresh_loop_enabled,
        ),
    )


# ── FastAPI dependencies ──────────────────────────────────────────────────────

def get_metrics_service(request: Request) -> MetricsService:
    return request.app.state.services.metrics


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.services.analytics


def get_admin_metrics_service(request: Request) -> AdminMetricsService:
    return request.app.state.services.admin


def get_hub(websocket: WebSocket) -> WebSocketHub:
    return websocket.app.state.services.hub
