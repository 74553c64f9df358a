"""
dashboard.py — Live dashboard metrics routes.

Routes:
  GET  /api/v1/dashboard/metrics      — cached metrics snapshot for a role/location
  GET  /api/v1/dashboard/feed         — latest active incidents, newest first
  POST /api/v1/dashboard/cache/clear  — drop every cached snapshot
  WS   /api/v1/dashboard/stream       — "metrics:update" pushes from the refresh loop

HOW THE DATA FLOWS
──────────────────
1. The dashboard calls GET /metrics on page load (served from the 60 s cache
   when warm, otherwise one concurrent facet fan-out).
2. It opens the WebSocket and receives a fresh global snapshot every refresh
   interval, pushed by MetricsRefreshLoop through the WebSocketHub.
3. The ticker list polls GET /feed.

Errors: StoreUnavailableError → 503, MetricsUnavailableError → 500 (handlers
registered in main.py).

  curl "http://localhost:8000/api/v1/dashboard/metrics?role=citizen&lat=51.5074&lng=-0.1278"
  wscat -c ws://localhost:8000/api/v1/dashboard/stream
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from safepulse.core.publisher import WebSocketHub
from safepulse.models.metrics import IncidentFeed, Location, MetricsSnapshot
from safepulse.services.container import get_hub, get_metrics_service
from safepulse.services.metrics_service import MetricsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


def optional_location(
    lat: Optional[float] = Query(default=None, ge=-90, le=90, description="Latitude of the viewer"),
    lng: Optional[float] = Query(default=None, ge=-180, le=180, description="Longitude of the viewer"),
) -> Optional[Location]:
    """Both coordinates or nothing: a lone lat or lng is ignored."""
    if lat is None or lng is None:
        return None
    return Location(lat=lat, lng=lng)


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/metrics", response_model=MetricsSnapshot)
async def get_dashboard_metrics(
    role: str = Query(default="citizen", description="Dashboard audience, part of the cache key"),
    location: Optional[Location] = Depends(optional_location),
    service: MetricsService = Depends(get_metrics_service),
):
    return await service.get_dashboard_metrics(role, location)


@router.get("/feed", response_model=IncidentFeed)
async def get_incident_feed(
    limit: int = Query(default=10, ge=1, le=50),
    location: Optional[Location] = Depends(optional_location),
    service: MetricsService = Depends(get_metrics_service),
):
    return await service.get_realtime_incident_feed(limit=limit, location=location)


@router.post("/cache/clear")
async def clear_metrics_cache(service: MetricsService = Depends(get_metrics_service)):
    service.clear_cache()
    return {"message": "Metrics cache cleared"}


# ── WebSocket push channel ─────────────────────────────────────────────────────

@router.websocket("/stream")
async def dashboard_stream(websocket: WebSocket, hub: WebSocketHub = Depends(get_hub)):
    """
    Subscribe to dashboard pushes.

    Message format (JSON string):
      {"event": "metrics:update", "data": { ...MetricsSnapshot, camelCase... }}

    The server never expects client messages; reading only detects the
    disconnect.
    """
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Dashboard WebSocket client disconnected")
    finally:
        hub.disconnect(websocket)
