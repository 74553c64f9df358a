"""
metrics_service.py — Cached dashboard metrics and the realtime incident feed.

    service = MetricsService(engine, MetricsCache(expiry_seconds=60))
    snapshot = await service.get_dashboard_metrics("citizen", Location(lat=51.5, lng=-0.12))

Request path: cache hit → return the cached snapshot as-is. Miss → one
facet fan-out, cache write, return. Concurrent misses on the same key
await the same in-flight build instead of each starting their own.

The refresh loop uses refresh_global(), which always recomputes and then
overwrites the cached global admin snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from safepulse.core.errors import MetricsUnavailableError, StoreUnavailableError
from safepulse.models.metrics import FeedItem, GeoPoint, IncidentFeed, Location, MetricsSnapshot
from safepulse.services import facets
from safepulse.services.aggregation import AggregationEngine
from safepulse.services.metrics_cache import MetricsCache
from safepulse.services.store import QueryScope

logger = logging.getLogger(__name__)

GLOBAL_ROLE = "admin"

_FEED_FIELDS = {
    "title": 1, "type": 1, "severity": 1, "status": 1, "location": 1, "createdAt": 1,
}


class MetricsService:
    def __init__(
        self,
        engine: AggregationEngine,
        cache: MetricsCache,
        *,
        refresh_interval_seconds: float = 30.0,
        feed_radius_km: float = 5.0,
    ):
        self.engine = engine
        self.cache = cache
        self.refresh_interval_seconds = refresh_interval_seconds
        self.feed_radius_km = feed_radius_km
        self._inflight: dict[str, asyncio.Future] = {}

    # ── Dashboard snapshot ───────────────────────────────────────────────────

    async def get_dashboard_metrics(
        self,
        role: str = "citizen",
        location: Optional[Location] = None,
    ) -> MetricsSnapshot:
        cached = self.cache.get(role, location)
        if cached is not None:
            return cached

        key = self.cache.key_for(role, location)
        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._build(role, location))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _done, k=key: self._inflight.pop(k, None))

        # shield: one cancelled request must not abort the build the others await
        return await asyncio.shield(pending)

    async def refresh_global(self) -> MetricsSnapshot:
        """Recompute the global admin snapshot, bypassing (then replacing) the cache."""
        return await self._build(GLOBAL_ROLE, None)

    async def _build(self, role: str, location: Optional[Location]) -> MetricsSnapshot:
        try:
            snapshot = await self.engine.dashboard_snapshot(
                location, refresh_rate_seconds=self.refresh_interval_seconds,
            )
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Dashboard metrics error (role=%s): %s", role, exc, exc_info=True)
            raise MetricsUnavailableError("Failed to retrieve dashboard metrics") from exc

        self.cache.put(role, location, snapshot)
        return snapshot

    # ── Cache control ────────────────────────────────────────────────────────

    def sweep_cache(self) -> int:
        return self.cache.sweep()

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Metrics cache cleared")

    # ── Realtime feed ────────────────────────────────────────────────────────

    async def get_realtime_incident_feed(
        self,
        limit: int = 10,
        location: Optional[Location] = None,
    ) -> IncidentFeed:
        now = self.engine.clock()
        scope = QueryScope(location=location, radius_m=self.feed_radius_km * 1000)
        try:
            docs = await self.engine.store.find_incidents(
                scope.to_filter(), _FEED_FIELDS, sort=("createdAt", -1), limit=limit,
            )
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Incident feed error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to retrieve incident feed") from exc

        items = []
        for doc in docs:
            point = doc.get("location")
            items.append(
                FeedItem(
                    id=str(doc.get("_id", "")),
                    title=doc.get("title") or "",
                    type=doc.get("type"),
                    severity=doc.get("severity"),
                    status=doc.get("status"),
                    location=GeoPoint(coordinates=point["coordinates"]) if point else None,
                    created_at=facets.created_at(doc),
                    time_ago=facets.time_ago(facets.created_at(doc), now),
                    impact_score=facets.impact_score(doc),
                )
            )

        return IncidentFeed(
            incidents=items,
            location=location,
            radius_km=self.feed_radius_km if location is not None else None,
            generated_at=now,
        )
