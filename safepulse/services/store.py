"""
store.py — Thin async access layer over the incidents/alerts collections.

QueryScope is the base filter every aggregation facet starts from:

    QueryScope(since=start, location=Location(lat=51.5, lng=-0.12), radius_m=5000)
      → {"isActive": True,
         "createdAt": {"$gte": start},
         "location": {"$geoWithin": {"$centerSphere": [[-0.12, 51.5], <radians>]}}}

The radius is first turned into approximate degrees (radius_m / 111 000)
and then into radians, which is what $centerSphere expects. $geoWithin is
used rather than $near because it is valid inside find() and aggregate()
alike and does not impose a sort order.

IncidentStore runs the aggregation pipelines built in services/pipelines.py
(grouping and counting happen inside MongoDB) plus the few plain find()
calls that need whole documents: the incident feed and raw report data.
Every query goes through one semaphore so a burst of cache misses cannot
open an unbounded number of cursors.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from safepulse.core.errors import StoreUnavailableError
from safepulse.models.metrics import Location

logger = logging.getLogger(__name__)

METERS_PER_DEGREE = 111_000

INCIDENTS = "incidents"
ALERTS = "alerts"


def geo_within(location: Location, radius_m: float) -> dict:
    """$geoWithin/$centerSphere predicate for a circle around ``location``."""
    radius_degrees = radius_m / METERS_PER_DEGREE
    return {
        "$geoWithin": {
            "$centerSphere": [[location.lng, location.lat], math.radians(radius_degrees)]
        }
    }


@dataclass(frozen=True)
class QueryScope:
    """Base filter shared by all facets of one aggregation call."""

    active_only: bool = True
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    location: Optional[Location] = None
    radius_m: float = 10_000
    exclude_resolved: bool = False

    @property
    def has_location(self) -> bool:
        return self.location is not None

    def since_at_least(self, moment: datetime) -> "QueryScope":
        """Narrow the lower createdAt bound to ``moment`` if that is later."""
        if self.since is not None and self.since >= moment:
            return self
        return replace(self, since=moment)

    def to_filter(self, **extra: Any) -> dict:
        query: dict[str, Any] = {}
        if self.active_only:
            query["isActive"] = True

        created: dict[str, datetime] = {}
        if self.since is not None:
            created["$gte"] = self.since
        if self.until is not None:
            created["$lte"] = self.until
        if created:
            query["createdAt"] = created

        if self.location is not None:
            query["location"] = geo_within(self.location, self.radius_m)
        if self.exclude_resolved:
            query["status"] = {"$ne": "resolved"}

        query.update(extra)
        return query


class IncidentStore:
    """
    Query facade over the MongoDB database (or any object exposing
    ``db[name]`` with Motor's find()/aggregate() interface and
    ``db.command()``).

    ``db`` may be None when MongoDB was unreachable at startup; every
    query then raises StoreUnavailableError.
    """

    def __init__(self, db, max_concurrent_queries: int = 16):
        self._db = db
        self._slots = asyncio.Semaphore(max_concurrent_queries)

    def _collection(self, name: str):
        if self._db is None:
            raise StoreUnavailableError()
        return self._db[name]

    # ── Aggregation ──────────────────────────────────────────────────────────

    async def aggregate_incidents(self, pipeline: list[dict]) -> list[dict]:
        return await self._aggregate(INCIDENTS, pipeline)

    async def aggregate_alerts(self, pipeline: list[dict]) -> list[dict]:
        return await self._aggregate(ALERTS, pipeline)

    async def _aggregate(self, name: str, pipeline: list[dict]) -> list[dict]:
        collection = self._collection(name)
        async with self._slots:
            rows = await collection.aggregate(pipeline).to_list(length=None)
        logger.debug("%s pipeline returned %d rows", name, len(rows))
        return rows

    # ── Documents ────────────────────────────────────────────────────────────

    async def find_incidents(
        self,
        query: dict,
        projection: Optional[dict] = None,
        sort: Optional[tuple[str, int]] = None,
        limit: int = 0,
    ) -> list[dict]:
        collection = self._collection(INCIDENTS)
        async with self._slots:
            cursor = collection.find(query, projection)
            if sort is not None:
                cursor = cursor.sort(*sort)
            if limit:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=None)
        logger.debug("incidents query matched %d documents", len(docs))
        return docs

    # ── Database commands ────────────────────────────────────────────────────

    async def command(self, name: str, *args: Any) -> dict:
        """Run a database command such as ``ping``, ``dbStats`` or ``collStats``."""
        if self._db is None:
            raise StoreUnavailableError()
        async with self._slots:
            return await self._db.command(name, *args)
