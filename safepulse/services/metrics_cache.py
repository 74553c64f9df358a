"""
metrics_cache.py — TTL cache of dashboard snapshots keyed by (role, location).

Keys look like ``dashboard_citizen_51.5074_-0.1278`` or
``dashboard_admin_global``. An entry is served until its age reaches the
expiry window; reads never extend its life. Expired entries are dropped
lazily on read and in bulk by sweep(), which the refresh loop calls every
tick.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from safepulse.models.metrics import Location, MetricsSnapshot

logger = logging.getLogger(__name__)

LOCATION_KEY_DECIMALS = 4


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: MetricsSnapshot
    timestamp: float


class MetricsCache:
    def __init__(self, expiry_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.expiry_seconds = expiry_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key_for(role: str, location: Optional[Location] = None) -> str:
        if location is None:
            return f"dashboard_{role}_global"
        lat = round(location.lat, LOCATION_KEY_DECIMALS)
        lng = round(location.lng, LOCATION_KEY_DECIMALS)
        return f"dashboard_{role}_{lat}_{lng}"

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp >= self.expiry_seconds

    def get(self, role: str, location: Optional[Location] = None) -> Optional[MetricsSnapshot]:
        key = self.key_for(role, location)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry.data

    def put(self, role: str, location: Optional[Location], snapshot: MetricsSnapshot) -> CacheEntry:
        entry = CacheEntry(key=self.key_for(role, location), data=snapshot, timestamp=self._clock())
        self._entries[entry.key] = entry
        return entry

    def sweep(self) -> int:
        """Delete every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired metrics cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
