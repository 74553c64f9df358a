"""
admin.py — Pydantic models for the operator-facing metrics routes.

These describe the data and the database rather than a dashboard audience:
whole-collection counts (inactive documents included), per-bucket creation
throughput and MongoDB storage statistics. Nothing here is cached.
"""

from pydantic import Field

from safepulse.models.metrics import Record


class IncidentMetrics(Record):
    total: int = 0
    active: int = 0
    inactive: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    average_resolution_time: int = 0   # minutes, resolved incidents only


# ── Performance ───────────────────────────────────────────────────────────────

class ResponseTimeRange(Record):
    average: int = 0
    min: float = 0
    max: float = 0


class Throughput(Record):
    total: int = 0
    average: int = 0   # incidents per bucket


class PerformancePoint(Record):
    timestamp: str
    incidents: int
    avg_response_time: int = 0


class PerformanceMetrics(Record):
    timeframe: str
    response_time: ResponseTimeRange = Field(default_factory=ResponseTimeRange)
    throughput: Throughput = Field(default_factory=Throughput)
    data_points: list[PerformancePoint] = Field(default_factory=list)


# ── Database ──────────────────────────────────────────────────────────────────

class CollectionCounts(Record):
    total: int = 0
    active: int = 0
    inactive: int = 0


class CollectionStats(Record):
    """One collection's collStats, sizes in bytes."""

    name: str
    count: int = 0
    size: float = 0
    storage_size: float = 0
    avg_obj_size: float = 0
    indexes: int = 0


class DatabaseStats(Record):
    """The database's dbStats, sizes in bytes."""

    collections: int = 0
    objects: int = 0
    data_size: float = 0
    storage_size: float = 0
    indexes: int = 0


class DatabaseMetrics(Record):
    incidents: CollectionCounts
    alerts: CollectionCounts
    collections: list[CollectionStats]
    database: DatabaseStats
    response_time_ms: float
