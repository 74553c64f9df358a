"""
admin_metrics.py — Operator metrics: whole-collection incident counts,
creation throughput over a timeframe and MongoDB storage statistics.

    service = AdminMetricsService(engine)
    await service.get_incident_metrics()
    await service.get_performance_metrics("7d")
    await service.get_database_metrics()

Unlike the dashboard facets these look at every document, active or not,
and are never cached. Any failure other than StoreUnavailableError is
logged and re-raised as MetricsUnavailableError with a generic message.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta

from safepulse.core.errors import MetricsUnavailableError, StoreUnavailableError
from safepulse.models.admin import (
    CollectionCounts,
    CollectionStats,
    DatabaseMetrics,
    DatabaseStats,
    IncidentMetrics,
    PerformanceMetrics,
    PerformancePoint,
    ResponseTimeRange,
    Throughput,
)
from safepulse.services import facets, pipelines
from safepulse.services.aggregation import AggregationEngine
from safepulse.services.store import ALERTS, INCIDENTS
from safepulse.services.time_windows import Bucket

logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAME = "24h"

# timeframe → (lookback, bucket)
_TIMEFRAMES: dict[str, tuple[timedelta, Bucket]] = {
    "1h":  (timedelta(hours=1), "hourly"),
    "24h": (timedelta(hours=24), "daily"),
    "7d":  (timedelta(days=7), "daily"),
    "30d": (timedelta(days=30), "daily"),
}


def collection_counts(row: dict) -> CollectionCounts:
    total = row.get("total", 0)
    active = row.get("active", 0)
    return CollectionCounts(total=total, active=active, inactive=total - active)


def performance_metrics(timeframe: str, rows: list[dict]) -> PerformanceMetrics:
    if not rows:
        return PerformanceMetrics(timeframe=timeframe)

    # buckets without any response time weigh in as 0
    averages = [row.get("avgResponseTime") or 0 for row in rows]
    total = sum(row["count"] for row in rows)

    return PerformanceMetrics(
        timeframe=timeframe,
        response_time=ResponseTimeRange(
            average=round(sum(averages) / len(averages)),
            min=min(averages),
            max=max(averages),
        ),
        throughput=Throughput(total=total, average=round(total / len(rows))),
        data_points=[
            PerformancePoint(
                timestamp=row["_id"],
                incidents=row["count"],
                avg_response_time=round(average),
            )
            for row, average in zip(rows, averages)
        ],
    )


def collection_stats(name: str, stats: dict) -> CollectionStats:
    return CollectionStats(
        name=name,
        count=stats.get("count", 0),
        size=stats.get("size", 0),
        storage_size=stats.get("storageSize", 0),
        avg_obj_size=stats.get("avgObjSize", 0),
        indexes=stats.get("nindexes", 0),
    )


def database_stats(stats: dict) -> DatabaseStats:
    return DatabaseStats(
        collections=stats.get("collections", 0),
        objects=stats.get("objects", 0),
        data_size=stats.get("dataSize", 0),
        storage_size=stats.get("storageSize", 0),
        indexes=stats.get("indexes", 0),
    )


class AdminMetricsService:
    def __init__(self, engine: AggregationEngine):
        self.engine = engine

    @property
    def store(self):
        return self.engine.store

    async def get_incident_metrics(self) -> IncidentMetrics:
        try:
            rows = await self.store.aggregate_incidents(pipelines.incident_metrics())
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Incident metrics error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to retrieve incident metrics") from exc

        row = facets.single(rows)
        counts = collection_counts(facets.single(row.get("totals", [])))
        resolution = facets.single(row.get("resolution", []))
        return IncidentMetrics(
            total=counts.total,
            active=counts.active,
            inactive=counts.inactive,
            by_type=facets.count_map(row.get("byType", [])),
            by_severity=facets.count_map(row.get("bySeverity", [])),
            by_status=facets.count_map(row.get("byStatus", [])),
            average_resolution_time=facets.rounded(resolution.get("avg")),
        )

    async def get_performance_metrics(self, timeframe: str = DEFAULT_TIMEFRAME) -> PerformanceMetrics:
        """Incidents created per bucket over ``timeframe``; unknown values mean 24h."""
        if timeframe not in _TIMEFRAMES:
            timeframe = DEFAULT_TIMEFRAME
        lookback, bucket = _TIMEFRAMES[timeframe]
        since = self.engine.clock() - lookback
        try:
            rows = await self.store.aggregate_incidents(pipelines.performance_series(since, bucket))
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Performance metrics error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to retrieve performance metrics") from exc

        return performance_metrics(timeframe, rows)

    async def database_response_time(self) -> float:
        """Round trip of a ``ping`` command, in milliseconds."""
        started = time.perf_counter()
        await self.store.command("ping")
        return round((time.perf_counter() - started) * 1000, 2)

    async def get_database_metrics(self) -> DatabaseMetrics:
        try:
            response_time_ms = await self.database_response_time()
            incidents, alerts, db_stats, incident_stats, alert_stats = await self.engine.gather(
                self.store.aggregate_incidents(pipelines.collection_totals()),
                self.store.aggregate_alerts(pipelines.collection_totals()),
                self.store.command("dbStats"),
                self.store.command("collStats", INCIDENTS),
                self.store.command("collStats", ALERTS),
            )
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error("Database metrics error: %s", exc, exc_info=True)
            raise MetricsUnavailableError("Failed to retrieve database metrics") from exc

        return DatabaseMetrics(
            incidents=collection_counts(facets.single(incidents)),
            alerts=collection_counts(facets.single(alerts)),
            collections=[
                collection_stats(INCIDENTS, incident_stats),
                collection_stats(ALERTS, alert_stats),
            ],
            database=database_stats(db_stats),
            response_time_ms=response_time_ms,
        )
