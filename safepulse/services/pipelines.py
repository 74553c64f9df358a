"""
pipelines.py — MongoDB aggregation pipelines, one per facet.

Every builder takes the facet's base filter (QueryScope.to_filter()) and
returns the pipeline handed to IncidentStore.aggregate_incidents() /
aggregate_alerts(). Grouping, counting, summing and averaging run inside
MongoDB; facets.py and clustering.py only shape the returned rows into
records.

Row conventions the shaping side relies on:
  - a grouped key comes back as ``_id`` (None for documents missing the field)
  - $avg skips missing / non-numeric values and is None for an empty group
  - a {"_id": None} group over no documents returns no row at all
  - $facet always returns exactly one document, one list per sub-pipeline

    >>> pipelines.severity_breakdown({"isActive": True})
    [{"$match": {"isActive": True}},
     {"$group": {"_id": "$severity", "count": {"$sum": 1}, ...}},
     {"$sort": {"count": -1, "_id": 1}}]
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from safepulse.services.facets import SEVERITY_WEIGHTS
from safepulse.services.time_windows import Bucket, bucket_format, start_of_day

GRID_DECIMALS = 2
HOTSPOT_CELL_DEGREES = 0.01
HOTSPOT_MIN_INCIDENTS = 3
MAX_GEO_CELLS = 100
MAX_HOTSPOTS = 20
MAX_TYPES = 10

SEVERITY_WEIGHT: dict = {
    "$switch": {
        "branches": [
            {"case": {"$eq": ["$severity", severity]}, "then": weight}
            for severity, weight in SEVERITY_WEIGHTS.items()
        ],
        "default": 1,
    }
}

_LAT = {"$arrayElemAt": ["$location.coordinates", 1]}
_LNG = {"$arrayElemAt": ["$location.coordinates", 0]}
_HAS_POINT = {"$match": {"location.coordinates": {"$exists": True}}}


# ── Expression helpers ────────────────────────────────────────────────────────

def count_if(condition: Any) -> dict:
    return {"$sum": {"$cond": [condition, 1, 0]}}


def equals(field: str, value: Any) -> dict:
    return {"$eq": [f"${field}", value]}


def created_since(moment: datetime) -> dict:
    return {"$gte": ["$createdAt", moment]}


def count_by(field: str) -> list[dict]:
    """Group-by count, largest group first (ties by key)."""
    return [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]


# ── Dashboard facets ──────────────────────────────────────────────────────────

def overview(match: dict, now: datetime) -> list[dict]:
    today = start_of_day(now)
    yesterday = today - timedelta(days=1)
    return [
        {"$match": match},
        {
            "$group": {
                "_id": None,
                "total": {"$sum": 1},
                "today": count_if(created_since(today)),
                "yesterday": count_if({
                    "$and": [created_since(yesterday), {"$lt": ["$createdAt", today]}]
                }),
                "critical": count_if(equals("severity", "critical")),
                "resolved": count_if(equals("status", "resolved")),
                "verified": count_if(equals("status", "verified")),
            }
        },
    ]


def trends(match: dict, now: datetime) -> list[dict]:
    """``match`` must already bound createdAt to the last 14 days."""
    week_start = now - timedelta(days=7)
    return [
        {"$match": match},
        {
            "$facet": {
                "thisWeek": [
                    {"$match": {"createdAt": {"$gte": week_start}}},
                    {
                        "$group": {
                            "_id": {"$dayOfWeek": "$createdAt"},
                            "count": {"$sum": 1},
                            "criticalCount": count_if(equals("severity", "critical")),
                        }
                    },
                    {"$sort": {"_id": 1}},
                ],
                "lastWeek": [
                    {"$match": {"createdAt": {"$lt": week_start}}},
                    {"$count": "count"},
                ],
            }
        },
    ]


def severity_breakdown(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": "$severity",
                "count": {"$sum": 1},
                "avgResponseTime": {"$avg": "$responseTime"},
                "avgVerificationScore": {"$avg": "$verificationScore"},
            }
        },
        {"$sort": {"count": -1, "_id": 1}},
    ]


def type_breakdown(match: dict, limit: int = MAX_TYPES) -> list[dict]:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": "$type",
                "count": {"$sum": 1},
                "avgSeverity": {"$avg": SEVERITY_WEIGHT},
                "totalViews": {"$sum": "$analytics.views"},
            }
        },
        {"$sort": {"count": -1, "_id": 1}},
        {"$limit": limit},
    ]


def response(match: dict) -> list[dict]:
    """``match`` must already restrict to verified incidents with a response time."""
    return [
        {"$match": match},
        {
            "$facet": {
                "summary": [
                    {
                        "$group": {
                            "_id": None,
                            "count": {"$sum": 1},
                            "avg": {"$avg": "$responseTime"},
                            "min": {"$min": "$responseTime"},
                            "max": {"$max": "$responseTime"},
                            "times": {"$push": "$responseTime"},
                        }
                    }
                ],
                "byType": [
                    {"$group": {"_id": "$type", "avg": {"$avg": "$responseTime"}}},
                    {"$sort": {"_id": 1}},
                ],
            }
        },
    ]


def engagement(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": None,
                "count": {"$sum": 1},
                "totalViews": {"$sum": "$analytics.views"},
                "totalEngagements": {"$sum": "$analytics.engagements"},
                "totalVotes": {"$sum": {"$size": {"$ifNull": ["$communityVotes", []]}}},
                # incidents without counters weigh in as 0, not skipped
                "avgViews": {"$avg": {"$ifNull": ["$analytics.views", 0]}},
                "avgEngagements": {"$avg": {"$ifNull": ["$analytics.engagements", 0]}},
                "mostViewed": {"$max": "$analytics.views"},
                "withImages": count_if({"$gt": [{"$size": {"$ifNull": ["$images", []]}}, 0]}),
            }
        },
    ]


def location(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": None,
                "count": {"$sum": 1},
                "riskScore": {"$avg": {"$multiply": [{"$ifNull": ["$priority", 1]}, SEVERITY_WEIGHT]}},
            }
        },
    ]


def _latest_by(field: str) -> list[dict]:
    return [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}, "latest": {"$max": "$createdAt"}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]


def alert_metrics(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$facet": {
                "summary": [
                    {
                        "$group": {
                            "_id": None,
                            "total": {"$sum": 1},
                            "delivered": count_if({"$ifNull": ["$deliveredAt", False]}),
                            "avgResponseTime": {"$avg": "$responseTime"},
                        }
                    }
                ],
                "byType": _latest_by("type"),
                "byPriority": _latest_by("priority"),
            }
        },
    ]


# ── Analytics facets ──────────────────────────────────────────────────────────

def stats(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$facet": {
                "totals": [
                    {
                        "$group": {
                            "_id": None,
                            "total": {"$sum": 1},
                            "avgVerificationScore": {"$avg": "$verificationScore"},
                            "totalViews": {"$sum": "$analytics.views"},
                            "totalEngagements": {"$sum": "$analytics.engagements"},
                        }
                    }
                ],
                "byType": count_by("type"),
                "bySeverity": count_by("severity"),
                "byStatus": count_by("status"),
            }
        },
    ]


def time_series(match: dict, bucket: Bucket) -> list[dict]:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": {"$dateToString": {"format": bucket_format(bucket), "date": "$createdAt"}},
                "count": {"$sum": 1},
                "critical": count_if(equals("severity", "critical")),
                "high": count_if(equals("severity", "high")),
                "resolved": count_if(equals("status", "resolved")),
                "avgResponseTime": {"$avg": "$responseTime"},
                "totalViews": {"$sum": "$analytics.views"},
            }
        },
        {"$sort": {"_id": 1}},
    ]


def severity_trends(match: dict, now: datetime) -> list[dict]:
    return [
        {"$match": match},
        {
            "$facet": {
                "lastDay": [
                    {"$match": {"createdAt": {"$gte": now - timedelta(hours=24)}}},
                    *count_by("severity"),
                ],
                "lastWeek": [
                    {"$match": {"createdAt": {"$gte": now - timedelta(days=7)}}},
                    *count_by("severity"),
                ],
                "overall": count_by("severity"),
            }
        },
    ]


def geographic(match: dict, limit: int = MAX_GEO_CELLS) -> list[dict]:
    return [
        {"$match": match},
        _HAS_POINT,
        {
            "$group": {
                "_id": {
                    "lat": {"$round": [_LAT, GRID_DECIMALS]},
                    "lng": {"$round": [_LNG, GRID_DECIMALS]},
                },
                "count": {"$sum": 1},
                "criticalCount": count_if(equals("severity", "critical")),
                "types": {"$push": "$type"},
                "avgImpactScore": {
                    "$avg": {
                        "$multiply": [
                            {"$ifNull": ["$priority", 1]},
                            {"$ifNull": ["$analytics.heatmapContribution", 1]},
                        ]
                    }
                },
            }
        },
        {"$sort": {"count": -1}},
        {"$limit": limit},
    ]


def hotspots(
    match: dict,
    limit: int = MAX_HOTSPOTS,
    min_incidents: int = HOTSPOT_MIN_INCIDENTS,
) -> list[dict]:
    return [
        {"$match": match},
        _HAS_POINT,
        {
            "$group": {
                "_id": {
                    "lat": {"$round": [{"$divide": [_LAT, HOTSPOT_CELL_DEGREES]}, 0]},
                    "lng": {"$round": [{"$divide": [_LNG, HOTSPOT_CELL_DEGREES]}, 0]},
                },
                "count": {"$sum": 1},
                "severityScore": {"$sum": SEVERITY_WEIGHT},
                "incidents": {
                    "$push": {
                        "_id": "$_id",
                        "type": "$type",
                        "severity": "$severity",
                        "status": "$status",
                        "createdAt": "$createdAt",
                    }
                },
            }
        },
        {"$match": {"count": {"$gte": min_incidents}}},
        {"$sort": {"severityScore": -1, "count": -1}},
        {"$limit": limit},
    ]


def incident_trends(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$facet": {
                "daily": [
                    {
                        "$group": {
                            "_id": {"$dateToString": {"format": bucket_format("daily"), "date": "$createdAt"}},
                            "count": {"$sum": 1},
                            "critical": count_if(equals("severity", "critical")),
                            "high": count_if(equals("severity", "high")),
                        }
                    },
                    {"$sort": {"_id": 1}},
                ],
                "byType": count_by("type"),
                "bySeverity": count_by("severity"),
            }
        },
    ]


def alert_summary(match: dict) -> list[dict]:
    return [
        {"$match": match},
        {
            "$facet": {
                "total": [{"$count": "count"}],
                "byType": count_by("type"),
                "byPriority": count_by("priority"),
            }
        },
    ]


def safety_totals(match: dict, now: datetime) -> list[dict]:
    """Σ weight and Σ weight·(100 − 20·severity), weight = severity × recency."""
    recency = {
        "$switch": {
            "branches": [
                {"case": {"$gt": ["$createdAt", now - timedelta(days=7)]}, "then": 3},
                {"case": {"$gt": ["$createdAt", now - timedelta(days=30)]}, "then": 2},
            ],
            "default": 1,
        }
    }
    weight = {"$multiply": [SEVERITY_WEIGHT, recency]}
    return [
        {"$match": match},
        {
            "$group": {
                "_id": None,
                "count": {"$sum": 1},
                "totalWeight": {"$sum": weight},
                "weightedScore": {
                    "$sum": {
                        "$multiply": [weight, {"$subtract": [100, {"$multiply": [SEVERITY_WEIGHT, 20]}]}]
                    }
                },
            }
        },
    ]


# ── Admin ─────────────────────────────────────────────────────────────────────

def collection_totals() -> list[dict]:
    """Whole-collection total and active count (active and inactive documents alike)."""
    return [
        {"$group": {"_id": None, "total": {"$sum": 1}, "active": count_if("$isActive")}},
    ]


def incident_metrics() -> list[dict]:
    return [
        {
            "$facet": {
                "totals": collection_totals(),
                "byType": count_by("type"),
                "bySeverity": count_by("severity"),
                "byStatus": count_by("status"),
                "resolution": [
                    {"$match": {"status": "resolved", "responseTime": {"$exists": True, "$ne": None}}},
                    {"$group": {"_id": None, "avg": {"$avg": "$responseTime"}}},
                ],
            }
        },
    ]


def performance_series(since: datetime, bucket: Bucket) -> list[dict]:
    return [
        {"$match": {"createdAt": {"$gte": since}}},
        {
            "$group": {
                "_id": {"$dateToString": {"format": bucket_format(bucket), "date": "$createdAt"}},
                "count": {"$sum": 1},
                "avgResponseTime": {"$avg": "$responseTime"},
            }
        },
        {"$sort": {"_id": 1}},
    ]
