"""
safety_score.py — 0–100 safety indicator for a point and radius.

    score = Σ w·(100 − 20·severity) / Σ w        w = severity × recency

  severity   low=1, medium=2, high=3, critical=4 (unknown → 1)
  recency    3 if reported in the last 7 days, 2 in the last 30 days, else 1

Both sums are accumulated inside MongoDB (pipelines.safety_totals).

The score is a user-facing number, so it fails soft:
  - missing / non-numeric / out-of-range input  → NEUTRAL_SCORE (50)
  - no active incidents inside the radius        → NO_DATA_SCORE (85)
  - store error while fetching incidents         → NEUTRAL_SCORE, logged
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any

from safepulse.models.metrics import Location
from safepulse.services import pipelines
from safepulse.services.facets import single
from safepulse.services.store import IncidentStore, QueryScope

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
NO_DATA_SCORE = 85


def _finite(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def valid_query(lat: Any, lng: Any, radius_km: Any) -> bool:
    """True when the inputs describe a real circle on the globe."""
    if not (_finite(lat) and _finite(lng) and _finite(radius_km)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180 and radius_km > 0


def score_from_totals(row: dict) -> int:
    """Score from the safety_totals() row of an already radius-filtered incident set."""
    if not row.get("count"):
        return NO_DATA_SCORE

    total_weight = row.get("totalWeight") or 0
    if not total_weight:
        return NEUTRAL_SCORE
    average = row.get("weightedScore", 0) / total_weight
    return max(0, min(100, round(average)))


async def calculate_safety_score(
    store: IncidentStore,
    lat: Any,
    lng: Any,
    radius_km: Any,
    now: datetime,
) -> int:
    if not valid_query(lat, lng, radius_km):
        return NEUTRAL_SCORE

    scope = QueryScope(location=Location(lat=lat, lng=lng), radius_m=radius_km * 1000)
    try:
        rows = await store.aggregate_incidents(pipelines.safety_totals(scope.to_filter(), now))
    except Exception as exc:
        logger.error("Safety score calculation error: %s", exc, exc_info=True)
        return NEUTRAL_SCORE

    return score_from_totals(single(rows))
