"""
clustering.py — Grid-based geographic grouping of incidents.

Two granularities share the same idea: snap every incident to a grid cell
inside MongoDB (pipelines.geographic / pipelines.hotspots) and shape the
per-cell rows here.

  geographic_distribution()  cells keyed by coordinates rounded to 2 decimals;
                             every non-empty cell is reported (top 100 by count)

  find_hotspots()            cells keyed by round(coord / 0.01); only cells with
                             at least HOTSPOT_MIN_INCIDENTS members come back,
                             each scored by summed severity weight and
                             risk-classified here

MongoDB's $round rounds half to even, the same as Python's round(), so cell
centres computed on either side agree.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta

from safepulse.models.analytics import CommonType, GeoCell, Hotspot, RiskLevel
from safepulse.models.metrics import GeoPoint
from safepulse.services.facets import created_at, rounded, summarize_incident
from safepulse.services.pipelines import GRID_DECIMALS, HOTSPOT_CELL_DEGREES

HOTSPOT_RECENT_DAYS = 7

# (minimum severity score, level), checked top to bottom
_RISK_THRESHOLDS: list[tuple[int, RiskLevel]] = [
    (12, "critical"),
    (8,  "high"),
    (4,  "medium"),
]


def risk_level(severity_score: int) -> RiskLevel:
    for threshold, level in _RISK_THRESHOLDS:
        if severity_score >= threshold:
            return level
    return "low"


def _cell(row: dict) -> tuple[float, float] | None:
    cell = row.get("_id") or {}
    lat, lng = cell.get("lat"), cell.get("lng")
    if lat is None or lng is None:
        return None
    return lat, lng


def _created_since(doc: dict, since: datetime) -> bool:
    moment = created_at(doc)
    return moment is not None and moment >= since


def geographic_distribution(rows: list[dict]) -> list[GeoCell]:
    cells = []
    for row in rows:
        point = _cell(row)
        if point is None:
            continue
        lat, lng = point
        # Ties between equally common types resolve to whichever was pushed first
        modal_type, modal_count = Counter(row.get("types", [])).most_common(1)[0]
        cells.append(
            GeoCell(
                location=GeoPoint(coordinates=[lng, lat]),
                count=row["count"],
                critical_count=row.get("criticalCount", 0),
                most_common_type=CommonType(type=modal_type, count=modal_count),
                avg_impact_score=rounded(row.get("avgImpactScore"), 2),
            )
        )
    return cells


def find_hotspots(rows: list[dict], now: datetime) -> list[Hotspot]:
    recent_since = now - timedelta(days=HOTSPOT_RECENT_DAYS)
    hotspots = []
    for row in rows:
        point = _cell(row)
        if point is None:
            continue
        cell_lat, cell_lng = point
        score = row["severityScore"]
        recent = [
            summarize_incident(member)
            for member in row.get("incidents", [])
            if _created_since(member, recent_since)
        ]
        hotspots.append(
            Hotspot(
                center_point=GeoPoint(coordinates=[
                    round(cell_lng * HOTSPOT_CELL_DEGREES, GRID_DECIMALS),
                    round(cell_lat * HOTSPOT_CELL_DEGREES, GRID_DECIMALS),
                ]),
                incident_count=row["count"],
                severity_score=score,
                risk_level=risk_level(score),
                recent_incidents=recent,
            )
        )
    return hotspots
