#!/usr/bin/env python3
"""
seed_incidents.py — Populate MongoDB with demo incidents and alerts.

Usage (from the repository root):
    python scripts/seed_incidents.py                  # replace existing seed data
    python scripts/seed_incidents.py --append         # add without clearing first
    python scripts/seed_incidents.py --count 500 --days 60

Prerequisites:
    • MONGO_URI env var set (or .env file present)
    • `pip install -e .` (motor, certifi, python-dotenv come with the package)

What this script creates
────────────────────────
  incidents  ← incidents scattered around a few city centres, spread over
               the last --days days, with analytics/votes/response fields
               filled in so every dashboard facet has data
  alerts     ← alerts spread over the last 24 hours (the alert facet window)
  indexes    ← 2dsphere on location, createdAt desc, type+severity, status

Every seeded document carries ``seed: True`` so a re-run only removes
seed data, never real reports.
"""

import argparse
import asyncio
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent.parent
load_dotenv(ROOT / ".env")

import certifi  # noqa: E402
from motor.motor_asyncio import AsyncIOMotorClient  # noqa: E402

from safepulse.services.facets import SEVERITY_WEIGHTS, TYPE_WEIGHTS  # noqa: E402
from safepulse.services.store import ALERTS, INCIDENTS  # noqa: E402

MONGO_URI = os.environ.get("MONGO_URI", "")
MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "safepulse")

# ── Seed areas ────────────────────────────────────────────────────────────────
# Columns: name, lng, lat, spread (degrees). A tight spread packs several
# incidents into the same 0.01° cell so hotspots show up on the map.
_AREAS = [
    ("Johannesburg CBD", 28.0473, -26.2041, 0.015),
    ("Soweto",           27.8546, -26.2485, 0.030),
    ("Sandton",          28.0567, -26.1076, 0.020),
    ("Cape Town CBD",    18.4241, -33.9249, 0.015),
    ("Durban Central",   31.0218, -29.8587, 0.025),
]

_STATUSES = ["reported", "verified", "investigating", "resolved", "false_alarm"]
_STATUS_WEIGHTS = [35, 25, 15, 20, 5]
_SEVERITY_WEIGHTS = [40, 30, 20, 10]   # low, medium, high, critical

_ALERT_TYPES = [
    "incident_alert", "safety_warning", "weather_alert",
    "traffic_alert", "emergency_alert", "system_notification",
]
_ALERT_PRIORITIES = ["low", "medium", "high", "urgent", "critical"]


def _make_incident(now: datetime, days: int) -> dict:
    name, lng, lat, spread = random.choice(_AREAS)
    incident_type = random.choice(list(TYPE_WEIGHTS))
    severity = random.choices(list(SEVERITY_WEIGHTS), weights=_SEVERITY_WEIGHTS)[0]
    status = random.choices(_STATUSES, weights=_STATUS_WEIGHTS)[0]
    created = now - timedelta(minutes=random.randint(1, days * 24 * 60))
    views = random.randint(0, 400)

    doc = {
        "title":    f"{incident_type.replace('_', ' ').title()} near {name}",
        "type":     incident_type,
        "severity": severity,
        "status":   status,
        "location": {
            "type":        "Point",
            "coordinates": [
                round(lng + random.uniform(-spread, spread), 6),
                round(lat + random.uniform(-spread, spread), 6),
            ],   # GeoJSON: [lng, lat]
        },
        "address":           name,
        "priority":          random.randint(1, 5),
        "verificationScore": random.randint(20, 100),
        "analytics": {
            "views":               views,
            "engagements":         random.randint(0, views // 4 + 1),
            "heatmapContribution": round(random.uniform(0.5, 2.0), 2),
        },
        "communityVotes": [{"vote": random.choice(["confirm", "deny", "unclear"])}
                           for _ in range(random.randint(0, 6))],
        "images":    ["seed.jpg"] if random.random() < 0.3 else [],
        "isActive":  True,
        "createdAt": created,
        "updatedAt": created,
        "seed":      True,
    }
    if status in ("verified", "investigating", "resolved"):
        doc["verifiedBy"] = "seed-authority"
        doc["responseTime"] = random.randint(5, 240)   # minutes
    return doc


def _make_alert(now: datetime) -> dict:
    name, lng, lat, _spread = random.choice(_AREAS)
    created = now - timedelta(minutes=random.randint(1, 23 * 60))
    delivered = random.random() < 0.85
    return {
        "title":     f"{name} alert",
        "type":      random.choice(_ALERT_TYPES),
        "priority":  random.choice(_ALERT_PRIORITIES),
        "location":  {"type": "Point", "coordinates": [lng, lat]},
        "deliveredAt": created + timedelta(seconds=random.randint(1, 90)) if delivered else None,
        "responseTime": random.randint(1, 60) if delivered else None,
        "isActive":  True,
        "createdAt": created,
        "seed":      True,
    }


async def create_indexes(db) -> None:
    """Idempotent index creation — safe to run multiple times."""
    print("  Creating indexes…")
    await db[INCIDENTS].create_index([("location", "2dsphere")], name="location_2dsphere")
    await db[INCIDENTS].create_index([("createdAt", -1)], name="created_desc")
    await db[INCIDENTS].create_index([("type", 1), ("severity", 1)], name="type_severity")
    await db[INCIDENTS].create_index([("status", 1)], name="status_asc")
    await db[ALERTS].create_index([("isActive", 1), ("createdAt", -1)], name="active_created_desc")
    await db[ALERTS].create_index([("location", "2dsphere")], name="location_2dsphere")
    print("  Indexes OK")


async def seed(count: int, days: int, append: bool = False) -> None:
    client = AsyncIOMotorClient(MONGO_URI, tlsCAFile=certifi.where())
    db = client[MONGO_DB_NAME]

    try:
        await client.admin.command("ping")
        print(f"Connected to MongoDB ({MONGO_DB_NAME})")
    except Exception as exc:
        print(f"ERROR: Cannot connect to MongoDB: {exc}")
        return

    if not append:
        print("\nClearing existing seed data…")
        for name in (INCIDENTS, ALERTS):
            result = await db[name].delete_many({"seed": True})
            print(f"  {name}: deleted {result.deleted_count} documents")

    now = datetime.now(tz=timezone.utc)

    print("\nInserting incidents…")
    result = await db[INCIDENTS].insert_many([_make_incident(now, days) for _ in range(count)])
    print(f"  Inserted {len(result.inserted_ids)} incidents over the last {days} days")

    print("\nInserting alerts…")
    result = await db[ALERTS].insert_many([_make_alert(now) for _ in range(max(1, count // 10))])
    print(f"  Inserted {len(result.inserted_ids)} alerts over the last 24 hours")

    print("\nEnsuring indexes…")
    await create_indexes(db)

    print("\n✓ Done")
    print(f"  incidents total : {await db[INCIDENTS].count_documents({})}")
    print(f"  alerts total    : {await db[ALERTS].count_documents({})}")

    client.close()


if __name__ == "__main__":
    if not MONGO_URI:
        print("ERROR: MONGO_URI not set. Add it to .env")
        sys.exit(1)

    parser = argparse.ArgumentParser(description="Seed demo incidents and alerts")
    parser.add_argument("--count", type=int, default=300, help="Number of incidents to insert")
    parser.add_argument("--days", type=int, default=45, help="Spread incidents over this many days")
    parser.add_argument("--append", action="store_true", help="Keep existing seed data")
    args = parser.parse_args()

    asyncio.run(seed(args.count, args.days, append=args.append))
