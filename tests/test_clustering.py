"""
test_clustering.py — Hotspot detection and geographic distribution.
"""

from datetime import timedelta

import pytest

from safepulse.services.clustering import risk_level
from safepulse.services.store import QueryScope
from tests.fakes import NOW, FakeDB, incident, make_engine


def _at(lat, lng, **fields):
    return incident(lat=lat, lng=lng, **fields)


async def find_hotspots(docs, now=NOW):
    return await make_engine(FakeDB(docs)).hotspots(QueryScope(), now)


async def geographic_distribution(docs):
    return await make_engine(FakeDB(docs)).geographic(QueryScope())


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score, level",
        [(12, "critical"), (20, "critical"), (8, "high"), (11, "high"), (4, "medium"), (3, "low"), (0, "low")],
    )
    def test_thresholds(self, score, level):
        assert risk_level(score) == level


class TestHotspots:
    async def test_three_high_incidents_in_one_cell(self):
        docs = [_at(51.5071, -0.1271, severity="high") for _ in range(3)]
        hotspots = await find_hotspots(docs, NOW)

        assert len(hotspots) == 1
        spot = hotspots[0]
        assert spot.incident_count == 3
        assert spot.severity_score == 9
        assert spot.risk_level == "high"
        assert spot.center_point.coordinates == [-0.13, 51.51]

    async def test_cell_with_two_incidents_is_not_a_hotspot(self):
        docs = [_at(51.5071, -0.1271, severity="critical") for _ in range(2)]
        assert await find_hotspots(docs, NOW) == []

    async def test_every_hotspot_has_at_least_three_incidents(self):
        docs = [_at(51.51, -0.13) for _ in range(3)]
        docs += [_at(48.85, 2.35) for _ in range(2)]
        docs += [_at(40.71, -74.0) for _ in range(5)]
        hotspots = await find_hotspots(docs, NOW)

        assert len(hotspots) == 2
        assert all(h.incident_count >= 3 for h in hotspots)

    async def test_sorted_by_severity_score_then_count(self):
        docs = [_at(10.0, 10.0, severity="critical") for _ in range(3)]   # 12
        docs += [_at(20.0, 20.0, severity="low") for _ in range(5)]       # 5
        docs += [_at(30.0, 30.0, severity="medium") for _ in range(6)]    # 12

        scores = [(h.severity_score, h.incident_count) for h in await find_hotspots(docs, NOW)]
        assert scores == [(12, 6), (12, 3), (5, 5)]

    async def test_recent_incidents_only_cover_last_week(self):
        docs = [
            _at(51.5071, -0.1271),
            _at(51.5071, -0.1271, ago=timedelta(days=3)),
            _at(51.5071, -0.1271, ago=timedelta(days=9)),
        ]
        spot = (await find_hotspots(docs, NOW))[0]

        assert spot.incident_count == 3
        assert len(spot.recent_incidents) == 2
        assert spot.recent_incidents[0].id == str(docs[0]["_id"])

    async def test_documents_without_coordinates_are_skipped(self):
        docs = [_at(51.5071, -0.1271) for _ in range(2)]
        docs.append(incident(location=None))
        assert await find_hotspots(docs, NOW) == []


class TestGeographicDistribution:
    async def test_cells_rounded_to_two_decimals(self):
        docs = [
            _at(51.5071, -0.1271, type="theft", severity="critical", priority=2, analytics={"heatmapContribution": 1.5}),
            _at(51.5074, -0.1278, type="theft"),
            _at(51.5069, -0.1268, type="fire"),
            _at(48.8566, 2.3522, type="fire"),
        ]
        cells = await geographic_distribution(docs)

        assert [c.count for c in cells] == [3, 1]
        london = cells[0]
        assert london.location.coordinates == [-0.13, 51.51]
        assert london.critical_count == 1
        assert london.most_common_type.type == "theft"
        assert london.most_common_type.count == 2
        # (2 * 1.5 + 1 + 1) / 3
        assert london.avg_impact_score == 1.67

    async def test_modal_type_tie_goes_to_first_seen(self):
        docs = [_at(51.5071, -0.1271, type="fire"), _at(51.5071, -0.1271, type="theft")]
        assert (await geographic_distribution(docs))[0].most_common_type.type == "fire"

    async def test_cell_limit(self):
        docs = [_at(i * 0.1, 0.0) for i in range(120)]
        assert len(await geographic_distribution(docs)) == 100
