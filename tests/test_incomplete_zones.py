"""Tests for waiting areas that no stop position claimed"""

from osm_builder import ROAD, node, osm, prepare, road_way, way
from transit_zoning.config import ZoningSettings
from transit_zoning.osm_source import OsmDataSource
from transit_zoning.pipeline import run_zoning


SOUTH_POLE = node(11, 4.0010, 51.9999, {"highway": "bus_stop", "name": "Zuid"})


def _run(*elements, settings=None):
    return run_zoning(OsmDataSource.from_string(osm(*elements)), settings)


class TestIncompleteZones:
    def test_pole_attached_on_curb_side(self):
        result = _run(*ROAD, road_way(), SOUTH_POLE)

        zone = result.zones.get("node", 11)
        (connectoid,) = result.connectoids.for_zone(zone)
        assert connectoid.access_segment.is_ab
        assert connectoid.access_node.osm_node_id == 2

    def test_left_hand_drive_uses_other_direction(self):
        result = _run(*ROAD, road_way(), SOUTH_POLE, settings=ZoningSettings(country="GB"))

        (connectoid,) = result.connectoids.for_zone(result.zones.get("node", 11))
        assert not connectoid.access_segment.is_ab

    def test_higher_capacity_road_preferred(self):
        primary = [
            node(4, 4.0000, 51.9998), node(5, 4.0010, 51.9998), node(6, 4.0020, 51.9998),
            way(101, [4, 5, 6], {"highway": "primary"}),
        ]
        result = _run(*ROAD, road_way(), *primary, SOUTH_POLE)

        (connectoid,) = result.connectoids.for_zone(result.zones.get("node", 11))
        assert connectoid.access_segment.link.osm_way_id == 101

    def test_platform_without_modes_gets_none(self):
        platform = node(12, 4.0010, 51.9999, {"public_transport": "platform"})
        result = _run(*ROAD, road_way(), platform)
        assert result.zones.get("node", 12) is None
        assert result.cleanup["zones_removed"] == 1

    def test_nominated_way_missing(self):
        settings = ZoningSettings()
        settings.nominate_osm_way_for_waiting_area("node", 11, 999)
        result = _run(*ROAD, road_way(), SOUTH_POLE, settings=settings)
        assert result.zones.get("node", 11) is None

    def test_out_of_reach(self):
        far = node(11, 4.0010, 51.9990, {"highway": "bus_stop"})
        result = _run(*ROAD, road_way(), far)
        assert len(result.zones) == 0
        assert result.stats["discarded"] >= 1

    def test_listed_in_id_order(self):
        pipeline = prepare(osm(*ROAD, road_way(), SOUTH_POLE, node(10, 4.0010, 52.0001, {"highway": "bus_stop"})))
        assert [z.osm_id for z in pipeline.incomplete_zones.incomplete_zones()] == [10, 11]
