"""Tests for stand-alone stations"""

from osm_builder import ROAD, node, osm, road_way, way
from transit_zoning.config import ZoningSettings
from transit_zoning.osm_source import OsmDataSource
from transit_zoning.pipeline import run_zoning
from transit_zoning.zoning import TransferZoneType


# Two parallel tracks ~11m apart, way 201 the northern one
TRACKS = [
    node(30, 4.0000, 52.0010), node(31, 4.0020, 52.0010),
    node(32, 4.0000, 52.0011), node(34, 4.0010, 52.0011), node(33, 4.0020, 52.0011),
    way(200, [30, 31], {"railway": "rail"}),
    way(201, [32, 34, 33], {"railway": "rail"}),
]

STATION = node(40, 4.0010, 52.0012, {"railway": "station", "name": "Halte"})


def _run(*elements, settings=None):
    return run_zoning(OsmDataSource.from_string(osm(*elements)), settings)


class TestStandAloneStation:
    def test_station_attaches_to_parallel_tracks(self):
        result = _run(*TRACKS, STATION)

        zone = result.zones.get("node", 40)
        assert zone.zone_type == TransferZoneType.SMALL_STATION
        assert zone.station_name == "Halte"
        connectoids = result.connectoids.for_zone(zone)
        assert len(connectoids) == 4
        assert {c.access_segment.link.osm_way_id for c in connectoids} == {200, 201}
        assert result.network.layers["rail"].links_split == 2

    def test_nominated_way_only(self):
        settings = ZoningSettings()
        settings.nominate_osm_way_for_waiting_area("node", 40, 200)
        result = _run(*TRACKS, STATION, settings=settings)

        connectoids = result.connectoids.for_zone(result.zones.get("node", 40))
        assert len(connectoids) == 2
        assert {c.access_segment.link.osm_way_id for c in connectoids} == {200}

    def test_station_on_track(self):
        tracks = [e for e in TRACKS if 'id="34"' not in e]
        tracks.append(node(34, 4.0010, 52.0011, {"railway": "station", "name": "Spoor"}))
        result = _run(*tracks)

        zone = result.zones.get("node", 34)
        assert zone.zone_type == TransferZoneType.SMALL_STATION
        assert zone.station_name == "Spoor"
        connectoids = result.connectoids.for_zone(zone)
        assert len(connectoids) == 2
        assert {c.access_node.osm_node_id for c in connectoids} == {34}

    def test_station_names_nearby_platform(self):
        platform = node(50, 4.0012, 52.0012, {"public_transport": "platform", "railway": "platform",
                                               "train": "yes", "name": "Perron 1"})
        result = _run(*TRACKS, STATION, platform)

        assert result.zones.get("node", 40) is None
        zone = result.zones.get("node", 50)
        assert zone.station_name == "Halte"
        assert result.connectoids.has_connectoids(zone)

    def test_road_station_single_stop_location(self):
        station = node(60, 4.0010, 52.0002, {"public_transport": "station", "bus": "yes", "name": "Busstation"})
        result = _run(*ROAD, road_way(), station)

        zone = result.zones.get("node", 60)
        (connectoid,) = result.connectoids.for_zone(zone)
        assert connectoid.access_node.osm_node_id == 2
        assert not connectoid.access_segment.is_ab

    def test_station_without_network(self):
        result = _run(*ROAD, road_way(), STATION)
        assert result.zones.get("node", 40) is None

    def test_mode_without_links_does_not_block_other_modes(self):
        # bus is handled first but the road is ~130m away
        station = node(40, 4.0010, 52.0012, {"railway": "station", "name": "Halte", "bus": "yes", "train": "yes"})
        result = _run(*ROAD, road_way(), *TRACKS, station)

        zone = result.zones.get("node", 40)
        assert zone is not None
        connectoids = result.connectoids.for_zone(zone)
        assert len(connectoids) == 4
        assert {c.layer for c in connectoids} == {"rail"}
        assert {c.access_segment.link.osm_way_id for c in connectoids} == {200, 201}
        assert result.stats["discarded"] == 1
