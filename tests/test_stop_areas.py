"""Tests for stop_area relations and the transfer zone groups they produce"""

from shapely.geometry import Polygon

from osm_builder import node, osm, prepare, relation, road_way, way
from transit_zoning.osm_source import OsmDataSource
from transit_zoning.pipeline import run_zoning
from transit_zoning.stop_areas import update_group_station_name
from transit_zoning.zoning import TransferZoneGroup


STOP_TAGS = {"public_transport": "stop_position", "bus": "yes"}
PLATFORM_TAGS = {"public_transport": "platform", "highway": "bus_stop", "bus": "yes"}
STOP_AREA_TAGS = {"type": "public_transport", "public_transport": "stop_area", "name": "Centrum halte"}


def _stop_area_xml(members, stop_tags=None, extra=()):
    return osm(
        node(1, 4.0000, 52.0),
        node(2, 4.0010, 52.0, {**STOP_TAGS, **(stop_tags or {})}),
        node(3, 4.0020, 52.0),
        node(10, 4.0010, 52.0001, {**PLATFORM_TAGS, "name": "Centrum"}),
        node(20, 4.0015, 52.0003, {"public_transport": "station", "name": "Central"}),
        road_way(),
        *extra,
        relation(500, members, STOP_AREA_TAGS),
    )


def _run(xml):
    return run_zoning(OsmDataSource.from_string(xml))


class TestStopAreaGroups:
    def test_group_with_platform_stop_and_station(self):
        result = _run(_stop_area_xml([
            ("node", 10, "platform"),
            ("node", 2, "stop"),
            ("node", 20, ""),
        ]))

        (group,) = result.zones.groups()
        assert group.osm_relation_id == 500
        assert group.name == "Centrum halte"
        assert group.station_name == "Central"
        (zone,) = group.zones
        assert zone.osm_ref == ("node", 10)
        assert zone.station_name == "Central"
        # the station is absorbed by the group, not a stand-alone zone
        assert len(result.zones) == 1
        (connectoid,) = result.connectoids.connectoids()
        assert connectoid.zone is zone
        assert connectoid.access_node.osm_node_id == 2

    def test_station_with_stop_role_salvaged(self):
        result = _run(_stop_area_xml([
            ("node", 10, "platform"),
            ("node", 20, "stop"),
        ]))
        (group,) = result.zones.groups()
        assert group.station_name == "Central"

    def test_group_reference_match(self):
        south = node(11, 4.0010, 51.9999, {**PLATFORM_TAGS, "ref": "B"})
        pipeline = prepare(_stop_area_xml([("node", 11, "platform"), ("node", 2, "stop")],
                                          stop_tags={"ref": "B"}, extra=[south]))
        pipeline.post_process()

        zone = pipeline.ctx.zones.get("node", 11)
        connectoids = pipeline.ctx.connectoids.for_zone(zone)
        assert [c.access_node.osm_node_id for c in connectoids] == [2]
        assert connectoids[0].access_segment.is_ab

    def test_platform_without_zone_discarded(self):
        result = _run(_stop_area_xml(
            [("node", 12, "platform"), ("node", 10, "platform")],
            extra=[node(12, 4.0030, 52.0005)],
        ))
        assert result.stats["discarded"] >= 1
        (group,) = result.zones.groups()
        assert [z.osm_id for z in group.zones] == [10]

    def test_multipolygon_platform_member(self):
        platform = [
            node(40, 4.0008, 52.0001), node(41, 4.0012, 52.0001),
            node(42, 4.0012, 52.0002), node(43, 4.0008, 52.0002),
            way(110, [40, 41, 42, 43, 40]),
            relation(600, [("way", 110, "outer")],
                     {"type": "multipolygon", "public_transport": "platform", "bus": "yes", "name": "Perron"}),
        ]
        result = _run(_stop_area_xml([("relation", 600, "platform"), ("node", 2, "stop")],
                                     stop_tags={"name": "Perron"}, extra=platform))

        zone = result.zones.get("way", 110)
        assert isinstance(zone.geometry, Polygon)
        (group,) = result.zones.groups()
        assert zone in group.zones
        assert result.connectoids.has_connectoids(zone)

    def test_tagged_outer_way_takes_relation_attributes(self):
        platform = [
            node(40, 4.0008, 52.0001), node(41, 4.0012, 52.0001),
            node(42, 4.0012, 52.0002), node(43, 4.0008, 52.0002),
            way(110, [40, 41, 42, 43, 40], {"public_transport": "platform", "name": "Outline"}),
            relation(600, [("way", 110, "outer")],
                     {"type": "multipolygon", "public_transport": "platform", "bus": "yes", "name": "Perron"}),
        ]
        pipeline = prepare(_stop_area_xml([("relation", 600, "platform")], extra=platform))

        zone = pipeline.ctx.zones.get("way", 110)
        assert zone.name == "Perron"
        assert zone.modes == {"bus"}

    def test_empty_group_removed(self):
        result = _run(_stop_area_xml([("node", 12, "platform")], extra=[node(12, 4.0030, 52.0005)]))
        assert result.zones.groups() == []
        assert result.cleanup["groups_removed"] == 1


class TestUpdateGroupStationName:
    def test_names_accumulate(self):
        group = TransferZoneGroup(0, 500)
        update_group_station_name(group, {"name": "Central"})
        update_group_station_name(group, {"name": "Central"})
        update_group_station_name(group, {"name": "Zuid"})
        assert group.name == "Central"
        assert group.station_name == "Central;Zuid"

    def test_unnamed_station(self):
        group = TransferZoneGroup(0, 500, "Halte")
        update_group_station_name(group, {})
        assert group.station_name is None
