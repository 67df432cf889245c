"""Tests for transit_zoning.zoning and transit_zoning.eligibility"""

import pytest
from shapely.geometry import Point, box

from transit_zoning import modes as m
from transit_zoning.eligibility import EligibilityTracker
from transit_zoning.exceptions import ZoningError
from transit_zoning.network import NetworkLayer
from transit_zoning.osm_source import OsmDataSource
from transit_zoning.zoning import ConnectoidStore, TransferZoneType, ZoneStore


# --- Sample XML fixtures -------------------------------------------------- #

# Bounding box covers lon 4.000-4.0015; node 3 and the station node 20 lie
# outside, the latter only reachable through the stop_area
SAMPLE_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6">
  <node id="1" lat="52.0000" lon="4.0000"/>
  <node id="2" lat="52.0000" lon="4.0010"/>
  <node id="3" lat="52.0000" lon="4.0020"/>
  <node id="10" lat="52.0001" lon="4.0010">
    <tag k="highway" v="bus_stop"/>
  </node>
  <node id="20" lat="52.0003" lon="4.0030">
    <tag k="public_transport" v="station"/>
  </node>
  <node id="30" lat="52.0100" lon="4.0100"/>
  <node id="31" lat="52.0100" lon="4.0110"/>
  <node id="32" lat="52.0110" lon="4.0110"/>
  <way id="100">
    <nd ref="1"/><nd ref="2"/><nd ref="3"/>
    <tag k="highway" v="residential"/>
  </way>
  <way id="101">
    <nd ref="30"/><nd ref="31"/><nd ref="32"/><nd ref="30"/>
  </way>
  <way id="102">
    <nd ref="3"/><nd ref="30"/>
    <tag k="highway" v="residential"/>
  </way>
  <relation id="500">
    <member type="node" ref="10" role="platform"/>
    <member type="node" ref="20" role=""/>
    <tag k="type" v="public_transport"/>
    <tag k="public_transport" v="stop_area"/>
  </relation>
  <relation id="600">
    <member type="way" ref="101" role="outer"/>
    <tag k="type" v="multipolygon"/>
    <tag k="public_transport" v="platform"/>
  </relation>
</osm>
"""


class TestEligibility:
    def setup_method(self):
        self.source = OsmDataSource.from_string(SAMPLE_XML)
        self.tracker = EligibilityTracker(box(3.999, 51.999, 4.0015, 52.001))
        self.tracker.track(self.source)

    def test_nodes_inside_polygon(self):
        assert self.tracker.is_eligible("node", 1)
        assert self.tracker.is_eligible("node", 10)

    def test_way_partially_inside(self):
        assert self.tracker.is_eligible("way", 100)
        assert not self.tracker.is_eligible("way", 102)

    def test_pt_relation_members_pre_registered(self):
        assert self.tracker.is_eligible("relation", 500)
        assert self.tracker.is_eligible("node", 20)

    def test_outside_relation_not_eligible(self):
        assert not self.tracker.is_eligible("relation", 600)
        assert not self.tracker.is_outer_role_way(101)
        assert not self.tracker.is_eligible("node", 30)

    def test_without_polygon_everything_eligible(self):
        tracker = EligibilityTracker()
        tracker.track(self.source)
        assert tracker.is_eligible("node", 30)
        assert tracker.is_eligible("relation", 600)
        assert tracker.is_outer_role_way(101)
        assert not tracker.is_near_boundary(Point(4.0, 52.0), 50)

    def test_near_boundary(self):
        assert self.tracker.is_near_boundary(Point(4.0014, 52.0), 50)
        assert not self.tracker.is_near_boundary(Point(4.0005, 52.0), 50)


class TestZoneStore:
    def setup_method(self):
        self.zones = ZoneStore()
        self.pole = self.zones.create_zone("node", 10, Point(4.0010, 52.0001), TransferZoneType.POLE,
                                           name="Centrum", refs=["A"], modes={m.BUS})

    def test_lookup(self):
        assert self.zones.get("node", 10) is self.pole
        assert self.zones.by_id(self.pole.id) is self.pole
        assert self.pole.osm_ref == ("node", 10)
        assert self.pole.is_point()

    def test_duplicate_zone_rejected(self):
        with pytest.raises(ZoningError):
            self.zones.create_zone("node", 10, Point(4.0, 52.0))

    def test_empty_geometry_rejected(self):
        with pytest.raises(ZoningError):
            self.zones.create_zone("way", 11, Point())

    def test_zones_within_radius(self):
        assert self.zones.zones_within(Point(4.0010, 52.0000), 25) == [self.pole]
        assert self.zones.zones_within(Point(4.0010, 52.0010), 25) == []

    def test_station_names_accumulate(self):
        self.pole.add_station_name("Central")
        self.pole.add_station_name("Central")
        self.pole.add_station_name("Noord")
        assert self.pole.station_name == "Central;Noord"

    def test_remove_zone_updates_groups_and_index(self):
        group = self.zones.create_group(500, "Centrum")
        group.add_zone(self.pole)
        self.zones.remove_zone(self.pole)

        assert group.is_empty()
        assert not self.zones.has("node", 10)
        assert self.zones.zones_within(Point(4.0010, 52.0000), 25) == []

    def test_group_for_relation(self):
        group = self.zones.create_group(500)
        assert self.zones.group_for_relation(500) is group
        assert group.add_zone(self.pole)
        assert not group.add_zone(self.pole)
        assert self.zones.groups_of(self.pole) == [group]

        self.zones.remove_group(group)
        assert self.zones.group_for_relation(500) is None
        assert self.pole.group_ids == set()


class TestConnectoidStore:
    def setup_method(self):
        self.layer = NetworkLayer(m.ROAD, m.MODES_BY_CATEGORY[m.ROAD])
        link = self.layer.add_link(100, [(4.0, 52.0), (4.001, 52.0)], [1, 2])
        self.segment = self.layer.add_segment(link, True, {m.BUS, m.COACH}, 600.0)
        self.zones = ZoneStore()
        self.zone = self.zones.create_zone("node", 10, Point(4.0010, 52.0001), modes={m.BUS})
        self.store = ConnectoidStore()

    def test_same_segment_and_zone_extends_modes(self):
        first = self.store.add_or_extend(m.ROAD, self.segment, self.zone, {m.BUS})
        second = self.store.add_or_extend(m.ROAD, self.segment, self.zone, {m.COACH})
        assert first is second
        assert first.modes == {m.BUS, m.COACH}
        assert len(self.store) == 1

    def test_modes_not_allowed_on_segment(self):
        assert self.store.add_or_extend(m.ROAD, self.segment, self.zone, {m.TROLLEYBUS}) is None
        assert not self.store.has_connectoids(self.zone)

    def test_indexes(self):
        connectoid = self.store.add_or_extend(m.ROAD, self.segment, self.zone, {m.BUS})
        key = self.segment.downstream.key
        assert connectoid.access_node is self.segment.downstream
        assert self.store.at_location(m.ROAD, key) == [connectoid]
        assert self.store.for_zone(self.zone) == [connectoid]
        assert self.store.has_at_location(m.ROAD, key)
        assert not self.store.has_at_location(m.RAIL, key)
