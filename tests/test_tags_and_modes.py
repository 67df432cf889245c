"""Tests for transit_zoning.tags and transit_zoning.modes"""

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.tags import PtVersion


class TestIdentifyPtVersion:
    def test_ptv2_wins_over_ptv1(self):
        tags = {"public_transport": "platform", "highway": "bus_stop"}
        assert t.identify_pt_version(tags) == PtVersion.VERSION_2

    def test_ptv1_only(self):
        assert t.identify_pt_version({"railway": "tram_stop"}) == PtVersion.VERSION_1
        assert t.identify_pt_version({"amenity": "ferry_terminal"}) == PtVersion.VERSION_1

    def test_unknown_public_transport_value(self):
        assert t.identify_pt_version({"public_transport": "pole"}) == PtVersion.NONE

    def test_inactive_parser(self):
        assert t.identify_pt_version({"highway": "bus_stop"}, parser_active=False) == PtVersion.NONE

    def test_untagged(self):
        assert t.identify_pt_version({}) == PtVersion.NONE


class TestPredicates:
    def test_multipolygon_platform(self):
        assert t.is_multipolygon_platform({"type": "multipolygon", "public_transport": "platform"})
        assert t.is_multipolygon_platform({"type": "multipolygon", "railway": "platform"})
        assert not t.is_multipolygon_platform({"type": "multipolygon", "building": "yes"})

    def test_station_in_either_scheme(self):
        assert t.is_station({"public_transport": "station"})
        assert t.is_station({"railway": "halt"})
        assert not t.is_station({"railway": "platform"})

    def test_stop_position_also_ptv1_stop(self):
        assert t.is_stop_position_also_ptv1_stop({"public_transport": "stop_position", "highway": "bus_stop"})
        assert not t.is_stop_position_also_ptv1_stop({"public_transport": "stop_position"})


class TestExtraction:
    def test_refs_in_priority_order(self):
        tags = {"local_ref": "C", "ref": "A;B", "loc_ref": "B"}
        assert t.extract_refs(tags) == ["A", "B", "C"]

    def test_name_blank(self):
        assert t.extract_name({"name": "  "}) is None
        assert t.extract_name({"name": " Dam "}) == "Dam"

    def test_layer(self):
        assert t.extract_layer({"layer": "-1"}) == -1
        assert t.extract_layer({"layer": "roof"}) is None
        assert t.extract_layer({}) is None


class TestCollectModes:
    def test_explicit_yes_minus_no(self):
        tags = {"bus": "yes", "tram": "yes", "tram:note": "x", "coach": "no"}
        assert m.collect_modes(tags) == {m.BUS, m.TRAM}

    def test_psv_expands_to_road_modes(self):
        modes = m.collect_modes({"psv": "yes", "minibus": "no"})
        assert m.BUS in modes and m.COACH in modes
        assert m.MINIBUS not in modes

    def test_default_when_nothing_explicit(self):
        assert m.collect_modes({"highway": "bus_stop"}, m.BUS) == {m.BUS}
        assert m.collect_modes({"highway": "bus_stop"}) == set()

    def test_ptv1_default_mode(self):
        assert m.identify_ptv1_default_mode({"highway": "bus_stop"}) == m.BUS
        assert m.identify_ptv1_default_mode({"railway": "tram_stop"}) == m.TRAM
        assert m.identify_ptv1_default_mode({"railway": "halt"}) == m.TRAIN
        assert m.identify_ptv1_default_mode({"amenity": "ferry_terminal"}) == m.FERRY
        assert m.identify_ptv1_default_mode({"public_transport": "platform"}) is None


class TestModeCompatibility:
    def test_exact(self):
        assert m.is_mode_compatible({m.BUS}, {m.BUS, m.TRAM})
        assert not m.is_mode_compatible({m.TRAIN}, {m.TRAM})

    def test_pseudo_same_category(self):
        assert m.is_mode_compatible({m.TRAIN}, {m.LIGHT_RAIL}, allow_pseudo=True)
        assert not m.is_mode_compatible({m.BUS}, {m.TRAM}, allow_pseudo=True)

    def test_categories(self):
        assert m.is_road_mode(m.TROLLEYBUS)
        assert m.is_rail_mode(m.FUNICULAR)
        assert m.is_water_mode(m.FERRY)
        assert m.category_of("horse") is None
