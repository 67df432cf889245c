"""Tests for ferry terminals and dangling ferry stops"""

from osm_builder import node, osm, way
from transit_zoning.config import ZoningSettings
from transit_zoning.osm_source import OsmDataSource
from transit_zoning.pipeline import run_zoning


# Ferry route along lat 52.01; the terminal sits ~55m north of its western end
FERRY_ROUTE = [
    node(50, 4.0000, 52.0100),
    node(51, 4.0100, 52.0100),
    way(300, [50, 51], {"route": "ferry"}),
]


def _run(*elements, settings=None):
    return run_zoning(OsmDataSource.from_string(osm(*elements)), settings)


class TestDanglingFerryTerminal:
    def test_connected_to_nearby_route(self):
        terminal = node(60, 4.0000, 52.0105, {"amenity": "ferry_terminal", "name": "Pier"})
        result = _run(*FERRY_ROUTE, terminal)

        zone = result.zones.get("node", 60)
        assert zone is not None
        assert zone.modes == {"ferry"}
        (connectoid,) = result.connectoids.for_zone(zone)
        assert connectoid.access_node.osm_node_id == 60
        assert result.stats["salvaged"] >= 1

        water = result.network.layers["water"]
        new_links = [link for link in water.links.values() if link.osm_way_id is None]
        assert len(new_links) == 1
        assert new_links[0].way_type == "ferry"

    def test_not_connected_when_disabled(self):
        terminal = node(60, 4.0000, 52.0105, {"amenity": "ferry_terminal"})
        result = _run(*FERRY_ROUTE, terminal, settings=ZoningSettings(connect_dangling_ferry_stops=False))
        assert len(result.zones) == 0
        assert result.stats["discarded"] == 1

    def test_route_out_of_reach(self):
        terminal = node(60, 4.0000, 52.0200, {"amenity": "ferry_terminal"})
        result = _run(*FERRY_ROUTE, terminal)
        assert len(result.zones) == 0
        assert len(result.connectoids) == 0


class TestFerryStopOnRoute:
    def test_terminal_at_route_end(self):
        route = [
            node(50, 4.0000, 52.0100, {"amenity": "ferry_terminal", "name": "Veer"}),
            node(51, 4.0100, 52.0100),
            way(300, [50, 51], {"route": "ferry"}),
        ]
        result = _run(*route)

        zone = result.zones.get("node", 50)
        assert zone.name == "Veer"
        (connectoid,) = result.connectoids.for_zone(zone)
        assert not connectoid.access_segment.is_ab

    def test_ferry_deactivated(self):
        terminal = node(60, 4.0000, 52.0105, {"amenity": "ferry_terminal"})
        result = _run(*FERRY_ROUTE, terminal, settings=ZoningSettings(activated_modes={"bus"}))
        assert len(result.zones) == 0
        assert result.network.layers == {}

    def test_ferry_terminal_way_discarded(self):
        area = [
            node(61, 4.0000, 52.0103), node(62, 4.0002, 52.0103), node(63, 4.0002, 52.0104),
            way(310, [61, 62, 63, 61], {"amenity": "ferry_terminal"}),
        ]
        result = _run(*FERRY_ROUTE, *area)
        assert result.zones.get("way", 310) is None
        assert result.stats["discarded"] == 1
