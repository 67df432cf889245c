"""Ferry terminals and ferry stop positions.

A ferry stop is both waiting area and stop location. When it does not lie
on a ferry route it can be attached to the nearest one by a short
two-way ferry link.
"""

import logging

from shapely.geometry import Point

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.geo import distance_m
from transit_zoning.osm_source import NODE
from transit_zoning.zoning import TransferZoneType

logger = logging.getLogger(__name__)


class FerryStopHandler:
    def __init__(self, ctx, waiting_areas, connectoid_builder):
        self.ctx = ctx
        self.waiting_areas = waiting_areas
        self.connectoid_builder = connectoid_builder

    def _on_ferry_network(self, osm_node_id: int) -> bool:
        layer = self.ctx.network.layer_for_mode(m.FERRY)
        return layer is not None and layer.has_osm_node(osm_node_id)

    def process(self, node, group=None, zone_type=TransferZoneType.PLATFORM):
        """Zone and connectoids for a stand-alone ferry stop; returns the zone or None."""
        state = self.ctx.state
        state.ferry_terminal_processed(NODE, node.id)
        state.stop_position_processed(node.id)
        tags = node.tags
        on_network = self._on_ferry_network(node.id)

        override = self.ctx.settings.get_overwritten_waiting_area(node.id)
        if override is not None and on_network:
            zone = self.ctx.zones.get(*override)
            if zone is None:
                logger.error(f"User overwritten waiting area {override[0]} {override[1]} for ferry stop "
                             f"{node.id} not available")
                return None
            logger.debug(f"Mapped ferry stop {node.id} to overwritten waiting area {override[0]} {override[1]}")
            zone.add_station_name(t.extract_name(tags))
            self.connectoid_builder.extract_connectoids(node, True, [zone], {m.FERRY}, group)
            return zone

        if not self.ctx.eligible_modes(tags, m.FERRY):
            logger.debug(f"DISCARD: ferry stop {node.id} has no supported modes ({t.describe(tags)})")
            return None

        if not on_network and self.ctx.settings.connect_dangling_ferry_stops:
            on_network = self.connect_to_nearby_ferry_route(node)

        if not on_network:
            self.ctx.discard(f"ferry stop {node.id} is a stop location, but not connected to the ferry network; "
                             f"activate connecting dangling ferry stops to keep it", Point(node.lon, node.lat))
            return None

        zone = self.waiting_areas.create_zone_with_connectoids_at_node(node, tags, zone_type, m.FERRY)
        if zone is not None and group is not None:
            group.add_zone(zone)
        return zone

    def connect_to_nearby_ferry_route(self, node) -> bool:
        """Add a ferry link from ``node`` to the closest end of the nearest ferry link."""
        layer = self.ctx.network.layer_for_mode(m.FERRY)
        if layer is None:
            return False
        point = Point(node.lon, node.lat)
        radius = self.ctx.settings.ferry_stop_to_route_radius_m
        links = [link for link in layer.links_near(point, radius) if m.FERRY in link.modes()]
        if not links:
            self.ctx.discard(f"dangling ferry stop {node.id}, no ferry route within {radius:.2f}m "
                             f"({t.describe(node.tags)})", point)
            return False

        closest_link = min(links, key=lambda link: (distance_m(point, link.geometry), link.id))
        end_node = min((closest_link.node_a, closest_link.node_b),
                       key=lambda n: (distance_m(point, n.point), n.id))
        if end_node.point.equals(point):
            layer.get_or_create_node((node.lon, node.lat), node.id)
            return True

        ferry_link = layer.add_link_between(None, (node.lon, node.lat), node.id, end_node,
                                            {m.FERRY}, closest_link.capacity())
        ferry_link.way_type = "ferry"
        self.ctx.salvaged(f"dangling ferry stop {node.id} connected to ferry route {closest_link.osm_way_id} "
                          f"by new link {ferry_link.id}")
        return True
