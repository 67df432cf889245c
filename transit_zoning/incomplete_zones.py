"""Connectoids for waiting areas that no stop position claimed.

Runs last in post-processing: every remaining zone without connectoids
is attached to the most appropriate nearby link for each of its modes.
"""

import logging

from transit_zoning import modes as m
from transit_zoning.osm_source import NODE

logger = logging.getLogger(__name__)


class IncompleteZoneHandler:
    def __init__(self, ctx, connectoid_builder):
        self.ctx = ctx
        self.connectoid_builder = connectoid_builder

    def incomplete_zones(self) -> list:
        return [z for z in self.ctx.zones.zones() if not self.ctx.connectoids.has_connectoids(z)]

    def process(self, zone):
        ctx = self.ctx
        modes = [mode for mode in m.sort_modes(zone.modes)
                 if ctx.settings.is_mode_activated(mode) and ctx.network.supports_mode(mode)]
        if not modes:
            ctx.discard(f"waiting area {zone.osm_kind} {zone.osm_id} has no supported public transport modes",
                        zone.geometry)
            return

        if zone.osm_kind == NODE and ctx.network.has_osm_node(zone.osm_id):
            logger.error(f"DISCARD: waiting area {zone.osm_kind} {zone.osm_id} on top of the network did not "
                         f"receive connectoids at its own location")
            return

        radius = ctx.settings.stop_to_waiting_area_radius_m
        nominated_way = ctx.settings.get_nominated_osm_way(*zone.osm_ref)
        for mode in modes:
            if nominated_way is not None:
                link = self.connectoid_builder.nominated_link(zone, mode, nominated_way)
                if link is None:
                    logger.warning(f"DISCARD: user nominated OSM way {nominated_way} not available for "
                                   f"waiting area {zone.osm_kind} {zone.osm_id}")
                    return
            elif m.is_water_mode(mode):
                logger.warning(f"DISCARD: waiting area {zone.osm_kind} {zone.osm_id} for {mode} without "
                               f"stop_position/ferry_terminal and disconnected from the waterway network")
                continue
            else:
                links = self.connectoid_builder.find_mode_compatible_links(zone, mode, radius)
                if not links:
                    ctx.discard(f"no accessible links (max distance {radius:.2f}m) for waiting area "
                                f"{zone.osm_kind} {zone.osm_id} ({mode})", zone.geometry)
                    continue
                link = self.connectoid_builder.most_appropriate_link(zone, mode, links)
                if link is None:
                    ctx.discard(f"no link with a valid stop location for waiting area "
                                f"{zone.osm_kind} {zone.osm_id} ({mode})", zone.geometry)
                    continue

            self.connectoid_builder.extract_connectoids_for_stand_alone_zone_by_link(zone, link, mode, radius)
