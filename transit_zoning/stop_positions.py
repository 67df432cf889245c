"""Stop-position resolution: which waiting area(s) does a stop position serve?

Strict cascade, first non-empty result wins:

1. user override (unconditional)
2. reference code match (``ref``/``loc_ref``/``local_ref``)
3. exact name match, pruned on distance and side of the road
4. closest mode-compatible zone within the stop search radius
5. the stop position itself, when it also carries Ptv1 stop tags

Reference and name matches are tried on the stop area's zones first and
then on zones found spatially.
"""

import logging

from shapely.geometry import Point

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.connectoids import exclude_links_on_wrong_side
from transit_zoning.geo import distance_m, location_key
from transit_zoning.osm_source import NODE
from transit_zoning.zoning import TransferZoneType

logger = logging.getLogger(__name__)


def closest_zone(point, zones, max_distance_m: float | None = None):
    """Closest zone to ``point``; ties broken on zone id so the result is stable."""
    best = None
    for zone in zones:
        d = distance_m(point, zone.geometry)
        if max_distance_m is not None and d > max_distance_m:
            continue
        if best is None or (d, zone.id) < best[0]:
            best = ((d, zone.id), zone)
    return best[1] if best else None


def filter_mode_compatible(zones, modes, allow_pseudo: bool) -> list:
    return [z for z in zones if z.modes and m.is_mode_compatible(z.modes, modes, allow_pseudo)]


class StopPositionResolver:
    def __init__(self, ctx):
        self.ctx = ctx

    # ── Side of road ─────────────────────────────────────────────────

    def _links_reaching(self, point, mode):
        layer = self.ctx.network.layer_for_mode(mode)
        if layer is None:
            return []
        return [link for link in layer.links_at(location_key((point.x, point.y)))
                if any(s.allows(mode) for s in link.segments())]

    def is_zone_on_wrong_side(self, osm_node, zone, modes) -> bool:
        """True when, for some mode, every link reaching the stop has the zone across opposing traffic."""
        override = self.ctx.settings.get_overwritten_waiting_area(osm_node.id)
        if override == zone.osm_ref:
            return False
        point = Point(osm_node.lon, osm_node.lat)
        for mode in m.sort_modes(modes):
            links = self._links_reaching(point, mode)
            if links and not exclude_links_on_wrong_side(zone.geometry, links, self.ctx.is_left_hand_drive(), mode):
                return True
        return False

    def remove_zones_on_wrong_side(self, osm_node, zones, modes) -> list:
        kept = []
        for zone in zones:
            if self.is_zone_on_wrong_side(osm_node, zone, modes):
                logger.debug(f"DISCARD: platform/pole {zone.osm_kind} {zone.osm_id} matched to stop_position "
                             f"{osm_node.id}, but on the wrong side of the road")
                continue
            kept.append(zone)
        return kept

    # ── Match strategies ─────────────────────────────────────────────

    def find_by_reference(self, osm_node, tags, candidates, modes) -> list:
        """Closest zone per reference code of the stop; distinct codes resolve independently."""
        point = Point(osm_node.lon, osm_node.lat)
        found = []
        for ref in t.extract_refs(tags):
            matches = []
            for zone in candidates:
                if ref not in zone.refs:
                    continue
                if not zone.modes:
                    self.ctx.salvaged(f"platform/pole {zone.osm_kind} {zone.osm_id} referenced by stop_position "
                                      f"{osm_node.id}, matched although it has no known modes")
                elif not m.is_mode_compatible(zone.modes, modes, allow_pseudo=True):
                    logger.debug(f"Platform/pole {zone.osm_kind} {zone.osm_id} referenced by stop_position "
                                 f"{osm_node.id} is not (pseudo) mode compatible, ignored")
                    continue
                matches.append(zone)
            if len(matches) > 1:
                logger.debug(f"SALVAGED: non-unique reference {ref} on stop_position {osm_node.id}, "
                             f"selected spatially closest platform/pole")
            zone = closest_zone(point, matches)
            if zone is not None and zone not in found:
                found.append(zone)
        return found

    def find_by_name(self, osm_node, tags, candidates, modes) -> list:
        name = t.extract_name(tags)
        if name is None:
            return []
        named = [z for z in candidates if z.name == name]
        if not named:
            return []
        compatible = filter_mode_compatible(named, modes, allow_pseudo=True)
        if not compatible:
            logger.debug(f"Platform/pole(s) matched by name to stop_position {osm_node.id}, "
                         f"but none are even pseudo mode compatible")
            return []
        point = Point(osm_node.lon, osm_node.lat)
        radius = self.ctx.settings.stop_to_waiting_area_radius_m
        nearby = [z for z in compatible if distance_m(point, z.geometry) <= radius]
        nearby = self.remove_zones_on_wrong_side(osm_node, nearby, modes)
        zone = closest_zone(point, nearby)
        return [zone] if zone is not None else []

    def find_by_reference_or_name(self, osm_node, tags, candidates, modes) -> list:
        found = self.find_by_reference(osm_node, tags, candidates, modes)
        if found:
            return found
        return self.find_by_name(osm_node, tags, candidates, modes)

    def supports_multiple_stop_positions(self, zone) -> bool:
        """Point zones on the network are stop positions themselves and serve only that one."""
        return not (zone.osm_kind == NODE and zone.is_point() and self.ctx.network.has_osm_node(zone.osm_id))

    def find_spatially(self, osm_node, tags, modes) -> list:
        point = Point(osm_node.lon, osm_node.lat)
        radius = self.ctx.settings.stop_to_waiting_area_radius_m
        candidates = [
            z for z in self.ctx.zones.zones_within(point, radius)
            if not (self.ctx.connectoids.has_connectoids(z) and not self.supports_multiple_stop_positions(z))
        ]
        if not candidates:
            logger.debug(f"No transfer zone within {radius:.1f}m of stop_position {osm_node.id}")
            return []

        found = self.find_by_reference_or_name(osm_node, tags, candidates, modes)
        if found:
            return found

        compatible = filter_mode_compatible(candidates, modes, allow_pseudo=True)
        compatible = self.remove_zones_on_wrong_side(osm_node, compatible, modes)
        zone = closest_zone(point, compatible)
        return [zone] if zone is not None else []

    # ── Entry point ──────────────────────────────────────────────────

    def _self_zone_type(self, tags):
        if t.is_bus_stop(tags):
            return TransferZoneType.POLE
        if t.is_halt(tags) or t.is_railway_station(tags):
            return TransferZoneType.SMALL_STATION
        return TransferZoneType.PLATFORM

    def find_zones(self, osm_node, tags, modes, group=None) -> list:
        """Waiting areas served by stop position ``osm_node``, possibly empty."""
        override = self.ctx.settings.get_overwritten_waiting_area(osm_node.id)
        if override is not None:
            zone = self.ctx.zones.get(*override)
            if zone is None:
                logger.error(f"User overwritten waiting area {override[0]} {override[1]} for stop_position "
                             f"{osm_node.id} not available")
                return []
            logger.debug(f"Mapped stop_position {osm_node.id} to overwritten waiting area {zone.osm_kind} {zone.osm_id}")
            return [zone]

        if modes:
            found = []
            if group is not None:
                found = self.find_by_reference_or_name(osm_node, tags, group.zones, modes)
            if not found:
                found = self.find_spatially(osm_node, tags, modes)
            if not found and t.is_stop_position_also_ptv1_stop(tags) and self.ctx.network.has_osm_node(osm_node.id):
                zone = self.ctx.zones.get(NODE, osm_node.id)
                if zone is None:
                    zone = self.ctx.zones.create_zone(
                        NODE, osm_node.id, Point(osm_node.lon, osm_node.lat), self._self_zone_type(tags),
                        name=t.extract_name(tags), refs=t.extract_refs(tags), modes=modes,
                        layer_index=t.extract_layer(tags),
                    )
                    if t.is_bus_stop(tags):
                        logger.debug(f"SALVAGED: Ptv2 stop_position {osm_node.id} is also its own waiting area "
                                     f"for modes {m.sort_modes(modes)}")
                found = [zone]
            return found

        if group is None:
            return []
        point = Point(osm_node.lon, osm_node.lat)
        zone = closest_zone(point, group.zones, self.ctx.settings.stop_to_waiting_area_radius_m)
        return [zone] if zone is not None else []
