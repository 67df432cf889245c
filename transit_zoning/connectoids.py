"""Connectoid/topology builder.

Turns a (waiting area, access location, mode) triple into directed
connectoids: resolves or creates the access node, splitting a link when
the location is internal to it, selects the link segments entering that
node and registers a connectoid per (segment, zone).
"""

import logging

from shapely.geometry import Point

from transit_zoning import modes as m
from transit_zoning.exceptions import TopologyError
from transit_zoning.geo import distance_m, is_left_of_line, location_key, nearest_on_line, representative_point

logger = logging.getLogger(__name__)


# ── Side of road ─────────────────────────────────────────────────────

def is_zone_on_curb_side(segment, zone_geometry, left_hand_drive: bool) -> bool:
    """Whether a vehicle on ``segment`` has the zone on its door side."""
    left = is_left_of_line(segment.link.coords, representative_point(zone_geometry))
    if left is None:
        return True
    if not segment.is_ab:
        left = not left
    return left == left_hand_drive


def one_way_segment_for_mode(link, mode: str):
    """The only segment of ``link`` allowing ``mode``, None when two-way or inaccessible."""
    allowed = [s for s in link.segments() if s.allows(mode)]
    return allowed[0] if len(allowed) == 1 else None


def exclude_links_on_wrong_side(zone_geometry, links, left_hand_drive: bool, mode: str) -> list:
    """Drop links that are one-way for ``mode`` with the zone opposite their door side.

    Two-way links are kept since either direction could serve the zone.
    """
    if not requires_curb_side(mode):
        return list(links)
    kept = []
    for link in links:
        segment = one_way_segment_for_mode(link, mode)
        if segment is not None and not is_zone_on_curb_side(segment, zone_geometry, left_hand_drive):
            continue
        kept.append(link)
    return kept


def requires_curb_side(mode: str) -> bool:
    """Rail vehicles open doors on both sides; ferries dock either way."""
    return m.is_road_mode(mode)


class ConnectoidBuilder:
    def __init__(self, ctx):
        self.ctx = ctx

    @property
    def left_hand_drive(self) -> bool:
        return self.ctx.is_left_hand_drive()

    def must_avoid_crossing_traffic(self, mode: str, zone, stop_osm_node_id: int | None = None) -> bool:
        if not requires_curb_side(mode):
            return False
        if stop_osm_node_id is not None:
            override = self.ctx.settings.get_overwritten_waiting_area(stop_osm_node_id)
            if override is not None:
                return override != zone.osm_ref
        return True

    # ── Access node ──────────────────────────────────────────────────

    def extract_access_node(self, layer, key, layer_index: int | None = None):
        """Existing node at ``key``, or a new one created by splitting the single link it is internal to.

        Returns None when the location is not part of the layer. Raises
        TopologyError when the location is internal to more than one link.
        """
        node = layer.node_at(key)
        if node is not None:
            return node

        links = layer.links_with_internal_location(key)
        if not links:
            return None
        if len(links) > 1 and layer_index is not None:
            links = [link for link in links if link.layer_index == layer_index] or links
        if len(links) > 1:
            raise TopologyError(
                f"Location {key} is internal to {len(links)} links "
                f"(OSM ways {sorted({link.osm_way_id for link in links})}), cannot split"
            )

        result = layer.split_link(links[0], key)
        self.ctx.connectoids.apply_split(result)
        return result.node

    def _unanimous_layer_index(self, layer, key) -> int | None:
        indices = {link.layer_index for link in layer.links_at(key)}
        return indices.pop() if len(indices) == 1 else None

    # ── Access segments ──────────────────────────────────────────────

    def find_access_segments(self, layer, node, zone, mode, avoid_crossing_traffic, ignore_vertical_layer):
        nominated_way = self.ctx.settings.get_nominated_osm_way(*zone.osm_ref)
        candidates = []
        for segment in layer.segments_entering(node):
            if not segment.allows(mode):
                continue
            if nominated_way is not None and segment.link.osm_way_id != nominated_way:
                continue
            if (not ignore_vertical_layer and zone.layer_index is not None
                    and segment.link.layer_index != zone.layer_index):
                continue
            candidates.append(segment)

        if not avoid_crossing_traffic or not candidates:
            return candidates

        on_curb_side = [s for s in candidates
                        if is_zone_on_curb_side(s, zone.geometry, self.left_hand_drive)]
        if on_curb_side:
            return on_curb_side
        if nominated_way is not None:
            return []
        logger.debug(f"All access segments for zone {zone.osm_kind} {zone.osm_id} at {node.key} "
                     f"are on the far side, keeping them all")
        return candidates

    # ── Connectoids ──────────────────────────────────────────────────

    def register(self, layer, segments, zone, mode) -> bool:
        created = False
        for segment in segments:
            if self.ctx.connectoids.add_or_extend(layer.category, segment, zone, {mode}) is not None:
                created = True
        if created:
            zone.modes.add(mode)
        return created

    def extract_connectoids_for_mode(self, location: Point, known_stop_position: bool, zone, mode: str) -> bool:
        layer = self.ctx.network.layer_for_mode(mode)
        if layer is None:
            return False
        key = location_key((location.x, location.y))

        layer_index = zone.layer_index
        if layer_index is None and not known_stop_position:
            layer_index = self._unanimous_layer_index(layer, key)

        node = self.extract_access_node(layer, key, layer_index)
        if node is None:
            self.ctx.discard(
                f"location {key} could not be converted to access node for transfer zone "
                f"{zone.osm_kind} {zone.osm_id}", location)
            return False

        avoid = not node.point.equals(zone.geometry)
        if avoid:
            avoid = self.must_avoid_crossing_traffic(mode, zone, node.osm_node_id)

        segments = self.find_access_segments(layer, node, zone, mode, avoid, ignore_vertical_layer=known_stop_position)
        if not segments:
            self.ctx.discard(
                f"platform/pole/station {zone.osm_kind} {zone.osm_id} stop location {key} deemed invalid, "
                f"no access link segment found for {mode}", location)
            return False
        return self.register(layer, segments, zone, mode)

    def extract_connectoids(self, osm_node, known_stop_position: bool, zones, modes, group=None) -> bool:
        """Connect ``zones`` at an OSM node for every mode; zones gaining connectoids join ``group``."""
        location = Point(osm_node.lon, osm_node.lat)
        success = False
        for mode in m.sort_modes(modes):
            layer = self.ctx.network.layer_for_mode(mode)
            if layer is None:
                continue
            if not layer.has_osm_node(osm_node.id):
                self.ctx.discard(
                    f"stop_position {osm_node.id} not present in network layer for {mode} "
                    f"(residing way type deactivated or node dangling)", location)
                continue
            for zone in zones:
                if not self.extract_connectoids_for_mode(location, known_stop_position, zone, mode):
                    continue
                success = True
                if group is not None and group.add_zone(zone):
                    logger.info(f"Transfer zone {zone.osm_kind} {zone.osm_id} added to stop_area "
                                f"{group.osm_relation_id} via stop_position {osm_node.id}")
        return success

    def create_connectoids_on_top_of_zone(self, zone, mode: str, osm_node_id: int) -> bool:
        """Connect a point zone lying on the network to every incoming direction at its location."""
        layer = self.ctx.network.layer_for_mode(mode)
        if layer is None:
            return False
        key = layer.location_of_osm_node(osm_node_id)
        if key is None:
            return False
        node = self.extract_access_node(layer, key, zone.layer_index)
        if node is None:
            return False
        # no directional hint on the way itself, so every approach is used
        segments = self.find_access_segments(layer, node, zone, mode, False, ignore_vertical_layer=True)
        if not segments:
            logger.debug(f"No {mode} access segments at {key} for zone {zone.osm_kind} {zone.osm_id}")
            return False
        return self.register(layer, segments, zone, mode)

    # ── Stand-alone zones attached via a link ────────────────────────

    def _valid_at(self, link, index_or_none, zone, mode, avoid) -> bool:
        """Whether some segment of ``link`` reaching the location can serve ``zone``."""
        segments = [s for s in link.segments() if s.allows(mode)]
        if index_or_none == 0:
            segments = [s for s in segments if s.downstream is link.node_a]
        elif index_or_none == len(link.coords) - 1:
            segments = [s for s in segments if s.downstream is link.node_b]
        if not avoid:
            return bool(segments)
        return any(is_zone_on_curb_side(s, zone.geometry, self.left_hand_drive) for s in segments)

    def find_connectoid_location_on_link(self, zone, link, mode: str, max_distance_m: float):
        """(lon, lat) on ``link`` to place connectoids for ``zone``, or None.

        Prefers the closest existing coordinate within ``max_distance_m`` that
        can serve the zone, otherwise the projection of the zone onto the link.
        """
        avoid = self.must_avoid_crossing_traffic(mode, zone)
        point = representative_point(zone.geometry)
        by_distance = sorted(
            (distance_m(zone.geometry, Point(c)), i) for i, c in enumerate(link.coords)
        )
        for dist, i in by_distance:
            if dist > max_distance_m:
                break
            if self._valid_at(link, i, zone, mode, avoid):
                return link.coords[i]

        _, _, projected, dist = nearest_on_line(link.coords, point)
        if dist <= max_distance_m and self._valid_at(link, None, zone, mode, avoid):
            return projected
        return None

    def extract_connectoids_for_stand_alone_zone_by_link(self, zone, link, mode: str, max_distance_m: float) -> bool:
        if self.ctx.settings.is_waiting_area_of_stop_position_overwritten(*zone.osm_ref):
            logger.debug(f"Zone {zone.osm_kind} {zone.osm_id} is the overwritten waiting area of a stop_position, "
                         f"not attaching it via link {link.id}")
            return False
        layer = self.ctx.network.layer_for_mode(mode)
        if layer is None:
            return False
        if link.id not in layer.links:
            # split since it was selected, continue on the closest part of the same way
            link = self.nominated_link(zone, mode, link.osm_way_id)
            if link is None:
                return False
        location = self.find_connectoid_location_on_link(zone, link, mode, max_distance_m)
        if location is None:
            self.ctx.discard(
                f"no valid connectoid location on OSM way {link.osm_way_id} for transfer zone "
                f"{zone.osm_kind} {zone.osm_id} ({mode})", zone.geometry)
            return False
        key = location_key(location)
        if not layer.has_location(key):
            key = layer.inject_location(link, Point(location))
        return self.extract_connectoids_for_mode(Point(key), False, zone, mode)

    # ── Access link selection ────────────────────────────────────────

    def find_mode_compatible_links_near(self, geom, mode: str, radius_m: float) -> list:
        layer = self.ctx.network.layer_for_mode(mode)
        if layer is None:
            return []
        return [link for link in layer.links_near(geom, radius_m) if mode in link.modes()]

    def find_mode_compatible_links(self, zone, mode: str, radius_m: float) -> list:
        """Links near ``zone`` allowing ``mode``, on the zone's vertical layer when it has one."""
        links = self.find_mode_compatible_links_near(zone.geometry, mode, radius_m)
        if zone.layer_index is not None:
            links = [link for link in links if link.layer_index == zone.layer_index]
        return links

    def most_appropriate_link(self, zone, mode: str, links):
        """Pick the link a stand-alone waiting area should be served from, None when none qualifies.

        Candidates are narrowed down in order: links with an access segment
        on the correct side, links offering a valid connectoid location,
        links within the closest-edge buffer, the highest capacity (road
        only) and finally the closest one.
        """
        avoid = self.must_avoid_crossing_traffic(mode, zone)
        candidates = []
        for link in links:
            segments = [s for s in link.segments() if s.allows(mode)]
            if avoid:
                segments = [s for s in segments if is_zone_on_curb_side(s, zone.geometry, self.left_hand_drive)]
            if segments:
                candidates.append(link)

        radius = self.ctx.settings.stop_to_waiting_area_radius_m
        candidates = [link for link in candidates
                      if self.find_connectoid_location_on_link(zone, link, mode, radius) is not None]
        if len(candidates) <= 1:
            return candidates[0] if candidates else None

        distances = {link.id: distance_m(zone.geometry, link.geometry) for link in candidates}
        closest = min(distances.values())
        buffer_m = self.ctx.settings.closest_edge_buffer_m
        candidates = [link for link in candidates if distances[link.id] <= closest + buffer_m]

        if not m.is_rail_mode(mode) and len({link.capacity() for link in candidates}) > 1:
            max_capacity = max(link.capacity() for link in candidates)
            candidates = [link for link in candidates if link.capacity() >= max_capacity]

        return min(candidates, key=lambda link: (distances[link.id], link.id))

    def nominated_link(self, zone, mode: str, osm_way_id: int):
        """Closest link of a user nominated OSM way; the way may have been split into several links."""
        layer = self.ctx.network.layer_for_mode(mode)
        if layer is None:
            return None
        links = [link for link in layer.links.values() if link.osm_way_id == osm_way_id]
        if not links:
            return None
        return min(links, key=lambda link: (distance_m(zone.geometry, link.geometry), link.id))
