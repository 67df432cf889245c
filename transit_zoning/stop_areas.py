"""Stop-area resolution: ``public_transport=stop_area`` relations → transfer zone groups.

The main pass registers platforms and station names on the group. Stop
role members are resolved in post-processing, once every waiting area is
known, by ``StopAreaResolver.process_stop_members``.
"""

import logging

from shapely.geometry import Point

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.connectoids import ConnectoidBuilder
from transit_zoning.osm_source import NODE, RELATION, WAY, OsmMember
from transit_zoning.stop_positions import StopPositionResolver, closest_zone
from transit_zoning.waiting_areas import WaitingAreaExtractor
from transit_zoning.zoning import TransferZoneType

logger = logging.getLogger(__name__)


def update_group_station_name(group, station_tags):
    """Station name onto the group (and its name when unnamed)."""
    name = t.extract_name(station_tags)
    if not name:
        return
    if group.name is None:
        group.name = name
    if group.station_name is None:
        group.station_name = name
    elif name not in group.station_name.split(";"):
        group.station_name = f"{group.station_name};{name}"


class StopAreaResolver:
    def __init__(self, ctx, waiting_areas: WaitingAreaExtractor, stop_positions: StopPositionResolver,
                 connectoid_builder: ConnectoidBuilder, ferry_stops=None):
        self.ctx = ctx
        self.waiting_areas = waiting_areas
        self.stop_positions = stop_positions
        self.connectoid_builder = connectoid_builder
        self.ferry_stops = ferry_stops

    def _suppressed(self, relation) -> bool:
        return self.ctx.settings.is_stop_area_logging_suppressed(relation.id)

    # ── Main pass ────────────────────────────────────────────────────

    def process(self, relation):
        """Create the group for a stop_area and attach what is already known."""
        zones = self.ctx.zones
        group = zones.group_for_relation(relation.id)
        if group is None:
            group = zones.create_group(relation.id, t.extract_name(relation.tags))

        stations = []
        for member in relation.members:
            if member.role == t.ROLE_PLATFORM:
                self.register_platform(group, relation, member)
            elif member.role == t.ROLE_STOP:
                if self.is_wrongly_tagged_stop_role(member):
                    self.salvage_wrongly_tagged_stop_role(group, relation, member, stations)
            else:
                self.process_member_without_role(group, relation, member, stations)

        # applied last so zones attached later in member order receive it too
        for station in stations:
            update_group_station_name(group, station.tags)
            for zone in group.zones:
                zone.add_station_name(t.extract_name(station.tags))
            self.ctx.state.station_processed(station.kind, station.id)
        return group

    def _platform_ref(self, relation, member, suppress):
        if member.kind != RELATION:
            return member.kind, member.ref
        platform_relation = self.ctx.source.relation(member.ref)
        if platform_relation is None:
            return None
        outer = self.waiting_areas.first_outer_way(platform_relation)
        if outer is None:
            if not suppress:
                logger.error(f"Platform {member.ref} in stop_area {relation.id} is a polygon relation "
                             f"without an available outer way")
            return None
        return WAY, outer.id

    def register_platform(self, group, relation, member):
        suppress = self._suppressed(relation)
        ref = self._platform_ref(relation, member, suppress)
        if ref is None:
            return
        zone = self.ctx.zones.get(*ref)
        if zone is not None:
            group.add_zone(zone)
            return
        if suppress or self.ctx.zones.is_unsupported(*ref) or self.ctx.settings.is_excluded(*ref):
            return
        entity = self.ctx.source.entity(*ref)
        if entity is None:
            logger.debug(f"Platform {ref[0]} {ref[1]} of stop_area {relation.id} not available, "
                         f"expected outside bounding area")
            return
        self.ctx.discard(f"platform {ref[0]} {ref[1]} referenced by stop_area {relation.id} "
                         f"has no transfer zone", self.waiting_areas.extract_geometry(entity))

    def is_wrongly_tagged_stop_role(self, member) -> bool:
        if member.kind != NODE:
            return True
        node = self.ctx.source.node(member.ref)
        if node is None:
            return False
        return not t.is_ptv2_stop_position(node.tags)

    def salvage_wrongly_tagged_stop_role(self, group, relation, member, stations):
        suppress = self._suppressed(relation)
        ref = (member.kind, member.ref)
        if member.kind == NODE:
            self.ctx.state.ignored_stop_positions.add(member.ref)

        if ref in self.ctx.state.unprocessed_ferry_terminals:
            # still a plausible stop, keep it for post-processing
            self.ctx.state.ignored_stop_positions.discard(member.ref)
            return

        entity = self.ctx.source.entity(*ref)
        if entity is not None and t.is_station(entity.tags):
            if not suppress:
                logger.info(f"SALVAGED: stop_area {relation.id} member {member.ref} with stop role identified as station")
            stations.append(entity)
            return

        if self.ctx.zones.has(*ref):
            if not suppress:
                logger.info(f"SALVAGED: stop_area {relation.id} member {member.ref} incorrectly given stop role, "
                            f"identified as platform")
            self.register_platform(group, relation, member)
            return

        if not suppress:
            logger.warning(f"DISCARD: stop_area {relation.id} member {member.ref} incorrectly given stop role, "
                           f"remains unidentified")

    def process_member_without_role(self, group, relation, member, stations):
        suppress = self._suppressed(relation)
        entity = self.ctx.source.entity(member.kind, member.ref)
        if entity is None:
            if self.ctx.settings.bounding_polygon is None and not suppress:
                logger.warning(f"DISCARD: {member.kind} {member.ref} (without role) referenced in stop_area "
                               f"{relation.id} not available")
            return

        if member.kind == NODE:
            self._process_node_without_role(group, relation, entity, stations)
        elif member.kind == WAY:
            if t.is_station(entity.tags) or (WAY, entity.id) in self.ctx.state.unprocessed_stations:
                stations.append(entity)
            elif self.ctx.zones.has(WAY, entity.id):
                self.register_platform(group, relation, member)
            elif not suppress and not self.ctx.zones.is_unsupported(WAY, entity.id):
                logger.warning(f"DISCARD: unable to identify OSM way {entity.id} referenced in stop_area {relation.id}")
        elif t.is_multipolygon_platform(entity.tags):
            self.register_platform(group, relation, member)
        elif not suppress:
            logger.info(f"DISCARD: stop_area {relation.id} member {member.ref} without role is a relation, ignored")

    def _process_node_without_role(self, group, relation, node, stations):
        tags = node.tags
        version = t.identify_pt_version(tags, self.ctx.settings.parser_active)
        member = OsmMember(NODE, node.id)
        if version == t.PtVersion.VERSION_2:
            if t.is_ptv2_station(tags):
                stations.append(node)
            elif t.is_ptv2_platform(tags):
                self.register_platform(group, relation, member)
        elif version == t.PtVersion.VERSION_1:
            if t.is_railway_station(tags) or t.is_halt(tags):
                stations.append(node)
            elif t.is_railway_platform(tags) or t.is_tram_stop(tags) or t.is_bus_stop(tags):
                self.register_platform(group, relation, member)
            elif t.is_highway_platform(tags):
                zone = self.waiting_areas.create_zone(node, tags, TransferZoneType.PLATFORM, m.BUS)
                if zone is not None:
                    group.add_zone(zone)

    # ── Post-processing ──────────────────────────────────────────────

    def stop_members(self, relation):
        """Node members acting as stop positions: stop role, or role-less Ptv2 stop positions."""
        for member in relation.members:
            if member.role == t.ROLE_STOP:
                yield member
            elif not member.role and member.kind == NODE:
                node = self.ctx.source.node(member.ref)
                if node is not None and t.is_ptv2_stop_position(node.tags):
                    yield member

    def process_stop_members(self, relation):
        group = self.ctx.zones.group_for_relation(relation.id)
        if group is None:
            return
        for member in self.stop_members(relation):
            if member.kind != NODE or member.ref in self.ctx.state.ignored_stop_positions:
                continue
            node = self.ctx.source.node(member.ref)
            if node is None or not self.ctx.eligibility.is_eligible(NODE, node.id):
                continue
            self.process_stop_member(group, relation, node)

    def process_stop_member(self, group, relation, node):
        state = self.ctx.state
        if (NODE, node.id) in state.unprocessed_ferry_terminals and self.ferry_stops is not None:
            self.ferry_stops.process(node, group)
            return

        if node.id in state.unprocessed_stop_positions:
            modes = self.ctx.eligible_modes(node.tags)
            zones = self.stop_positions.find_zones(node, node.tags, modes, group)
            state.stop_position_processed(node.id)
            if not zones:
                self.ctx.discard(f"stop_position {node.id} in stop_area {relation.id} has no matching waiting area",
                                 Point(node.lon, node.lat))
                return
            if not modes:
                modes = set().union(*(z.modes for z in zones))
            self.connectoid_builder.extract_connectoids(node, True, zones, modes, group)
            return

        self.process_unknown_stop_member(group, relation, node)

    def process_unknown_stop_member(self, group, relation, node):
        """Stop member not identified as stop position in the main pass, e.g. an untagged node."""
        point = Point(node.lon, node.lat)
        layers = self.ctx.network.layers_with_osm_node(node.id)
        if not layers:
            self.ctx.discard(f"stop member {node.id} of stop_area {relation.id} not on any network layer", point)
            return
        for layer in layers:
            if self.ctx.connectoids.has_at_location(layer.category, layer.location_of_osm_node(node.id)):
                return

        zone = closest_zone(point, group.zones, self.ctx.settings.stop_to_waiting_area_radius_m)
        if zone is None or not zone.modes:
            self.ctx.discard(f"stop member {node.id} of stop_area {relation.id} has no usable waiting area nearby", point)
            return
        if self.connectoid_builder.extract_connectoids(node, False, [zone], zone.modes, group):
            self.ctx.salvaged(f"stop member {node.id} of stop_area {relation.id} without stop_position tags "
                              f"connected to closest waiting area {zone.osm_kind} {zone.osm_id}")


