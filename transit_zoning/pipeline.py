"""Phased zoning run: eligibility, main pass, post-processing and cleanup.

Every phase walks entities in ascending id order so the outcome does not
depend on the order of the input file. Each entity is processed on its
own: a ZoningError raised while handling it is logged as a discard and
the run continues with the next one.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from shapely.geometry import Point

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.cleanup import cleanup
from transit_zoning.connectoids import ConnectoidBuilder
from transit_zoning.context import ZoningContext
from transit_zoning.exceptions import ZoningError
from transit_zoning.ferry import FerryStopHandler
from transit_zoning.incomplete_zones import IncompleteZoneHandler
from transit_zoning.network_builder import build_network
from transit_zoning.osm_source import NODE, RELATION, WAY
from transit_zoning.stations import StationHandler
from transit_zoning.stop_areas import StopAreaResolver
from transit_zoning.stop_positions import StopPositionResolver
from transit_zoning.waiting_areas import WaitingAreaExtractor
from transit_zoning.zoning import TransferZoneType

logger = logging.getLogger(__name__)


@dataclass
class ZoningResult:
    network: object
    zones: object
    connectoids: object
    stats: Counter = field(default_factory=Counter)
    cleanup: dict = field(default_factory=dict)

    def summary(self) -> dict:
        return {
            "transfer_zones": len(self.zones),
            "transfer_zone_groups": len(self.zones.groups()),
            "connectoids": len(self.connectoids),
            "links_split": sum(layer.links_split for layer in self.network.layers.values()),
            **self.cleanup,
            **dict(sorted(self.stats.items())),
        }


class ZoningPipeline:
    def __init__(self, ctx: ZoningContext):
        self.ctx = ctx
        self.connectoid_builder = ConnectoidBuilder(ctx)
        self.waiting_areas = WaitingAreaExtractor(ctx, self.connectoid_builder)
        self.stop_positions = StopPositionResolver(ctx)
        self.ferry_stops = FerryStopHandler(ctx, self.waiting_areas, self.connectoid_builder)
        self.stop_areas = StopAreaResolver(ctx, self.waiting_areas, self.stop_positions,
                                           self.connectoid_builder, self.ferry_stops)
        self.stations = StationHandler(ctx, self.waiting_areas, self.connectoid_builder, self.ferry_stops)
        self.incomplete_zones = IncompleteZoneHandler(ctx, self.connectoid_builder)

    def run(self) -> ZoningResult:
        ctx = self.ctx
        logger.info("Tracking spatial eligibility...")
        ctx.eligibility.track(ctx.source)

        logger.info("Main pass over OSM entities...")
        self.main_pass()
        self._log_phase("Main pass")

        logger.info("Post-processing...")
        self.post_process()
        self._log_phase("Post-processing")

        report = cleanup(ctx)
        self._log_phase("Cleanup")
        return ZoningResult(ctx.network, ctx.zones, ctx.connectoids, ctx.state.stats, report)

    def _log_phase(self, phase: str):
        ctx = self.ctx
        links_split = sum(layer.links_split for layer in ctx.network.layers.values())
        logger.info(f"{phase} complete: {len(ctx.zones)} transfer zones, {len(ctx.zones.groups())} groups, "
                    f"{len(ctx.connectoids)} connectoids, {links_split} links split")

    def _guarded(self, description: str, func, *args):
        """Run one entity's processing; a ZoningError discards that entity only."""
        try:
            func(*args)
        except ZoningError as e:
            self.ctx.state.stats["errors"] += 1
            logger.warning(f"DISCARD: {description}: {e}")

    def _skip(self, kind: str, osm_id: int) -> bool:
        return self.ctx.settings.is_excluded(kind, osm_id) or not self.ctx.eligibility.is_eligible(kind, osm_id)

    def _version(self, tags):
        return t.identify_pt_version(tags, self.ctx.settings.parser_active)

    # ── Main pass ────────────────────────────────────────────────────

    def main_pass(self):
        source = self.ctx.source
        for node in source.nodes():
            if self._skip(NODE, node.id):
                continue
            version = self._version(node.tags)
            if version != t.PtVersion.NONE:
                self._guarded(f"node {node.id}", self.process_node, node, version)

        for way in source.ways():
            if self._skip(WAY, way.id):
                continue
            version = self._version(way.tags)
            if version != t.PtVersion.NONE:
                self._guarded(f"way {way.id}", self.process_way, way, version)

        relations = [r for r in source.relations() if not self._skip(RELATION, r.id)]
        for relation in relations:
            if t.is_multipolygon_platform(relation.tags):
                self._guarded(f"platform relation {relation.id}",
                              self.waiting_areas.create_platform_for_multipolygon, relation)
        for relation in relations:
            if t.is_stop_area_relation(relation.tags):
                self._guarded(f"stop_area {relation.id}", self.stop_areas.process, relation)

    def _on_network(self, osm_node_id: int) -> bool:
        return self.ctx.network.has_osm_node(osm_node_id)

    def process_node(self, node, version):
        if version == t.PtVersion.VERSION_2:
            self.process_ptv2_node(node)
        else:
            self.process_ptv1_node(node)

    def process_ptv2_node(self, node):
        tags = node.tags
        if t.is_ptv2_platform(tags):
            self.process_ptv2_platform(node)
        elif t.is_ptv2_stop_position(tags):
            self.process_ptv2_stop_position(node)
        elif t.is_ptv2_station(tags):
            self.ctx.state.unprocessed_stations.add((NODE, node.id))
        elif t.is_ptv2_stop_area(tags):
            logger.info(f"DISCARD: stop_area tagged on OSM node {node.id}, ignored")

    def process_ptv2_platform(self, node):
        tags = node.tags
        to_be_attached = t.is_ferry_terminal(tags) and self.ctx.settings.connect_dangling_ferry_stops
        if self._on_network(node.id) or to_be_attached:
            # a platform on the network doubles as stop position
            self.process_ptv2_stop_position(node)
            return
        self.waiting_areas.create_zone(node, tags, TransferZoneType.PLATFORM, m.identify_ptv1_default_mode(tags))

    def process_ptv2_stop_position(self, node):
        tags = node.tags
        default_mode = m.identify_ptv1_default_mode(tags)
        modes = self.ctx.eligible_modes(tags, default_mode)
        if not modes:
            discarded = True
        elif default_mode is not None:
            discarded = self.salvage_ptv2_stop_position_with_ptv1_tags(node, modes)
        else:
            self.ctx.state.unprocessed_stop_positions.add(node.id)
            discarded = False
        if discarded:
            self.ctx.state.ignored_stop_positions.add(node.id)

    def salvage_ptv2_stop_position_with_ptv1_tags(self, node, modes) -> bool:
        """Use Ptv1 tags on a Ptv2 stop position to repair it; returns True when it is discarded."""
        tags = node.tags
        state = self.ctx.state
        point = Point(node.lon, node.lat)
        if self._on_network(node.id):
            state.unprocessed_stop_positions.add(node.id)
            return False
        if t.is_tram_stop(tags):
            self.ctx.discard(f"Ptv2 stop_position with railway=tram_stop ({node.id}) does not reside on tram tracks",
                             point)
            return True
        if t.is_ferry_terminal(tags):
            # may still be attached to a ferry route in post-processing
            state.unprocessed_stop_positions.add(node.id)
            return False

        radius = self.ctx.settings.stop_to_waiting_area_radius_m
        if t.is_halt(tags) or t.is_railway_station(tags):
            radius = self.ctx.settings.station_to_parallel_tracks_radius_m
        if not any(self.connectoid_builder.find_mode_compatible_links_near(point, mode, radius) for mode in modes):
            logger.info(f"DISCARD: Ptv2 stop_position {node.id} on deactivated/non-existent infrastructure, "
                        f"no nearby compatible infrastructure to salvage it")
            return True

        if t.is_bus_stop(tags):
            logger.info(f"SALVAGED: Ptv2 stop_position {node.id} also tagged as bus_stop, not on parsed road "
                        f"infrastructure, parsed as pole instead")
        elif t.is_halt(tags):
            logger.info(f"SALVAGED: Ptv2 stop_position {node.id} also tagged as halt, not on parsed rail "
                        f"infrastructure, parsed as small station instead")
        elif t.is_railway_station(tags):
            logger.info(f"SALVAGED: Ptv2 stop_position {node.id} also tagged as station, not on parsed rail "
                        f"infrastructure, parsed as station instead")
        else:
            self.ctx.discard(f"Ptv2 stop_position {node.id} not on parsed infrastructure and without Ptv1 "
                             f"tags to salvage it", point)
            return True
        self.process_ptv1_node(node)
        return False

    def process_ptv1_node(self, node):
        tags = node.tags
        state = self.ctx.state
        on_network = self._on_network(node.id)
        highway = tags.get(t.HIGHWAY)
        railway = tags.get(t.RAILWAY)

        if highway in t.PTV1_HIGHWAY_VALUES:
            if highway == t.HIGHWAY_BUS_STOP:
                if not self.ctx.eligible_modes(tags, m.BUS):
                    logger.debug(f"DISCARD: bus_stop {node.id} has no activated modes")
                elif on_network:
                    state.unprocessed_stop_positions.add(node.id)
                else:
                    self.waiting_areas.create_zone(node, tags, TransferZoneType.POLE, m.BUS)
            else:
                self.waiting_areas.create_zone(node, tags, TransferZoneType.PLATFORM, m.BUS)

        elif railway in t.PTV1_RAILWAY_VALUES:
            if railway == t.RAILWAY_TRAM_STOP:
                if not self.ctx.settings.is_mode_activated(m.TRAM):
                    return
                if on_network:
                    state.unprocessed_stop_positions.add(node.id)
                else:
                    logger.info(f"DISCARD: railway=tram_stop {node.id} does not reside on tram tracks")
            elif railway == t.RAILWAY_PLATFORM:
                self.waiting_areas.create_zone(node, tags, TransferZoneType.PLATFORM, m.TRAIN)
            elif railway == t.RAILWAY_HALT:
                if on_network:
                    state.unprocessed_stop_positions.add(node.id)
                else:
                    self.waiting_areas.create_zone(node, tags, TransferZoneType.SMALL_STATION, m.TRAIN)
            elif railway == t.RAILWAY_STATION:
                state.unprocessed_stations.add((NODE, node.id))
            # platform edges and subway entrances carry nothing the zoning needs

        elif t.is_ferry_terminal(tags):
            if not self.ctx.settings.is_mode_activated(m.FERRY):
                return
            if not self._on_network(node.id) and not self.ctx.settings.connect_dangling_ferry_stops:
                self.ctx.discard(f"amenity=ferry_terminal {node.id} does not reside on a ferry route",
                                 Point(node.lon, node.lat))
                return
            state.unprocessed_ferry_terminals.add((NODE, node.id))

    def process_way(self, way, version):
        tags = way.tags
        state = self.ctx.state
        if self.ctx.eligibility.is_outer_role_way(way.id):
            # zone comes from the platform relation it outlines
            logger.debug(f"OSM way {way.id} is the outer way of platform relation "
                         f"{self.ctx.eligibility.outer_role_ways[way.id]}, skipped")
            return
        if version == t.PtVersion.VERSION_2:
            if t.is_ptv2_platform(tags):
                self.waiting_areas.create_zone(way, tags, TransferZoneType.PLATFORM,
                                               m.identify_ptv1_default_mode(tags))
            elif t.is_ptv2_station(tags):
                state.unprocessed_stations.add((WAY, way.id))
            else:
                logger.info(f"Encountered {tags.get(t.PUBLIC_TRANSPORT)} on OSM way {way.id}, "
                            f"not properly tagged, ignored")
            return

        if t.is_highway_platform(tags):
            self.waiting_areas.create_zone(way, tags, TransferZoneType.PLATFORM, m.BUS)
        elif tags.get(t.RAILWAY) == t.RAILWAY_PLATFORM:
            self.waiting_areas.create_zone(way, tags, TransferZoneType.PLATFORM, m.TRAIN)
        elif t.is_railway_station(tags):
            state.unprocessed_stations.add((WAY, way.id))
        elif t.is_ferry_terminal(tags):
            self.ctx.discard(f"amenity=ferry_terminal only supported on OSM nodes, not on way {way.id}")

    # ── Post-processing ──────────────────────────────────────────────

    def post_process(self):
        ctx = self.ctx
        state = ctx.state
        source = ctx.source

        for relation in source.relations():
            if t.is_stop_area_relation(relation.tags) and not self._skip(RELATION, relation.id):
                self._guarded(f"stop_area {relation.id} stop members",
                              self.stop_areas.process_stop_members, relation)

        for kind, osm_id in sorted(state.unprocessed_stations):
            entity = source.entity(kind, osm_id)
            if entity is not None:
                self._guarded(f"station {kind} {osm_id}", self.stations.process, entity)
        state.unprocessed_stations.clear()

        for kind, osm_id in sorted(state.unprocessed_ferry_terminals):
            node = source.node(osm_id)
            if kind == NODE and node is not None:
                self._guarded(f"ferry terminal {osm_id}", self.ferry_stops.process, node)
        state.unprocessed_ferry_terminals.clear()

        for osm_id in sorted(state.unprocessed_stop_positions):
            node = source.node(osm_id)
            if node is None:
                logger.error(f"OSM node {osm_id} representing a stop position not available")
                continue
            self._guarded(f"stop_position {osm_id}", self.process_stop_position, node)

        for zone in self.incomplete_zones.incomplete_zones():
            self._guarded(f"waiting area {zone.osm_kind} {zone.osm_id}", self.incomplete_zones.process, zone)

    def process_stop_position(self, node):
        """Stop position not referenced by any stop_area: connect it per mode to the zones it serves."""
        ctx = self.ctx
        ctx.state.stop_position_processed(node.id)
        tags = node.tags
        modes = ctx.eligible_modes(tags, m.identify_ptv1_default_mode(tags))
        point = Point(node.lon, node.lat)
        overridden = ctx.settings.is_overwrite_waiting_area_of_stop_position(node.id)

        for mode in m.sort_modes(modes):
            if m.is_water_mode(mode):
                self.ferry_stops.process(node)
                continue
            layer = ctx.network.layer_for_mode(mode)
            if layer is None or not layer.has_osm_node(node.id):
                logger.debug(f"DISCARD: stop_position {node.id} is not part of any parsed {mode} link")
                continue

            zones = self.stop_positions.find_zones(node, tags, {mode})
            if not zones:
                if not overridden:
                    ctx.discard(f"stop_position {node.id} has no valid pole, platform, station reference, nor "
                                f"close-by infrastructure that qualifies as such for {mode} ({t.describe(tags)})",
                                point)
                return
            for zone in zones:
                self.connectoid_builder.extract_connectoids_for_mode(point, True, zone, mode)


def run_zoning(source, settings=None) -> ZoningResult:
    """Build the reference network from ``source`` and run the zoning pipeline over it."""
    network = build_network(source, settings)
    ctx = ZoningContext(source, network, settings)
    return ZoningPipeline(ctx).run()
