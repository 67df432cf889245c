"""Waiting-area extraction: raw PT entities → transfer zones.

Connectoids are normally left for later phases since the stop position
serving a waiting area is usually not known yet. Only waiting areas that
sit on the network themselves get connectoids straight away.
"""

import logging

from shapely.geometry import LineString, Point, Polygon

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.connectoids import ConnectoidBuilder
from transit_zoning.osm_source import NODE, RELATION, WAY
from transit_zoning.zoning import TransferZoneType

logger = logging.getLogger(__name__)

UNSUPPORTED = object()


class WaitingAreaExtractor:
    def __init__(self, ctx, connectoid_builder: ConnectoidBuilder | None = None):
        self.ctx = ctx
        self.connectoid_builder = connectoid_builder or ConnectoidBuilder(ctx)

    # ── Geometry ─────────────────────────────────────────────────────

    def extract_geometry(self, entity):
        """Point for nodes, Polygon for closed ways, LineString otherwise.

        Ways truncated by the bounding area keep whatever points are
        available; None when no point is available at all.
        """
        if entity.kind == NODE:
            return Point(entity.lon, entity.lat)
        if entity.kind == WAY:
            points = self.ctx.source.way_points(entity)
            if not points:
                return None
            if len(points) == 1:
                return Point(points[0])
            complete = len(points) == len(entity.node_ids)
            if complete and entity.is_closed() and len(points) >= 4:
                return Polygon(points)
            return LineString(points)
        if entity.kind == RELATION:
            outer = self.first_outer_way(entity)
            return self.extract_geometry(outer) if outer is not None else None
        return None

    def first_outer_way(self, relation):
        for member in relation.members:
            if member.kind == WAY and member.role == t.ROLE_OUTER:
                way = self.ctx.source.way(member.ref)
                if way is not None:
                    return way
        return None

    # ── Modes ────────────────────────────────────────────────────────

    def extract_modes(self, kind, osm_id, tags, default_mode=None):
        """Eligible modes of a waiting area.

        Returns an empty set when none are tagged, or ``UNSUPPORTED`` when
        modes are tagged but none of them is supported/activated.
        """
        overwritten = self.ctx.settings.get_overwritten_waiting_area_modes(kind, osm_id)
        found = set(overwritten) if overwritten is not None else m.collect_modes(tags, default_mode)
        if not found:
            return set()
        eligible = {mode for mode in found
                    if mode in m.SUPPORTED_MODES and self.ctx.settings.is_mode_activated(mode)}
        return eligible if eligible else UNSUPPORTED

    # ── Zones ────────────────────────────────────────────────────────

    def create_zone(self, entity, tags=None, zone_type=TransferZoneType.PLATFORM, default_mode=None,
                    kind=None, osm_id=None):
        """Create the transfer zone for ``entity``; None when discarded.

        ``kind``/``osm_id`` override the zone identity, used for polygon
        relations whose zone is keyed by their outer way.
        """
        tags = entity.tags if tags is None else tags
        kind = kind or entity.kind
        osm_id = entity.id if osm_id is None else osm_id

        existing = self.ctx.zones.get(kind, osm_id)
        if existing is not None:
            return existing

        zone_modes = self.extract_modes(kind, osm_id, tags, default_mode)
        if zone_modes is UNSUPPORTED:
            self.ctx.zones.mark_unsupported(kind, osm_id)
            logger.debug(f"DISCARD: {kind} {osm_id} ({t.describe(tags)}) has no supported modes")
            return None

        geometry = self.extract_geometry(entity)
        if geometry is None:
            logger.warning(f"DISCARD: no geometry available for waiting area {kind} {osm_id}, all its nodes are missing")
            return None

        if not zone_modes:
            self.ctx.salvaged(f"waiting area {kind} {osm_id} ({t.describe(tags)}) has no mode information, "
                              f"kept without modes")

        zone = self.ctx.zones.create_zone(
            kind, osm_id, geometry, zone_type,
            name=t.extract_name(tags),
            refs=t.extract_refs(tags),
            modes=zone_modes,
            layer_index=t.extract_layer(tags),
        )
        if t.is_station(tags):
            zone.add_station_name(zone.name)
        logger.debug(f"Created {zone}")
        return zone

    def create_zone_with_connectoids_at_node(self, node, tags=None, zone_type=TransferZoneType.POLE, default_mode=None):
        """Zone for a node lying on the network, connected to every incoming direction."""
        zone = self.create_zone(node, tags, zone_type, default_mode)
        if zone is None:
            return None
        connected = False
        for mode in m.sort_modes(zone.modes):
            if self.connectoid_builder.create_connectoids_on_top_of_zone(zone, mode, node.id):
                connected = True
        if not connected:
            logger.debug(f"Zone {zone.osm_kind} {zone.osm_id} on the network received no connectoids")
        return zone

    def create_platform_for_multipolygon(self, relation):
        """Zone for a polygon platform relation, keyed by its first outer way."""
        outer = self.first_outer_way(relation)
        if outer is None:
            self.ctx.discard(f"platform relation {relation.id} has no available outer way")
            return None
        return self.create_zone(relation, relation.tags, TransferZoneType.PLATFORM,
                                m.identify_ptv1_default_mode(relation.tags), kind=WAY, osm_id=outer.id)
