"""Spatial eligibility of raw entities against an optional bounding polygon."""

import logging

from shapely.geometry import Point
from shapely.prepared import prep

from transit_zoning import tags as t
from transit_zoning.geo import distance_m
from transit_zoning.osm_source import NODE, RELATION, WAY

logger = logging.getLogger(__name__)


class EligibilityTracker:
    """Tracks which nodes, ways and relations fall (partially) inside the bounding polygon.

    Without a polygon every entity is eligible. Members of an eligible
    public-transport relation are eligible as well, so a stop area crossing
    the boundary keeps its outside members. The outer ways of polygon
    platform relations are recorded so their untagged geometry is kept.
    """

    def __init__(self, bounding_polygon=None):
        self.bounding_polygon = bounding_polygon
        self._prepared = prep(bounding_polygon) if bounding_polygon is not None else None
        self._nodes: set[int] = set()
        self._ways: set[int] = set()
        self._relations: set[int] = set()
        self.outer_role_ways: dict[int, int] = {}

    def track(self, source):
        """Scan the whole source once; must complete before any other phase."""
        for node in source.nodes():
            if self._prepared is None or self._prepared.covers(Point(node.lon, node.lat)):
                self._nodes.add(node.id)

        for way in source.ways():
            if self._prepared is None or any(n in self._nodes for n in way.node_ids):
                self._ways.add(way.id)

        for relation in source.relations():
            if self._prepared is None or any(self._member_eligible(mb) for mb in relation.members):
                self._relations.add(relation.id)

        for relation in source.relations():
            if relation.id not in self._relations:
                continue
            is_pt = t.PUBLIC_TRANSPORT in relation.tags
            platform_polygon = t.is_multipolygon_platform(relation.tags)
            for member in relation.members:
                if is_pt or platform_polygon:
                    self._pre_register_member(source, member)
                if platform_polygon and member.kind == WAY and member.role == t.ROLE_OUTER:
                    self.outer_role_ways.setdefault(member.ref, relation.id)

        logger.info(
            f"Eligible entities: {len(self._nodes)} nodes, {len(self._ways)} ways, "
            f"{len(self._relations)} relations ({len(self.outer_role_ways)} platform outer ways)"
        )

    def _member_eligible(self, member) -> bool:
        if member.kind == NODE:
            return member.ref in self._nodes
        if member.kind == WAY:
            return member.ref in self._ways
        return member.ref in self._relations

    def _pre_register_member(self, source, member):
        if member.kind == NODE and source.node(member.ref) is not None:
            self._nodes.add(member.ref)
        elif member.kind == WAY and source.way(member.ref) is not None:
            self._ways.add(member.ref)
            for n in source.way(member.ref).node_ids:
                if source.node(n) is not None:
                    self._nodes.add(n)

    # ── Queries ──────────────────────────────────────────────────────

    def is_eligible(self, kind: str, osm_id: int) -> bool:
        if kind == NODE:
            return osm_id in self._nodes
        if kind == WAY:
            return osm_id in self._ways
        if kind == RELATION:
            return osm_id in self._relations
        return False

    def is_outer_role_way(self, way_id: int) -> bool:
        return way_id in self.outer_role_ways

    def is_near_boundary(self, geom, buffer_m: float) -> bool:
        """True when ``geom`` lies within ``buffer_m`` metres of the bounding polygon edge."""
        if self.bounding_polygon is None or geom is None:
            return False
        return distance_m(geom, self.bounding_polygon.exterior) <= buffer_m
