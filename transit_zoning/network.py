"""Reference network: per-mode-category layers of nodes, links and directed segments.

Links are polylines between two graph nodes; every intermediate coordinate
is an *internal location* that can be promoted to a node by splitting the
link. A split never notifies anyone: it returns a ``SplitResult`` whose
``segment_mapping`` the caller applies to whatever it anchored on the
removed link's segments.
"""

import logging
from dataclasses import dataclass, field

from shapely.geometry import LineString, Point

from transit_zoning.exceptions import TopologyError
from transit_zoning.geo import location_key, nearest_on_line
from transit_zoning.modes import CATEGORY_BY_MODE
from transit_zoning.spatial import SpatialIndex

logger = logging.getLogger(__name__)


class _IdTokens:
    """Sequential id generator shared by all layers of one network."""

    def __init__(self):
        self._next = {}

    def next(self, kind: str) -> int:
        value = self._next.get(kind, 0)
        self._next[kind] = value + 1
        return value


@dataclass(eq=False)
class Node:
    id: int
    location: tuple[float, float]
    osm_node_id: int | None = None
    link_ids: set[int] = field(default_factory=set)

    @property
    def key(self):
        return location_key(self.location)

    @property
    def point(self) -> Point:
        return Point(self.location)


@dataclass(eq=False)
class LinkSegment:
    id: int
    link: "Link"
    upstream: Node
    downstream: Node
    modes: frozenset
    capacity: float

    @property
    def is_ab(self) -> bool:
        return self.upstream is self.link.node_a

    def allows(self, mode: str) -> bool:
        return mode in self.modes


@dataclass(eq=False)
class Link:
    id: int
    osm_way_id: int
    coords: list[tuple[float, float]]
    osm_node_ids: list[int | None]
    node_a: Node
    node_b: Node
    layer_index: int = 0
    way_type: str | None = None
    segment_ab: LinkSegment | None = None
    segment_ba: LinkSegment | None = None

    @property
    def geometry(self) -> LineString:
        return LineString(self.coords)

    def segments(self) -> list[LinkSegment]:
        return [s for s in (self.segment_ab, self.segment_ba) if s is not None]

    def modes(self) -> set[str]:
        return {m for s in self.segments() for m in s.modes}

    def capacity(self) -> float:
        return max((s.capacity for s in self.segments()), default=0.0)

    def internal_keys(self) -> list:
        return [location_key(c) for c in self.coords[1:-1]]


@dataclass
class SplitResult:
    node: Node
    removed_link: Link
    new_links: tuple[Link, Link]
    # (removed segment id, downstream location key) -> replacement segment
    segment_mapping: dict[tuple[int, tuple[float, float]], LinkSegment]


class NetworkLayer:
    """One infrastructure layer (road, rail or water) with its indexes."""

    def __init__(self, category: str, modes, id_tokens: _IdTokens | None = None):
        self.category = category
        self.modes = set(modes)
        self._ids = id_tokens or _IdTokens()
        self.nodes: dict[int, Node] = {}
        self.links: dict[int, Link] = {}
        self.segments: dict[int, LinkSegment] = {}
        self._nodes_by_key: dict = {}
        self._internal_links_by_key: dict[tuple, set[int]] = {}
        self._keys_by_osm_node: dict[int, tuple] = {}
        self.link_index = SpatialIndex()
        self.links_split = 0

    def supports_mode(self, mode: str) -> bool:
        return mode in self.modes

    # ── Construction ─────────────────────────────────────────────────

    def get_or_create_node(self, location, osm_node_id: int | None = None) -> Node:
        key = location_key(location)
        node = self._nodes_by_key.get(key)
        if node is None:
            node = Node(self._ids.next("node"), tuple(location), osm_node_id)
            self.nodes[node.id] = node
            self._nodes_by_key[key] = node
        if osm_node_id is not None:
            if node.osm_node_id is None:
                node.osm_node_id = osm_node_id
            self._keys_by_osm_node[osm_node_id] = key
        return node

    def add_link(self, osm_way_id, coords, osm_node_ids, layer_index=0, way_type=None) -> Link:
        if len(coords) < 2:
            raise TopologyError(f"Link for OSM way {osm_way_id} needs at least two coordinates")
        node_a = self.get_or_create_node(coords[0], osm_node_ids[0])
        node_b = self.get_or_create_node(coords[-1], osm_node_ids[-1])
        link = Link(self._ids.next("link"), osm_way_id, list(coords), list(osm_node_ids),
                    node_a, node_b, layer_index, way_type)
        self._register_link(link)
        return link

    def add_segment(self, link: Link, ab: bool, modes, capacity: float) -> LinkSegment:
        upstream, downstream = (link.node_a, link.node_b) if ab else (link.node_b, link.node_a)
        segment = LinkSegment(self._ids.next("segment"), link, upstream, downstream, frozenset(modes), capacity)
        if ab:
            link.segment_ab = segment
        else:
            link.segment_ba = segment
        self.segments[segment.id] = segment
        return segment

    def _register_link(self, link: Link):
        self.links[link.id] = link
        link.node_a.link_ids.add(link.id)
        link.node_b.link_ids.add(link.id)
        for i in range(1, len(link.coords) - 1):
            key = location_key(link.coords[i])
            self._internal_links_by_key.setdefault(key, set()).add(link.id)
            osm_id = link.osm_node_ids[i]
            if osm_id is not None and osm_id not in self._keys_by_osm_node:
                self._keys_by_osm_node[osm_id] = key
        self.link_index.insert(link.id, link.geometry)

    def _unregister_link(self, link: Link):
        del self.links[link.id]
        link.node_a.link_ids.discard(link.id)
        link.node_b.link_ids.discard(link.id)
        for key in link.internal_keys():
            ids = self._internal_links_by_key.get(key)
            if ids is not None:
                ids.discard(link.id)
                if not ids:
                    del self._internal_links_by_key[key]
        for segment in link.segments():
            self.segments.pop(segment.id, None)
        self.link_index.remove(link.id)

    # ── Lookup ───────────────────────────────────────────────────────

    def node_at(self, key) -> Node | None:
        return self._nodes_by_key.get(key)

    def links_with_internal_location(self, key) -> list[Link]:
        return [self.links[i] for i in sorted(self._internal_links_by_key.get(key, ()))]

    def has_location(self, key) -> bool:
        return key in self._nodes_by_key or key in self._internal_links_by_key

    def location_of_osm_node(self, osm_node_id: int):
        """Location key of an OSM node present in this layer, else None."""
        return self._keys_by_osm_node.get(osm_node_id)

    def has_osm_node(self, osm_node_id: int) -> bool:
        return osm_node_id in self._keys_by_osm_node

    def links_at(self, key) -> list[Link]:
        """Links with ``key`` as an end node or internal location."""
        ids = set(self._internal_links_by_key.get(key, ()))
        node = self._nodes_by_key.get(key)
        if node is not None:
            ids.update(node.link_ids)
        return [self.links[i] for i in sorted(ids)]

    def links_near(self, geom, radius_m: float) -> list[Link]:
        return [self.links[i] for i in self.link_index.within_distance(geom, radius_m)]

    def segments_entering(self, node: Node) -> list[LinkSegment]:
        entering = []
        for link_id in sorted(node.link_ids):
            for segment in self.links[link_id].segments():
                if segment.downstream is node:
                    entering.append(segment)
        return entering

    # ── Mutation ─────────────────────────────────────────────────────

    def split_link(self, link: Link, key) -> SplitResult:
        """Promote internal location ``key`` of ``link`` to a node.

        The link is replaced by two fresh links; every segment of the old link
        maps to the new segment in the same direction that ends at the same
        downstream location.
        """
        index = next(
            (i for i in range(1, len(link.coords) - 1) if location_key(link.coords[i]) == key),
            None,
        )
        if index is None:
            raise TopologyError(f"Location {key} is not internal to link {link.id} (OSM way {link.osm_way_id})")

        node = self.get_or_create_node(link.coords[index], link.osm_node_ids[index])
        old_segments = link.segments()
        self._unregister_link(link)

        first = Link(self._ids.next("link"), link.osm_way_id, link.coords[:index + 1],
                     link.osm_node_ids[:index + 1], link.node_a, node, link.layer_index, link.way_type)
        second = Link(self._ids.next("link"), link.osm_way_id, link.coords[index:],
                      link.osm_node_ids[index:], node, link.node_b, link.layer_index, link.way_type)
        self._register_link(first)
        self._register_link(second)

        mapping = {}
        for old in old_segments:
            ab = old.is_ab
            for new_link in (first, second):
                new = self.add_segment(new_link, ab, old.modes, old.capacity)
                mapping[(old.id, new.downstream.key)] = new

        self.links_split += 1
        logger.debug(f"Split link {link.id} (OSM way {link.osm_way_id}) at {key} into {first.id} and {second.id}")
        return SplitResult(node, link, (first, second), mapping)

    def inject_location(self, link: Link, point: Point):
        """Insert the projection of ``point`` into the link geometry as an internal location.

        Returns the location key; existing coordinates are reused.
        """
        si, _, (qx, qy), _ = nearest_on_line(link.coords, point)
        key = location_key((qx, qy))
        for coord in link.coords:
            if location_key(coord) == key:
                return key
        link.coords.insert(si + 1, (qx, qy))
        link.osm_node_ids.insert(si + 1, None)
        self._internal_links_by_key.setdefault(key, set()).add(link.id)
        self.link_index.insert(link.id, link.geometry)
        return key

    def add_link_between(self, osm_way_id, location_from, osm_node_from, node_to: Node, modes, capacity) -> Link:
        """Two-way link from a (possibly new) node at ``location_from`` to an existing node."""
        link = self.add_link(osm_way_id, [tuple(location_from), node_to.location], [osm_node_from, node_to.osm_node_id])
        self.add_segment(link, True, modes, capacity)
        self.add_segment(link, False, modes, capacity)
        return link


class Network:
    """All infrastructure layers; each supported mode maps to at most one layer."""

    def __init__(self):
        self._ids = _IdTokens()
        self.layers: dict[str, NetworkLayer] = {}

    def create_layer(self, category: str, modes) -> NetworkLayer:
        layer = NetworkLayer(category, modes, self._ids)
        self.layers[category] = layer
        return layer

    def layer_for_mode(self, mode: str) -> NetworkLayer | None:
        layer = self.layers.get(CATEGORY_BY_MODE.get(mode))
        if layer is not None and layer.supports_mode(mode):
            return layer
        return None

    def supports_mode(self, mode: str) -> bool:
        return self.layer_for_mode(mode) is not None

    def layers_with_osm_node(self, osm_node_id: int) -> list[NetworkLayer]:
        return [layer for _, layer in sorted(self.layers.items()) if layer.has_osm_node(osm_node_id)]

    def has_osm_node(self, osm_node_id: int) -> bool:
        return bool(self.layers_with_osm_node(osm_node_id))

    def summary(self) -> dict:
        return {
            category: {
                "nodes": len(layer.nodes),
                "links": len(layer.links),
                "segments": len(layer.segments),
                "links_split": layer.links_split,
            }
            for category, layer in sorted(self.layers.items())
        }
