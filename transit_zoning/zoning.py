"""Zoning model: transfer zones, their groups and directed connectoids.

``ZoneStore`` keeps the (kind, id) lookup and the spatial index of zones in
step; ``ConnectoidStore`` owns every connectoid index and applies the
segment mapping of a link split to them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from shapely.geometry import Point

from transit_zoning.exceptions import TopologyError, ZoningError
from transit_zoning.spatial import SpatialIndex

logger = logging.getLogger(__name__)


class TransferZoneType(Enum):
    NONE = "none"
    POLE = "pole"
    PLATFORM = "platform"
    SMALL_STATION = "small_station"


class TransferZone:
    """A waiting area. Geometry is fixed at creation."""

    def __init__(self, zone_id, osm_kind, osm_id, geometry, zone_type=TransferZoneType.NONE,
                 name=None, refs=None, modes=None, layer_index=None):
        self.id = zone_id
        self.osm_kind = osm_kind
        self.osm_id = osm_id
        self._geometry = geometry
        self.zone_type = zone_type
        self.name = name
        self.refs = list(refs or [])
        self.modes = set(modes or ())
        self.station_name = None
        self.layer_index = layer_index
        self.group_ids: set[int] = set()

    @property
    def geometry(self):
        return self._geometry

    @property
    def osm_ref(self) -> tuple[str, int]:
        return self.osm_kind, self.osm_id

    def is_point(self) -> bool:
        return isinstance(self._geometry, Point)

    def add_station_name(self, name: str | None):
        if not name:
            return
        if self.station_name is None:
            self.station_name = name
        elif name not in self.station_name.split(";"):
            self.station_name = f"{self.station_name};{name}"

    def __repr__(self):
        return f"TransferZone({self.id}, {self.osm_kind} {self.osm_id}, {self.zone_type.value}, name={self.name!r})"


class TransferZoneGroup:
    def __init__(self, group_id, osm_relation_id=None, name=None):
        self.id = group_id
        self.osm_relation_id = osm_relation_id
        self.name = name
        self.station_name = None
        self.zones: list[TransferZone] = []

    def add_zone(self, zone: TransferZone) -> bool:
        if zone in self.zones:
            return False
        self.zones.append(zone)
        zone.group_ids.add(self.id)
        return True

    def remove_zone(self, zone: TransferZone):
        if zone in self.zones:
            self.zones.remove(zone)
            zone.group_ids.discard(self.id)

    def is_empty(self) -> bool:
        return not self.zones

    def __repr__(self):
        return f"TransferZoneGroup({self.id}, relation={self.osm_relation_id}, name={self.name!r})"


@dataclass(eq=False)
class DirectedConnectoid:
    id: int
    layer: str
    access_segment: object
    zone: TransferZone
    modes: set[str] = field(default_factory=set)

    @property
    def access_node(self):
        return self.access_segment.downstream

    @property
    def key(self) -> tuple[int, int]:
        return self.access_segment.id, self.zone.id


class ZoneStore:
    """Transfer zones and groups with their lookup indexes."""

    def __init__(self):
        self._next_zone_id = 0
        self._next_group_id = 0
        self._zones: dict[int, TransferZone] = {}
        self._by_osm: dict[tuple[str, int], TransferZone] = {}
        self._index = SpatialIndex()
        self._groups: dict[int, TransferZoneGroup] = {}
        self._groups_by_relation: dict[int, TransferZoneGroup] = {}
        self._unsupported: set[tuple[str, int]] = set()

    # ── Zones ────────────────────────────────────────────────────────

    def create_zone(self, osm_kind, osm_id, geometry, zone_type=TransferZoneType.NONE,
                    name=None, refs=None, modes=None, layer_index=None) -> TransferZone:
        if (osm_kind, osm_id) in self._by_osm:
            raise ZoningError(f"Transfer zone for {osm_kind} {osm_id} already exists")
        if geometry is None or geometry.is_empty:
            raise ZoningError(f"Transfer zone for {osm_kind} {osm_id} has no geometry")
        zone = TransferZone(self._next_zone_id, osm_kind, osm_id, geometry, zone_type,
                            name, refs, modes, layer_index)
        self._next_zone_id += 1
        self._zones[zone.id] = zone
        self._by_osm[zone.osm_ref] = zone
        self._index.insert(zone.id, geometry)
        return zone

    def remove_zone(self, zone: TransferZone):
        for group_id in sorted(zone.group_ids):
            self._groups[group_id].remove_zone(zone)
        del self._zones[zone.id]
        del self._by_osm[zone.osm_ref]
        self._index.remove(zone.id)

    def get(self, osm_kind, osm_id) -> TransferZone | None:
        return self._by_osm.get((osm_kind, osm_id))

    def has(self, osm_kind, osm_id) -> bool:
        return (osm_kind, osm_id) in self._by_osm

    def by_id(self, zone_id) -> TransferZone | None:
        return self._zones.get(zone_id)

    def zones(self) -> list[TransferZone]:
        return [self._zones[i] for i in sorted(self._zones)]

    def zones_within(self, geom, radius_m: float) -> list[TransferZone]:
        return [self._zones[i] for i in self._index.within_distance(geom, radius_m)]

    def __len__(self):
        return len(self._zones)

    # ── Known-invalid references ─────────────────────────────────────

    def mark_unsupported(self, osm_kind, osm_id):
        self._unsupported.add((osm_kind, osm_id))

    def is_unsupported(self, osm_kind, osm_id) -> bool:
        return (osm_kind, osm_id) in self._unsupported

    # ── Groups ───────────────────────────────────────────────────────

    def create_group(self, osm_relation_id=None, name=None) -> TransferZoneGroup:
        group = TransferZoneGroup(self._next_group_id, osm_relation_id, name)
        self._next_group_id += 1
        self._groups[group.id] = group
        if osm_relation_id is not None:
            self._groups_by_relation[osm_relation_id] = group
        return group

    def remove_group(self, group: TransferZoneGroup):
        for zone in list(group.zones):
            group.remove_zone(zone)
        del self._groups[group.id]
        if group.osm_relation_id is not None:
            self._groups_by_relation.pop(group.osm_relation_id, None)

    def group_for_relation(self, relation_id) -> TransferZoneGroup | None:
        return self._groups_by_relation.get(relation_id)

    def groups(self) -> list[TransferZoneGroup]:
        return [self._groups[i] for i in sorted(self._groups)]

    def groups_of(self, zone: TransferZone) -> list[TransferZoneGroup]:
        return [self._groups[i] for i in sorted(zone.group_ids)]


class ConnectoidStore:
    """Directed connectoids indexed by (segment, zone), access location, zone and segment."""

    def __init__(self):
        self._next_id = 0
        self._connectoids: dict[int, DirectedConnectoid] = {}
        self._by_key: dict[tuple[int, int], DirectedConnectoid] = {}
        self._by_location: dict[tuple, list[DirectedConnectoid]] = {}
        self._by_zone: dict[int, list[DirectedConnectoid]] = {}
        self._by_segment: dict[int, list[DirectedConnectoid]] = {}

    def add_or_extend(self, layer: str, segment, zone: TransferZone, modes) -> DirectedConnectoid | None:
        """Create the connectoid for (segment, zone) or add ``modes`` to the existing one.

        Only modes the segment allows are registered; None when none remain.
        """
        allowed = set(modes) & set(segment.modes)
        if not allowed:
            return None
        connectoid = self._by_key.get((segment.id, zone.id))
        if connectoid is not None:
            connectoid.modes |= allowed
            return connectoid

        connectoid = DirectedConnectoid(self._next_id, layer, segment, zone, allowed)
        self._next_id += 1
        self._connectoids[connectoid.id] = connectoid
        self._by_key[connectoid.key] = connectoid
        self._by_location.setdefault((layer, segment.downstream.key), []).append(connectoid)
        self._by_zone.setdefault(zone.id, []).append(connectoid)
        self._by_segment.setdefault(segment.id, []).append(connectoid)
        return connectoid

    def get(self, segment, zone) -> DirectedConnectoid | None:
        return self._by_key.get((segment.id, zone.id))

    def at_location(self, layer: str, key) -> list[DirectedConnectoid]:
        return list(self._by_location.get((layer, key), ()))

    def has_at_location(self, layer: str, key) -> bool:
        return bool(self._by_location.get((layer, key)))

    def for_zone(self, zone: TransferZone) -> list[DirectedConnectoid]:
        return list(self._by_zone.get(zone.id, ()))

    def has_connectoids(self, zone: TransferZone) -> bool:
        return bool(self._by_zone.get(zone.id))

    def for_segment(self, segment) -> list[DirectedConnectoid]:
        return list(self._by_segment.get(segment.id, ()))

    def connectoids(self) -> list[DirectedConnectoid]:
        return [self._connectoids[i] for i in sorted(self._connectoids)]

    def __len__(self):
        return len(self._connectoids)

    def apply_split(self, result) -> int:
        """Re-anchor connectoids on the removed link's segments to the replacement segments.

        Each connectoid keeps its access node; it moves to the new segment in
        the same direction ending at that node. Returns the number rewired.
        """
        rewired = 0
        for old_segment in result.removed_link.segments():
            for connectoid in self._by_segment.pop(old_segment.id, []):
                new_segment = result.segment_mapping.get((old_segment.id, connectoid.access_node.key))
                if new_segment is None:
                    raise TopologyError(
                        f"No replacement for segment {old_segment.id} ending at "
                        f"{connectoid.access_node.key} after split of link {result.removed_link.id}"
                    )
                del self._by_key[connectoid.key]
                connectoid.access_segment = new_segment
                self._by_key[connectoid.key] = connectoid
                self._by_segment.setdefault(new_segment.id, []).append(connectoid)
                rewired += 1
        if rewired:
            logger.debug(f"Rewired {rewired} connectoid(s) after split of link {result.removed_link.id}")
        return rewired
