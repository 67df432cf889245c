# config.py: transit zoning pipeline configuration
# Module-level defaults; per-run values live on ZoningSettings.

import json
import logging
from dataclasses import dataclass, field

from shapely.geometry import Polygon, box

logger = logging.getLogger(__name__)

# ── Search radii (metres) ────────────────────────────────────────────
# Max distance between a stop position and the waiting area it serves
STOP_TO_WAITING_AREA_RADIUS_M = 25.0

# Max distance between a stand-alone station and nearby platforms/poles
STATION_TO_WAITING_AREA_RADIUS_M = 35.0

# Max distance to look for parallel tracks beside a stand-alone station
STATION_TO_PARALLEL_TRACKS_RADIUS_M = 35.0

# Max distance between a dangling ferry stop and a ferry route (~100m)
FERRY_STOP_TO_ROUTE_RADIUS_M = 100.0

# Links whose closest point lies within this buffer of the closest link are
# considered equally close when picking an access link for a waiting area
CLOSEST_EDGE_BUFFER_M = 8.0

# Discard warnings for entities this close to the bounding polygon edge are
# downgraded, since truncation there is expected
BOUNDARY_WARNING_BUFFER_M = 50.0

# Max number of parallel rail tracks a stand-alone station attaches to
MAX_STATION_PARALLEL_TRACKS = 2

# ── Driving side ─────────────────────────────────────────────────────
DEFAULT_COUNTRY = "GLOBAL"

# ISO 3166 alpha-2 codes (and common names) of left-hand-drive countries
LEFT_HAND_DRIVE_COUNTRIES = {
    "AU", "BD", "BN", "BT", "BW", "CY", "FJ", "GB", "GY", "HK", "ID", "IE",
    "IN", "JM", "JP", "KE", "LK", "LS", "MO", "MT", "MU", "MV", "MW", "MY",
    "MZ", "NA", "NP", "NZ", "PG", "PK", "SB", "SC", "SG", "SR", "SZ", "TH",
    "TT", "TZ", "UG", "ZA", "ZM", "ZW",
    "AUSTRALIA", "INDIA", "IRELAND", "JAPAN", "NEW ZEALAND", "SOUTH AFRICA",
    "UNITED KINGDOM",
}

# ── Network capacities ───────────────────────────────────────────────
# Per-lane capacity (pcu/h) by highway type, used to rank candidate access
# links when a waiting area has several within reach
HIGHWAY_CAPACITY_PER_LANE = {
    "motorway": 2000, "motorway_link": 1500,
    "trunk": 1800, "trunk_link": 1400,
    "primary": 1500, "primary_link": 1200,
    "secondary": 1200, "secondary_link": 1000,
    "tertiary": 1000, "tertiary_link": 800,
    "unclassified": 600, "residential": 600, "living_street": 300,
    "service": 300, "busway": 1000, "bus_guideway": 1000, "road": 600,
}

# Default lane count per direction when the way carries no lanes tag
DEFAULT_LANES_PER_DIRECTION = 1

# Capacity assigned to rail and ferry links (not used for ranking)
DEFAULT_TRACK_CAPACITY = 1000

# ── Overpass ─────────────────────────────────────────────────────────
OVERPASS_TIMEOUT = 180
OVERPASS_MAX_RETRIES = 3
OVERPASS_RETRY_DELAY = 5

# Mirrors tried in order when one returns a 5xx
OVERPASS_MIRRORS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
]

# ── Cache / output files ─────────────────────────────────────────────
OSM_DATA_FILE = "osm_transit.xml"
OUTPUT_GEOJSON = "transit_zoning.geojson"
LOG_FILE = "transit_zoning.log"


def is_left_hand_drive_country(country: str | None) -> bool:
    if not country:
        return False
    return country.strip().upper() in LEFT_HAND_DRIVE_COUNTRIES


def parse_bbox(bbox) -> tuple[float, float, float, float]:
    """Parse ``"min_lat,min_lon,max_lat,max_lon"`` (or a 4-sequence) into floats.

    Raises ValueError unless the box is a valid south-west/north-east pair.
    """
    parts = bbox.split(",") if isinstance(bbox, str) else list(bbox)
    if len(parts) != 4:
        raise ValueError(f"Bbox must have 4 values: min_lat,min_lon,max_lat,max_lon, got {bbox!r}")
    min_lat, min_lon, max_lat, max_lon = (float(p) for p in parts)
    if not (-90 <= min_lat < max_lat <= 90):
        raise ValueError(f"Bbox latitudes must satisfy -90 <= min_lat < max_lat <= 90, got {bbox!r}")
    if not (-180 <= min_lon < max_lon <= 180):
        raise ValueError(f"Bbox longitudes must satisfy -180 <= min_lon < max_lon <= 180, got {bbox!r}")
    return min_lat, min_lon, max_lat, max_lon


def bbox_polygon(bbox) -> Polygon:
    """Bounding polygon in lon/lat order for a lat/lon bbox."""
    min_lat, min_lon, max_lat, max_lon = parse_bbox(bbox)
    return box(min_lon, min_lat, max_lon, max_lat)


@dataclass
class ZoningSettings:
    """Per-run configuration of the zoning pipeline.

    Entity references are ``(kind, id)`` pairs where kind is one of
    ``"node"``, ``"way"`` or ``"relation"``.
    """

    country: str = DEFAULT_COUNTRY
    bounding_polygon: Polygon | None = None
    parser_active: bool = True

    stop_to_waiting_area_radius_m: float = STOP_TO_WAITING_AREA_RADIUS_M
    station_to_waiting_area_radius_m: float = STATION_TO_WAITING_AREA_RADIUS_M
    station_to_parallel_tracks_radius_m: float = STATION_TO_PARALLEL_TRACKS_RADIUS_M
    ferry_stop_to_route_radius_m: float = FERRY_STOP_TO_ROUTE_RADIUS_M
    closest_edge_buffer_m: float = CLOSEST_EDGE_BUFFER_M
    boundary_warning_buffer_m: float = BOUNDARY_WARNING_BUFFER_M

    remove_dangling_zones: bool = True
    remove_dangling_groups: bool = True
    connect_dangling_ferry_stops: bool = True

    # None means every supported mode
    activated_modes: set[str] | None = None

    excluded: set[tuple[str, int]] = field(default_factory=set)
    # stop position node id -> (kind, id) of the waiting area it serves
    waiting_area_overrides: dict[int, tuple[str, int]] = field(default_factory=dict)
    # (kind, id) of waiting area -> OSM way id to connect it to
    nominated_ways: dict[tuple[str, int], int] = field(default_factory=dict)
    # (kind, id) of waiting area -> modes replacing its tagged modes
    mode_overrides: dict[tuple[str, int], list[str]] = field(default_factory=dict)
    suppressed_stop_area_logging: set[int] = field(default_factory=set)

    # ── Exclusions ───────────────────────────────────────────────────

    def exclude(self, kind: str, osm_id: int):
        self.excluded.add((kind, osm_id))

    def is_excluded(self, kind: str, osm_id: int) -> bool:
        return (kind, osm_id) in self.excluded

    # ── Overrides ────────────────────────────────────────────────────

    def overwrite_waiting_area_of_stop_position(self, stop_id: int, kind: str, osm_id: int):
        self.waiting_area_overrides[stop_id] = (kind, osm_id)

    def is_overwrite_waiting_area_of_stop_position(self, stop_id: int) -> bool:
        return stop_id in self.waiting_area_overrides

    def get_overwritten_waiting_area(self, stop_id: int) -> tuple[str, int] | None:
        return self.waiting_area_overrides.get(stop_id)

    def is_waiting_area_of_stop_position_overwritten(self, kind: str, osm_id: int) -> bool:
        """True when some stop position is explicitly mapped onto this waiting area."""
        return (kind, osm_id) in self.waiting_area_overrides.values()

    def nominate_osm_way_for_waiting_area(self, kind: str, osm_id: int, way_id: int):
        self.nominated_ways[(kind, osm_id)] = way_id

    def get_nominated_osm_way(self, kind: str, osm_id: int) -> int | None:
        return self.nominated_ways.get((kind, osm_id))

    def overwrite_waiting_area_modes(self, kind: str, osm_id: int, modes):
        self.mode_overrides[(kind, osm_id)] = list(modes)

    def get_overwritten_waiting_area_modes(self, kind: str, osm_id: int) -> list[str] | None:
        return self.mode_overrides.get((kind, osm_id))

    def suppress_stop_area_logging(self, relation_id: int):
        self.suppressed_stop_area_logging.add(relation_id)

    def is_stop_area_logging_suppressed(self, relation_id: int) -> bool:
        return relation_id in self.suppressed_stop_area_logging

    # ── Derived ──────────────────────────────────────────────────────

    def is_left_hand_drive(self) -> bool:
        return is_left_hand_drive_country(self.country)

    def is_mode_activated(self, mode: str) -> bool:
        return self.activated_modes is None or mode in self.activated_modes

    @classmethod
    def from_dict(cls, data: dict) -> "ZoningSettings":
        """Build settings from a JSON-style dict.

        Recognised keys mirror the attribute names; ``bbox`` is accepted as
        ``[min_lat, min_lon, max_lat, max_lon]`` and becomes the bounding polygon.
        Overrides use ``"node:123"`` style references.
        """
        settings = cls()
        for key in ("country", "parser_active",
                    "stop_to_waiting_area_radius_m", "station_to_waiting_area_radius_m",
                    "station_to_parallel_tracks_radius_m", "ferry_stop_to_route_radius_m",
                    "closest_edge_buffer_m", "boundary_warning_buffer_m",
                    "remove_dangling_zones", "remove_dangling_groups",
                    "connect_dangling_ferry_stops"):
            if key in data:
                setattr(settings, key, data[key])

        if "bbox" in data:
            settings.bounding_polygon = bbox_polygon(data["bbox"])
        if "activated_modes" in data:
            settings.activated_modes = set(data["activated_modes"])
        for ref in data.get("excluded", []):
            settings.exclude(*parse_entity_ref(ref))
        for stop_id, ref in data.get("waiting_area_overrides", {}).items():
            settings.overwrite_waiting_area_of_stop_position(int(stop_id), *parse_entity_ref(ref))
        for ref, way_id in data.get("nominated_ways", {}).items():
            settings.nominate_osm_way_for_waiting_area(*parse_entity_ref(ref), int(way_id))
        for ref, modes in data.get("mode_overrides", {}).items():
            settings.overwrite_waiting_area_modes(*parse_entity_ref(ref), modes)
        for relation_id in data.get("suppressed_stop_area_logging", []):
            settings.suppress_stop_area_logging(int(relation_id))
        return settings


def parse_entity_ref(ref: str) -> tuple[str, int]:
    """Parse ``"way:42"`` into ``("way", 42)``."""
    kind, _, osm_id = ref.partition(":")
    kind = kind.strip().lower()
    if kind not in ("node", "way", "relation") or not osm_id:
        raise ValueError(f"Invalid entity reference '{ref}', expected <node|way|relation>:<id>")
    return kind, int(osm_id)


def load_settings(path: str) -> ZoningSettings:
    """Load ZoningSettings from a JSON file."""
    try:
        with open(path) as f:
            data = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        logger.error(f"Error reading settings file {path}: {e}")
        raise
    logger.info(f"Loaded zoning settings from {path}")
    return ZoningSettings.from_dict(data)
