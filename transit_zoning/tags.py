"""OSM public-transport tag vocabulary and the entity classifier.

Two competing schemes describe the same infrastructure: the older point
based scheme (``highway=bus_stop``, ``railway=tram_stop``, ...), referred to
here as Ptv1, and the role/relation based scheme built on the
``public_transport`` key, referred to as Ptv2. An entity carrying both is
classified as Ptv2.
"""

from enum import Enum

# ── Keys ─────────────────────────────────────────────────────────────
PUBLIC_TRANSPORT = "public_transport"
HIGHWAY = "highway"
RAILWAY = "railway"
AMENITY = "amenity"
NAME = "name"
LAYER = "layer"
TYPE = "type"

# Platform reference keys in order of priority
REFERENCE_KEYS = ("ref", "loc_ref", "local_ref")
REFERENCE_SEPARATOR = ";"

# ── Ptv2 values ──────────────────────────────────────────────────────
PTV2_PLATFORM = "platform"
PTV2_STOP_POSITION = "stop_position"
PTV2_STATION = "station"
PTV2_STOP_AREA = "stop_area"
PTV2_VALUES = {PTV2_PLATFORM, PTV2_STOP_POSITION, PTV2_STATION, PTV2_STOP_AREA}

# ── Ptv1 values ──────────────────────────────────────────────────────
HIGHWAY_BUS_STOP = "bus_stop"
HIGHWAY_PLATFORM = "platform"
PTV1_HIGHWAY_VALUES = {HIGHWAY_BUS_STOP, HIGHWAY_PLATFORM}

RAILWAY_TRAM_STOP = "tram_stop"
RAILWAY_HALT = "halt"
RAILWAY_STATION = "station"
RAILWAY_PLATFORM = "platform"
RAILWAY_PLATFORM_EDGE = "platform_edge"
RAILWAY_SUBWAY_ENTRANCE = "subway_entrance"
RAILWAY_STOP = "stop"
PTV1_RAILWAY_VALUES = {
    RAILWAY_TRAM_STOP, RAILWAY_HALT, RAILWAY_STATION, RAILWAY_PLATFORM,
    RAILWAY_PLATFORM_EDGE, RAILWAY_SUBWAY_ENTRANCE,
}

AMENITY_FERRY_TERMINAL = "ferry_terminal"

# Ptv1 values a Ptv2 stop position may also carry, meaning the stop doubles
# as its own waiting area
PTV1_STOPS_ON_STOP_POSITION = {
    RAILWAY_TRAM_STOP, HIGHWAY_BUS_STOP, RAILWAY_HALT, RAILWAY_STATION, AMENITY_FERRY_TERMINAL,
}

# ── Relations ────────────────────────────────────────────────────────
RELATION_MULTIPOLYGON = "multipolygon"
ROLE_PLATFORM = "platform"
ROLE_STOP = "stop"
ROLE_OUTER = "outer"


class PtVersion(Enum):
    NONE = 0
    VERSION_1 = 1
    VERSION_2 = 2


def identify_pt_version(tags: dict, parser_active: bool = True) -> PtVersion:
    """Classify tags as Ptv2, Ptv1 or neither; Ptv2 wins when both match."""
    if not parser_active or not tags:
        return PtVersion.NONE
    if tags.get(PUBLIC_TRANSPORT) in PTV2_VALUES:
        return PtVersion.VERSION_2
    if is_ptv1(tags):
        return PtVersion.VERSION_1
    return PtVersion.NONE


def is_ptv1(tags: dict) -> bool:
    return (
        tags.get(HIGHWAY) in PTV1_HIGHWAY_VALUES
        or tags.get(RAILWAY) in PTV1_RAILWAY_VALUES
        or tags.get(AMENITY) == AMENITY_FERRY_TERMINAL
    )


# ── Ptv2 predicates ──────────────────────────────────────────────────

def is_ptv2_platform(tags) -> bool:
    return tags.get(PUBLIC_TRANSPORT) == PTV2_PLATFORM


def is_ptv2_stop_position(tags) -> bool:
    return tags.get(PUBLIC_TRANSPORT) == PTV2_STOP_POSITION


def is_ptv2_station(tags) -> bool:
    return tags.get(PUBLIC_TRANSPORT) == PTV2_STATION


def is_ptv2_stop_area(tags) -> bool:
    return tags.get(PUBLIC_TRANSPORT) == PTV2_STOP_AREA


# ── Ptv1 predicates ──────────────────────────────────────────────────

def is_bus_stop(tags) -> bool:
    return tags.get(HIGHWAY) == HIGHWAY_BUS_STOP


def is_highway_platform(tags) -> bool:
    return tags.get(HIGHWAY) == HIGHWAY_PLATFORM


def is_tram_stop(tags) -> bool:
    return tags.get(RAILWAY) == RAILWAY_TRAM_STOP


def is_halt(tags) -> bool:
    return tags.get(RAILWAY) == RAILWAY_HALT


def is_railway_station(tags) -> bool:
    return tags.get(RAILWAY) == RAILWAY_STATION


def is_railway_platform(tags) -> bool:
    return tags.get(RAILWAY) in (RAILWAY_PLATFORM, RAILWAY_PLATFORM_EDGE)


def is_ferry_terminal(tags) -> bool:
    return tags.get(AMENITY) == AMENITY_FERRY_TERMINAL


def is_station(tags) -> bool:
    """Station in either scheme."""
    return is_ptv2_station(tags) or is_railway_station(tags) or is_halt(tags)


def is_stop_position_also_ptv1_stop(tags) -> bool:
    return (
        tags.get(RAILWAY) in PTV1_STOPS_ON_STOP_POSITION
        or tags.get(HIGHWAY) in PTV1_STOPS_ON_STOP_POSITION
        or tags.get(AMENITY) in PTV1_STOPS_ON_STOP_POSITION
    )


def is_multipolygon_platform(tags) -> bool:
    """Relation modelling a platform as a (multi)polygon via its outer way(s)."""
    if tags.get(TYPE) not in (RELATION_MULTIPOLYGON, PUBLIC_TRANSPORT):
        return False
    return (
        is_ptv2_platform(tags)
        or is_highway_platform(tags)
        or is_railway_platform(tags)
    )


def is_stop_area_relation(tags) -> bool:
    return tags.get(TYPE) == PUBLIC_TRANSPORT and is_ptv2_stop_area(tags)


# ── Attribute extraction ─────────────────────────────────────────────

def extract_refs(tags) -> list[str]:
    """Platform reference codes, highest priority key first, de-duplicated."""
    refs = []
    for key in REFERENCE_KEYS:
        value = tags.get(key)
        if not value:
            continue
        for part in value.split(REFERENCE_SEPARATOR):
            part = part.strip()
            if part and part not in refs:
                refs.append(part)
    return refs


def extract_name(tags) -> str | None:
    name = tags.get(NAME)
    return name.strip() if name and name.strip() else None


def extract_layer(tags) -> int | None:
    """Explicit vertical layer index, None when untagged or unparseable."""
    value = tags.get(LAYER)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def describe(tags) -> str:
    """Short human-readable summary of the PT tags, for log messages."""
    parts = [f"{key}={tags[key]}" for key in (PUBLIC_TRANSPORT, HIGHWAY, RAILWAY, AMENITY) if key in tags]
    return ", ".join(parts) if parts else "untagged"
