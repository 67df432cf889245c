"""Builds the reference network layers from an OSM source.

Ways are split into links at their endpoints and at every node shared
with another way of the same layer; remaining nodes become internal
locations of the link.
"""

import logging
from collections import defaultdict

from transit_zoning import modes as m
from transit_zoning.config import (
    DEFAULT_LANES_PER_DIRECTION,
    DEFAULT_TRACK_CAPACITY,
    HIGHWAY_CAPACITY_PER_LANE,
)
from transit_zoning.network import Network
from transit_zoning.tags import extract_layer

logger = logging.getLogger(__name__)

# ── Way type → modes ─────────────────────────────────────────────────
ROAD_PT_MODES = m.MODES_BY_CATEGORY[m.ROAD]

RAILWAY_MODES = {
    "rail": (m.TRAIN,),
    "narrow_gauge": (m.TRAIN,),
    "tram": (m.TRAM,),
    "light_rail": (m.LIGHT_RAIL,),
    "subway": (m.SUBWAY,),
    "monorail": (m.MONORAIL,),
    "funicular": (m.FUNICULAR,),
}

ONEWAY_FORWARD = ("yes", "1", "true")
ONEWAY_REVERSE = "-1"
NO_ACCESS = ("no", "private")


def _road_modes(tags: dict) -> set[str]:
    allowed = set(ROAD_PT_MODES)
    if tags.get("access") in NO_ACCESS:
        allowed = m.collect_modes(tags, candidates=ROAD_PT_MODES)
    for key in ("psv",) + ROAD_PT_MODES:
        if tags.get(key) in NO_ACCESS:
            allowed -= set(m.ROAD_MODE_CATEGORIES.get(key, (key,)))
    return allowed


def way_modes(tags: dict) -> tuple[str | None, set[str], str | None]:
    """Return (category, modes, way type) a way carries, category None when not infrastructure."""
    highway = tags.get("highway")
    if highway in HIGHWAY_CAPACITY_PER_LANE:
        return m.ROAD, _road_modes(tags), highway
    railway = tags.get("railway")
    if railway in RAILWAY_MODES:
        return m.RAIL, set(RAILWAY_MODES[railway]), railway
    if tags.get("route") == "ferry":
        return m.WATER, {m.FERRY}, "ferry"
    return None, set(), None


def _directions(tags: dict, category: str) -> tuple[bool, bool]:
    """(forward allowed, backward allowed) for all modes of the way."""
    oneway = tags.get("oneway", "").lower()
    if oneway in ONEWAY_FORWARD or (category == m.ROAD and tags.get("junction") == "roundabout"):
        return True, False
    if oneway == ONEWAY_REVERSE:
        return False, True
    return True, True


def _contraflow_modes(tags: dict) -> set[str]:
    """Modes exempt from a one-way restriction, e.g. oneway:bus=no."""
    exempt = set()
    if tags.get("oneway:psv") == "no":
        exempt.update(ROAD_PT_MODES)
    if tags.get("oneway:bus") == "no":
        exempt.add(m.BUS)
    return exempt


def _capacity(tags: dict, way_type: str, category: str, two_way: bool) -> float:
    if category != m.ROAD:
        return float(DEFAULT_TRACK_CAPACITY)
    try:
        lanes = int(tags.get("lanes", ""))
        lanes = max(1, lanes // 2) if two_way else max(1, lanes)
    except ValueError:
        lanes = DEFAULT_LANES_PER_DIRECTION
    return float(HIGHWAY_CAPACITY_PER_LANE[way_type] * lanes)


def build_network(source, settings=None) -> Network:
    """Build road, rail and water layers for the activated modes present in ``source``."""
    network = Network()

    # ── Stage 1: classify ways ───────────────────────────────────────
    eligible = []
    node_usage: dict[tuple[str, int], int] = defaultdict(int)
    for way in source.ways():
        category, way_mode_set, way_type = way_modes(way.tags)
        if category is None:
            continue
        if settings is not None:
            if settings.is_excluded("way", way.id):
                continue
            way_mode_set = {mode for mode in way_mode_set if settings.is_mode_activated(mode)}
        if not way_mode_set:
            continue
        eligible.append((way, category, way_mode_set, way_type))
        for n in set(way.node_ids):
            node_usage[(category, n)] += 1

    # ── Stage 2: create layers and links ─────────────────────────────
    for category, layer_modes in m.MODES_BY_CATEGORY.items():
        active = [mode for mode in layer_modes if settings is None or settings.is_mode_activated(mode)]
        if active and any(c == category for _, c, _, _ in eligible):
            network.create_layer(category, active)

    for way, category, way_mode_set, way_type in eligible:
        layer = network.layers[category]
        coords, valid_nodes = [], []
        for n in way.node_ids:
            node = source.node(n)
            if node is not None:
                coords.append((node.lon, node.lat))
                valid_nodes.append(n)
        if len(coords) < 2:
            logger.debug(f"Way {way.id} has fewer than two available nodes, skipped")
            continue

        forward, backward = _directions(way.tags, category)
        contraflow = _contraflow_modes(way.tags) & way_mode_set if category == m.ROAD else set()
        capacity = _capacity(way.tags, way_type, category, forward and backward)
        layer_index = extract_layer(way.tags) or 0

        # Split points: endpoints + any node shared with another way
        split_idx = sorted({0, len(valid_nodes) - 1} | {
            i for i, n in enumerate(valid_nodes)
            if 0 < i < len(valid_nodes) - 1 and node_usage[(category, n)] > 1
        })

        for j in range(len(split_idx) - 1):
            s, e = split_idx[j], split_idx[j + 1]
            if valid_nodes[s] == valid_nodes[e] and e - s < 2:
                continue
            link = layer.add_link(way.id, coords[s:e + 1], valid_nodes[s:e + 1], layer_index, way_type)
            if forward:
                layer.add_segment(link, True, way_mode_set, capacity)
            elif contraflow:
                layer.add_segment(link, True, contraflow, capacity)
            if backward:
                layer.add_segment(link, False, way_mode_set, capacity)
            elif contraflow:
                layer.add_segment(link, False, contraflow, capacity)

    for category, counts in network.summary().items():
        logger.info(f"Built {category} layer: {counts['nodes']} nodes, {counts['links']} links, "
                    f"{counts['segments']} segments")
    return network
