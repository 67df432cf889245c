"""Raw OpenStreetMap entity source.

Reads OSM XML (either ``out body geom;`` responses where ``<nd>`` elements
carry inline lat/lon, or ``out body; >;`` responses with standalone
``<node>`` elements) into typed entities, and downloads such XML from the
Overpass API.

Entities are replayed in ascending id order per kind, so every pass over
the source sees the same sequence regardless of file order.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from xml.etree import ElementTree as ET

import requests

from transit_zoning.config import (
    OSM_DATA_FILE,
    OVERPASS_MAX_RETRIES,
    OVERPASS_MIRRORS,
    OVERPASS_RETRY_DELAY,
    OVERPASS_TIMEOUT,
    parse_bbox,
)

logger = logging.getLogger(__name__)

NODE = "node"
WAY = "way"
RELATION = "relation"
ENTITY_KINDS = (NODE, WAY, RELATION)


@dataclass
class OsmNode:
    id: int
    lon: float
    lat: float
    tags: dict[str, str] = field(default_factory=dict)

    kind = NODE


@dataclass
class OsmWay:
    id: int
    node_ids: list[int]
    tags: dict[str, str] = field(default_factory=dict)

    kind = WAY

    def is_closed(self) -> bool:
        return len(self.node_ids) > 2 and self.node_ids[0] == self.node_ids[-1]


@dataclass
class OsmMember:
    kind: str
    ref: int
    role: str = ""


@dataclass
class OsmRelation:
    id: int
    members: list[OsmMember]
    tags: dict[str, str] = field(default_factory=dict)

    kind = RELATION


class OsmDataSource:
    """In-memory, re-playable store of parsed OSM entities."""

    def __init__(self):
        self._nodes: dict[int, OsmNode] = {}
        self._ways: dict[int, OsmWay] = {}
        self._relations: dict[int, OsmRelation] = {}

    # ── Parsing ──────────────────────────────────────────────────────

    @classmethod
    def from_file(cls, file_path: str) -> "OsmDataSource":
        if not os.path.exists(file_path):
            logger.error(f"File not found: {file_path}")
            raise FileNotFoundError(file_path)
        logger.info(f"Parsing OSM data from {file_path}")
        try:
            root = ET.parse(file_path).getroot()
        except ET.ParseError as e:
            logger.error(f"Error parsing XML: {e}")
            raise ValueError(f"Malformed OSM XML in {file_path}: {e}") from e
        source = cls()
        source._load(root)
        return source

    @classmethod
    def from_string(cls, xml_text: str) -> "OsmDataSource":
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            logger.error(f"Error parsing XML: {e}")
            raise ValueError(f"Malformed OSM XML: {e}") from e
        source = cls()
        source._load(root)
        return source

    def _load(self, root):
        for node in root.findall('node'):
            lat = node.get('lat')
            lon = node.get('lon')
            if lat is None or lon is None:
                continue
            node_id = int(node.get('id'))
            self._nodes[node_id] = OsmNode(node_id, float(lon), float(lat), _read_tags(node))

        for way in root.findall('way'):
            way_id = int(way.get('id'))
            node_ids = []
            for nd in way.findall('nd'):
                ref = int(nd.get('ref'))
                node_ids.append(ref)
                # inline geometry from 'out body geom;'
                lat = nd.get('lat')
                lon = nd.get('lon')
                if lat is not None and lon is not None and ref not in self._nodes:
                    self._nodes[ref] = OsmNode(ref, float(lon), float(lat))
            self._ways[way_id] = OsmWay(way_id, node_ids, _read_tags(way))

        for relation in root.findall('relation'):
            relation_id = int(relation.get('id'))
            members = [
                OsmMember(m.get('type'), int(m.get('ref')), m.get('role', '') or '')
                for m in relation.findall('member')
                if m.get('type') in ENTITY_KINDS
            ]
            self._relations[relation_id] = OsmRelation(relation_id, members, _read_tags(relation))

        logger.info(
            f"Parsed {len(self._nodes)} nodes, {len(self._ways)} ways, "
            f"{len(self._relations)} relations"
        )

    # ── Access ───────────────────────────────────────────────────────

    def nodes(self):
        return [self._nodes[i] for i in sorted(self._nodes)]

    def ways(self):
        return [self._ways[i] for i in sorted(self._ways)]

    def relations(self):
        return [self._relations[i] for i in sorted(self._relations)]

    def node(self, node_id: int) -> OsmNode | None:
        return self._nodes.get(node_id)

    def way(self, way_id: int) -> OsmWay | None:
        return self._ways.get(way_id)

    def relation(self, relation_id: int) -> OsmRelation | None:
        return self._relations.get(relation_id)

    def entity(self, kind: str, osm_id: int):
        if kind == NODE:
            return self.node(osm_id)
        if kind == WAY:
            return self.way(osm_id)
        if kind == RELATION:
            return self.relation(osm_id)
        return None

    def way_points(self, way: OsmWay) -> list[tuple[float, float]]:
        """(lon, lat) of the way's nodes that are present in the source."""
        return [(n.lon, n.lat) for n in (self._nodes.get(i) for i in way.node_ids) if n is not None]

    def __len__(self):
        return len(self._nodes) + len(self._ways) + len(self._relations)


def _read_tags(element) -> dict[str, str]:
    return {tag.get('k'): tag.get('v') for tag in element.findall('tag')}


class OsmDownloader:
    """Downloads public-transport OSM data from the Overpass API."""

    def __init__(self, mirrors=None, data_file=OSM_DATA_FILE):
        self.mirrors = list(mirrors or OVERPASS_MIRRORS)
        self.data_file = data_file
        self.osm_data = None
        self.max_retries = OVERPASS_MAX_RETRIES
        self.retry_delay = OVERPASS_RETRY_DELAY

    def parse_bbox(self, bbox_str):
        """South-west/north-east bbox of the extract, ValueError when malformed."""
        try:
            return parse_bbox(bbox_str)
        except ValueError as e:
            logger.error(f"Invalid bounding box for download: {e}")
            raise

    def build_overpass_query(self, bbox):
        """Build Overpass API query for PT infrastructure and the networks it sits on."""
        min_lat, min_lon, max_lat, max_lon = bbox
        b = f"{min_lat},{min_lon},{max_lat},{max_lon}"

        query = f"""
        [out:xml][timeout:{OVERPASS_TIMEOUT}];
        (
          node["public_transport"]({b});
          way["public_transport"]({b});
          relation["public_transport"]({b});
          node["highway"~"bus_stop|platform"]({b});
          way["highway"="platform"]({b});
          node["railway"~"tram_stop|halt|station|platform|stop"]({b});
          way["railway"~"platform|platform_edge|station"]({b});
          node["amenity"="ferry_terminal"]({b});
          way["amenity"="ferry_terminal"]({b});
          way["highway"]({b});
          way["railway"~"rail|tram|light_rail|subway|monorail|funicular|narrow_gauge"]({b});
          way["route"="ferry"]({b});
        );
        (._;>;);
        out body;
        """
        return query

    def download_osm_data(self, bbox_str):
        """Download OSM data with retry logic, falling back through mirrors on 5xx."""
        bbox = self.parse_bbox(bbox_str)
        query = self.build_overpass_query(bbox)

        logger.info(f"Starting OSM data download for bbox: {bbox}")

        for mirror in self.mirrors:
            for attempt in range(self.max_retries):
                try:
                    logger.info(f"Attempt {attempt + 1}/{self.max_retries} via {mirror}")
                    response = requests.post(
                        mirror,
                        data={'data': query},
                        timeout=OVERPASS_TIMEOUT + 30
                    )

                    if response.status_code == 200:
                        logger.info("OSM data downloaded successfully")
                        self.osm_data = response.text
                        self.save_osm_data()
                        return True
                    elif response.status_code == 429:
                        logger.warning("Rate limited by Overpass API, retrying...")
                        time.sleep(self.retry_delay * (attempt + 1))
                    elif response.status_code >= 500:
                        logger.warning(f"{mirror} returned {response.status_code}, trying next mirror")
                        break
                    else:
                        logger.error(f"Error downloading data: {response.status_code}")
                        return False

                except requests.exceptions.Timeout:
                    logger.warning(f"Request timeout on attempt {attempt + 1}, retrying...")
                    time.sleep(self.retry_delay)
                except requests.exceptions.RequestException as e:
                    logger.error(f"Network error: {e}")
                    if attempt < self.max_retries - 1:
                        time.sleep(self.retry_delay)

        logger.error("Failed to download OSM data after all retries")
        return False

    def save_osm_data(self):
        """Write the downloaded XML to ``data_file``, creating its directory if needed."""
        directory = os.path.dirname(self.data_file)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.data_file, 'w', encoding='utf-8') as f:
                f.write(self.osm_data)
        except IOError as e:
            logger.error(f"Unable to store OSM extract at {self.data_file}: {e}")
            raise
        logger.info(f"OSM extract of {len(self.osm_data) // 1024} KiB stored at {self.data_file}")
