"""Tests for transit_zoning.osm_source"""

import os
import tempfile
from unittest.mock import MagicMock, patch

import pytest

from transit_zoning.osm_source import NODE, RELATION, WAY, OsmDataSource, OsmDownloader


# --- Sample XML fixtures -------------------------------------------------- #

# Elements deliberately out of id order
SAMPLE_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6">
  <node id="3" lat="52.0000" lon="4.0020"/>
  <node id="1" lat="52.0000" lon="4.0000"/>
  <node id="2" lat="52.0000" lon="4.0010">
    <tag k="public_transport" v="stop_position"/>
    <tag k="bus" v="yes"/>
  </node>
  <node id="10" lat="52.0001" lon="4.0010">
    <tag k="highway" v="bus_stop"/>
    <tag k="name" v="Centrum"/>
  </node>
  <way id="100">
    <nd ref="1"/>
    <nd ref="2"/>
    <nd ref="3"/>
    <tag k="highway" v="residential"/>
  </way>
  <relation id="500">
    <member type="node" ref="10" role="platform"/>
    <member type="node" ref="2" role="stop"/>
    <member type="area" ref="7" role=""/>
    <tag k="type" v="public_transport"/>
    <tag k="public_transport" v="stop_area"/>
  </relation>
</osm>
"""

# 'out body geom;' style: <nd> elements carry inline lat/lon attributes
SAMPLE_XML_INLINE_GEOM = """\
<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6">
  <way id="200">
    <nd ref="20" lat="52.0010" lon="4.0000"/>
    <nd ref="21" lat="52.0010" lon="4.0020"/>
    <tag k="railway" v="rail"/>
  </way>
</osm>
"""


# --- Helpers -------------------------------------------------------------- #

def _write_tmp_xml(content):
    """Write XML content to a temp file and return the path."""
    fd, path = tempfile.mkstemp(suffix=".osm")
    with os.fdopen(fd, "w") as f:
        f.write(content)
    return path


def _response(status_code, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


# --- Tests ---------------------------------------------------------------- #

class TestParseOsmXml:
    def setup_method(self):
        self.source = OsmDataSource.from_string(SAMPLE_XML)

    def test_entities_replayed_in_id_order(self):
        assert [n.id for n in self.source.nodes()] == [1, 2, 3, 10]

    def test_node_attributes(self):
        node = self.source.node(10)
        assert node.kind == NODE
        assert (node.lon, node.lat) == (4.0010, 52.0001)
        assert node.tags["name"] == "Centrum"

    def test_way_node_refs(self):
        way = self.source.way(100)
        assert way.kind == WAY
        assert way.node_ids == [1, 2, 3]
        assert not way.is_closed()

    def test_relation_members_skip_unknown_types(self):
        relation = self.source.relation(500)
        assert relation.kind == RELATION
        assert [(mb.kind, mb.ref, mb.role) for mb in relation.members] == [
            ("node", 10, "platform"),
            ("node", 2, "stop"),
        ]

    def test_entity_lookup_by_kind(self):
        assert self.source.entity("way", 100) is self.source.way(100)
        assert self.source.entity("node", 999) is None

    def test_way_points_are_lon_lat(self):
        points = self.source.way_points(self.source.way(100))
        assert points == [(4.0, 52.0), (4.001, 52.0), (4.002, 52.0)]

    def test_inline_geometry(self):
        source = OsmDataSource.from_string(SAMPLE_XML_INLINE_GEOM)
        assert source.node(20) is not None
        assert source.way_points(source.way(200)) == [(4.0, 52.001), (4.002, 52.001)]

    def test_malformed_xml(self):
        with pytest.raises(ValueError):
            OsmDataSource.from_string("<osm><node id='1'")


class TestFromFile:
    def setup_method(self):
        self.xml_path = _write_tmp_xml(SAMPLE_XML)

    def teardown_method(self):
        os.unlink(self.xml_path)

    def test_parses_file(self):
        source = OsmDataSource.from_file(self.xml_path)
        assert len(source) == 6

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            OsmDataSource.from_file("/nonexistent/transit.osm")


class TestOverpassQuery:
    def test_parse_bbox(self):
        assert OsmDownloader().parse_bbox("52.36,4.88,52.38,4.91") == (52.36, 4.88, 52.38, 4.91)

    def test_parse_bbox_wrong_count(self):
        with pytest.raises(ValueError):
            OsmDownloader().parse_bbox("52.36,4.88,52.38")

    def test_parse_bbox_corners_swapped(self):
        with pytest.raises(ValueError):
            OsmDownloader().parse_bbox("52.38,4.88,52.36,4.91")
        with pytest.raises(ValueError):
            OsmDownloader().parse_bbox("52.36,4.91,52.38,4.88")

    def test_query_covers_pt_and_networks(self):
        query = OsmDownloader().build_overpass_query((52.0, 4.0, 52.1, 4.1))
        assert "[out:xml]" in query
        assert 'node["public_transport"](52.0,4.0,52.1,4.1)' in query
        assert 'way["route"="ferry"]' in query
        assert "(._;>;);" in query


class TestDownloadOsmData:
    def setup_method(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.downloader = OsmDownloader(
            mirrors=["https://primary.example/api", "https://mirror.example/api"],
            data_file=os.path.join(self.tmp_dir, "osm_transit.xml"),
        )
        self.downloader.retry_delay = 0

    def teardown_method(self):
        if os.path.exists(self.downloader.data_file):
            os.remove(self.downloader.data_file)
        os.rmdir(self.tmp_dir)

    @patch("transit_zoning.osm_source.requests.post")
    def test_successful_download(self, mock_post):
        mock_post.return_value = _response(200, SAMPLE_XML)

        assert self.downloader.download_osm_data("52.0,4.0,52.1,4.1") is True
        with open(self.downloader.data_file) as f:
            assert f.read() == SAMPLE_XML

    @patch("transit_zoning.osm_source.time.sleep")
    @patch("transit_zoning.osm_source.requests.post")
    def test_rate_limited_then_success(self, mock_post, mock_sleep):
        mock_post.side_effect = [_response(429), _response(200, SAMPLE_XML)]

        assert self.downloader.download_osm_data("52.0,4.0,52.1,4.1") is True
        assert mock_post.call_count == 2

    @patch("transit_zoning.osm_source.requests.post")
    def test_server_error_falls_back_to_next_mirror(self, mock_post):
        mock_post.side_effect = [_response(504), _response(200, SAMPLE_XML)]

        assert self.downloader.download_osm_data("52.0,4.0,52.1,4.1") is True
        assert mock_post.call_args_list[1].args[0] == "https://mirror.example/api"

    @patch("transit_zoning.osm_source.requests.post")
    def test_all_mirrors_fail(self, mock_post):
        mock_post.return_value = _response(500)

        assert self.downloader.download_osm_data("52.0,4.0,52.1,4.1") is False
        assert mock_post.call_count == 2
        assert not os.path.exists(self.downloader.data_file)

    @patch("transit_zoning.osm_source.requests.post")
    def test_client_error_gives_up(self, mock_post):
        mock_post.return_value = _response(400)

        assert self.downloader.download_osm_data("52.0,4.0,52.1,4.1") is False
        assert mock_post.call_count == 1

    @patch("transit_zoning.osm_source.requests.post")
    def test_invalid_bbox_not_requested(self, mock_post):
        with pytest.raises(ValueError):
            self.downloader.download_osm_data("52.1,4.0,52.0,4.1")
        mock_post.assert_not_called()

    @patch("transit_zoning.osm_source.requests.post")
    def test_creates_missing_output_directory(self, mock_post):
        mock_post.return_value = _response(200, SAMPLE_XML)
        nested_dir = os.path.join(self.tmp_dir, "extracts")
        self.downloader.data_file = os.path.join(nested_dir, "osm_transit.xml")
        try:
            assert self.downloader.download_osm_data("52.0,4.0,52.1,4.1") is True
            assert os.path.getsize(self.downloader.data_file) > 0
        finally:
            if os.path.exists(self.downloader.data_file):
                os.remove(self.downloader.data_file)
            os.rmdir(nested_dir)
