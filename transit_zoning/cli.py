#!/usr/bin/env python3
"""
Transit Zoning - Derive transfer zones and connectoids from OSM public transport data

Downloads (or reads) OSM public transport infrastructure, builds the
mode-layered reference network, runs the zoning pipeline and writes the
resulting zones, groups and connectoids as GeoJSON.
"""

import argparse
import json
import logging

from transit_zoning.config import LOG_FILE, OSM_DATA_FILE, OUTPUT_GEOJSON, ZoningSettings, bbox_polygon, load_settings
from transit_zoning.export import write_geojson
from transit_zoning.osm_source import OsmDataSource, OsmDownloader
from transit_zoning.pipeline import run_zoning

logger = logging.getLogger(__name__)


def configure_logging(level=logging.INFO, log_file=LOG_FILE):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog='transit-zoning',
        description='Derive transfer zones and connectoids from OSM public transport data',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  transit-zoning --download --bbox "52.36,4.88,52.38,4.91"
  transit-zoning --input amsterdam.osm --output amsterdam_zoning.geojson
  transit-zoning --input london.osm --country GB --stats
  transit-zoning --input city.osm --settings overrides.json --keep-dangling
        """
    )

    parser.add_argument('--input', type=str, default=OSM_DATA_FILE,
                        help=f'OSM XML file to read (default: {OSM_DATA_FILE})')
    parser.add_argument('--download', action='store_true', help='Download OSM data via Overpass first')
    parser.add_argument('--bbox', type=str,
                        help='Bounding box: min_lat,min_lon,max_lat,max_lon (required for --download); '
                             'also bounds the zoning unless the settings define one')
    parser.add_argument('--country', type=str, help='Country code, decides the driving side (e.g. GB, NL)')
    parser.add_argument('--settings', type=str, help='JSON file with zoning settings and overrides')
    parser.add_argument('--output', type=str, default=OUTPUT_GEOJSON,
                        help=f'GeoJSON output file (default: {OUTPUT_GEOJSON})')
    parser.add_argument('--keep-dangling', action='store_true',
                        help='Keep zones without connectoids and empty groups')
    parser.add_argument('--stats', action='store_true', help='Display zoning statistics')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = load_settings(args.settings) if args.settings else ZoningSettings()
    except (IOError, ValueError) as e:
        logger.error(f"Unable to load settings: {e}")
        return 1
    if args.country:
        settings.country = args.country
    if args.keep_dangling:
        settings.remove_dangling_zones = False
        settings.remove_dangling_groups = False
    if args.bbox and settings.bounding_polygon is None:
        try:
            settings.bounding_polygon = bbox_polygon(args.bbox)
        except ValueError as e:
            logger.error(f"Invalid --bbox: {e}")
            return 1

    if args.download:
        if not args.bbox:
            logger.error("--bbox is required for --download")
            return 1
        downloader = OsmDownloader(data_file=args.input)
        try:
            if not downloader.download_osm_data(args.bbox):
                return 1
        except (IOError, ValueError):
            return 1

    try:
        source = OsmDataSource.from_file(args.input)
    except FileNotFoundError:
        logger.error(f"No OSM data at {args.input}; use --download or --input")
        return 1
    except ValueError:
        return 1

    result = run_zoning(source, settings)

    try:
        write_geojson(result, args.output)
    except IOError:
        return 1

    if args.stats:
        logger.info(f"Zoning Statistics: {json.dumps(result.summary(), indent=2)}")

    logger.info("Pipeline completed successfully")
    return 0


if __name__ == '__main__':
    exit(main())
