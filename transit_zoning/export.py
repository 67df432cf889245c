"""GeoJSON export of a zoning result."""

import json
import logging
from datetime import datetime

from shapely.geometry import mapping

from transit_zoning import modes as m

logger = logging.getLogger(__name__)


def zone_feature(zone, zones) -> dict:
    return {
        'type': 'Feature',
        'geometry': mapping(zone.geometry),
        'properties': {
            'feature': 'transfer_zone',
            'id': zone.id,
            'osm_type': zone.osm_kind,
            'osm_id': zone.osm_id,
            'name': zone.name,
            'refs': list(zone.refs),
            'modes': m.sort_modes(zone.modes),
            'zone_type': zone.zone_type.value,
            'station': zone.station_name,
            'groups': [group.id for group in zones.groups_of(zone)],
        }
    }


def connectoid_feature(connectoid) -> dict:
    segment = connectoid.access_segment
    return {
        'type': 'Feature',
        'geometry': mapping(connectoid.access_node.point),
        'properties': {
            'feature': 'connectoid',
            'id': connectoid.id,
            'layer': connectoid.layer,
            'zone': connectoid.zone.id,
            'segment': segment.id,
            'direction': 'ab' if segment.is_ab else 'ba',
            'osm_way_id': segment.link.osm_way_id,
            'modes': m.sort_modes(connectoid.modes),
        }
    }


def to_geojson(result) -> dict:
    """FeatureCollection of transfer zones and connectoids, groups listed alongside."""
    features = [zone_feature(zone, result.zones) for zone in result.zones.zones()]
    features += [connectoid_feature(c) for c in result.connectoids.connectoids()]
    groups = [
        {
            'id': group.id,
            'osm_relation_id': group.osm_relation_id,
            'name': group.name,
            'station': group.station_name,
            'zones': [zone.id for zone in group.zones],
        }
        for group in result.zones.groups()
    ]
    return {
        'type': 'FeatureCollection',
        'timestamp': datetime.now().isoformat(),
        'features': features,
        'groups': groups,
    }


def write_geojson(result, output_file) -> None:
    data = to_geojson(result)
    try:
        with open(output_file, 'w') as f:
            json.dump(data, f, indent=2)
    except IOError as e:
        logger.error(f"Error saving zoning GeoJSON: {e}")
        raise
    logger.info(f"Zoning GeoJSON with {len(data['features'])} features saved to {output_file}")
