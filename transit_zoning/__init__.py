"""Transfer zones and connectoids derived from OSM public transport data."""

from transit_zoning.config import ZoningSettings, load_settings
from transit_zoning.osm_source import OsmDataSource, OsmDownloader
from transit_zoning.pipeline import ZoningResult, run_zoning

__version__ = "0.1.0"

__all__ = [
    "OsmDataSource",
    "OsmDownloader",
    "ZoningResult",
    "ZoningSettings",
    "load_settings",
    "run_zoning",
]
