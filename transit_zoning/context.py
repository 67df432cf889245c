"""Shared state of one zoning run, passed explicitly to every component."""

import logging
from collections import Counter
from dataclasses import dataclass, field

from transit_zoning import modes as m
from transit_zoning.config import ZoningSettings
from transit_zoning.eligibility import EligibilityTracker
from transit_zoning.zoning import ConnectoidStore, ZoneStore

logger = logging.getLogger(__name__)


@dataclass
class ProcessingState:
    """Entities deferred from the main pass to post-processing."""

    unprocessed_stations: set[tuple[str, int]] = field(default_factory=set)
    unprocessed_stop_positions: set[int] = field(default_factory=set)
    ignored_stop_positions: set[int] = field(default_factory=set)
    unprocessed_ferry_terminals: set[tuple[str, int]] = field(default_factory=set)
    stats: Counter = field(default_factory=Counter)

    def station_processed(self, kind: str, osm_id: int):
        self.unprocessed_stations.discard((kind, osm_id))

    def stop_position_processed(self, osm_id: int):
        self.unprocessed_stop_positions.discard(osm_id)

    def ferry_terminal_processed(self, kind: str, osm_id: int):
        self.unprocessed_ferry_terminals.discard((kind, osm_id))


class ZoningContext:
    """Everything a run reads and writes: source, network, zoning stores and settings."""

    def __init__(self, source, network, settings: ZoningSettings | None = None,
                 eligibility: EligibilityTracker | None = None):
        self.source = source
        self.network = network
        self.settings = settings or ZoningSettings()
        self.eligibility = eligibility or EligibilityTracker(self.settings.bounding_polygon)
        self.zones = ZoneStore()
        self.connectoids = ConnectoidStore()
        self.state = ProcessingState()

    def is_left_hand_drive(self) -> bool:
        return self.settings.is_left_hand_drive()

    def discard(self, message: str, geom=None):
        """Log a DISCARD warning, downgraded near the bounding polygon edge."""
        self.state.stats["discarded"] += 1
        if geom is not None and self.eligibility.is_near_boundary(geom, self.settings.boundary_warning_buffer_m):
            logger.debug(f"DISCARD: {message} (near bounding boundary)")
        else:
            logger.warning(f"DISCARD: {message}")

    def salvaged(self, message: str):
        self.state.stats["salvaged"] += 1
        logger.info(f"SALVAGED: {message}")

    def eligible_modes(self, tags: dict, default_mode: str | None = None) -> set[str]:
        """Supported, activated modes of a PT entity with a network layer to serve them."""
        return {mode for mode in m.collect_modes(tags, default_mode)
                if self.settings.is_mode_activated(mode) and self.network.supports_mode(mode)}
