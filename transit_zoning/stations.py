"""Stations not referenced by any stop_area.

A station either names the waiting areas around it, or, when none match,
becomes a stand-alone waiting area with its own stop locations on the
nearby tracks or roads.
"""

import logging

from shapely.geometry import LineString
from shapely.ops import nearest_points

from transit_zoning import modes as m
from transit_zoning import tags as t
from transit_zoning.config import MAX_STATION_PARALLEL_TRACKS
from transit_zoning.geo import distance_m, extend_line
from transit_zoning.osm_source import NODE
from transit_zoning.stop_areas import update_group_station_name
from transit_zoning.stop_positions import closest_zone, filter_mode_compatible
from transit_zoning.zoning import TransferZoneType

logger = logging.getLogger(__name__)

# Road stations attach to a single road
MAX_ROAD_STOP_LOCATIONS = 1


class StationHandler:
    def __init__(self, ctx, waiting_areas, connectoid_builder, ferry_stops=None):
        self.ctx = ctx
        self.waiting_areas = waiting_areas
        self.connectoid_builder = connectoid_builder
        self.ferry_stops = ferry_stops

    def process(self, entity):
        tags = entity.tags
        self.ctx.state.station_processed(entity.kind, entity.id)
        default_mode = m.identify_ptv1_default_mode(tags) or m.TRAIN
        modes = self.ctx.eligible_modes(tags, default_mode)
        if not modes:
            logger.debug(f"DISCARD: station {entity.kind} {entity.id} has no supported modes ({t.describe(tags)})")
            return

        if t.is_ferry_terminal(tags) and any(m.is_water_mode(mode) for mode in modes):
            if entity.kind != NODE:
                self.ctx.discard(f"stand-alone station {entity.kind} {entity.id} tagged as ferry terminal "
                                 f"is not an OSM node ({t.describe(tags)})")
            elif self.ferry_stops is not None:
                self.ferry_stops.process(entity)
            return

        geometry = self.waiting_areas.extract_geometry(entity)
        if geometry is None:
            logger.warning(f"DISCARD: no geometry available for station {entity.kind} {entity.id}")
            return

        matched = self.name_nearby_zones(entity, geometry, modes)
        if matched:
            logger.debug(f"Station {entity.kind} {entity.id} mapped to platform/pole(s) "
                         f"{sorted(z.osm_id for z in matched)}")
            return
        self.extract_stand_alone_station(entity, modes, default_mode)

    # ── Station naming ───────────────────────────────────────────────

    def name_nearby_zones(self, entity, geometry, modes) -> list:
        """Give nearby waiting areas the station name; returns the zones named."""
        nearby = self.ctx.zones.zones_within(geometry, self.ctx.settings.station_to_waiting_area_radius_m)
        if not nearby:
            return []
        name = t.extract_name(entity.tags)

        grouped = [z for z in nearby
                   if z.group_ids and z.modes and m.is_mode_compatible(z.modes, modes, allow_pseudo=False)]
        if grouped:
            closest = closest_zone(geometry, grouped)
            matched = []
            for group in self.ctx.zones.groups_of(closest):
                update_group_station_name(group, entity.tags)
                for zone in group.zones:
                    zone.add_station_name(name)
                    if zone not in matched:
                        matched.append(zone)
            return matched

        matched = filter_mode_compatible(nearby, modes, allow_pseudo=True)
        for zone in matched:
            zone.add_station_name(name)
        return matched

    # ── Stand-alone stations ─────────────────────────────────────────

    def extract_stand_alone_station(self, entity, modes, default_mode):
        settings = self.ctx.settings
        on_track = entity.kind == NODE and self.ctx.network.has_osm_node(entity.id)
        overridden = entity.kind == NODE and settings.is_overwrite_waiting_area_of_stop_position(entity.id)

        if on_track and not overridden:
            self.waiting_areas.create_zone_with_connectoids_at_node(
                entity, entity.tags, TransferZoneType.SMALL_STATION, default_mode)
            return

        if overridden:
            override = settings.get_overwritten_waiting_area(entity.id)
            zone = self.ctx.zones.get(*override)
            logger.debug(f"Mapped station {entity.id} to overwritten waiting area {override[0]} {override[1]}")
        else:
            zone = self.waiting_areas.create_zone(entity, entity.tags, TransferZoneType.SMALL_STATION, default_mode)
        if zone is None:
            logger.warning(f"DISCARD: unable to create transfer zone for station {entity.kind} {entity.id}")
            return
        zone.add_station_name(t.extract_name(entity.tags))

        # a station appointed as somebody's waiting area gets its stop locations from there
        if settings.is_waiting_area_of_stop_position_overwritten(entity.kind, entity.id):
            return
        self.extract_stand_alone_station_connectoids(entity, zone, modes)

    def search_parameters(self, entity, mode):
        """(search radius, maximum stop locations) for a stand-alone station, None when unsupported."""
        settings = self.ctx.settings
        if m.is_rail_mode(mode):
            return settings.station_to_waiting_area_radius_m, MAX_STATION_PARALLEL_TRACKS
        if m.is_road_mode(mode):
            return settings.stop_to_waiting_area_radius_m, MAX_ROAD_STOP_LOCATIONS
        logger.warning(f"DISCARD: water based stand-alone station {entity.kind} {entity.id} not supported, skipped")
        return None

    def extract_stand_alone_station_connectoids(self, entity, zone, modes):
        settings = self.ctx.settings
        for mode in m.sort_modes(modes):
            parameters = self.search_parameters(entity, mode)
            if parameters is None:
                continue
            radius, max_matches = parameters

            nominated_way = settings.get_nominated_osm_way(entity.kind, entity.id)
            if nominated_way is not None:
                link = self.connectoid_builder.nominated_link(zone, mode, nominated_way)
                if link is None:
                    logger.error(f"User nominated OSM way {nominated_way} not available for station {entity.id}")
                    continue
                links = [link]
            else:
                links = self.find_stop_location_links(zone, mode, radius, max_matches)

            if not links:
                self.ctx.discard(f"station {entity.kind} {entity.id} without eligible access links for {mode} "
                                 f"({t.describe(entity.tags)})", zone.geometry)
                continue
            for link in links:
                self.connectoid_builder.extract_connectoids_for_stand_alone_zone_by_link(
                    zone, link, mode, settings.station_to_waiting_area_radius_m)

    def find_stop_location_links(self, zone, mode, radius_m, max_matches) -> list:
        """Links to place the station's stop locations on, closest first."""
        candidates = self.connectoid_builder.find_mode_compatible_links(zone, mode, radius_m)
        if not candidates:
            return []
        ideal = self.connectoid_builder.most_appropriate_link(zone, mode, candidates)
        if ideal is None:
            return []
        if max_matches == 1:
            return [ideal]

        # virtual line from the station through the ideal track, long enough to cross parallel ones
        station_point, track_point = nearest_points(zone.geometry, ideal.geometry)
        if station_point.equals(track_point):
            return [ideal]
        virtual_line = extend_line(LineString([station_point, track_point]),
                                   self.ctx.settings.station_to_parallel_tracks_radius_m)

        radius = self.ctx.settings.station_to_waiting_area_radius_m
        parallel = [
            link for link in sorted(candidates, key=lambda l: (distance_m(zone.geometry, l.geometry), l.id))
            if link is not ideal and link.geometry.intersects(virtual_line)
            and distance_m(zone.geometry, link.geometry) < radius
        ]
        return ([ideal] + parallel)[:max_matches]
