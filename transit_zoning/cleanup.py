"""Removal of zones without connectoids and groups without zones."""

import logging

logger = logging.getLogger(__name__)


def remove_dangling_zones(zones, connectoids) -> int:
    """Remove transfer zones that never received a connectoid; returns the number removed."""
    removed = 0
    for zone in zones.zones():
        if connectoids.has_connectoids(zone):
            continue
        logger.debug(f"Removing dangling transfer zone {zone.osm_kind} {zone.osm_id}")
        zones.remove_zone(zone)
        removed += 1
    return removed


def remove_dangling_groups(zones) -> int:
    removed = 0
    for group in zones.groups():
        if not group.is_empty():
            continue
        logger.debug(f"Removing empty transfer zone group {group.id} (stop_area {group.osm_relation_id})")
        zones.remove_group(group)
        removed += 1
    return removed


def cleanup(ctx) -> dict:
    """Apply the dangling-entity removals enabled in the settings.

    Zones go first so groups emptied by their removal are removed too.
    Running it again removes nothing.
    """
    report = {"zones_removed": 0, "groups_removed": 0}
    if ctx.settings.remove_dangling_zones:
        report["zones_removed"] = remove_dangling_zones(ctx.zones, ctx.connectoids)
    if ctx.settings.remove_dangling_groups:
        report["groups_removed"] = remove_dangling_groups(ctx.zones)
    logger.info(f"Cleanup removed {report['zones_removed']} dangling transfer zones and "
                f"{report['groups_removed']} dangling groups")
    return report
