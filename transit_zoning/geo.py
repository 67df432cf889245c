"""Metric helpers on lon/lat geometries.

Geometries are shapely objects in (lon, lat) order. Distances are
great-circle metres; local projections use an equirectangular scaling
around the point of interest, which is accurate at the few-hundred-metre
scale the zoning searches operate on.
"""

import math

from shapely.geometry import LineString, Point, box
from shapely.ops import nearest_points

EARTH_RADIUS_M = 6371000.0
METRES_PER_DEGREE_LAT = 111320.0

# Decimal places used to key locations; ~1cm at the equator
LOCATION_PRECISION = 7


def haversine_m(lon1, lat1, lon2, lat2):
    """Return the great-circle distance in metres between two points."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(geom_a, geom_b) -> float:
    """Closest distance in metres between two geometries."""
    pa, pb = nearest_points(geom_a, geom_b)
    return haversine_m(pa.x, pa.y, pb.x, pb.y)


def location_key(coord) -> tuple[float, float]:
    """Hashable key for a (lon, lat) location."""
    return round(coord[0], LOCATION_PRECISION), round(coord[1], LOCATION_PRECISION)


def search_envelope(geom, radius_m: float):
    """Lon/lat box enclosing ``geom`` grown by ``radius_m`` metres on every side."""
    min_x, min_y, max_x, max_y = geom.bounds
    lat = (min_y + max_y) / 2
    dlat = radius_m / METRES_PER_DEGREE_LAT
    dlon = radius_m / (METRES_PER_DEGREE_LAT * max(math.cos(math.radians(lat)), 1e-6))
    return box(min_x - dlon, min_y - dlat, max_x + dlon, max_y + dlat)


def _scale(lat: float) -> float:
    return math.cos(math.radians(lat))


def project_onto_segment(
    px: float, py: float,
    ax: float, ay: float,
    bx: float, by: float,
) -> tuple[float, float, float, float]:
    """Return (proj_x, proj_y, t, dist_m), the nearest point on segment AB to P."""
    k = _scale(py)
    dx, dy = (bx - ax) * k, by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0:
        return ax, ay, 0.0, haversine_m(px, py, ax, ay)
    t = (((px - ax) * k) * dx + (py - ay) * dy) / seg_len_sq
    t = max(0.0, min(1.0, t))
    qx, qy = ax + t * (bx - ax), ay + t * (by - ay)
    return qx, qy, t, haversine_m(px, py, qx, qy)


def nearest_on_line(coords, point: Point) -> tuple[int, float, tuple[float, float], float]:
    """Nearest location on a polyline.

    Returns (segment_index, t, (lon, lat), dist_m) where segment_index is the
    index of the sub-segment's first coordinate.
    """
    best = None
    for si in range(len(coords) - 1):
        ax, ay = coords[si]
        bx, by = coords[si + 1]
        qx, qy, t, d = project_onto_segment(point.x, point.y, ax, ay, bx, by)
        if best is None or d < best[3]:
            best = (si, t, (qx, qy), d)
    return best


def cross_side(ax, ay, bx, by, px, py) -> float:
    """Positive when P lies left of the directed segment A→B, negative when right."""
    k = _scale(py)
    return ((bx - ax) * k) * (py - ay) - (by - ay) * ((px - ax) * k)


def is_left_of_line(coords, point: Point) -> bool | None:
    """Whether ``point`` lies left of the polyline in its coordinate direction.

    Uses the sub-segment nearest to the point; None when the point lies on it.
    """
    if len(coords) < 2:
        return None
    si, _, _, _ = nearest_on_line(coords, point)
    ax, ay = coords[si]
    bx, by = coords[si + 1]
    side = cross_side(ax, ay, bx, by, point.x, point.y)
    if abs(side) < 1e-14:
        return None
    return side > 0


def representative_point(geom) -> Point:
    """Point used to judge on which side of a link a zone lies."""
    if isinstance(geom, Point):
        return geom
    return geom.centroid


def extend_line(line: LineString, length_m: float) -> LineString:
    """Extend both ends of a straight two-point line by ``length_m`` metres."""
    (ax, ay), (bx, by) = line.coords[0], line.coords[-1]
    k = _scale((ay + by) / 2)
    dx, dy = (bx - ax) * k, by - ay
    norm = math.hypot(dx, dy)
    if norm == 0:
        return line
    ux, uy = dx / norm, dy / norm
    step = length_m / METRES_PER_DEGREE_LAT
    return LineString([
        (ax - ux * step / k, ay - uy * step),
        (bx + ux * step / k, by + uy * step),
    ])
