"""Key → geometry spatial index backed by a shapely STRtree.

STRtree is immutable, so the tree is rebuilt lazily on the first query
after any insert or removal.
"""

from shapely.strtree import STRtree

from transit_zoning.geo import distance_m, search_envelope


class SpatialIndex:
    def __init__(self):
        self._geoms: dict = {}
        self._tree = None
        self._keys: list = []
        self._dirty = False

    def insert(self, key, geom):
        self._geoms[key] = geom
        self._dirty = True

    def remove(self, key):
        if self._geoms.pop(key, None) is not None:
            self._dirty = True

    def _ensure_tree(self):
        if not self._dirty and self._tree is not None:
            return
        self._keys = sorted(self._geoms)
        self._tree = STRtree([self._geoms[k] for k in self._keys]) if self._keys else None
        self._dirty = False

    def query_envelope(self, envelope) -> list:
        """Keys whose bounding boxes intersect ``envelope``, sorted."""
        self._ensure_tree()
        if self._tree is None:
            return []
        return sorted(self._keys[i] for i in self._tree.query(envelope))

    def within_distance(self, geom, radius_m: float) -> list:
        """Keys whose geometry lies within ``radius_m`` metres of ``geom``, sorted."""
        return [
            key for key in self.query_envelope(search_envelope(geom, radius_m))
            if distance_m(geom, self._geoms[key]) <= radius_m
        ]
