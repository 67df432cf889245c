"""Errors raised while building the zoning.

Every ZoningError aborts only the entity being processed; the pipeline
logs it and moves on.
"""


class ZoningError(Exception):
    """Base class for per-entity zoning failures."""


class TopologyError(ZoningError):
    """A network edit would break the graph structure, e.g. an ambiguous split location."""