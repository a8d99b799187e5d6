from .rtree import DEFAULT_FANOUT, MAX_FANOUT, MIN_FANOUT, SpatialIndex

__all__ = ["DEFAULT_FANOUT", "MAX_FANOUT", "MIN_FANOUT", "SpatialIndex"]
