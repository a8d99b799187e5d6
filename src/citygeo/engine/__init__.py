from .locks import ReadWriteLock
from .query_engine import GeoReferenceStore

__all__ = ["ReadWriteLock", "GeoReferenceStore"]
