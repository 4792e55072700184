"""doccache: Persistent TTL cache for fetched documentation."""

__version__ = "0.1.0"

from doccache.cache import CacheConfig, CacheManager

__all__ = ["CacheManager", "CacheConfig", "__version__"]
