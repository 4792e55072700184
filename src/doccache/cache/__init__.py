"""Local on-disk caching for the documentation fetcher.

This module stores JSON payloads as one file per key with TTL-based expiry,
a total size budget and a statistics sidecar that survives restarts.

Key components:
- CacheManager: Main cache interface
- CacheConfig: Configuration management
- CacheStats: Statistics sidecar
- validation: Key sanitization, expiry predicate and entry parsing
"""

from doccache.cache.config import CacheConfig
from doccache.cache.manager import (
    CacheCleanupError,
    CacheClearError,
    CacheClosedError,
    CacheConfigError,
    CacheDeleteError,
    CacheEntryTooLargeError,
    CacheError,
    CacheInfoError,
    CacheInitError,
    CacheManager,
    CacheSetError,
    DirectoryInfo,
)
from doccache.cache.stats import CacheStats, CacheStatsDict

__all__ = [
    "CacheManager",
    "CacheConfig",
    "CacheStats",
    "CacheStatsDict",
    "DirectoryInfo",
    "CacheError",
    "CacheConfigError",
    "CacheClosedError",
    "CacheInitError",
    "CacheSetError",
    "CacheEntryTooLargeError",
    "CacheDeleteError",
    "CacheClearError",
    "CacheCleanupError",
    "CacheInfoError",
]
