"""flatcache: persistent, file-backed two-tier object cache."""

from flatcache.cache.engine import CacheEngine
from flatcache.config.schema import CacheConfig

__all__ = ["CacheEngine", "CacheConfig"]
