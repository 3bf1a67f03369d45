"""Cache subsystem: two-tier (memory + one-file-per-entry disk) object cache."""

from flatcache.cache.disk import DiskStore
from flatcache.cache.engine import DEFAULT_GROUP, CacheEngine
from flatcache.cache.memory import MemoryLayer
from flatcache.cache.paths import PathResolver
from flatcache.cache.stats import CacheOp, CacheStats, DiskUsage
from flatcache.cache.tenant import TenantHasher, hash_tenant

__all__ = [
    "CacheEngine",
    "CacheOp",
    "CacheStats",
    "DEFAULT_GROUP",
    "DiskStore",
    "DiskUsage",
    "MemoryLayer",
    "PathResolver",
    "TenantHasher",
    "hash_tenant",
]
