"""Configuration: defaults, file/env hierarchy, and the validated model."""

from flatcache.config.hierarchy import load_config_hierarchy
from flatcache.config.schema import CacheConfig

__all__ = ["CacheConfig", "load_config_hierarchy"]
