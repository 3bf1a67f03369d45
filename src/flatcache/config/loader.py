"""YAML config loading and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from flatcache.config.schema import CacheConfig


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load any YAML file safely."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Expected YAML mapping, got {type(raw).__name__} in {path}")

    return raw


def load_cache_config(path: str | Path) -> CacheConfig:
    """Load a cache YAML file and return a validated CacheConfig.

    Accepts either a flat mapping or one nested under a top-level
    ``cache`` key.
    """
    raw = load_yaml(path)
    if "cache" in raw:
        if not isinstance(raw["cache"], dict):
            raise ValueError(f"Invalid cache YAML: 'cache' must be a mapping in {path}")
        raw = raw["cache"]
    return CacheConfig(**raw)
