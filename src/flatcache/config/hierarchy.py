"""Configuration hierarchy: merges sources in priority order.

Precedence (later overrides earlier):
  1. Package defaults
  2. Global config   (~/.flatcache/config.yaml)
  3. Project config   (./flatcache.yaml)
  4. Environment variables (FLATCACHE_*, AUTH_KEY)
  5. Runtime arguments
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from flatcache.config.defaults import get_defaults

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".flatcache" / "config.yaml"
_PROJECT_CONFIG_NAME = "flatcache.yaml"

# Map of environment variables to config keys. Later entries win, so the
# dedicated FLATCACHE_SECRET overrides the shared AUTH_KEY.
_ENV_MAP: dict[str, str] = {
    "AUTH_KEY": "secret",
    "FLATCACHE_SECRET": "secret",
    "FLATCACHE_CACHE_DIR": "cache_dir",
    "FLATCACHE_PERMISSIONS_FROM": "permissions_from",
    "FLATCACHE_FILE_EXTENSION": "file_extension",
    "FLATCACHE_DEFAULT_EXPIRATION": "default_expiration",
    "FLATCACHE_TENANT_ID": "tenant_id",
    "FLATCACHE_MULTISITE": "multisite",
    "FLATCACHE_HASH_TENANT": "hash_tenant",
    "FLATCACHE_GLOBAL_GROUPS": "global_groups",
    "FLATCACHE_NON_PERSISTENT_GROUPS": "non_persistent_groups",
    "FLATCACHE_SUSPEND_ADDITIONS": "suspend_additions",
    "FLATCACHE_EXPIRY_SOURCE": "expiry_source",
    "FLATCACHE_EXISTENCE_CHECK": "existence_check",
    "FLATCACHE_OP_LOG_LIMIT": "op_log_limit",
    "FLATCACHE_LOG_LEVEL": "log_level",
}

# Keys that should be parsed as specific types
_TYPE_MAP: dict[str, type] = {
    "default_expiration": int,
    "tenant_id": int,
    "op_log_limit": int,
}

_BOOL_KEYS = {"multisite", "hash_tenant", "suspend_additions"}
_SET_KEYS = {"global_groups", "non_persistent_groups"}

# Boolean env var values
_TRUTHY = {"1", "true", "yes", "on"}


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Load and merge configuration from all sources.

    Returns a merged dict with the final resolved values.
    """
    config = get_defaults()

    # Layer 2: Global config
    global_cfg = _load_yaml_config(_GLOBAL_CONFIG_PATH)
    if global_cfg:
        config.update(global_cfg)

    # Layer 3: Project config (search from cwd upward)
    project_path = _find_project_config()
    if project_path:
        project_cfg = _load_yaml_config(project_path)
        if project_cfg:
            config.update(project_cfg)

    # Layer 4: Environment variables
    env_cfg = _load_env_vars()
    config.update(env_cfg)

    # Layer 5: Runtime arguments (highest priority)
    # Filter out None values; only override when explicitly set
    for key, value in runtime_overrides.items():
        if value is not None:
            config[key] = value

    return config


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Load a YAML config file if it exists."""
    if not path.exists() or not path.is_file():
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if isinstance(data, dict):
            return data
        logger.warning("Config file %s is not a mapping, ignoring", path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
    return None


def _find_project_config() -> Path | None:
    """Search for flatcache.yaml from cwd upward."""
    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        candidate = parent / _PROJECT_CONFIG_NAME
        if candidate.exists():
            return candidate
    return None


def _load_env_vars() -> dict[str, Any]:
    """Read FLATCACHE_* and AUTH_KEY environment variables."""
    result: dict[str, Any] = {}
    for env_key, config_key in _ENV_MAP.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        result[config_key] = _coerce_env_value(config_key, value)
    return result


def _coerce_env_value(key: str, value: str) -> Any:
    """Coerce an environment variable string to the appropriate type."""
    if key in _BOOL_KEYS:
        return value.strip().lower() in _TRUTHY

    if key in _SET_KEYS:
        return {item.strip() for item in value.split(",") if item.strip()}

    target_type = _TYPE_MAP.get(key)
    if target_type:
        try:
            return target_type(value)
        except (ValueError, TypeError):
            logger.warning(
                "Cannot convert env var for '%s' to %s: %s", key, target_type.__name__, value
            )
            return value

    return value
