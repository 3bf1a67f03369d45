"""Package-level default configuration values."""

from __future__ import annotations

from pathlib import Path
from typing import Any

# Default storage settings
DEFAULT_CACHE_DIR = Path.home() / ".flatcache" / "object-cache"
DEFAULT_FILE_EXTENSION = ".php"
DEFAULT_EXPIRATION = 365 * 24 * 3600  # one year

# Default tenant settings
DEFAULT_TENANT_ID = 1
DEFAULT_MULTISITE = True
DEFAULT_HASH_TENANT = True
DEFAULT_SECRET = ""

# Default group policy
DEFAULT_GLOBAL_GROUPS: frozenset[str] = frozenset()
DEFAULT_NON_PERSISTENT_GROUPS: frozenset[str] = frozenset({"comment"})

# Default engine behavior
DEFAULT_SUSPEND_ADDITIONS = False
DEFAULT_EXPIRY_SOURCE = "mtime"
DEFAULT_EXISTENCE_CHECK = "memory"
DEFAULT_OP_LOG_LIMIT = 500

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "cache_dir": DEFAULT_CACHE_DIR,
        "file_extension": DEFAULT_FILE_EXTENSION,
        "default_expiration": DEFAULT_EXPIRATION,
        "tenant_id": DEFAULT_TENANT_ID,
        "multisite": DEFAULT_MULTISITE,
        "hash_tenant": DEFAULT_HASH_TENANT,
        "secret": DEFAULT_SECRET,
        "global_groups": set(DEFAULT_GLOBAL_GROUPS),
        "non_persistent_groups": set(DEFAULT_NON_PERSISTENT_GROUPS),
        "suspend_additions": DEFAULT_SUSPEND_ADDITIONS,
        "expiry_source": DEFAULT_EXPIRY_SOURCE,
        "existence_check": DEFAULT_EXISTENCE_CHECK,
        "op_log_limit": DEFAULT_OP_LOG_LIMIT,
        "log_level": DEFAULT_LOG_LEVEL,
    }
