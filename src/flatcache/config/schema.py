"""Pydantic model for cache engine configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flatcache.config.defaults import (
    DEFAULT_CACHE_DIR,
    DEFAULT_EXPIRATION,
    DEFAULT_FILE_EXTENSION,
    DEFAULT_LOG_LEVEL,
    DEFAULT_NON_PERSISTENT_GROUPS,
    DEFAULT_OP_LOG_LIMIT,
    DEFAULT_TENANT_ID,
)
from flatcache.types import ExistenceCheck, ExpirySource

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class CacheConfig(BaseModel):
    """Host-supplied settings consumed by :class:`CacheEngine`.

    Unknown keys are ignored so the merged dict from
    :func:`load_config_hierarchy` can be passed straight in.
    """

    model_config = ConfigDict(extra="ignore")

    cache_dir: Path = DEFAULT_CACHE_DIR
    permissions_from: Path | None = None
    secret: str = ""
    default_expiration: int = Field(default=DEFAULT_EXPIRATION, gt=0)
    global_groups: set[str] = Field(default_factory=set)
    non_persistent_groups: set[str] = Field(
        default_factory=lambda: set(DEFAULT_NON_PERSISTENT_GROUPS)
    )
    suspend_additions: bool = False
    tenant_id: int = DEFAULT_TENANT_ID
    multisite: bool = True
    hash_tenant: bool = True
    file_extension: str = DEFAULT_FILE_EXTENSION
    expiry_source: ExpirySource = ExpirySource.MTIME
    existence_check: ExistenceCheck = ExistenceCheck.MEMORY
    op_log_limit: int = Field(default=DEFAULT_OP_LOG_LIMIT, ge=0)
    log_level: str = DEFAULT_LOG_LEVEL

    @field_validator("cache_dir")
    @classmethod
    def _expand_cache_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("file_extension")
    @classmethod
    def _check_extension(cls, value: str) -> str:
        if not value.startswith(".") or "/" in value or len(value) < 2:
            raise ValueError(f"file_extension must look like '.php', got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value!r}")
        return level

    @field_validator("tenant_id")
    @classmethod
    def _check_tenant(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"tenant_id must be >= 1, got {value}")
        return value
