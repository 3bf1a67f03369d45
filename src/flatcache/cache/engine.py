"""Cache engine: orchestrates the memory tier and the disk tier."""

from __future__ import annotations

import copy
import logging
import math
import re
import time
from collections import deque
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from flatcache.cache import codec
from flatcache.cache.disk import DiskStore
from flatcache.cache.memory import MemoryLayer
from flatcache.cache.paths import PathResolver
from flatcache.cache.stats import CacheOp, CacheStats
from flatcache.cache.tenant import TenantHasher
from flatcache.config.hierarchy import load_config_hierarchy
from flatcache.config.schema import CacheConfig
from flatcache.errors.exceptions import (
    DecodeFailure,
    DirectoryCreateFailure,
    UnsupportedValueError,
    WriteFailure,
)
from flatcache.types import ExistenceCheck, ExpirySource, OpKind

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "default"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class CacheEngine:
    """Two-tier object cache: L1 in-memory, L2 one file per entry.

    Reads check memory first, then disk; a disk hit is decoded, checked for
    expiry and promoted to memory. Writes update memory and then persist
    atomically. Expired entries are removed lazily when looked up.

    Memory buckets are scoped per tenant for tenant-scoped groups, so
    switching tenants never serves another tenant's values.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock

        cfg = self._config
        self._global_groups: set[str] = set(_as_group_list(cfg.global_groups))
        self._non_persistent_groups: set[str] = set(_as_group_list(cfg.non_persistent_groups))
        self._suspend_additions = cfg.suspend_additions
        self._default_expiration = cfg.default_expiration

        self._hasher = TenantHasher(cfg.secret, enabled=cfg.hash_tenant)
        self._tenant_id = cfg.tenant_id
        self._tenant_prefix = self._hasher.prefix(cfg.tenant_id)

        self._paths = PathResolver(
            cfg.cache_dir,
            multisite=cfg.multisite,
            extension=cfg.file_extension,
        )
        self._disk = DiskStore(
            cfg.cache_dir,
            extension=cfg.file_extension,
            mode_source=cfg.permissions_from or cfg.cache_dir.parent,
            clock=clock,
        )
        self._memory = MemoryLayer()

        self._hits = 0
        self._misses = 0
        self._group_ops: dict[str, deque[CacheOp]] = {}

        try:
            self._disk.ensure_dir(cfg.cache_dir)
        except DirectoryCreateFailure as e:
            logger.warning("Cache directory unavailable, running memory-only: %s", e)

    @classmethod
    def from_config(cls, **overrides: Any) -> CacheEngine:
        """Build an engine from defaults, config files, env vars and ``overrides``."""
        return cls(CacheConfig(**load_config_hierarchy(**overrides)))

    # ── Properties ──

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def tenant_id(self) -> int:
        return self._tenant_id

    @property
    def tenant_prefix(self) -> str:
        return self._tenant_prefix

    @property
    def global_groups(self) -> frozenset[str]:
        return frozenset(self._global_groups)

    @property
    def non_persistent_groups(self) -> frozenset[str]:
        return frozenset(self._non_persistent_groups)

    @property
    def suspend_additions(self) -> bool:
        return self._suspend_additions

    @suspend_additions.setter
    def suspend_additions(self, value: bool) -> None:
        self._suspend_additions = bool(value)

    @property
    def disk(self) -> DiskStore:
        return self._disk

    # ── Public operations ──

    def get(self, key: str | int, group: str | None = DEFAULT_GROUP, default: Any = None) -> Any:
        """Return a copy of the cached value, or ``default`` on a miss."""
        found, value = self._lookup(_normalize_key(key), _normalize_group(group))
        if not found:
            return default
        return copy.deepcopy(value)

    def add(
        self,
        key: str | int,
        value: Any,
        group: str | None = DEFAULT_GROUP,
        ttl: float = 0,
    ) -> bool:
        """Store only if no live entry exists in memory or on disk."""
        if self._suspend_additions:
            return False
        key, group = _normalize_key(key), _normalize_group(group)
        if self._in_memory(key, group):
            return False
        found, _ = self._lookup(key, group)
        if found:
            return False
        return self._set(key, value, group, ttl)

    def set(
        self,
        key: str | int,
        value: Any,
        group: str | None = DEFAULT_GROUP,
        ttl: float = 0,
    ) -> bool:
        """Store unconditionally. ``ttl`` 0 means the default expiration.

        False means the disk copy could not be persisted (the memory tier is
        still updated), or that a persistent group was given a value the
        entry codec cannot represent (nothing is stored).
        """
        return self._set(_normalize_key(key), value, _normalize_group(group), ttl)

    def replace(
        self,
        key: str | int,
        value: Any,
        group: str | None = DEFAULT_GROUP,
        ttl: float = 0,
    ) -> bool:
        """Store only if the entry already exists."""
        key, group = _normalize_key(key), _normalize_group(group)
        if not self._exists(key, group):
            return False
        return self._set(key, value, group, ttl)

    def delete(self, key: str | int, group: str | None = DEFAULT_GROUP) -> bool:
        """Remove from both tiers. False if neither tier had the entry."""
        return self._delete(_normalize_key(key), _normalize_group(group))

    def increment(
        self,
        key: str | int,
        offset: int = 1,
        group: str | None = DEFAULT_GROUP,
    ) -> int | bool:
        """Add ``offset`` to an integer entry, keeping its remaining lifetime."""
        return self._adjust(_normalize_key(key), _to_int(offset), _normalize_group(group))

    def decrement(
        self,
        key: str | int,
        offset: int = 1,
        group: str | None = DEFAULT_GROUP,
    ) -> int | bool:
        """Subtract ``offset`` from an integer entry, never going below zero."""
        return self._adjust(
            _normalize_key(key), -_to_int(offset), _normalize_group(group), floor=0
        )

    def flush(self) -> bool:
        """Delete the whole cache directory tree and empty memory."""
        if not self._disk.purge_all():
            logger.debug("Cache root %s was already absent", self._disk.root)
        self._memory.clear()
        logger.info("Flushed cache at %s", self._disk.root)
        return True

    def switch_to_tenant(self, tenant_id: int) -> bool:
        """Change the active tenant. Ids below 1 are rejected."""
        if isinstance(tenant_id, bool):
            return False
        if isinstance(tenant_id, float) and not tenant_id.is_integer():
            return False
        try:
            tenant = int(tenant_id)
        except (TypeError, ValueError):
            return False
        if tenant < 1:
            return False
        self._tenant_id = tenant
        self._tenant_prefix = self._hasher.prefix(tenant)
        return True

    def add_global_groups(self, groups: str | Iterable[str]) -> None:
        self._global_groups.update(_as_group_list(groups))

    def add_non_persistent_groups(self, groups: str | Iterable[str]) -> None:
        self._non_persistent_groups.update(_as_group_list(groups))

    def path_for(self, key: str | int, group: str | None = DEFAULT_GROUP) -> Path:
        """Entry file path for ``key`` under the active tenant."""
        return self._path(_normalize_key(key), _normalize_group(group))

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            memory_entries=len(self._memory),
            group_ops={group: list(ops) for group, ops in self._group_ops.items()},
        )

    def close(self) -> bool:
        return True

    # ── Internals ──

    def _lookup(self, key: str, group: str) -> tuple[bool, Any]:
        bucket = self._bucket(group)
        if self._in_memory(key, group):
            self._hit(group, key, OpKind.HIT_MEMORY)
            return True, self._memory.get(bucket, key)

        if not self._is_persistent(group):
            self._miss(group, key, OpKind.MISS_EMPTY)
            return False, None

        path = self._path(key, group)
        if not self._disk.exists(path):
            self._miss(group, key, OpKind.MISS_EMPTY)
            return False, None

        remaining = self._disk.time_to_expiry(path)
        if self._config.expiry_source == ExpirySource.MTIME and remaining < 0:
            return self._expire(key, group)

        try:
            payload = self._disk.read(path)
        except FileNotFoundError:
            # Removed by another process between the check and the read
            self._miss(group, key, OpKind.MISS_EMPTY)
            return False, None
        except OSError as e:
            logger.warning("Cannot read cache entry %s: %s", path, e)
            self._miss(group, key, OpKind.MISS_EMPTY)
            return False, None

        try:
            entry = codec.decode_entry(payload)
        except DecodeFailure as e:
            logger.warning("Discarding corrupt cache entry %s: %s", path, e)
            self._discard_file(path)
            self._miss(group, key, OpKind.MISS_CORRUPT)
            return False, None

        if self._config.expiry_source == ExpirySource.PAYLOAD and entry.expires_at is not None:
            remaining = entry.expires_at - self._clock()
        if remaining < 0:
            return self._expire(key, group)

        self._memory.set(bucket, key, entry.value, expires_at=self._clock() + remaining)
        self._hit(group, key, OpKind.HIT_DISK)
        return True, entry.value

    def _expire(self, key: str, group: str) -> tuple[bool, Any]:
        self._delete(key, group)
        self._miss(group, key, OpKind.MISS_EXPIRED)
        return False, None

    def _set(self, key: str, value: Any, group: str, ttl: float) -> bool:
        if not ttl:
            ttl = self._default_expiration

        expires_at = self._clock() + ttl
        payload = None
        if self._is_persistent(group):
            # Encode first so an unsupported value leaves both tiers untouched
            try:
                payload = codec.encode(value, expires_at=expires_at)
            except UnsupportedValueError as e:
                logger.warning("Not caching %s in group %s: %s", key, group, e)
                return False

        self._memory.set(self._bucket(group), key, copy.deepcopy(value), expires_at=expires_at)
        self._record(group, OpKind.SET, key, ttl=ttl)

        if payload is None:
            return True

        path = self._path(key, group)
        try:
            self._disk.write(path, payload, ttl)
        except (WriteFailure, DirectoryCreateFailure) as e:
            logger.warning("Cache entry %s kept in memory only: %s", path, e)
            return False
        return True

    def _delete(self, key: str, group: str) -> bool:
        existed = self._memory.delete(self._bucket(group), key)
        if self._is_persistent(group):
            existed = self._discard_file(self._path(key, group)) or existed
        self._record(group, OpKind.DELETE, key)
        return existed

    def _discard_file(self, path: Path) -> bool:
        try:
            return self._disk.delete(path)
        except OSError as e:
            logger.warning("Cannot delete cache entry %s: %s", path, e)
            return False

    def _adjust(self, key: str, delta: int, group: str, floor: int | None = None) -> int | bool:
        if not self._exists(key, group):
            return False
        bucket = self._bucket(group)
        value = _to_int(self._memory.get(bucket, key)) + delta
        if floor is not None:
            value = max(floor, value)
        self._set(key, value, group, self._remaining_ttl(key, group))
        return value

    def _in_memory(self, key: str, group: str) -> bool:
        """Live memory entry check; drops the memory copy once past its deadline."""
        bucket = self._bucket(group)
        if not self._memory.exists(bucket, key):
            return False
        if self._memory.is_expired(bucket, key, self._clock()):
            self._memory.delete(bucket, key)
            return False
        return True

    def _exists(self, key: str, group: str) -> bool:
        if self._in_memory(key, group):
            return True
        if self._config.existence_check == ExistenceCheck.DISK:
            found, _ = self._lookup(key, group)
            return found
        return False

    def _remaining_ttl(self, key: str, group: str) -> float:
        """Seconds left on the entry; 0 when no deadline is known."""
        if not self._is_persistent(group):
            bucket = self._bucket(group)
            deadline = self._memory.expires_at(bucket, key)
            return deadline - self._clock() if deadline is not None else 0.0
        path = self._path(key, group)
        if self._config.expiry_source == ExpirySource.PAYLOAD:
            try:
                entry = codec.decode_entry(self._disk.read(path))
            except (OSError, DecodeFailure):
                return 0.0
            if entry.expires_at is not None:
                return entry.expires_at - self._clock()
        return self._disk.time_to_expiry(path)

    def _is_persistent(self, group: str) -> bool:
        return group not in self._non_persistent_groups

    def _bucket(self, group: str) -> str:
        if not self._config.multisite or group in self._global_groups:
            return group
        return f"{self._tenant_id}:{group}"

    def _path(self, key: str, group: str) -> Path:
        return self._paths.resolve(self._tenant_prefix, group, key, self._global_groups)

    def _hit(self, group: str, key: str, kind: OpKind) -> None:
        self._hits += 1
        self._record(group, kind, key)

    def _miss(self, group: str, key: str, kind: OpKind) -> None:
        self._misses += 1
        self._record(group, kind, key)

    def _record(self, group: str, kind: OpKind, key: str, ttl: float | None = None) -> None:
        limit = self._config.op_log_limit
        if not limit:
            return
        op = CacheOp(
            kind=kind,
            key=key,
            location=self._paths.describe(group, self._tenant_id, self._global_groups),
            ttl=ttl,
        )
        self._group_ops.setdefault(group, deque(maxlen=limit)).append(op)
        logger.debug("[%s] %s", group, op.describe())


def _normalize_group(group: str | None) -> str:
    """Canonical group name: empty segments collapsed, empty means default."""
    if not group:
        return DEFAULT_GROUP
    return "/".join(part for part in str(group).split("/") if part) or DEFAULT_GROUP


def _normalize_key(key: str | int) -> str:
    return str(key)


def _as_group_list(groups: str | Iterable[str]) -> list[str]:
    if isinstance(groups, str):
        return [_normalize_group(groups)]
    return [_normalize_group(group) for group in groups]


def _to_int(value: Any) -> int:
    """Loose integer coercion for counters.

    Numbers truncate, strings use their leading integer (else 0), None is 0,
    and anything else is 1 when truthy.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8", "replace") if isinstance(value, bytes) else value
        match = _LEADING_INT.match(text)
        return int(match.group(1)) if match else 0
    if value is None:
        return 0
    return 1 if value else 0
