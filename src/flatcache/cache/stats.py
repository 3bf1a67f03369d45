"""Cache statistics and operation log models."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from flatcache.types import OpKind


class CacheOp(BaseModel):
    """One recorded cache operation."""

    kind: OpKind
    key: str
    location: str = ""
    ttl: float | None = None
    at: float = Field(default_factory=time.time)

    def describe(self) -> str:
        text = f"{self.kind.value} {self.location}{self.key}"
        if self.ttl is not None:
            text += f" ({self.ttl:g}s)"
        return text


class CacheStats(BaseModel):
    """Aggregate cache statistics for one engine instance."""

    hits: int = 0
    misses: int = 0
    memory_entries: int = 0
    group_ops: dict[str, list[CacheOp]] = Field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def groups(self) -> list[str]:
        return sorted(self.group_ops)


class DiskUsage(BaseModel):
    """Entry files found under a cache directory."""

    files: int = 0
    size_bytes: int = 0
    directories: int = 0

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)
