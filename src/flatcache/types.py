"""Shared enums for flatcache."""

from __future__ import annotations

from enum import StrEnum

# ── Enums ──


class ExpirySource(StrEnum):
    """Where freshness of a disk entry is read from."""

    MTIME = "mtime"
    PAYLOAD = "payload"


class ExistenceCheck(StrEnum):
    """Which tiers replace/increment/decrement consult for existence."""

    MEMORY = "memory"
    DISK = "disk"


class OpKind(StrEnum):
    SET = "Set"
    DELETE = "Delete"
    HIT_MEMORY = "Hit (Mem)"
    HIT_DISK = "Hit (Disk)"
    MISS_EXPIRED = "Miss (Expired)"
    MISS_EMPTY = "Miss (Empty)"
    MISS_CORRUPT = "Miss (Corrupt)"
