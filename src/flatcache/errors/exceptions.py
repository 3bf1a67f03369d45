"""Custom exception hierarchy for flatcache."""

from __future__ import annotations

from pathlib import Path
from typing import Any


class FlatCacheError(Exception):
    """Base exception for all flatcache errors."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message


class WriteFailure(FlatCacheError):
    """An entry file could not be written or atomically renamed into place.

    The orphaned temp file has already been removed (best effort) when this
    is raised.
    """

    def __init__(
        self,
        message: str = "",
        path: Path | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.original = original


class DirectoryCreateFailure(FlatCacheError):
    """A cache directory (or its index file) could not be created."""

    def __init__(
        self,
        message: str = "",
        path: Path | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.original = original


class DecodeFailure(FlatCacheError):
    """Entry payload is corrupt or was not produced by this codec."""

    def __init__(self, message: str = "", path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class UnsupportedValueError(FlatCacheError, TypeError):
    """Value type has no representation in the entry codec."""

    def __init__(self, message: str = "", value_type: type | None = None) -> None:
        super().__init__(message)
        self.value_type = value_type
