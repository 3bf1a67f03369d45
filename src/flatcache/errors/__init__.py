"""Error handling: exception hierarchy for the cache engine."""

from flatcache.errors.exceptions import (
    DecodeFailure,
    DirectoryCreateFailure,
    FlatCacheError,
    UnsupportedValueError,
    WriteFailure,
)

__all__ = [
    "FlatCacheError",
    "WriteFailure",
    "DirectoryCreateFailure",
    "DecodeFailure",
    "UnsupportedValueError",
]
