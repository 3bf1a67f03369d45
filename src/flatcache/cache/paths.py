"""Map (tenant, group, key) addresses to entry file paths."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import quote

GLOBAL_DIR_NAME = "blog_global"
TENANT_DIR_PREFIX = "blog_"
INDEX_STEM = "index"

# Leaves room for the extension under the common 255-byte name limit
MAX_SEGMENT_LENGTH = 200

_DOT_SEGMENTS = {".": "%2E", "..": "%2E%2E"}
# quote() only ever emits "%" followed by two hex digits, so this marker
# cannot appear in a segment that was not shortened.
_DIGEST_MARKER = "%-"


def index_filename(extension: str) -> str:
    """Name of the empty index file placed in every cache directory."""
    return INDEX_STEM + extension


def escape_segment(segment: str) -> str:
    """Escape one path segment so it can never leave its parent directory.

    Separators, NUL and other unsafe bytes are percent-encoded; ``.`` and
    ``..`` are mapped to their encoded forms. Segments longer than
    ``MAX_SEGMENT_LENGTH`` are cut and suffixed with a SHA256 digest of the
    raw segment.
    """
    if segment in _DOT_SEGMENTS:
        return _DOT_SEGMENTS[segment]
    escaped = quote(segment, safe="")
    if len(escaped) <= MAX_SEGMENT_LENGTH:
        return escaped

    digest = hashlib.sha256(segment.encode("utf-8")).hexdigest()
    head = escaped[: MAX_SEGMENT_LENGTH - len(digest) - len(_DIGEST_MARKER)]
    # Never split a %XX escape
    cut = head.rfind("%", len(head) - 2)
    if cut != -1:
        head = head[:cut]
    return head + _DIGEST_MARKER + digest


def group_segments(group: str) -> list[str]:
    """Split a group name on ``/`` into escaped, non-empty segments."""
    return [escape_segment(part) for part in group.split("/") if part]


def _unreserve(segment: str, reserved: str) -> str:
    # Encode the first character so the name differs from the structural file
    if segment.lower() != reserved.lower():
        return segment
    return f"%{ord(segment[0]):02X}{segment[1:]}"


class PathResolver:
    """Resolve cache entries to files below a single cache root.

    Layout::

        <root>/blog_global/<group...>/<key><ext>    global groups
        <root>/blog_<prefix>/<group...>/<key><ext>  tenant-scoped groups
        <root>/<group...>/<key><ext>                single-tenant (multisite off)

    Keys and group segments that would land on the structural index file are
    escaped, so entries and index files never share a path.
    """

    def __init__(
        self,
        root: Path,
        multisite: bool = True,
        extension: str = ".php",
    ) -> None:
        self._root = Path(root)
        self._multisite = multisite
        self._extension = extension
        self._index_name = index_filename(extension)

    def group_root(
        self,
        group: str,
        tenant_prefix: str,
        global_groups: Iterable[str] = (),
    ) -> Path:
        if not self._multisite:
            return self._root
        if group in global_groups:
            return self._root / GLOBAL_DIR_NAME
        return self._root / (TENANT_DIR_PREFIX + escape_segment(tenant_prefix))

    def group_dir(
        self,
        group: str,
        tenant_prefix: str,
        global_groups: Iterable[str] = (),
    ) -> Path:
        segments = [_unreserve(s, self._index_name) for s in group_segments(group)]
        return self.group_root(group, tenant_prefix, global_groups).joinpath(*segments)

    def resolve(
        self,
        tenant_prefix: str,
        group: str,
        key: str | int,
        global_groups: Iterable[str] = (),
    ) -> Path:
        """Return the entry file path for ``key`` in ``group``."""
        stem = _unreserve(escape_segment(str(key)), INDEX_STEM)
        return self.group_dir(group, tenant_prefix, global_groups) / (stem + self._extension)

    def describe(
        self,
        group: str,
        tenant_id: int,
        global_groups: Iterable[str] = (),
    ) -> str:
        """Short human-readable scope label used in the operation log."""
        if not self._multisite:
            return "/"
        if group in global_groups:
            return "Global/"
        return f"Tenant {tenant_id}/"
