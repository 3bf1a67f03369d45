"""Disk tier: one file per entry, atomic replace, mtime as expiry."""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path

from flatcache.cache.paths import index_filename
from flatcache.cache.stats import DiskUsage
from flatcache.errors.exceptions import DirectoryCreateFailure, WriteFailure

logger = logging.getLogger(__name__)

_TEMP_PREFIX = "tmp"
_TEMP_SUFFIX = ".tmp"


class DiskStore:
    """Filesystem persistence for encoded entries.

    Writes go to a temp file in the entry's own directory and are moved
    into place with ``os.replace``, so readers never see a partial file.
    The entry's modification time is set to its absolute expiry instant.
    No locks are taken; the last writer wins.
    """

    def __init__(
        self,
        root: Path,
        extension: str = ".php",
        mode_source: Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self._extension = extension
        self._index_name = index_filename(extension)
        self._mode_source = mode_source
        self._clock = clock

    @property
    def root(self) -> Path:
        return self._root

    def exists(self, path: Path) -> bool:
        """True if an entry file is present. Unreadable or invalid paths count as absent."""
        try:
            return path.is_file()
        except OSError as e:
            logger.debug("Cannot stat %s: %s", path, e)
            return False

    def time_to_expiry(self, path: Path) -> float:
        """Seconds until ``path`` expires; negative once expired, 0 if missing."""
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return 0.0
        return mtime - self._clock()

    def read(self, path: Path) -> bytes:
        """Raw entry bytes. Raises FileNotFoundError if the entry is gone."""
        return path.read_bytes()

    def write(self, path: Path, payload: bytes, ttl: float) -> None:
        """Atomically write ``payload`` to ``path`` expiring ``ttl`` seconds from now."""
        self.ensure_dir(path.parent)
        _, file_mode = self._modes()

        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=_TEMP_PREFIX, suffix=_TEMP_SUFFIX, dir=path.parent
            )
        except OSError as e:
            raise WriteFailure(f"Cannot create temp file in {path.parent}", path, e) from e

        temp_path = Path(temp_name)
        expires_at = self._clock() + ttl
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            # Mode and expiry are set before the rename so the live file is
            # never visible with a fresh mtime.
            if file_mode is not None:
                os.chmod(temp_path, file_mode)
            os.utime(temp_path, (expires_at, expires_at))
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise WriteFailure(f"Cannot write entry for {path}", path, e) from e

        try:
            os.replace(temp_path, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise WriteFailure(f"Cannot move entry into place at {path}", path, e) from e

    def delete(self, path: Path) -> bool:
        """Remove an entry file. Returns False if it was already gone."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def ensure_dir(self, directory: Path) -> None:
        """Create ``directory`` and any missing ancestors up to the root.

        Each directory created here gets the mirrored permission bits and an
        empty index file.
        """
        missing: list[Path] = []
        current = directory
        while not current.is_dir():
            missing.append(current)
            if current == self._root or current.parent == current:
                break
            current = current.parent

        if not missing:
            return

        dir_mode, file_mode = self._modes()
        for path in reversed(missing):
            try:
                path.mkdir(parents=path == self._root, exist_ok=True)
                if dir_mode is not None:
                    os.chmod(path, dir_mode)
                index = path / self._index_name
                index.touch(exist_ok=True)
                if file_mode is not None:
                    os.chmod(index, file_mode)
            except OSError as e:
                raise DirectoryCreateFailure(f"Cannot create cache directory {path}", path, e) from e
            logger.debug("Created cache directory %s", path)

    def purge_all(self, root: Path | None = None) -> bool:
        """Recursively remove ``root`` (default: the cache root) and everything in it.

        Entries vanishing underneath us are ignored. Returns False only when
        ``root`` itself cannot be listed.
        """
        root = Path(root) if root is not None else self._root
        try:
            with os.scandir(root) as it:
                entries = list(it)
        except OSError as e:
            logger.debug("Cannot open %s for purge: %s", root, e)
            return False

        for entry in entries:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                continue
            if is_dir:
                self.purge_all(Path(entry.path))
            else:
                _remove_quietly(os.unlink, entry.path)

        _remove_quietly(os.rmdir, root)
        return True

    def usage(self, root: Path | None = None) -> DiskUsage:
        """Count entry files and bytes under ``root`` (index and temp files excluded)."""
        root = Path(root) if root is not None else self._root
        files = 0
        size = 0
        directories = 0
        for dirpath, _dirnames, filenames in os.walk(root):
            directories += 1
            for name in filenames:
                if name == self._index_name or not name.endswith(self._extension):
                    continue
                with contextlib.suppress(OSError):
                    size += os.stat(os.path.join(dirpath, name)).st_size
                    files += 1
        return DiskUsage(files=files, size_bytes=size, directories=directories)

    def _modes(self) -> tuple[int | None, int | None]:
        """Directory and file modes mirrored from ``mode_source``."""
        if self._mode_source is None:
            return None, None
        try:
            dir_mode = self._mode_source.stat().st_mode & 0o7777
        except OSError as e:
            logger.debug("Cannot stat %s for permissions: %s", self._mode_source, e)
            return None, None
        # Entry and index files never get execute bits
        return dir_mode, dir_mode & 0o666


def _remove_quietly(remove: Callable[[str | Path], None], path: str | Path) -> None:
    try:
        remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Could not remove %s during purge: %s", path, e)
