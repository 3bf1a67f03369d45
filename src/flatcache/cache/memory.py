"""L1 in-memory tier: group -> key -> decoded value."""

from __future__ import annotations

from typing import Any, NamedTuple


class _Slot(NamedTuple):
    value: Any
    expires_at: float | None


class MemoryLayer:
    """Process-lifetime mapping of decoded values.

    Values are stored as given; copying at the API boundary is the engine's
    job. Each value may carry the absolute deadline it was written or loaded
    with.
    """

    def __init__(self) -> None:
        self._store: dict[str, dict[str, _Slot]] = {}

    def exists(self, group: str, key: str) -> bool:
        # Membership, not truthiness: stored None/False/0 still exist.
        return group in self._store and key in self._store[group]

    def get(self, group: str, key: str) -> Any:
        """Stored value. Raises KeyError if absent."""
        return self._store[group][key].value

    def expires_at(self, group: str, key: str) -> float | None:
        return self._store[group][key].expires_at

    def is_expired(self, group: str, key: str, now: float) -> bool:
        deadline = self.expires_at(group, key)
        return deadline is not None and deadline < now

    def set(self, group: str, key: str, value: Any, expires_at: float | None = None) -> None:
        self._store.setdefault(group, {})[key] = _Slot(value, expires_at)

    def delete(self, group: str, key: str) -> bool:
        entries = self._store.get(group)
        if entries is None or key not in entries:
            return False
        del entries[key]
        return True

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._store.values())
