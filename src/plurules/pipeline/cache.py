"""Explicit snapshot cache for derived state.

Replaces ad-hoc module-level snapshots: the cache is a plain object the
caller creates and passes by reference. It exposes ``get`` and ``set``
only. Writes are last-write-wins; resetting a key is ``set(key, None)``.
No process-wide instance exists.
"""

from typing import Generic, TypeVar

T = TypeVar("T")


class SnapshotCache(Generic[T]):
    """Keyed last-write-wins store for snapshots (extraction results, overrides, rulesets)."""

    def __init__(self, initial: dict[str, T] | None = None) -> None:
        self._entries: dict[str, T] = dict(initial or {})

    def get(self, key: str) -> T | None:
        return self._entries.get(key)

    def set(self, key: str, entry: T | None) -> None:
        if entry is None:
            self._entries.pop(key, None)
        else:
            self._entries[key] = entry
