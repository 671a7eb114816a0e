"""Process-wide caches keyed by type."""

from __future__ import annotations

import threading
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TypeCache(Generic[K, V]):
    """A populate-on-first-use cache with no eviction.

    Lookups of present entries never take the lock. A miss takes the lock,
    re-checks, builds and publishes, so each key is built at most once per
    cache. Builders must be deterministic. A builder may load other keys
    from the same cache, but never the key it is building.
    """

    def __init__(self, builder: Callable[[K], V]) -> None:
        self._builder = builder
        self._entries: dict[K, V] = {}
        self._lock = threading.RLock()
        self.builds = 0

    def load(self, key: K) -> V:
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._builder(key)
                self.builds += 1
                self._entries[key] = entry
        return entry

    def __contains__(self, key: K) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
