import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


class ProgressCache:
    """Time-boxed mapping of key -> (data, timestamp)."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}

    def is_fresh(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry.timestamp < self.ttl

    def get(self, key: Hashable) -> Any | None:
        """Fresh data for ``key``, or None when missing or expired."""
        return self._entries[key].data if self.is_fresh(key) else None

    def peek(self, key: Hashable) -> Any | None:
        """Last stored data regardless of age."""
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def set(self, key: Hashable, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, timestamp=self._clock())

    def invalidate(self, key: Hashable | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def prune(self, max_age: float) -> None:
        """Drop entries older than ``max_age``, fresh or not."""
        now = self._clock()
        self.invalidate_where(lambda key: now - self._entries[key].timestamp >= max_age)

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> None:
        for key in [k for k in self._entries if predicate(k)]:
            del self._entries[key]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
