"""In-memory TTL cache shared by the aggregator, pipeline and API tiers.

Entries expire lazily: an expired key is only removed when it is read or when
``stats()`` walks the store. There is no size bound, callers use a small fixed
key set.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable


class CacheTTL:
    """TTL presets in seconds."""

    SIGNALS = 5 * 60
    NARRATIVES = 15 * 60
    COLLECTOR = 5 * 60


@dataclass
class CacheEntry:
    data: Any
    expires_at: float
    created_at: float


class TTLCache:
    """Key → value store with per-entry expiry. Last write wins."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._store[key]
            return None
        return entry.data

    def set(self, key: str, data: Any, ttl: float) -> None:
        now = self._clock()
        self._store[key] = CacheEntry(data=data, expires_at=now + ttl, created_at=now)

    def invalidate(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with *prefix*, e.g. ``collector:``."""
        doomed = [k for k in self._store if k.startswith(prefix)]
        for key in doomed:
            del self._store[key]
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    def age(self, key: str) -> int | None:
        """Seconds since *key* was written, or None when absent/expired."""
        if self.get(key) is None:
            return None
        return round(self._clock() - self._store[key].created_at)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        ages: dict[str, int] = {}
        for key, entry in list(self._store.items()):
            if now > entry.expires_at:
                del self._store[key]
            else:
                ages[key] = round(now - entry.created_at)
        return {
            "entries": len(self._store),
            "keys": list(self._store),
            "ages": ages,
        }

    def __len__(self) -> int:
        return len(self._store)
