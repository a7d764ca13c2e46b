"""Thread-safe collection of cache statistics."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class Stats:
    """A snapshot of cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    last_updated: datetime | None = None


class StatsCollector:
    """Counts hits, misses and evictions and tracks the cache size."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._size = 0
        self._last_updated = datetime.now(timezone.utc)

    def _touch(self) -> None:
        self._last_updated = datetime.now(timezone.utc)

    def record_hit(self) -> None:
        """Count one cache hit."""
        with self._lock:
            self._hits += 1
            self._touch()

    def record_miss(self) -> None:
        """Count one cache miss."""
        with self._lock:
            self._misses += 1
            self._touch()

    def record_eviction(self) -> None:
        """Count one eviction."""
        with self._lock:
            self._evictions += 1
            self._touch()

    def update_size(self, size: int) -> None:
        """Set the current cache size."""
        with self._lock:
            self._size = size
            self._touch()

    def get_stats(self) -> Stats:
        """Return a snapshot of the current statistics."""
        with self._lock:
            return Stats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=self._size,
                last_updated=self._last_updated,
            )

    def hit_rate(self) -> float:
        """Hits divided by lookups, or 0.0 when there were none."""
        with self._lock:
            total = self._hits + self._misses
            return self._hits / total if total else 0.0