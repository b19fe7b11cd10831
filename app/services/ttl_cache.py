from __future__ import annotations

import threading
import time
from typing import Any, Callable

from app.config.settings import CACHE_TTL_SEC


class CacheEntry:
    __slots__ = ("timestamp", "value")

    def __init__(self, timestamp: float, value: Any) -> None:
        self.timestamp = timestamp
        self.value = value


class TTLCache:
    """Process-local key -> (timestamp, value) store with expiry on read.

    Stale entries are never evicted; they stay until the next ``set`` for the
    same key overwrites them, so memory grows with the number of distinct keys
    ever requested.
    """

    def __init__(self, ttl_sec: float = CACHE_TTL_SEC, clock: Callable[[], float] | None = None) -> None:
        self.ttl_sec = ttl_sec
        self.clock = clock or time.time
        self._lock = threading.Lock()
        self._rows: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._rows.get(key)
        if entry is None:
            return None
        if self.clock() - entry.timestamp < self.ttl_sec:
            return entry.value
        return None

    def set(self, key: str, value: Any) -> None:
        entry = CacheEntry(timestamp=self.clock(), value=value)
        with self._lock:
            self._rows[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
