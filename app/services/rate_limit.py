from __future__ import annotations

import threading
import time
from typing import Callable

# path -> route group; unlisted paths are not limited
ROUTE_GROUPS = {
    "/quotes": "market",
    "/fx": "market",
    "/search": "market",
    "/telemetry": "telemetry",
}


def route_group(path: str) -> str | None:
    normalized = path.rstrip("/") or "/"
    return ROUTE_GROUPS.get(normalized)


class FixedWindowRateLimiter:
    """Per-caller request counter over fixed one-minute windows."""

    def __init__(
        self,
        limits: dict[str, int],
        clock: Callable[[], float] | None = None,
        max_keys: int = 8000,
    ) -> None:
        self.limits = dict(limits)
        self.clock = clock or time.time
        self.max_keys = max_keys
        self._lock = threading.Lock()
        self._state: dict[str, dict[str, int]] = {}
        self.rejected = 0

    def check(self, caller: str, group: str) -> tuple[bool, int, int]:
        """Count one request; returns (allowed, remaining, limit). limit <= 0 means unlimited."""
        limit = int(self.limits.get(group, 0))
        if limit <= 0:
            return True, -1, limit

        window = int(self.clock() // 60)
        key = f"{group}:{caller}"
        with self._lock:
            entry = self._state.get(key)
            if not entry or entry["window"] != window:
                entry = {"window": window, "count": 0}
                self._state[key] = entry
            if entry["count"] >= limit:
                self.rejected += 1
                return False, 0, limit
            entry["count"] += 1
            remaining = max(0, limit - entry["count"])
            if len(self._state) > self.max_keys:
                self._prune(window)
            return True, remaining, limit

    def _prune(self, window: int) -> None:
        for key in list(self._state):
            if self._state[key]["window"] != window:
                self._state.pop(key, None)
