"""In-memory key/value cache with a time-to-live."""

import threading
import time
from collections.abc import Callable
from typing import Any


class TTLCache:
    """Keyed cache where each entry expires ``ttl_seconds`` after it is set.

    Expired entries are kept until overwritten so callers can still fall back
    to the last known value with ``get_stale``.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return value

    def get_stale(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
        return entry[1] if entry is not None else None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def age(self, key: str) -> float | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry[0]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
