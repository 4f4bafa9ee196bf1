from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

_MISSING = object()


class TTLCache(Generic[V]):
    """In-memory cache with per-entry expiry.

    Owned by the caller and passed explicitly into components that accept a
    ``cache=`` argument. ``clock`` returns seconds on a monotonic scale so
    tests can drive expiry without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        *,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._data: Dict[Hashable, Tuple[float, V]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: Hashable, default: Any = None) -> V | Any:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return default
            stored_at, value = entry
            if now - stored_at >= self.ttl_seconds:
                del self._data[key]
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        now = self._clock()
        with self._lock:
            self._data[key] = (now, value)
            if self.max_entries is not None and len(self._data) > self.max_entries:
                oldest = min(self._data, key=lambda k: self._data[k][0])
                del self._data[oldest]

    def get_or_compute(self, key: Hashable, compute: Callable[[], V]) -> V:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = compute()
            self.set(key, value)
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        with self._lock:
            if key is None:
                self._data.clear()
            else:
                self._data.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [
                k for k, (ts, _) in self._data.items() if now - ts >= self.ttl_seconds
            ]
            for k in expired:
                del self._data[k]
        return len(expired)


__all__ = ["TTLCache"]
