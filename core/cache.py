"""
Thetaline — TTL Cache
In-memory key/value cache with per-entry expiry driven by an injected Clock.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Hashable, Optional

from core.clock import Clock, SystemClock


class TTLCache:
    """
    Thread-safe TTL cache.

    Entries set with ttl=None never expire. Expired entries are dropped
    lazily on the next get().
    """

    def __init__(self, clock: Optional[Clock] = None, default_ttl: Optional[float] = None):
        self._clock = clock or SystemClock()
        self._default_ttl = default_ttl
        self._entries: dict[Hashable, tuple[Any, Optional[datetime]]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock.now() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        expires_at = None
        if ttl is not None:
            expires_at = self._clock.now() + timedelta(seconds=ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)

    def evict(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
