from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict, Generic, Optional, TypeVar

V = TypeVar("V")


@dataclass
class _Slot(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """In-memory cache for provider answers.

    Entries expire after ``ttl_s``; when full, the entry closest to expiry is
    dropped first. A ``ttl_s`` of 0 disables caching.
    """

    def __init__(self, *, ttl_s: float, max_size: int) -> None:
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._slots: Dict[str, _Slot[V]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_s > 0 and self.max_size > 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def get(self, key: str) -> Optional[V]:
        now = time.monotonic()
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                return None
            if slot.expires_at < now:
                del self._slots[key]
                return None
            return slot.value

    def put(self, key: str, value: V) -> None:
        if not self.enabled:
            return
        now = time.monotonic()
        with self._lock:
            for stale in [k for k, s in self._slots.items() if s.expires_at < now]:
                del self._slots[stale]
            if key not in self._slots and len(self._slots) >= self.max_size:
                victim = min(self._slots, key=lambda k: self._slots[k].expires_at)
                del self._slots[victim]
            self._slots[key] = _Slot(value=value, expires_at=now + self.ttl_s)

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()


def make_cache_key(*parts: object) -> str:
    return "|".join("" if part is None else str(part) for part in parts)
