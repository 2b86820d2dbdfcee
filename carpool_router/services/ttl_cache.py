import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class CacheEntry:
    key: str
    data: Any
    expiry: float


class TTLCache:
    """Bounded key/value cache whose entries expire after a fixed TTL"""

    def __init__(self, ttl_s: float, max_entries: int = 500,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._clock() >= entry.expiry:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.data

    def set(self, key: str, data: Any) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, data=data, expiry=self._clock() + self.ttl_s)
            # oldest insertions go first
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
