"""
In-process session cache and per-session locks.

SessionCache keeps the last order document read or written for a
(customer, business, channel) key for a short freshness window, so a burst
of messages in one conversation does not hit DynamoDB on every resolve.
Entries are deep-copied in and out; callers never share a dict with the cache.

KeyedLocks serializes mutating calls for the same key inside one process.
Cross-process safety comes from the conditional writes in the store.
"""

import copy
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional


class SessionCache:
    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> {"order": dict, "stored_at": float}
        self._items: Dict[str, Dict[str, Any]] = {}
        self._last_sweep = clock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        now = self._clock()
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None
            if now - entry["stored_at"] >= self.ttl_seconds:
                del self._items[key]
                return None
            return copy.deepcopy(entry["order"])

    def put(self, key: str, order: Dict[str, Any]) -> None:
        """Store a copy; at most once per TTL window this also drops expired entries."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.ttl_seconds:
                self._drop_expired(now)
            self._items[key] = {"order": copy.deepcopy(order), "stored_at": now}

    def evict(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def sweep_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            return self._drop_expired(now)

    def _drop_expired(self, now: float) -> int:
        # caller holds _lock
        expired = [k for k, v in self._items.items() if now - v["stored_at"] >= self.ttl_seconds]
        for k in expired:
            del self._items[k]
        self._last_sweep = now
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class KeyedLocks:
    """Re-entrant lock per key; entries are dropped when nobody holds or waits."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [RLock, users]
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
