"""Bounded, thread-safe LRU cache with per-entry TTL.

Used only as an advisory read-through accelerator; the keyed store stays
authoritative for family state, counters and reuse markers.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Least-recently-used cache.

    :param max_size: Maximum number of entries kept.
    :param ttl: Seconds an entry stays valid after being written.
    :param clock: Monotonic time source (seconds).
    """

    def __init__(
        self,
        max_size: int,
        ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._data: OrderedDict[K, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: K) -> V | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= self._clock():
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = (self._clock() + self.ttl, value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_size:
                self._data.popitem(last=False)

    def delete(self, key: K) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> int:
        """Drop every entry. :returns: Number of entries removed."""
        with self._lock:
            removed = len(self._data)
            self._data.clear()
            return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
