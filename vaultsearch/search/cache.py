"""Bounded in-process cache for enhanced queries.

Capacity and entry lifetime come from ``QUERY_CACHE_SIZE`` and
``QUERY_CACHE_TTL_SECONDS``. When full, the least-recently-used entry is
evicted; entries older than the TTL are dropped on access.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from threading import RLock
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


class LRUCache(Generic[K, V]):
    """Thread-safe LRU cache with optional TTL.

    Args:
        maxsize: Maximum number of entries. Must be positive.
        ttl_seconds: Entry lifetime, or ``None`` to never expire.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        maxsize: int = 256,
        ttl_seconds: float | None = 900.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if maxsize <= 0:
            raise ValueError(f"maxsize must be positive, got {maxsize}")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive or None, got {ttl_seconds}")
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = RLock()
        self._data: OrderedDict[K, _Entry[V]] = OrderedDict()

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if self._ttl is not None and self._clock() - entry.stored_at > self._ttl:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return entry.value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._data[key] = _Entry(value=value, stored_at=self._clock())
            while len(self._data) > self._maxsize:
                self._data.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data
