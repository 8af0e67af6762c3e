from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Iterable, Optional, Protocol, Tuple, TypeVar

from .models import DateRangeRequest, TimeWindow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotCache(Protocol[T]):
    """
    Cache collaborator injected by callers of the stats engine.

    The engine itself never caches; whoever owns the data fetch decides what a
    stale snapshot is and when to drop it.
    """

    def get(self, key: str) -> Optional[T]: ...

    def set(self, key: str, value: T) -> None: ...

    def invalidate(self, key: str) -> None: ...


class InMemorySnapshotCache(Generic[T]):
    """
    Thread-safe LRU map bounded to ``max_entries`` items.

    Entries expire ``ttl_seconds`` after they were stored; ``None`` keeps them
    until evicted or invalidated.
    """

    def __init__(
        self,
        max_entries: int = 128,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[T, Optional[float]]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            if key not in self._entries:
                return None
            value, expires_at = self._entries[key]
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                logger.debug("Cached snapshot %s expired", key)
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: T) -> None:
        expires_at = None if self.ttl_seconds is None else self._clock() + self.ttl_seconds
        with self._lock:
            self._entries[key] = (value, expires_at)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached snapshot %s", evicted)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def snapshot_cache_key(
    venue_ids: Iterable[str],
    date_range: DateRangeRequest,
    window: TimeWindow,
    timezone: str = "UTC",
) -> str:
    """
    Stable key for a snapshot request.

    ``window`` is the resolved reporting window, so requests falling on
    different local days never share a key.
    """

    venues = ",".join(sorted(set(venue_ids)))
    start = window.start.isoformat(timespec="milliseconds")
    end = window.end.isoformat(timespec="milliseconds")
    return f"{venues}|{date_range.cache_token()}|{start}|{end}|{timezone}"


def get_or_compute(cache: Optional[SnapshotCache[T]], key: str, compute: Callable[[], T]) -> Tuple[T, bool]:
    """Return ``(value, was_cached)``, computing and storing on a miss."""

    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached, True
    value = compute()
    if cache is not None:
        cache.set(key, value)
    return value, False
