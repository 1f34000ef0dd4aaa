from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock

from .models import LatLng, TransportMode


@dataclass
class _RouteCacheEntry:
    inserted_at: float
    coordinates: tuple[LatLng, ...]


def route_cache_key(origin: LatLng, destination: LatLng, mode: TransportMode, realistic: bool) -> str:
    return (
        f"{origin.lat:.6f},{origin.lng:.6f}-"
        f"{destination.lat:.6f},{destination.lng:.6f}-"
        f"{mode}-{'realistic' if realistic else 'simple'}"
    )


class RouteCacheStore:
    """TTL + LRU cache of provider geometries keyed by ``route_cache_key``."""

    def __init__(self, *, ttl_s: int, max_entries: int) -> None:
        self._ttl_s = max(0, int(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._lock = Lock()
        self._items: OrderedDict[str, _RouteCacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_expired(self, entry: _RouteCacheEntry) -> bool:
        return (time.monotonic() - entry.inserted_at) > self._ttl_s

    def get(self, key: str) -> list[LatLng] | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry):
                self._items.pop(key, None)
                self._misses += 1
                return None

            self._items.move_to_end(key)
            self._hits += 1
            return [point.model_copy() for point in entry.coordinates]

    def set(self, key: str, coordinates: list[LatLng]) -> None:
        frozen = tuple(point.model_copy() for point in coordinates)
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
            self._items[key] = _RouteCacheEntry(inserted_at=time.monotonic(), coordinates=frozen)

            while len(self._items) > self._max_entries:
                self._items.popitem(last=False)
                self._evictions += 1

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }
