from __future__ import annotations

from collections.abc import Callable
from threading import Lock
from typing import Protocol

from .models import Trip

SnapshotHandler = Callable[[Trip], None]
Unsubscribe = Callable[[], None]


class TripChannel(Protocol):
    def subscribe(self, trip_id: str, on_update: SnapshotHandler) -> Unsubscribe: ...


class InMemoryTripChannel:
    """Local fan-out channel: ``publish`` delivers a snapshot to every subscriber of its trip."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: dict[str, list[SnapshotHandler]] = {}

    def subscribe(self, trip_id: str, on_update: SnapshotHandler) -> Unsubscribe:
        with self._lock:
            self._subscribers.setdefault(trip_id, []).append(on_update)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(trip_id, [])
                if on_update in handlers:
                    handlers.remove(on_update)
                if not handlers:
                    self._subscribers.pop(trip_id, None)

        return unsubscribe

    def subscriber_count(self, trip_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(trip_id, []))

    def publish(self, trip: Trip) -> int:
        with self._lock:
            handlers = list(self._subscribers.get(trip.id, []))
        for handler in handlers:
            handler(trip.model_copy(deep=True))
        return len(handlers)


class TripSyncHub:
    """One channel subscription per watched trip.

    Remote snapshots are handed to ``on_snapshot`` untouched; applying them
    (wholesale, last writer wins) is the receiver's job.
    """

    def __init__(self, channel: TripChannel, on_snapshot: SnapshotHandler) -> None:
        self.channel = channel
        self.on_snapshot = on_snapshot
        self._unsubscribers: dict[str, Unsubscribe] = {}

    @property
    def watched(self) -> set[str]:
        return set(self._unsubscribers)

    def watch(self, trip_id: str) -> bool:
        if trip_id in self._unsubscribers:
            return False
        self._unsubscribers[trip_id] = self.channel.subscribe(trip_id, self.on_snapshot)
        return True

    def unwatch(self, trip_id: str) -> bool:
        unsubscribe = self._unsubscribers.pop(trip_id, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        return True

    def unwatch_all(self) -> int:
        trip_ids = list(self._unsubscribers)
        for trip_id in trip_ids:
            self.unwatch(trip_id)
        return len(trip_ids)
