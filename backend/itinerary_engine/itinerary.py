from __future__ import annotations

import itertools
import logging
import uuid
from typing import Any, Sequence

from pydantic import ValidationError

from .errors import ItineraryError
from .logging_utils import log_event
from .models import RouteLeg, Stop, TransportMode, TransportSegment, Trip, TripMetrics, utc_now
from .persistence import SegmentWrite
from .realtime import TripChannel, TripSyncHub
from .segment_cache import SegmentGenerationResult, TransportSegmentCache
from .stop_ordering import adjacent_pairs, move, next_order, sorted_stops

# Stop fields whose change alters distances or adjacency.
_ROUTING_FIELDS = frozenset({"lat", "lng", "day", "order"})
_IMMUTABLE_FIELDS = frozenset({"id", "trip_id", "created_at"})


def _require_coordinates(lat: float | None, lng: float | None) -> None:
    if lat is None or lng is None or lat == 0 or lng == 0:
        raise ItineraryError(
            "invalid_coordinates",
            "valid coordinates are required",
            details={"lat": lat, "lng": lng},
        )


def _validated_stop(data: dict[str, Any]) -> Stop:
    try:
        return Stop.model_validate(data)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        reason = "invalid_coordinates" if {"lat", "lng"} & set(fields) else "invalid_stop"
        raise ItineraryError(
            reason,
            f"invalid stop fields: {', '.join(fields) or 'unknown'}",
            details={"fields": fields},
        ) from e


def trip_metrics(stops: Sequence[Stop], segments: Sequence[TransportSegment]) -> TripMetrics:
    """Totals over the segments of the current adjacency plus planned visit time."""
    by_pair = {segment.pair: segment for segment in segments}
    current = [by_pair[(a.id, b.id)] for a, b in adjacent_pairs(stops) if (a.id, b.id) in by_pair]

    distance_m = sum(segment.distance_m for segment in current)
    travel_s = sum(segment.duration_s for segment in current)
    visit_s = int(round(sum((stop.estimated_time_min or 0.0) * 60.0 for stop in stops)))
    return TripMetrics(
        total_distance_km=round(distance_m / 1000.0, 3),
        total_time_h=round((travel_s + visit_s) / 3600.0, 3),
        travel_time_s=travel_s,
        visit_time_s=visit_s,
        segment_count=len(current),
    )


class ItineraryService:
    """Mutation entry points for open trips.

    Each open trip carries a view token. Async work records the token it
    started under and only lands if the token is still current; closing the
    view or applying a remote snapshot retires the token.
    """

    def __init__(self, segments: TransportSegmentCache, channel: TripChannel | None = None) -> None:
        self.segments = segments
        self._trips: dict[str, Trip] = {}
        self._tokens: dict[str, int] = {}
        self._token_seq = itertools.count(1)
        self.sync = TripSyncHub(channel, self.apply_remote_snapshot) if channel is not None else None

    # -- views ---------------------------------------------------------------

    def open_view(self, trip: Trip) -> int:
        self._trips[trip.id] = trip.model_copy(deep=True)
        token = next(self._token_seq)
        self._tokens[trip.id] = token
        if self.sync is not None and trip.is_collaborative:
            self.sync.watch(trip.id)
        return token

    def close_view(self, trip_id: str) -> None:
        self._tokens.pop(trip_id, None)
        self._trips.pop(trip_id, None)
        self.segments.forget(trip_id)
        if self.sync is not None:
            self.sync.unwatch(trip_id)

    def shutdown(self) -> None:
        for trip_id in list(self._trips):
            self.segments.forget(trip_id)
        self._tokens.clear()
        self._trips.clear()
        if self.sync is not None:
            self.sync.unwatch_all()

    def view_token(self, trip_id: str) -> int | None:
        return self._tokens.get(trip_id)

    def get_trip(self, trip_id: str) -> Trip:
        trip = self._trips.get(trip_id)
        if trip is None:
            raise ItineraryError("trip_not_found", f"trip {trip_id} not found", details={"trip_id": trip_id})
        return trip

    def _is_current(self, trip_id: str, token: int | None, operation: str) -> bool:
        if token is not None and self._tokens.get(trip_id) == token:
            return True
        log_event(
            "stale_result_discarded",
            level=logging.DEBUG,
            trip_id=trip_id,
            operation=operation,
            token=token,
            current_token=self._tokens.get(trip_id),
        )
        return False

    def apply_remote_snapshot(self, trip: Trip) -> None:
        """Replace the local trip wholesale. Local edits still in flight are lost."""
        previous = self._trips.get(trip.id)
        self._trips[trip.id] = trip.model_copy(deep=True)
        if trip.id in self._tokens:
            self._tokens[trip.id] = next(self._token_seq)
        log_event(
            "remote_snapshot_applied",
            trip_id=trip.id,
            stop_count=len(trip.stops),
            segment_count=len(trip.transport_segments),
            replaced=previous is not None,
        )

    def _apply_generation(self, trip_id: str, token: int | None, result: SegmentGenerationResult, operation: str) -> bool:
        if not self._is_current(trip_id, token, operation):
            return False
        trip = self._trips[trip_id]
        self._trips[trip_id] = trip.model_copy(update={"transport_segments": result.segments, "updated_at": utc_now()})
        return True

    # -- stops ---------------------------------------------------------------

    async def add_stop(
        self,
        trip_id: str,
        *,
        name: str,
        lat: float | None,
        lng: float | None,
        day: int = 1,
        **fields: Any,
    ) -> Stop:
        trip = self.get_trip(trip_id)
        clean_name = (name or "").strip()
        if not clean_name:
            raise ItineraryError("invalid_stop_name", "stop name is required")
        _require_coordinates(lat, lng)

        extra = {key: value for key, value in fields.items() if key not in _IMMUTABLE_FIELDS and key != "order"}
        stop = _validated_stop(
            {
                **extra,
                "id": str(uuid.uuid4()),
                "trip_id": trip_id,
                "name": clean_name,
                "lat": lat,
                "lng": lng,
                "day": day,
                "order": next_order(trip.stops),
                "created_at": utc_now(),
            }
        )
        trip = trip.model_copy(update={"stops": [*trip.stops, stop], "updated_at": utc_now()})
        self._trips[trip_id] = trip

        token = self._tokens.get(trip_id)
        result = await self.segments.incremental_generate(trip)
        self._apply_generation(trip_id, token, result, "add_stop")
        return stop

    async def update_stop(self, trip_id: str, stop_id: str, **updates: Any) -> Stop:
        trip = self.get_trip(trip_id)
        current = trip.stop_by_id(stop_id)
        if current is None:
            raise ItineraryError("stop_not_found", f"stop {stop_id} not found", details={"stop_id": stop_id})

        changes = {key: value for key, value in updates.items() if key not in _IMMUTABLE_FIELDS and value is not None}
        if "name" in changes and not str(changes["name"]).strip():
            raise ItineraryError("invalid_stop_name", "stop name is required")
        if "lat" in changes or "lng" in changes:
            _require_coordinates(changes.get("lat", current.lat), changes.get("lng", current.lng))
        updated = _validated_stop({**current.model_dump(), **changes})

        stops = [updated if stop.id == stop_id else stop for stop in trip.stops]
        trip = trip.model_copy(update={"stops": stops, "updated_at": utc_now()})
        self._trips[trip_id] = trip

        if _ROUTING_FIELDS & changes.keys():
            token = self._tokens.get(trip_id)
            result = await self.segments.full_regenerate(trip)
            self._apply_generation(trip_id, token, result, "update_stop")
        return updated

    async def delete_stop(self, trip_id: str, stop_id: str) -> None:
        """Remove a stop and every segment touching it, then bridge the gap."""
        trip = self.get_trip(trip_id)
        if trip.stop_by_id(stop_id) is None:
            raise ItineraryError("stop_not_found", f"stop {stop_id} not found", details={"stop_id": stop_id})

        doomed = [s for s in trip.transport_segments if stop_id in (s.from_stop_id, s.to_stop_id)]
        if doomed:
            await self.segments.persistence.commit(trip_id, [SegmentWrite.delete(s.id) for s in doomed])
            self.segments.forget(trip_id, [s.pair for s in doomed])

        doomed_ids = {s.id for s in doomed}
        trip = trip.model_copy(
            update={
                "stops": [stop for stop in trip.stops if stop.id != stop_id],
                "transport_segments": [s for s in trip.transport_segments if s.id not in doomed_ids],
                "updated_at": utc_now(),
            }
        )
        self._trips[trip_id] = trip

        token = self._tokens.get(trip_id)
        result = await self.segments.incremental_generate(trip)
        self._apply_generation(trip_id, token, result, "delete_stop")

    async def move_stop(self, trip_id: str, from_index: int, to_index: int, *, day: int | None = None) -> list[Stop]:
        trip = self.get_trip(trip_id)
        reordered = move(trip.stops, from_index, to_index, day=day)
        trip = trip.model_copy(update={"stops": reordered, "updated_at": utc_now()})
        self._trips[trip_id] = trip
        log_event(
            "stop_moved",
            trip_id=trip_id,
            from_index=from_index,
            to_index=to_index,
            day=day,
            stop_count=len(reordered),
        )

        token = self._tokens.get(trip_id)
        result = await self.segments.full_regenerate(trip)
        self._apply_generation(trip_id, token, result, "move_stop")
        return sorted_stops(reordered)

    # -- segments ------------------------------------------------------------

    async def change_mode(self, trip_id: str, from_stop_id: str, to_stop_id: str, mode: TransportMode) -> str | None:
        trip = self.get_trip(trip_id)
        token = self._tokens.get(trip_id)
        result = await self.segments.update_mode(trip, from_stop_id, to_stop_id, mode)

        if self._is_current(trip_id, token, "change_mode"):
            trip = self._trips[trip_id]
            kept = [s for s in trip.transport_segments if s.pair != result.segment.pair]
            self._trips[trip_id] = trip.model_copy(
                update={"transport_segments": [*kept, result.segment], "updated_at": utc_now()}
            )
        return result.warning

    async def recompute_all(self, trip_id: str) -> SegmentGenerationResult:
        trip = self.get_trip(trip_id)
        token = self._tokens.get(trip_id)
        result = await self.segments.full_regenerate(trip)
        self._apply_generation(trip_id, token, result, "recompute_all")
        return result

    async def legs(self, trip_id: str) -> list[RouteLeg] | None:
        """Fresh legs for the whole itinerary, or None when the view went stale meanwhile."""
        trip = self.get_trip(trip_id)
        token = self._tokens.get(trip_id)
        legs = await self.segments.synthesizer.synthesize(trip.stops, trip.transport_segments)
        if not self._is_current(trip_id, token, "legs"):
            return None
        return legs

    def metrics(self, trip_id: str) -> TripMetrics:
        trip = self.get_trip(trip_id)
        return trip_metrics(trip.stops, trip.transport_segments)
