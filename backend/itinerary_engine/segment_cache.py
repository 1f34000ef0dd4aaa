from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Sequence

from .errors import ItineraryError
from .geo_math import distance_km
from .logging_utils import log_event
from .models import RouteLeg, Stop, TransportMode, TransportSegment, Trip, utc_now
from .persistence import SegmentPersistence, SegmentWrite
from .route_synthesis import RouteSynthesizer
from .stop_ordering import adjacent_pairs
from .transport_modes import check_mode, resolve_transport

Pair = tuple[str, str]
# (trip_id, from_stop_id, to_stop_id); shared copies of a trip reuse stop ids.
GeometryKey = tuple[str, str, str]


@dataclass(frozen=True)
class SegmentGenerationResult:
    segments: list[TransportSegment]
    legs: list[RouteLeg]
    created: int
    deleted: int
    missing_geometry: list[Pair] = field(default_factory=list)


@dataclass(frozen=True)
class ModeUpdateResult:
    segment: TransportSegment
    legs: list[RouteLeg]
    warning: str | None


def _segment_fields(from_stop: Stop, to_stop: Stop, mode: TransportMode | None = None) -> dict[str, object]:
    resolved = resolve_transport(from_stop.point, to_stop.point, mode)  # type: ignore[arg-type]
    return {
        "from_stop_id": from_stop.id,
        "to_stop_id": to_stop.id,
        "mode": resolved.mode,
        "distance_m": resolved.distance_m,
        "duration_s": resolved.duration_s,
    }


def _located_pairs(stops: Sequence[Stop]) -> list[tuple[Stop, Stop]]:
    # A pair with an unlocated endpoint has no distance, so it never gets a segment.
    return [(a, b) for a, b in adjacent_pairs(stops) if a.has_coordinates and b.has_coordinates]


class TransportSegmentCache:
    """Keeps a trip's transport segments and their drawn geometry in step.

    Segment rows go through the persistence collaborator, one atomic batch per
    call. Geometry only lives here, keyed by ``(trip_id, from_stop_id, to_stop_id)``.
    """

    def __init__(self, persistence: SegmentPersistence, synthesizer: RouteSynthesizer) -> None:
        self.persistence = persistence
        self.synthesizer = synthesizer
        self._geometry: dict[GeometryKey, list[RouteLeg]] = {}

    def legs_for(self, trip_id: str, pair: Pair) -> list[RouteLeg]:
        return [leg.model_copy() for leg in self._geometry.get((trip_id, *pair), [])]

    def has_geometry(self, trip_id: str, pair: Pair) -> bool:
        return bool(self._geometry.get((trip_id, *pair)))

    def forget(self, trip_id: str, pairs: Sequence[Pair] | None = None) -> None:
        if pairs is None:
            for key in [key for key in self._geometry if key[0] == trip_id]:
                del self._geometry[key]
            return
        for pair in pairs:
            self._geometry.pop((trip_id, *pair), None)

    def adjacent_legs(self, trip_id: str, stops: Sequence[Stop]) -> list[RouteLeg]:
        """Cached legs for the current adjacency only; stale pairs are skipped."""
        return [leg for a, b in adjacent_pairs(stops) for leg in self.legs_for(trip_id, (a.id, b.id))]

    async def _draw(self, trip_id: str, rows: Sequence[tuple[Stop, Stop, TransportSegment]]) -> list[Pair]:
        """Synthesize and store geometry for ``rows``; returns the pairs that failed."""
        results = await self.synthesizer.synthesize_pairs(rows, return_exceptions=True)
        missing: list[Pair] = []
        for (from_stop, to_stop, segment), result in zip(rows, results):
            pair = segment.pair
            key = (trip_id, *pair)
            if isinstance(result, BaseException) or not result:
                self._geometry.pop(key, None)
                missing.append(pair)
                if isinstance(result, BaseException):
                    log_event(
                        "route_fallback",
                        level=logging.WARNING,
                        from_stop_id=from_stop.id,
                        to_stop_id=to_stop.id,
                        mode=segment.mode,
                        error=str(result) or type(result).__name__,
                        geometry="missing",
                    )
                continue
            self._geometry[key] = result
        return missing

    async def incremental_generate(self, trip: Trip) -> SegmentGenerationResult:
        """Add segments for new adjacencies only; existing pairs are left alone."""
        existing = {segment.pair for segment in trip.transport_segments}
        new_rows: list[tuple[Stop, Stop, TransportSegment]] = []
        for a, b in _located_pairs(trip.stops):
            if (a.id, b.id) in existing:
                continue
            segment = TransportSegment(id=str(uuid.uuid4()), trip_id=trip.id, **_segment_fields(a, b))
            new_rows.append((a, b, segment))

        if not new_rows:
            return SegmentGenerationResult(
                segments=[segment.model_copy() for segment in trip.transport_segments],
                legs=self.adjacent_legs(trip.id, trip.stops),
                created=0,
                deleted=0,
            )

        ops = [
            SegmentWrite.upsert(segment.model_dump(exclude={"id", "trip_id"}), segment_id=segment.id)
            for _, _, segment in new_rows
        ]
        await self.persistence.commit(trip.id, ops)
        segments = [segment.model_copy() for segment in trip.transport_segments]
        segments.extend(segment for _, _, segment in new_rows)
        missing = await self._draw(trip.id, new_rows)

        log_event(
            "segments_generated",
            trip_id=trip.id,
            created_count=len(new_rows),
            missing_geometry=len(missing),
        )
        return SegmentGenerationResult(
            segments=segments,
            legs=self.adjacent_legs(trip.id, trip.stops),
            created=len(new_rows),
            deleted=0,
            missing_geometry=missing,
        )

    async def full_regenerate(self, trip: Trip) -> SegmentGenerationResult:
        """Drop every segment of the trip and recompute one per adjacent pair.

        Modes are re-derived from distance; explicit user choices do not survive.
        """
        stored = await self.persistence.segments(trip.id)
        stale_ids = {segment.id for segment in trip.transport_segments} | {segment.id for segment in stored}

        rows: list[tuple[Stop, Stop, TransportSegment]] = []
        for a, b in _located_pairs(trip.stops):
            segment = TransportSegment(id=str(uuid.uuid4()), trip_id=trip.id, **_segment_fields(a, b))
            rows.append((a, b, segment))

        ops = [SegmentWrite.delete(segment_id) for segment_id in sorted(stale_ids)]
        ops.extend(
            SegmentWrite.upsert(segment.model_dump(exclude={"id", "trip_id"}), segment_id=segment.id)
            for _, _, segment in rows
        )
        await self.persistence.commit(trip.id, ops)
        segments = [segment for _, _, segment in rows]

        self.forget(trip.id, [segment.pair for segment in [*trip.transport_segments, *stored]])
        missing = await self._draw(trip.id, rows)

        log_event(
            "segments_regenerated",
            trip_id=trip.id,
            created_count=len(rows),
            deleted=len(stale_ids),
            missing_geometry=len(missing),
        )
        return SegmentGenerationResult(
            segments=segments,
            legs=self.adjacent_legs(trip.id, trip.stops),
            created=len(rows),
            deleted=len(stale_ids),
            missing_geometry=missing,
        )

    async def update_mode(
        self,
        trip: Trip,
        from_stop_id: str,
        to_stop_id: str,
        mode: TransportMode,
    ) -> ModeUpdateResult:
        """Explicit user override for one pair; returns the advisory warning, if any."""
        from_stop = trip.stop_by_id(from_stop_id)
        to_stop = trip.stop_by_id(to_stop_id)
        if from_stop is None or to_stop is None:
            missing_id = from_stop_id if from_stop is None else to_stop_id
            raise ItineraryError("stop_not_found", f"stop {missing_id} not found", details={"stop_id": missing_id})
        if not from_stop.has_coordinates or not to_stop.has_coordinates:
            raise ItineraryError(
                "invalid_coordinates",
                "both stops need coordinates to set a transport mode",
                details={"from_stop_id": from_stop_id, "to_stop_id": to_stop_id},
            )

        fields = _segment_fields(from_stop, to_stop, mode)
        existing = trip.segment_for(from_stop_id, to_stop_id)
        segment_id = existing.id if existing is not None else str(uuid.uuid4())
        segments = await self.persistence.commit(trip.id, [SegmentWrite.upsert(fields, segment_id=segment_id)])
        segment = next(
            (row for row in segments if row.id == segment_id),
            TransportSegment(id=segment_id, trip_id=trip.id, updated_at=utc_now(), **fields),
        )

        await self._draw(trip.id, [(from_stop, to_stop, segment)])
        d_km = distance_km(from_stop.point, to_stop.point)  # type: ignore[arg-type]
        warning = check_mode(mode, d_km)

        log_event(
            "transport_mode_updated",
            trip_id=trip.id,
            from_stop_id=from_stop_id,
            to_stop_id=to_stop_id,
            mode=mode,
            previous_mode=existing.mode if existing is not None else None,
            duration_s=segment.duration_s,
            warning=warning,
        )
        return ModeUpdateResult(segment=segment, legs=self.legs_for(trip.id, segment.pair), warning=warning)
