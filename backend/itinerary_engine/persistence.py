from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol, Sequence

from pydantic import ValidationError

from .errors import ItineraryError
from .models import TransportSegment, utc_now


@dataclass(frozen=True)
class SegmentWrite:
    """One operation of a segment batch.

    ``fields`` set: upsert (``segment_id`` None lets the store pick an id).
    ``fields`` None: delete ``segment_id``.
    """

    segment_id: str | None
    fields: dict[str, Any] | None

    @classmethod
    def upsert(cls, fields: dict[str, Any], segment_id: str | None = None) -> SegmentWrite:
        return cls(segment_id=segment_id, fields=dict(fields))

    @classmethod
    def delete(cls, segment_id: str) -> SegmentWrite:
        return cls(segment_id=segment_id, fields=None)

    @property
    def is_delete(self) -> bool:
        return self.fields is None


class SegmentPersistence(Protocol):
    async def commit(self, trip_id: str, ops: Sequence[SegmentWrite]) -> list[TransportSegment]: ...

    async def segments(self, trip_id: str) -> list[TransportSegment]: ...


class InMemorySegmentStore:
    """Process-local segment store. Each ``commit`` applies all ops or none."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._trips: dict[str, dict[str, TransportSegment]] = {}
        self.commits = 0

    def seed(self, trip_id: str, segments: Sequence[TransportSegment]) -> None:
        with self._lock:
            self._trips[trip_id] = {segment.id: segment.model_copy() for segment in segments}

    async def segments(self, trip_id: str) -> list[TransportSegment]:
        with self._lock:
            return [segment.model_copy() for segment in self._trips.get(trip_id, {}).values()]

    def _apply(self, rows: dict[str, TransportSegment], trip_id: str, op: SegmentWrite) -> None:
        if op.is_delete:
            if not op.segment_id:
                raise ItineraryError("persistence_failed", "delete requires a segment id")
            rows.pop(op.segment_id, None)
            return

        fields = dict(op.fields or {})
        existing = rows.get(op.segment_id) if op.segment_id else None
        if existing is not None:
            merged = {**existing.model_dump(), **fields, "id": existing.id, "trip_id": trip_id, "updated_at": utc_now()}
        else:
            now = utc_now()
            merged = {
                **fields,
                "id": op.segment_id or str(uuid.uuid4()),
                "trip_id": trip_id,
                "created_at": fields.get("created_at") or now,
                "updated_at": now,
            }
        try:
            segment = TransportSegment.model_validate(merged)
        except ValidationError as e:
            raise ItineraryError(
                "persistence_failed",
                "invalid segment fields",
                details={"segment_id": op.segment_id, "error_count": e.error_count()},
            ) from e

        # At most one segment per ordered pair.
        for other_id, other in list(rows.items()):
            if other_id != segment.id and other.pair == segment.pair:
                rows.pop(other_id)
        rows[segment.id] = segment

    async def commit(self, trip_id: str, ops: Sequence[SegmentWrite]) -> list[TransportSegment]:
        with self._lock:
            staged = copy.copy(self._trips.get(trip_id, {}))
            for op in ops:
                self._apply(staged, trip_id, op)
            self._trips[trip_id] = staged
            self.commits += 1
            return [segment.model_copy() for segment in staged.values()]
