from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

TransportMode = Literal["driving", "walking", "bicycling", "flight"]
StopCategory = Literal["food", "activity", "hotel", "sightseeing", "transport", "other"]
LegKind = Literal["direct", "ground", "air"]
GenerationMode = Literal["incremental", "full"]

TRANSPORT_MODES: tuple[TransportMode, ...] = ("driving", "walking", "bicycling", "flight")
STOP_CATEGORIES: tuple[StopCategory, ...] = ("food", "activity", "hotel", "sightseeing", "transport", "other")


def utc_now() -> datetime:
    return datetime.now(UTC)


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class BoundingBox(BaseModel):
    northeast: LatLng
    southwest: LatLng


class Stop(BaseModel):
    """One itinerary stop.

    ``day`` and ``order`` define the itinerary sequence; every other optional
    field is descriptive and never read by ordering or routing. A zero or
    missing coordinate means "no usable location".
    """

    id: str = Field(..., min_length=1)
    trip_id: str = ""
    name: str = ""
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    day: int = Field(default=1, ge=1)
    order: int = 0
    category: StopCategory = "other"
    address: str = ""
    notes: str = ""
    estimated_time_min: float | None = Field(default=None, ge=0)
    cost: float | None = Field(default=None, ge=0)
    tags: str | None = None
    website: str | None = None
    phone: str | None = None
    companions: str | None = None
    created_at: datetime | None = None

    @field_validator("category", mode="before")
    @classmethod
    def unknown_category_is_other(cls, value: object) -> object:
        if value not in STOP_CATEGORIES:
            return "other"
        return value

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None and self.lat != 0 and self.lng != 0

    @property
    def point(self) -> LatLng | None:
        if not self.has_coordinates:
            return None
        return LatLng(lat=float(self.lat), lng=float(self.lng))  # type: ignore[arg-type]


class TransportSegment(BaseModel):
    id: str = Field(..., min_length=1)
    trip_id: str = ""
    from_stop_id: str
    to_stop_id: str
    mode: TransportMode
    distance_m: float = Field(..., ge=0)
    duration_s: int = Field(..., ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_stop_id, self.to_stop_id)


class Trip(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    stops: list[Stop] = Field(default_factory=list)
    transport_segments: list[TransportSegment] = Field(default_factory=list)
    is_collaborative: bool = False
    updated_at: datetime = Field(default_factory=utc_now)

    def stop_by_id(self, stop_id: str) -> Stop | None:
        for stop in self.stops:
            if stop.id == stop_id:
                return stop
        return None

    def segment_for(self, from_stop_id: str, to_stop_id: str) -> TransportSegment | None:
        for segment in self.transport_segments:
            if segment.from_stop_id == from_stop_id and segment.to_stop_id == to_stop_id:
                return segment
        return None


class RouteLeg(BaseModel):
    """A drawable path between two adjacent stops (or one part of it)."""

    coordinates: list[LatLng]
    mode: TransportMode
    duration_s: int = Field(default=0, ge=0)
    distance_m: float = Field(default=0.0, ge=0)
    from_stop_id: str
    to_stop_id: str
    kind: LegKind = "direct"
    approximate: bool = False
    provider: str = "straight_line"


class TripMetrics(BaseModel):
    total_distance_km: float
    total_time_h: float
    travel_time_s: int
    visit_time_s: int
    segment_count: int


class ModeAdviceResponse(BaseModel):
    mode: TransportMode
    reason: str
    confidence: float = Field(..., ge=0, le=1)
    warning: str | None = None


class StopsRequest(BaseModel):
    stops: list[Stop]


class MoveRequest(BaseModel):
    stops: list[Stop]
    from_index: int
    to_index: int
    day: int | None = Field(default=None, ge=1)


class StopsResponse(BaseModel):
    stops: list[Stop]
    days: dict[int, list[str]] = Field(default_factory=dict)


class TripRequest(BaseModel):
    trip: Trip


class LegsResponse(BaseModel):
    stops: list[Stop]
    legs: list[RouteLeg]
    metrics: TripMetrics


class RegenerateRequest(BaseModel):
    trip: Trip
    mode: GenerationMode = "full"


class RegenerateResponse(BaseModel):
    segments: list[TransportSegment]
    legs: list[RouteLeg]
    created: int
    deleted: int
    missing_geometry: list[tuple[str, str]] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    origin: LatLng
    destination: LatLng
    mode: TransportMode | None = None


class ResolveResponse(BaseModel):
    mode: TransportMode
    distance_m: float
    duration_s: int
    warning: str | None = None


class AdviceRequest(BaseModel):
    origin: LatLng
    destination: LatLng
    categories: tuple[StopCategory, StopCategory] | None = None
    mode: TransportMode | None = None


class ShareCodeRequest(BaseModel):
    code: str = Field(..., min_length=1)


class ShareCodeResponse(BaseModel):
    code: str
