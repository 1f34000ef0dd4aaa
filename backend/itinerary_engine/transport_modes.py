from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final

from .geo_math import distance_km
from .models import LatLng, StopCategory, TransportMode

# Canonical average speeds (km/h). Every stored segment duration uses these.
SPEEDS_KMH: Final[dict[str, float]] = {
    "walking": 5.0,
    "bicycling": 15.0,
    "driving": 50.0,
    "flight": 800.0,
}

# Advisory speeds only feed the estimates quoted in warning text.
ADVISORY_SPEEDS_KMH: Final[dict[str, float]] = {
    "walking": 5.0,
    "bicycling": 20.0,
    "driving": 50.0,
    "flight": 500.0,
}

FLIGHT_THRESHOLD_KM: Final[float] = 500.0

WALKING_MAX_REASONABLE_KM: Final[float] = 10.0
BICYCLING_MAX_REASONABLE_KM: Final[float] = 50.0
FLIGHT_MIN_REASONABLE_KM: Final[float] = 100.0


@dataclass(frozen=True)
class ModeAdvice:
    mode: TransportMode
    reason: str
    confidence: float


@dataclass(frozen=True)
class ResolvedTransport:
    mode: TransportMode
    distance_m: float
    duration_s: int


def auto_mode(distance: float) -> TransportMode:
    """Mode picked when the user has not chosen one.

    Only long hauls become flights; everything else defaults to driving.
    Walking and bicycling are never auto-selected from distance alone.
    """
    if distance > FLIGHT_THRESHOLD_KM:
        return "flight"
    return "driving"


def estimate_duration_s(distance: float, mode: TransportMode) -> int:
    speed = SPEEDS_KMH.get(mode, SPEEDS_KMH["walking"])
    return int(round(max(0.0, distance) / speed * 3600.0))


def resolve_transport(
    origin: LatLng,
    destination: LatLng,
    mode: TransportMode | None = None,
) -> ResolvedTransport:
    """Distance, mode and duration for one stop pair, computed together."""
    d_km = distance_km(origin, destination)
    selected = mode or auto_mode(d_km)
    return ResolvedTransport(
        mode=selected,
        distance_m=float(round(d_km * 1000.0)),
        duration_s=estimate_duration_s(d_km, selected),
    )


def _advisory_minutes(distance: float, mode: TransportMode) -> int:
    return int(round(distance / ADVISORY_SPEEDS_KMH[mode] * 60.0))


def recommend_mode(
    distance: float,
    categories: tuple[StopCategory, StopCategory] | None = None,
) -> ModeAdvice:
    """Advisory recommendation. Never used to assign a segment's mode."""
    if categories is not None:
        cats = set(categories)
        if "food" in cats and distance < 1.0:
            return ModeAdvice("walking", "Food stops close together are usually walkable", 0.9)
        if cats == {"hotel", "activity"} and distance <= 2.0:
            return ModeAdvice("walking", "Short hop between hotel and activity", 0.85)

    if distance < 1.0:
        return ModeAdvice("walking", "Very short distance, perfect for walking", 0.95)
    if distance < 3.0:
        return ModeAdvice("bicycling", "Short distance, ideal for cycling", 0.85)
    if distance < 5.0:
        return ModeAdvice("bicycling", "Moderate distance, cycling or walking recommended", 0.75)
    if distance < 15.0:
        return ModeAdvice("driving", "Medium distance, driving or transit recommended", 0.80)
    if distance < 30.0:
        return ModeAdvice("driving", "Considerable distance, driving recommended", 0.85)
    if distance < 300.0:
        return ModeAdvice("driving", "Long distance, road trip suitable", 0.90)
    if distance < 1000.0:
        return ModeAdvice("flight", "Very long distance, consider flying", 0.85)
    return ModeAdvice("flight", "Extremely long distance, flying strongly recommended", 0.95)


def check_mode(mode: TransportMode, distance: float) -> str | None:
    """Warning text when ``mode`` is unreasonable for ``distance``, else None."""
    if mode == "walking" and distance > WALKING_MAX_REASONABLE_KM:
        return (
            f"{distance:.1f}km is quite far to walk "
            f"({_advisory_minutes(distance, 'walking')} min)"
        )
    if mode == "bicycling" and distance > BICYCLING_MAX_REASONABLE_KM:
        return (
            f"{distance:.1f}km is a very long bike ride "
            f"({_advisory_minutes(distance, 'bicycling')} min)"
        )
    if mode == "flight" and distance < FLIGHT_MIN_REASONABLE_KM:
        return f"{distance:.1f}km is too short for a flight - consider driving"
    return None


def format_distance(meters: float) -> str:
    if not math.isfinite(meters) or meters < 0:
        return "--"
    if meters < 1000:
        return f"{round(meters)}m"
    km = meters / 1000.0
    if km < 10:
        return f"{km:.1f}km"
    return f"{round(km)}km"


def format_duration(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0:
        return "--"
    minutes = int(round(seconds / 60.0))
    if minutes == 0:
        return "< 1min"
    if minutes < 60:
        return f"{minutes}min"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}min"
