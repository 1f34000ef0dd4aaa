from __future__ import annotations

from typing import Iterable, Sequence

from .geo_math import distance_km
from .models import LatLng, Stop


def sorted_stops(stops: Iterable[Stop]) -> list[Stop]:
    """Itinerary sequence: day ascending, then order. Stable for ties."""
    return sorted(stops, key=lambda stop: (stop.day, stop.order))


def group_by_day(stops: Iterable[Stop]) -> dict[int, list[Stop]]:
    grouped: dict[int, list[Stop]] = {}
    for stop in sorted_stops(stops):
        grouped.setdefault(stop.day, []).append(stop)
    return grouped


def unique_days(stops: Iterable[Stop]) -> list[int]:
    return sorted({stop.day for stop in stops})


def stops_for_day(stops: Iterable[Stop], day: int) -> list[Stop]:
    return sorted((stop for stop in stops if stop.day == day), key=lambda stop: stop.order)


def next_order(stops: Sequence[Stop]) -> int:
    # Append semantics: a new stop goes after everything already in the trip.
    return len(stops)


def adjacent_pairs(stops: Iterable[Stop]) -> list[tuple[Stop, Stop]]:
    ordered = sorted_stops(stops)
    return list(zip(ordered, ordered[1:]))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


def _renumber(sequence: Sequence[Stop], *, moved_id: str | None = None, moved_day: int | None = None) -> list[Stop]:
    out: list[Stop] = []
    for position, stop in enumerate(sequence):
        update: dict[str, int] = {"order": position}
        if moved_id is not None and stop.id == moved_id and moved_day is not None:
            update["day"] = moved_day
        out.append(stop.model_copy(update=update))
    return out


def move(
    stops: Sequence[Stop],
    from_index: int,
    to_index: int,
    *,
    day: int | None = None,
) -> list[Stop]:
    """Move one stop within the global itinerary sequence.

    Indices address ``sorted_stops(stops)`` and are clamped, so a stray drag
    gesture never raises. Every stop gets ``order`` rewritten to its position
    (0-based, contiguous). Only the moved stop may change day: to ``day`` when
    given, otherwise to its own day clamped between the days of its new
    neighbours, which keeps ``sorted_stops(result)`` equal to the sequence the
    caller dragged into place.
    """
    ordered = sorted_stops(stops)
    n = len(ordered)
    if n <= 1:
        return [stop.model_copy() for stop in ordered]

    src = _clamp(from_index, 0, n - 1)
    dst = _clamp(to_index, 0, n - 1)
    if src == dst and (day is None or day == ordered[src].day):
        return [stop.model_copy() for stop in ordered]

    sequence = list(ordered)
    moved = sequence.pop(src)
    sequence.insert(dst, moved)

    if day is not None:
        new_day = max(1, int(day))
    else:
        prev_day = sequence[dst - 1].day if dst > 0 else None
        next_day = sequence[dst + 1].day if dst + 1 < n else None
        new_day = moved.day
        if prev_day is not None and new_day < prev_day:
            new_day = prev_day
        if next_day is not None and new_day > next_day:
            new_day = next_day

    return _renumber(sequence, moved_id=moved.id, moved_day=new_day)


def reorder_within_day(stops: Sequence[Stop], from_index: int, to_index: int, day: int) -> list[Stop]:
    """Reorder inside one day; stops of other days are returned untouched."""
    day_stops = stops_for_day(stops, day)
    others = [stop.model_copy() for stop in stops if stop.day != day]
    if len(day_stops) <= 1:
        return others + [stop.model_copy() for stop in day_stops]

    src = _clamp(from_index, 0, len(day_stops) - 1)
    dst = _clamp(to_index, 0, len(day_stops) - 1)
    moved = day_stops.pop(src)
    day_stops.insert(dst, moved)
    return others + [stop.model_copy(update={"order": idx}) for idx, stop in enumerate(day_stops)]


def _nearest_first(stops: list[Stop], start: LatLng | None) -> list[Stop]:
    remaining = [stop for stop in stops if stop.has_coordinates]
    unlocated = [stop for stop in stops if not stop.has_coordinates]
    tour: list[Stop] = []
    current = start
    while remaining:
        if current is None:
            nxt = remaining.pop(0)
        else:
            here = current
            idx = min(range(len(remaining)), key=lambda i: distance_km(here, remaining[i].point))  # type: ignore[arg-type]
            nxt = remaining.pop(idx)
        tour.append(nxt)
        current = nxt.point
    return tour + unlocated


def optimize_order(stops: Sequence[Stop], start: LatLng | None = None) -> list[Stop]:
    """Greedy nearest-neighbour ordering, applied day by day.

    Each day's tour starts from the last stop of the previous day (or from
    ``start`` for the first day). Days are kept; orders are rewritten globally.
    Stops without coordinates keep their relative order at the end of their day.
    """
    if len(stops) <= 2:
        return [stop.model_copy() for stop in sorted_stops(stops)]

    sequence: list[Stop] = []
    anchor = start
    for day_stops in group_by_day(stops).values():
        tour = _nearest_first(day_stops, anchor)
        sequence.extend(tour)
        located = [stop for stop in tour if stop.has_coordinates]
        if located:
            anchor = located[-1].point
    return _renumber(sequence)
