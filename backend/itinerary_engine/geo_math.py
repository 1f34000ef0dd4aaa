from __future__ import annotations

import math
from typing import Iterable, Sequence

from .models import BoundingBox, LatLng

EARTH_RADIUS_KM = 6371.0
POLYLINE_PRECISION = 5


def distance_km(a: LatLng, b: LatLng) -> float:
    """Great-circle distance (Haversine)."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2.0) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1.0 - h)))
    return EARTH_RADIUS_KM * c


def bounding_box(points: Iterable[LatLng]) -> BoundingBox:
    """Min/max box over both axes. No points gives the degenerate box at the origin."""
    pts = list(points)
    if not pts:
        origin = LatLng(lat=0.0, lng=0.0)
        return BoundingBox(northeast=origin, southwest=origin.model_copy())

    lats = [p.lat for p in pts]
    lngs = [p.lng for p in pts]
    return BoundingBox(
        northeast=LatLng(lat=max(lats), lng=max(lngs)),
        southwest=LatLng(lat=min(lats), lng=min(lngs)),
    )


def _round_half_away(value: float) -> int:
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else (value << 1)
    chunks: list[str] = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Sequence[LatLng], precision: int = POLYLINE_PRECISION) -> str:
    factor = 10**precision
    out: list[str] = []
    prev_lat = 0
    prev_lng = 0
    for point in points:
        lat = _round_half_away(point.lat * factor)
        lng = _round_half_away(point.lng * factor)
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(out)


def decode_polyline(encoded: str, precision: int = POLYLINE_PRECISION) -> list[LatLng]:
    """Decode an encoded polyline (delta + zig-zag, 5-bit chunks).

    Corrupt input is not detected; callers must only pass strings produced by
    a polyline encoder.
    """
    factor = float(10**precision)
    points: list[LatLng] = []
    index = 0
    length = len(encoded)
    lat = 0
    lng = 0

    while index < length:
        deltas: list[int] = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(encoded[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else (result >> 1))
        lat += deltas[0]
        lng += deltas[1]
        points.append(LatLng(lat=lat / factor, lng=lng / factor))

    return points


def _wrap_lng(lng: float) -> float:
    wrapped = ((lng + 180.0) % 360.0) - 180.0
    # keep +180 instead of folding it onto -180
    if wrapped == -180.0 and lng > 0:
        return 180.0
    return wrapped


def curved_arc(
    start: LatLng,
    end: LatLng,
    *,
    num_points: int = 30,
    curvature: float = 0.0,
) -> list[LatLng]:
    """Sample a bowed great-circle arc from ``start`` to ``end``.

    Returns ``num_points + 1`` points. Each interior point sits on the great
    circle and is then pushed sideways by ``curvature * chord * sin(pi * f)``
    degrees, perpendicular to the chord, so the path reads as an arc on a flat
    map even when the great circle itself projects to a straight line.
    """
    steps = max(1, int(num_points))
    lat1 = math.radians(start.lat)
    lng1 = math.radians(start.lng)
    lat2 = math.radians(end.lat)
    lng2 = math.radians(end.lng)

    central = distance_km(start, end) / EARTH_RADIUS_KM
    sin_central = math.sin(central)
    if central < 1e-12 or abs(sin_central) < 1e-12:
        return [start.model_copy(), end.model_copy()]

    chord_lat = end.lat - start.lat
    chord_lng = _wrap_lng(end.lng - start.lng)
    chord = math.hypot(chord_lat, chord_lng)
    normal_lat = -chord_lng / chord if chord > 0 else 0.0
    normal_lng = chord_lat / chord if chord > 0 else 0.0

    points: list[LatLng] = [start.model_copy()]
    for i in range(1, steps):
        f = i / steps
        a = math.sin((1.0 - f) * central) / sin_central
        b = math.sin(f * central) / sin_central
        x = a * math.cos(lat1) * math.cos(lng1) + b * math.cos(lat2) * math.cos(lng2)
        y = a * math.cos(lat1) * math.sin(lng1) + b * math.cos(lat2) * math.sin(lng2)
        z = a * math.sin(lat1) + b * math.sin(lat2)
        lat = math.degrees(math.atan2(z, math.sqrt(x * x + y * y)))
        lng = math.degrees(math.atan2(y, x))

        bow = curvature * chord * math.sin(math.pi * f)
        lat = max(-90.0, min(90.0, lat + bow * normal_lat))
        lng = _wrap_lng(lng + bow * normal_lng)
        points.append(LatLng(lat=lat, lng=lng))
    points.append(end.model_copy())
    return points


def straight_line(start: LatLng, end: LatLng) -> list[LatLng]:
    return [start.model_copy(), end.model_copy()]
