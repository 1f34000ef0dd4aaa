from __future__ import annotations

import math
import random

import pytest

from itinerary_engine.geo_math import (
    bounding_box,
    curved_arc,
    decode_polyline,
    distance_km,
    encode_polyline,
    straight_line,
)
from itinerary_engine.models import LatLng

# Reference example from the encoded polyline algorithm documentation.
GOOGLE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
GOOGLE_POINTS = [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]


def _random_point(rng: random.Random) -> LatLng:
    return LatLng(lat=rng.uniform(-89.0, 89.0), lng=rng.uniform(-179.0, 179.0))


def test_decode_reference_polyline() -> None:
    points = decode_polyline(GOOGLE_POLYLINE)
    assert [(p.lat, p.lng) for p in points] == pytest.approx(GOOGLE_POINTS)


def test_encode_reference_polyline() -> None:
    points = [LatLng(lat=lat, lng=lng) for lat, lng in GOOGLE_POINTS]
    assert encode_polyline(points) == GOOGLE_POLYLINE


def test_decode_empty_string_is_empty() -> None:
    assert decode_polyline("") == []


def test_distance_is_symmetric_and_zero_on_self() -> None:
    rng = random.Random(7)
    for _ in range(200):
        a = _random_point(rng)
        b = _random_point(rng)
        assert distance_km(a, b) == pytest.approx(distance_km(b, a), abs=1e-9)
        assert distance_km(a, a) == 0.0
        assert 0.0 <= distance_km(a, b) <= math.pi * 6371.0 + 1e-6


def test_distance_london_paris() -> None:
    london = LatLng(lat=51.5074, lng=-0.1278)
    paris = LatLng(lat=48.8566, lng=2.3522)
    assert distance_km(london, paris) == pytest.approx(343.5, abs=1.5)


def test_bounding_box_covers_points() -> None:
    box = bounding_box(
        [
            LatLng(lat=10.0, lng=-5.0),
            LatLng(lat=-3.0, lng=20.0),
            LatLng(lat=4.0, lng=1.0),
        ]
    )
    assert (box.northeast.lat, box.northeast.lng) == (10.0, 20.0)
    assert (box.southwest.lat, box.southwest.lng) == (-3.0, -5.0)


def test_bounding_box_empty_is_origin() -> None:
    box = bounding_box([])
    assert (box.northeast.lat, box.northeast.lng) == (0.0, 0.0)
    assert (box.southwest.lat, box.southwest.lng) == (0.0, 0.0)


def test_curved_arc_has_exact_endpoints_and_bows() -> None:
    start = LatLng(lat=40.6413, lng=-73.7781)
    end = LatLng(lat=51.47, lng=-0.4543)
    arc = curved_arc(start, end, num_points=30, curvature=0.15)

    assert len(arc) == 31
    assert (arc[0].lat, arc[0].lng) == (start.lat, start.lng)
    assert (arc[-1].lat, arc[-1].lng) == (end.lat, end.lng)

    flat = curved_arc(start, end, num_points=30, curvature=0.0)
    mid = len(arc) // 2
    assert (arc[mid].lat, arc[mid].lng) != pytest.approx((flat[mid].lat, flat[mid].lng))


def test_curved_arc_along_meridian_leaves_the_line() -> None:
    start = LatLng(lat=10.0, lng=5.0)
    end = LatLng(lat=30.0, lng=5.0)
    arc = curved_arc(start, end, num_points=10, curvature=0.1)
    assert len(arc) == 11
    assert any(abs(point.lng - 5.0) > 0.1 for point in arc[1:-1])


def test_curved_arc_identical_endpoints_is_two_points() -> None:
    p = LatLng(lat=12.0, lng=34.0)
    assert len(curved_arc(p, p, num_points=30, curvature=0.1)) == 2


def test_straight_line_is_two_points() -> None:
    a = LatLng(lat=1.0, lng=2.0)
    b = LatLng(lat=3.0, lng=4.0)
    line = straight_line(a, b)
    assert [(p.lat, p.lng) for p in line] == [(1.0, 2.0), (3.0, 4.0)]
