from __future__ import annotations

import pytest

from itinerary_engine.models import LatLng
from itinerary_engine.transport_modes import (
    SPEEDS_KMH,
    auto_mode,
    check_mode,
    estimate_duration_s,
    format_distance,
    format_duration,
    recommend_mode,
    resolve_transport,
)

_RANK = {"walking": 0, "bicycling": 1, "driving": 2, "flight": 3}


def test_auto_mode_thresholds() -> None:
    assert auto_mode(0.0) == "driving"
    assert auto_mode(2.0) == "driving"
    assert auto_mode(500.0) == "driving"
    assert auto_mode(500.1) == "flight"
    assert auto_mode(12_000.0) == "flight"


def test_auto_mode_is_monotone_in_distance() -> None:
    distances = [i * 7.5 for i in range(400)]
    ranks = [_RANK[auto_mode(d)] for d in distances]
    assert ranks == sorted(ranks)


def test_duration_uses_canonical_speeds() -> None:
    assert estimate_duration_s(50.0, "driving") == 3600
    assert estimate_duration_s(5.0, "walking") == 3600
    assert estimate_duration_s(15.0, "bicycling") == 3600
    assert estimate_duration_s(800.0, "flight") == 3600
    assert estimate_duration_s(2.0, "driving") == round(2.0 / SPEEDS_KMH["driving"] * 3600)


def test_resolve_transport_computes_distance_and_duration_together() -> None:
    paris = LatLng(lat=48.8566, lng=2.3522)
    lyon = LatLng(lat=45.764, lng=4.8357)
    resolved = resolve_transport(paris, lyon)
    assert resolved.mode == "driving"
    assert resolved.distance_m == pytest.approx(392_000, rel=0.01)
    assert abs(resolved.duration_s - estimate_duration_s(resolved.distance_m / 1000.0, "driving")) <= 1

    walking = resolve_transport(paris, lyon, "walking")
    assert walking.mode == "walking"
    assert walking.distance_m == resolved.distance_m
    assert walking.duration_s > resolved.duration_s


def test_recommend_mode_bands() -> None:
    assert recommend_mode(0.5).mode == "walking"
    assert recommend_mode(2.0).mode == "bicycling"
    assert recommend_mode(4.0).mode == "bicycling"
    assert recommend_mode(10.0).mode == "driving"
    assert recommend_mode(200.0).mode == "driving"
    assert recommend_mode(650.0).mode == "flight"
    far = recommend_mode(5000.0)
    assert far.mode == "flight"
    assert far.confidence > recommend_mode(650.0).confidence


def test_recommend_mode_category_hints() -> None:
    assert recommend_mode(0.8, ("food", "sightseeing")).mode == "walking"
    assert recommend_mode(1.8, ("hotel", "activity")).mode == "walking"
    assert recommend_mode(1.8, ("activity", "hotel")).mode == "walking"
    assert recommend_mode(1.8, ("food", "food")).mode == "bicycling"


def test_check_mode_warnings() -> None:
    assert check_mode("walking", 12.0) is not None
    assert "walk" in check_mode("walking", 12.0)
    assert check_mode("walking", 9.0) is None
    assert check_mode("bicycling", 60.0) is not None
    assert check_mode("bicycling", 40.0) is None
    assert check_mode("flight", 80.0) is not None
    assert check_mode("flight", 650.0) is None
    assert check_mode("driving", 5000.0) is None


def test_walking_warning_quotes_advisory_minutes() -> None:
    # 12 km at 5 km/h
    assert "(144 min)" in check_mode("walking", 12.0)


@pytest.mark.parametrize(
    ("meters", "expected"),
    [(0, "0m"), (850, "850m"), (1500, "1.5km"), (25_400, "25km"), (-1, "--")],
)
def test_format_distance(meters: float, expected: str) -> None:
    assert format_distance(meters) == expected


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(10, "< 1min"), (2700, "45min"), (7200, "2h"), (3900, "1h 5min"), (float("nan"), "--")],
)
def test_format_duration(seconds: float, expected: str) -> None:
    assert format_duration(seconds) == expected
