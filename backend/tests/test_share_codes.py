from __future__ import annotations

import base64
import json

import pytest

from itinerary_engine.errors import ItineraryError
from itinerary_engine.models import Stop, TransportSegment, Trip
from itinerary_engine.share_codes import SHARE_CODE_PREFIX, decode_trip, encode_trip, is_valid_share_code


def _trip() -> Trip:
    return Trip(
        id="t-original",
        name="Côte d'Azur",
        description="Sun and trains",
        stops=[
            Stop(id="a", trip_id="t-original", name="Nice", lat=43.7102, lng=7.262, order=0, category="hotel"),
            Stop(id="b", trip_id="t-original", name="Monaco", lat=43.7384, lng=7.4246, order=1, estimated_time_min=120),
        ],
        transport_segments=[
            TransportSegment(
                id="s1",
                trip_id="t-original",
                from_stop_id="a",
                to_stop_id="b",
                mode="driving",
                distance_m=13_300.0,
                duration_s=958,
            )
        ],
    )


def _code(payload: object) -> str:
    return SHARE_CODE_PREFIX + base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def test_share_code_carries_trip_under_new_id() -> None:
    code = encode_trip(_trip())
    assert code.startswith("TRIPP:")
    assert is_valid_share_code(code)

    decoded = decode_trip(code)
    assert decoded.id != "t-original"
    assert decoded.name == "Côte d'Azur"
    assert [stop.name for stop in decoded.stops] == ["Nice", "Monaco"]
    assert all(stop.trip_id == decoded.id for stop in decoded.stops)
    assert decoded.segment_for("a", "b") is not None
    assert decoded.stops[1].estimated_time_min == 120


def test_missing_stops_decode_as_empty() -> None:
    decoded = decode_trip(_code({"name": "Empty"}), trip_id="fixed")
    assert decoded.id == "fixed"
    assert decoded.stops == []


@pytest.mark.parametrize(
    "code",
    [
        "HELLO:abc",
        "TRIPP:not base64!!",
        SHARE_CODE_PREFIX + base64.b64encode(b"not json").decode("ascii"),
        _code(["a", "list"]),
        _code({"stops": []}),
        _code({"name": "x", "stops": "nope"}),
        _code({"name": "x", "stops": [{"name": "no id"}]}),
    ],
)
def test_invalid_share_codes(code: str) -> None:
    assert not is_valid_share_code(code)
    with pytest.raises(ItineraryError) as exc:
        decode_trip(code)
    assert exc.value.reason_code == "invalid_share_code"
