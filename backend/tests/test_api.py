from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from itinerary_engine.airports import StaticAirportLookup
from itinerary_engine.main import app, route_cache_store, route_synthesizer
from itinerary_engine.models import LatLng
from itinerary_engine.route_cache import RouteCacheStore
from itinerary_engine.route_synthesis import RouteSynthesizer, RoutingConfig


class FakeRoadProvider:
    name = "fake_road"

    def __init__(self) -> None:
        self.calls = 0

    async def request_route(self, origin: LatLng, destination: LatLng, mode: str, *, realistic: bool = True) -> list[LatLng]:
        self.calls += 1
        mid = LatLng(lat=(origin.lat + destination.lat) / 2.0, lng=(origin.lng + destination.lng) / 2.0)
        return [origin, mid, destination]


def _stop(stop_id: str, lat: float, lng: float, *, order: int, day: int = 1, **extra: Any) -> dict[str, Any]:
    return {"id": stop_id, "trip_id": "t1", "name": stop_id, "lat": lat, "lng": lng, "order": order, "day": day, **extra}


def _trip(stops: list[dict[str, Any]], segments: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {"id": "t1", "name": "API trip", "stops": stops, "transport_segments": segments or []}


def _abc() -> list[dict[str, Any]]:
    return [
        _stop("A", 48.8566, 2.3522, order=0, estimated_time_min=60),
        _stop("B", 48.8666, 2.3722, order=1),
        _stop("C", 43.2965, 5.3698, order=2, day=2),
    ]


def _override(provider: FakeRoadProvider) -> None:
    synthesizer = RouteSynthesizer(RoutingConfig(), provider, StaticAirportLookup())
    app.dependency_overrides[route_synthesizer] = lambda: synthesizer


def test_health() -> None:
    with TestClient(app) as client:
        resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_sort_and_move() -> None:
    stops = [_stop("C", 48.0, 2.0, order=0, day=2), _stop("B", 48.0, 2.1, order=1), _stop("A", 48.0, 2.2, order=0)]
    with TestClient(app) as client:
        sorted_resp = client.post("/itinerary/sort", json={"stops": stops})
        assert sorted_resp.status_code == 200
        body = sorted_resp.json()
        assert [s["id"] for s in body["stops"]] == ["A", "B", "C"]
        assert body["days"] == {"1": ["A", "B"], "2": ["C"]}

        moved = client.post(
            "/itinerary/move",
            json={"stops": body["stops"], "from_index": 2, "to_index": 0, "day": 1},
        )
        assert moved.status_code == 200
        moved_body = moved.json()
        assert [s["id"] for s in moved_body["stops"]] == ["C", "A", "B"]
        assert [s["order"] for s in moved_body["stops"]] == [0, 1, 2]
        assert moved_body["days"] == {"1": ["C", "A", "B"]}


def test_legs_and_metrics() -> None:
    provider = FakeRoadProvider()
    _override(provider)
    try:
        with TestClient(app) as client:
            resp = client.post("/itinerary/legs", json={"trip": _trip(_abc())})
            assert resp.status_code == 200
            body = resp.json()
            assert [leg["kind"] for leg in body["legs"]] == ["direct", "ground", "air", "ground"]
            assert body["legs"][0]["provider"] == "fake_road"
            assert len(body["legs"][2]["coordinates"]) > 2
            assert body["metrics"]["segment_count"] == 0
            assert body["metrics"]["visit_time_s"] == 3600
    finally:
        app.dependency_overrides.clear()
    assert provider.calls == 3


def test_regenerate_full_then_incremental() -> None:
    _override(FakeRoadProvider())
    try:
        with TestClient(app) as client:
            full = client.post("/itinerary/regenerate", json={"trip": _trip(_abc()), "mode": "full"})
            assert full.status_code == 200
            body = full.json()
            modes = {(s["from_stop_id"], s["to_stop_id"]): s["mode"] for s in body["segments"]}
            assert modes == {("A", "B"): "driving", ("B", "C"): "flight"}
            assert body["created"] == 2
            assert body["missing_geometry"] == []

            segments = [s for s in body["segments"] if s["from_stop_id"] == "A"]
            incremental = client.post(
                "/itinerary/regenerate",
                json={"trip": _trip(_abc(), segments), "mode": "incremental"},
            )
            assert incremental.status_code == 200
            inc = incremental.json()
            assert inc["created"] == 1
            assert {(s["from_stop_id"], s["to_stop_id"]) for s in inc["segments"]} == {("A", "B"), ("B", "C")}

            metrics = client.post("/itinerary/metrics", json={"trip": _trip(_abc(), inc["segments"])})
            assert metrics.status_code == 200
            assert metrics.json()["segment_count"] == 2
            assert metrics.json()["total_distance_km"] > 600
    finally:
        app.dependency_overrides.clear()


def test_transport_resolve_and_advice() -> None:
    paris = {"lat": 48.8566, "lng": 2.3522}
    lyon = {"lat": 45.764, "lng": 4.8357}
    with TestClient(app) as client:
        auto = client.post("/transport/resolve", json={"origin": paris, "destination": lyon})
        assert auto.status_code == 200
        assert auto.json()["mode"] == "driving"
        assert auto.json()["warning"] is None

        walking = client.post("/transport/resolve", json={"origin": paris, "destination": lyon, "mode": "walking"})
        assert walking.json()["mode"] == "walking"
        assert walking.json()["warning"] is not None

        advice = client.post(
            "/transport/advice",
            json={"origin": paris, "destination": {"lat": 48.8596, "lng": 2.3522}, "categories": ["food", "activity"]},
        )
        assert advice.status_code == 200
        assert advice.json()["mode"] == "walking"

        bad = client.post("/transport/resolve", json={"origin": {"lat": 123, "lng": 0}, "destination": lyon})
        assert bad.status_code == 422


def test_share_round_trip_and_invalid_code() -> None:
    with TestClient(app) as client:
        encoded = client.post("/share/encode", json={"trip": _trip(_abc())})
        assert encoded.status_code == 200
        code = encoded.json()["code"]
        assert code.startswith("TRIPP:")

        decoded = client.post("/share/decode", json={"code": code})
        assert decoded.status_code == 200
        assert [s["name"] for s in decoded.json()["stops"]] == ["A", "B", "C"]

        invalid = client.post("/share/decode", json={"code": "TRIPP:@@@"})
        assert invalid.status_code == 422
        assert invalid.json()["detail"]["reason_code"] == "invalid_share_code"


def test_cache_stats_and_clear() -> None:
    store = RouteCacheStore(ttl_s=60, max_entries=5)
    store.set("k", [LatLng(lat=1.0, lng=1.0), LatLng(lat=2.0, lng=2.0)])
    app.dependency_overrides[route_cache_store] = lambda: store
    try:
        with TestClient(app) as client:
            stats = client.get("/cache/stats").json()
            assert stats["enabled"] is True
            assert stats["size"] == 1

            cleared = client.delete("/cache")
            assert cleared.status_code == 200
            assert cleared.json() == {"cleared": 1}
            assert client.get("/cache/stats").json()["size"] == 0
    finally:
        app.dependency_overrides.clear()
