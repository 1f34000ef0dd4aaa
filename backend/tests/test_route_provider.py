from __future__ import annotations

import httpx
import pytest

import itinerary_engine.route_provider as route_provider_module
from itinerary_engine.airports import StaticAirportLookup
from itinerary_engine.geo_math import encode_polyline
from itinerary_engine.models import LatLng, Stop
from itinerary_engine.route_provider import (
    OSRMRouteProvider,
    RouteProviderError,
    StraightLineRouteProvider,
)
from itinerary_engine.route_synthesis import RouteSynthesizer, RoutingConfig

ORIGIN = LatLng(lat=48.8566, lng=2.3522)
DESTINATION = LatLng(lat=48.8666, lng=2.3722)
ROAD = [ORIGIN, LatLng(lat=48.86, lng=2.36), LatLng(lat=48.865, lng=2.37), DESTINATION]


async def _no_sleep(_: float) -> None:
    return None


def _provider(handler, *, max_retries: int = 3) -> OSRMRouteProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OSRMRouteProvider(base_url="http://osrm.test/", max_retries=max_retries, client=client)


@pytest.mark.anyio
async def test_decodes_polyline_geometry_and_builds_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": "Ok", "routes": [{"geometry": encode_polyline(ROAD)}]})

    provider = _provider(handler)
    try:
        coords = await provider.request_route(ORIGIN, DESTINATION, "bicycling")
    finally:
        await provider.aclose()

    assert len(coords) == 4
    assert coords[1].lat == pytest.approx(48.86)
    request = seen[0]
    assert request.url.path == "/route/v1/cycling/2.3522,48.8566;2.3722,48.8666"
    assert request.url.params["geometries"] == "polyline"
    assert request.url.params["overview"] == "full"


@pytest.mark.anyio
async def test_accepts_geojson_geometry() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        coords = [[p.lng, p.lat] for p in ROAD]
        return httpx.Response(200, json={"code": "Ok", "routes": [{"geometry": {"type": "LineString", "coordinates": coords}}]})

    provider = _provider(handler)
    coords = await provider.request_route(ORIGIN, DESTINATION, "driving")
    assert [(p.lat, p.lng) for p in coords] == [(p.lat, p.lng) for p in ROAD]


@pytest.mark.anyio
async def test_retries_transient_status_then_succeeds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(route_provider_module.asyncio, "sleep", _no_sleep)
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503, json={"code": "Busy", "message": "try later"})
        return httpx.Response(200, json={"code": "Ok", "routes": [{"geometry": encode_polyline(ROAD)}]})

    coords = await _provider(handler).request_route(ORIGIN, DESTINATION, "walking")
    assert calls["n"] == 3
    assert len(coords) == 4


@pytest.mark.anyio
async def test_gives_up_after_max_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(route_provider_module.asyncio, "sleep", _no_sleep)
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RouteProviderError) as exc:
        await _provider(handler, max_retries=2).request_route(ORIGIN, DESTINATION, "driving")
    assert calls["n"] == 2
    assert "ConnectError" in str(exc.value)


@pytest.mark.anyio
async def test_client_errors_are_not_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, json={"code": "InvalidQuery", "message": "bad coordinates"})

    with pytest.raises(RouteProviderError) as exc:
        await _provider(handler).request_route(ORIGIN, DESTINATION, "driving")
    assert calls["n"] == 1
    assert "InvalidQuery" in str(exc.value)


@pytest.mark.anyio
async def test_no_route_code_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})

    with pytest.raises(RouteProviderError):
        await _provider(handler).request_route(ORIGIN, DESTINATION, "driving")


@pytest.mark.anyio
async def test_flight_and_simple_requests_skip_the_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("network should not be used")

    provider = _provider(handler)
    assert len(await provider.request_route(ORIGIN, DESTINATION, "flight")) == 2
    assert len(await provider.request_route(ORIGIN, DESTINATION, "driving", realistic=False)) == 2


@pytest.mark.anyio
async def test_straight_line_provider() -> None:
    coords = await StraightLineRouteProvider().request_route(ORIGIN, DESTINATION, "walking")
    assert [(p.lat, p.lng) for p in coords] == [(ORIGIN.lat, ORIGIN.lng), (DESTINATION.lat, DESTINATION.lng)]


def _corrupt_geometry(request: httpx.Request) -> httpx.Response:
    # Cut off in the middle of the second coordinate pair.
    return httpx.Response(200, json={"code": "Ok", "routes": [{"geometry": "_p~iF~ps|U_ulL"}]})


@pytest.mark.anyio
async def test_truncated_polyline_is_a_provider_error() -> None:
    with pytest.raises(RouteProviderError) as exc:
        await _provider(_corrupt_geometry).request_route(ORIGIN, DESTINATION, "driving")
    assert "corrupt" in str(exc.value)


@pytest.mark.anyio
async def test_malformed_geojson_point_is_a_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        geometry = {"type": "LineString", "coordinates": [[2.35, 48.85], [None, 48.86]]}
        return httpx.Response(200, json={"code": "Ok", "routes": [{"geometry": geometry}]})

    with pytest.raises(RouteProviderError):
        await _provider(handler).request_route(ORIGIN, DESTINATION, "driving")


@pytest.mark.anyio
async def test_corrupt_geometry_falls_back_to_straight_line_in_synthesis() -> None:
    synthesizer = RouteSynthesizer(RoutingConfig(), _provider(_corrupt_geometry), StaticAirportLookup())
    stops = [
        Stop(id="a", name="a", lat=ORIGIN.lat, lng=ORIGIN.lng, order=0),
        Stop(id="b", name="b", lat=DESTINATION.lat, lng=DESTINATION.lng, order=1),
    ]
    legs = await synthesizer.synthesize(stops)
    assert len(legs) == 1
    assert legs[0].approximate is True
    assert legs[0].provider == "straight_line"
