from __future__ import annotations

import asyncio
from typing import Any, Final, Protocol

import httpx

from .geo_math import decode_polyline, straight_line
from .models import LatLng, TransportMode
from .route_cache import RouteCacheStore, route_cache_key


class RouteProviderError(RuntimeError):
    pass


class RouteProviderRetryableError(RouteProviderError):
    """A provider error that is likely transient and safe to retry."""

    pass


class RouteProvider(Protocol):
    name: str

    async def request_route(
        self,
        origin: LatLng,
        destination: LatLng,
        mode: TransportMode,
        *,
        realistic: bool = True,
    ) -> list[LatLng]: ...


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}

# OSRM / Mapbox profile names. Flights never reach the network.
_PROFILE_BY_MODE: Final[dict[str, str]] = {
    "driving": "driving",
    "walking": "walking",
    "bicycling": "cycling",
    "flight": "driving",
}


def _format_provider_error(resp: httpx.Response) -> str:
    """Best-effort decode of OSRM-style JSON error payloads."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            code = data.get("code")
            message = data.get("message")
            if code and message:
                return f"route provider {resp.status_code} {code}: {message}"
            if code:
                return f"route provider {resp.status_code} {code}"
            if message:
                return f"route provider {resp.status_code}: {message}"
    except ValueError:
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"route provider {resp.status_code}: {body}"
    return f"route provider HTTP {resp.status_code}"


def _extract_coordinates(data: dict[str, Any]) -> list[LatLng]:
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes:
        raise RouteProviderError("route provider returned no routes")

    geometry = (routes[0] or {}).get("geometry")
    try:
        if isinstance(geometry, str):
            coords = decode_polyline(geometry)
        elif isinstance(geometry, dict) and isinstance(geometry.get("coordinates"), list):
            coords = [
                LatLng(lat=float(pt[1]), lng=float(pt[0]))
                for pt in geometry["coordinates"]
                if isinstance(pt, (list, tuple)) and len(pt) >= 2
            ]
        else:
            raise RouteProviderError("route provider response missing geometry")
    except (IndexError, TypeError, ValueError) as e:
        # truncated polylines run off the end of the string
        raise RouteProviderError(f"route provider geometry is corrupt: {type(e).__name__}: {e}") from e

    if len(coords) < 2:
        raise RouteProviderError("route provider geometry has fewer than two points")
    return coords


class OSRMRouteProvider:
    """Realistic road geometry from an OSRM-compatible ``/route/v1`` endpoint."""

    name = "osrm"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = 10.0,
        max_retries: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, int(max_retries))
        # trust_env=False keeps proxy env vars from hijacking requests to local
        # routing containers.
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=min(5.0, timeout_s)),
            trust_env=False,
            headers={"accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_route(
        self,
        origin: LatLng,
        destination: LatLng,
        mode: TransportMode,
        *,
        realistic: bool = True,
    ) -> list[LatLng]:
        if not realistic or mode == "flight":
            return straight_line(origin, destination)

        profile = _PROFILE_BY_MODE.get(mode, "driving")
        coords = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        url = f"{self.base_url}/route/v1/{profile}/{coords}"
        params = {"overview": "full", "geometries": "polyline", "alternatives": "false", "steps": "false"}

        last_err: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                resp = await self._client.get(url, params=params)

                # Most 4xx are request errors (bad coordinates, no segment); do not retry.
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise RouteProviderError(_format_provider_error(resp))
                if resp.status_code in _RETRYABLE_STATUS:
                    raise RouteProviderRetryableError(_format_provider_error(resp))

                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    raise RouteProviderError("route provider returned a non-object payload")
                if data.get("code", "Ok") != "Ok":
                    raise RouteProviderError(
                        f"route provider code={data.get('code')} message={data.get('message')}"
                    )
                return _extract_coordinates(data)

            except RouteProviderRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.NetworkError, httpx.TransportError) as e:
                last_err = e
            except (httpx.HTTPStatusError, httpx.DecodingError) as e:
                raise RouteProviderError(str(e)) from e
            except ValueError as e:
                raise RouteProviderError(f"route provider returned an invalid payload: {e}") from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        if last_err is None:
            detail = "unknown error"
        else:
            msg = str(last_err).strip()
            detail = f"{type(last_err).__name__}: {msg}" if msg else f"{type(last_err).__name__}: {last_err!r}"
        raise RouteProviderError(
            f"route request failed after {self.max_retries} attempts (base={self.base_url}): {detail}"
        )


class StraightLineRouteProvider:
    """Offline provider: always the two-point line between the endpoints."""

    name = "straight_line"

    async def request_route(
        self,
        origin: LatLng,
        destination: LatLng,
        mode: TransportMode,
        *,
        realistic: bool = True,
    ) -> list[LatLng]:
        return straight_line(origin, destination)


class CachedRouteProvider:
    """Wraps a provider with a ``RouteCacheStore``. Failures are never cached."""

    def __init__(self, inner: RouteProvider, cache: RouteCacheStore) -> None:
        self.inner = inner
        self.cache = cache
        self.name = inner.name

    async def request_route(
        self,
        origin: LatLng,
        destination: LatLng,
        mode: TransportMode,
        *,
        realistic: bool = True,
    ) -> list[LatLng]:
        key = route_cache_key(origin, destination, mode, realistic)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        coords = await self.inner.request_route(origin, destination, mode, realistic=realistic)
        self.cache.set(key, coords)
        return coords
