from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, Sequence

from pydantic import BaseModel, Field

from .airports import AirportLookup
from .errors import ItineraryError
from .geo_math import curved_arc, distance_km, straight_line
from .logging_utils import log_event
from .models import LatLng, LegKind, RouteLeg, Stop, TransportMode, TransportSegment
from .route_provider import RouteProvider
from .settings import Settings
from .stop_ordering import adjacent_pairs
from .transport_modes import estimate_duration_s, resolve_transport

# Airport transfers are always drawn as car rides.
AIRPORT_TRANSFER_MODE: TransportMode = "driving"


class RoutingConfig(BaseModel):
    max_concurrency: int = Field(default=0, ge=0)
    flight_arc_points: int = Field(default=30, ge=2)
    flight_curve_max: float = Field(default=0.15, ge=0.0)
    flight_curve_per_1000km: float = Field(default=0.05, ge=0.0)

    @classmethod
    def from_settings(cls, s: Settings) -> RoutingConfig:
        return cls(
            max_concurrency=s.synthesis_max_concurrency,
            flight_arc_points=s.flight_arc_points,
            flight_curve_max=s.flight_curve_max,
            flight_curve_per_1000km=s.flight_curve_per_1000km,
        )


def flight_curvature(distance: float, config: RoutingConfig) -> float:
    """Longer flights bow more, capped at ``config.flight_curve_max``."""
    return min(config.flight_curve_max, max(0.0, distance) / 1000.0 * config.flight_curve_per_1000km)


class RouteSynthesizer:
    """Turns adjacent stop pairs into drawable ``RouteLeg`` lists.

    A flight becomes three legs (car to the departure airport, a curved air
    arc, car from the arrival airport); every other mode is one direct leg.
    Provider failures never escape: the affected leg is drawn as a straight
    line and flagged ``approximate``.
    """

    def __init__(self, config: RoutingConfig, provider: RouteProvider, airports: AirportLookup) -> None:
        self.config = config
        self.provider = provider
        self.airports = airports

    async def _ground_leg(
        self,
        origin: LatLng,
        destination: LatLng,
        mode: TransportMode,
        *,
        from_stop_id: str,
        to_stop_id: str,
        kind: LegKind,
        distance_m: float,
        duration_s: int,
    ) -> RouteLeg:
        try:
            coords = await self.provider.request_route(origin, destination, mode, realistic=True)
            approximate = False
            provider = self.provider.name
        except Exception as e:
            log_event(
                "route_fallback",
                level=logging.WARNING,
                from_stop_id=from_stop_id,
                to_stop_id=to_stop_id,
                mode=mode,
                kind=kind,
                error=str(e) or type(e).__name__,
            )
            coords = straight_line(origin, destination)
            approximate = True
            provider = "straight_line"

        return RouteLeg(
            coordinates=coords,
            mode=mode,
            duration_s=duration_s,
            distance_m=distance_m,
            from_stop_id=from_stop_id,
            to_stop_id=to_stop_id,
            kind=kind,
            approximate=approximate,
            provider=provider,
        )

    async def _transfer_leg(
        self, origin: LatLng, destination: LatLng, *, from_stop_id: str, to_stop_id: str
    ) -> RouteLeg:
        d_km = distance_km(origin, destination)
        return await self._ground_leg(
            origin,
            destination,
            AIRPORT_TRANSFER_MODE,
            from_stop_id=from_stop_id,
            to_stop_id=to_stop_id,
            kind="ground",
            distance_m=float(round(d_km * 1000.0)),
            duration_s=estimate_duration_s(d_km, AIRPORT_TRANSFER_MODE),
        )

    def _air_leg(self, start: LatLng, end: LatLng, *, from_stop_id: str, to_stop_id: str) -> RouteLeg:
        air_km = distance_km(start, end)
        return RouteLeg(
            coordinates=curved_arc(
                start,
                end,
                num_points=self.config.flight_arc_points,
                curvature=flight_curvature(air_km, self.config),
            ),
            mode="flight",
            duration_s=estimate_duration_s(air_km, "flight"),
            distance_m=float(round(air_km * 1000.0)),
            from_stop_id=from_stop_id,
            to_stop_id=to_stop_id,
            kind="air",
            provider="great_circle",
        )

    async def _flight_legs(
        self,
        origin: LatLng,
        destination: LatLng,
        *,
        from_stop_id: str,
        to_stop_id: str,
        distance_m: float,
        duration_s: int,
    ) -> list[RouteLeg]:
        try:
            departure = self.airports.nearest_airport(origin)
            arrival = self.airports.nearest_airport(destination)
        except ItineraryError as e:
            log_event(
                "route_fallback",
                level=logging.WARNING,
                from_stop_id=from_stop_id,
                to_stop_id=to_stop_id,
                mode="flight",
                kind="air",
                error=e.message,
                reason_code=e.reason_code,
            )
            return [
                RouteLeg(
                    coordinates=straight_line(origin, destination),
                    mode="flight",
                    duration_s=duration_s,
                    distance_m=distance_m,
                    from_stop_id=from_stop_id,
                    to_stop_id=to_stop_id,
                    kind="air",
                    approximate=True,
                )
            ]

        if departure.code == arrival.code:
            # Both ends share one airport: fly the stops directly instead of a zero-length hop.
            air = self._air_leg(origin, destination, from_stop_id=from_stop_id, to_stop_id=to_stop_id)
            log_event(
                "flight_leg_composed",
                from_stop_id=from_stop_id,
                to_stop_id=to_stop_id,
                departure=departure.code,
                arrival=arrival.code,
                shared_airport=True,
                arc_points=len(air.coordinates),
            )
            return [air]

        air = self._air_leg(departure.point, arrival.point, from_stop_id=from_stop_id, to_stop_id=to_stop_id)
        air_km = distance_km(departure.point, arrival.point)
        curvature = flight_curvature(air_km, self.config)

        to_airport, from_airport = await asyncio.gather(
            self._transfer_leg(origin, departure.point, from_stop_id=from_stop_id, to_stop_id=to_stop_id),
            self._transfer_leg(arrival.point, destination, from_stop_id=from_stop_id, to_stop_id=to_stop_id),
        )

        log_event(
            "flight_leg_composed",
            from_stop_id=from_stop_id,
            to_stop_id=to_stop_id,
            departure=departure.code,
            arrival=arrival.code,
            air_distance_km=round(air_km, 1),
            curvature=round(curvature, 4),
            arc_points=len(air.coordinates),
        )
        return [to_airport, air, from_airport]

    async def synthesize_leg(
        self,
        from_stop: Stop,
        to_stop: Stop,
        segment: TransportSegment | None = None,
    ) -> list[RouteLeg]:
        """Legs for one adjacent pair. Empty when either stop has no location."""
        origin = from_stop.point
        destination = to_stop.point
        if origin is None or destination is None:
            return []

        if segment is not None:
            mode = segment.mode
            distance_m = segment.distance_m
            duration_s = segment.duration_s
        else:
            resolved = resolve_transport(origin, destination)
            mode = resolved.mode
            distance_m = resolved.distance_m
            duration_s = resolved.duration_s

        if mode == "flight":
            return await self._flight_legs(
                origin,
                destination,
                from_stop_id=from_stop.id,
                to_stop_id=to_stop.id,
                distance_m=distance_m,
                duration_s=duration_s,
            )

        leg = await self._ground_leg(
            origin,
            destination,
            mode,
            from_stop_id=from_stop.id,
            to_stop_id=to_stop.id,
            kind="direct",
            distance_m=distance_m,
            duration_s=duration_s,
        )
        return [leg]

    async def synthesize_pairs(
        self,
        pairs: Sequence[tuple[Stop, Stop, TransportSegment | None]],
        *,
        return_exceptions: bool = False,
    ) -> list[Any]:
        """Synthesize many pairs concurrently; results keep the input order.

        With ``return_exceptions`` a pair that raises yields its exception in
        place of a leg list and its siblings still complete.
        """
        sem = asyncio.Semaphore(self.config.max_concurrency) if self.config.max_concurrency > 0 else None

        async def one(from_stop: Stop, to_stop: Stop, segment: TransportSegment | None) -> list[RouteLeg]:
            if sem is None:
                return await self.synthesize_leg(from_stop, to_stop, segment)
            async with sem:
                return await self.synthesize_leg(from_stop, to_stop, segment)

        tasks: list[Awaitable[list[RouteLeg]]] = [one(a, b, seg) for a, b, seg in pairs]
        return list(await asyncio.gather(*tasks, return_exceptions=return_exceptions))

    async def synthesize(
        self,
        stops: Sequence[Stop],
        segments: Sequence[TransportSegment] = (),
    ) -> list[RouteLeg]:
        """All legs of the itinerary, in sorted-sequence order.

        Only adjacent pairs are drawn; segments for pairs that are no longer
        adjacent are ignored, and a pair without a segment is resolved on the fly.
        """
        by_pair = {segment.pair: segment for segment in segments}
        pairs = [(a, b, by_pair.get((a.id, b.id))) for a, b in adjacent_pairs(stops)]
        per_pair = await self.synthesize_pairs(pairs)
        return [leg for legs in per_pair for leg in legs]
