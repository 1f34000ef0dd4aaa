from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .airports import StaticAirportLookup
from .errors import NOT_FOUND_REASON_CODES, ItineraryError, normalize_reason_code
from .geo_math import distance_km
from .itinerary import trip_metrics
from .logging_utils import log_event
from .models import (
    AdviceRequest,
    LegsResponse,
    ModeAdviceResponse,
    MoveRequest,
    RegenerateRequest,
    RegenerateResponse,
    ResolveRequest,
    ResolveResponse,
    ShareCodeRequest,
    ShareCodeResponse,
    Stop,
    StopsRequest,
    StopsResponse,
    Trip,
    TripMetrics,
    TripRequest,
)
from .persistence import InMemorySegmentStore
from .route_cache import RouteCacheStore
from .route_provider import CachedRouteProvider, OSRMRouteProvider, RouteProvider
from .route_synthesis import RouteSynthesizer, RoutingConfig
from .segment_cache import TransportSegmentCache
from .settings import settings
from .share_codes import decode_trip, encode_trip
from .stop_ordering import group_by_day, move, sorted_stops
from .transport_modes import check_mode, recommend_mode, resolve_transport


@asynccontextmanager
async def lifespan(app: FastAPI):
    osrm = OSRMRouteProvider(
        base_url=settings.route_provider_url,
        timeout_s=settings.route_provider_timeout_s,
        max_retries=settings.route_provider_max_retries,
    )
    provider: RouteProvider = osrm
    app.state.route_cache = None
    if settings.route_cache_enabled:
        app.state.route_cache = RouteCacheStore(
            ttl_s=settings.route_cache_ttl_s,
            max_entries=settings.route_cache_max_entries,
        )
        provider = CachedRouteProvider(osrm, app.state.route_cache)

    app.state.synthesizer = RouteSynthesizer(RoutingConfig.from_settings(settings), provider, StaticAirportLookup())
    app.state.segment_store = InMemorySegmentStore()
    yield
    await osrm.aclose()


app = FastAPI(title="Itinerary Engine", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def route_synthesizer(request: Request) -> RouteSynthesizer:
    synthesizer: RouteSynthesizer | None = getattr(request.app.state, "synthesizer", None)
    if synthesizer is None:
        raise HTTPException(status_code=503, detail="route synthesizer not initialised")
    return synthesizer


def segment_store(request: Request) -> InMemorySegmentStore:
    store: InMemorySegmentStore | None = getattr(request.app.state, "segment_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="segment store not initialised")
    return store


def route_cache_store(request: Request) -> RouteCacheStore | None:
    return getattr(request.app.state, "route_cache", None)


SynthesizerDep = Annotated[RouteSynthesizer, Depends(route_synthesizer)]
SegmentStoreDep = Annotated[InMemorySegmentStore, Depends(segment_store)]
RouteCacheDep = Annotated[RouteCacheStore | None, Depends(route_cache_store)]


def _http_error(e: ItineraryError) -> HTTPException:
    code = normalize_reason_code(e.reason_code)
    status = 404 if code in NOT_FOUND_REASON_CODES else 422
    return HTTPException(
        status_code=status,
        detail={"reason_code": code, "message": e.message, "details": e.details or {}},
    )


def _days(stops: list[Stop]) -> dict[int, list[str]]:
    return {day: [stop.id for stop in day_stops] for day, day_stops in group_by_day(stops).items()}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/itinerary/sort", response_model=StopsResponse)
async def sort_stops(req: StopsRequest) -> StopsResponse:
    ordered = sorted_stops(req.stops)
    return StopsResponse(stops=ordered, days=_days(ordered))


@app.post("/itinerary/move", response_model=StopsResponse)
async def move_stop(req: MoveRequest) -> StopsResponse:
    moved = sorted_stops(move(req.stops, req.from_index, req.to_index, day=req.day))
    log_event(
        "stop_moved",
        from_index=req.from_index,
        to_index=req.to_index,
        day=req.day,
        stop_count=len(moved),
    )
    return StopsResponse(stops=moved, days=_days(moved))


@app.post("/itinerary/legs", response_model=LegsResponse)
async def itinerary_legs(req: TripRequest, synthesizer: SynthesizerDep) -> LegsResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    trip = req.trip
    legs = await synthesizer.synthesize(trip.stops, trip.transport_segments)
    metrics = trip_metrics(trip.stops, trip.transport_segments)

    log_event(
        "api_request",
        request_id=request_id,
        endpoint="/itinerary/legs",
        trip_id=trip.id,
        stop_count=len(trip.stops),
        leg_count=len(legs),
        approximate_count=sum(1 for leg in legs if leg.approximate),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return LegsResponse(stops=sorted_stops(trip.stops), legs=legs, metrics=metrics)


@app.post("/itinerary/regenerate", response_model=RegenerateResponse)
async def regenerate_segments(
    req: RegenerateRequest,
    synthesizer: SynthesizerDep,
    store: SegmentStoreDep,
) -> RegenerateResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    trip = req.trip
    store.seed(trip.id, trip.transport_segments)
    cache = TransportSegmentCache(store, synthesizer)
    try:
        if req.mode == "incremental":
            result = await cache.incremental_generate(trip)
        else:
            result = await cache.full_regenerate(trip)
    except ItineraryError as e:
        raise _http_error(e) from e

    log_event(
        "api_request",
        request_id=request_id,
        endpoint="/itinerary/regenerate",
        trip_id=trip.id,
        generation_mode=req.mode,
        created_count=result.created,
        deleted=result.deleted,
        missing_geometry=len(result.missing_geometry),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return RegenerateResponse(
        segments=result.segments,
        legs=result.legs,
        created=result.created,
        deleted=result.deleted,
        missing_geometry=result.missing_geometry,
    )


@app.post("/itinerary/metrics", response_model=TripMetrics)
async def itinerary_metrics(req: TripRequest) -> TripMetrics:
    return trip_metrics(req.trip.stops, req.trip.transport_segments)


@app.post("/transport/resolve", response_model=ResolveResponse)
async def transport_resolve(req: ResolveRequest) -> ResolveResponse:
    resolved = resolve_transport(req.origin, req.destination, req.mode)
    warning = check_mode(resolved.mode, resolved.distance_m / 1000.0) if req.mode is not None else None
    return ResolveResponse(
        mode=resolved.mode,
        distance_m=resolved.distance_m,
        duration_s=resolved.duration_s,
        warning=warning,
    )


@app.post("/transport/advice", response_model=ModeAdviceResponse)
async def transport_advice(req: AdviceRequest) -> ModeAdviceResponse:
    d_km = distance_km(req.origin, req.destination)
    advice = recommend_mode(d_km, req.categories)
    warning = check_mode(req.mode, d_km) if req.mode is not None else None
    return ModeAdviceResponse(
        mode=advice.mode,
        reason=advice.reason,
        confidence=advice.confidence,
        warning=warning,
    )


@app.post("/share/encode", response_model=ShareCodeResponse)
async def share_encode(req: TripRequest) -> ShareCodeResponse:
    return ShareCodeResponse(code=encode_trip(req.trip))


@app.post("/share/decode", response_model=Trip)
async def share_decode(req: ShareCodeRequest) -> Trip:
    try:
        return decode_trip(req.code)
    except ItineraryError as e:
        raise _http_error(e) from e


@app.get("/cache/stats")
async def cache_stats(cache: RouteCacheDep) -> dict[str, int | bool]:
    if cache is None:
        return {"enabled": False}
    return {"enabled": True, **cache.snapshot()}


@app.delete("/cache")
async def clear_cache(cache: RouteCacheDep) -> dict[str, int]:
    cleared = cache.clear() if cache is not None else 0
    log_event("api_request", endpoint="/cache", method="DELETE", cleared=cleared)
    return {"cleared": cleared}
