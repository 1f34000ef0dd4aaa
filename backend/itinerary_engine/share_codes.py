from __future__ import annotations

import base64
import binascii
import json
import uuid
from typing import Any

from pydantic import ValidationError

from .errors import ItineraryError
from .models import Stop, TransportSegment, Trip

SHARE_CODE_PREFIX = "TRIPP:"


def encode_trip(trip: Trip) -> str:
    """Pack the shareable part of a trip (no ids of the sharer's account)."""
    payload = {
        "name": trip.name,
        "description": trip.description,
        "stops": [stop.model_dump(mode="json") for stop in trip.stops],
        "transport_segments": [segment.model_dump(mode="json") for segment in trip.transport_segments],
    }
    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return SHARE_CODE_PREFIX + base64.b64encode(raw).decode("ascii")


def _invalid(message: str) -> ItineraryError:
    return ItineraryError("invalid_share_code", message)


def _decode_payload(code: str) -> dict[str, Any]:
    if not isinstance(code, str) or not code.startswith(SHARE_CODE_PREFIX):
        raise _invalid("share code must start with TRIPP:")
    body = code[len(SHARE_CODE_PREFIX) :].strip()
    try:
        raw = base64.b64decode(body, validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise _invalid("share code is not valid base64 JSON") from e
    if not isinstance(data, dict):
        raise _invalid("share code payload must be an object")
    return data


def decode_trip(code: str, *, trip_id: str | None = None) -> Trip:
    """Rebuild a trip from a share code under a fresh id.

    Stops keep their ids so the shared segments still line up with them.
    """
    data = _decode_payload(code)
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise _invalid("share code is missing the trip name")

    stops_raw = data.get("stops")
    if stops_raw is None:
        stops_raw = []
    if not isinstance(stops_raw, list):
        raise _invalid("share code stops must be a list")
    segments_raw = data.get("transport_segments", data.get("transportSegments")) or []
    if not isinstance(segments_raw, list):
        raise _invalid("share code segments must be a list")

    new_id = trip_id or str(uuid.uuid4())
    try:
        stops = [Stop.model_validate({**row, "trip_id": new_id}) for row in stops_raw]
        segments = [TransportSegment.model_validate({**row, "trip_id": new_id}) for row in segments_raw]
    except (TypeError, ValidationError) as e:
        raise _invalid("share code contains malformed stops or segments") from e

    return Trip(
        id=new_id,
        name=name.strip(),
        description=str(data.get("description") or ""),
        stops=stops,
        transport_segments=segments,
    )


def is_valid_share_code(code: str) -> bool:
    try:
        decode_trip(code)
    except ItineraryError:
        return False
    return True
