from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "stop_not_found",
        "trip_not_found",
        "invalid_coordinates",
        "invalid_stop_name",
        "invalid_share_code",
        "invalid_stop",
        "airport_lookup_failed",
        "persistence_failed",
        "itinerary_error",
    }
)

# Reason codes that the HTTP layer reports as 404 instead of 422.
NOT_FOUND_REASON_CODES: frozenset[str] = frozenset({"stop_not_found", "trip_not_found"})


@dataclass
class ItineraryError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def normalize_reason_code(reason_code: str, *, default: str = "itinerary_error") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
