from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_route_provider_url() -> str:
    # In docker-compose, the routing backend is reachable by service name "osrm".
    return "http://osrm:5000" if _running_in_docker() else "http://localhost:5000"


def _default_out_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Env-driven process settings.

    Engine components never read this object directly; they are handed a
    ``RoutingConfig`` built from it (see ``route_synthesis.RoutingConfig``).
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    route_provider_url: str = Field(default_factory=_default_route_provider_url, alias="ROUTE_PROVIDER_URL")
    route_provider_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0, alias="ROUTE_PROVIDER_TIMEOUT_S")
    route_provider_max_retries: int = Field(default=3, ge=1, le=10, alias="ROUTE_PROVIDER_MAX_RETRIES")

    route_cache_enabled: bool = Field(default=True, alias="ROUTE_CACHE_ENABLED")
    route_cache_ttl_s: int = Field(default=300, ge=1, alias="ROUTE_CACHE_TTL_S")
    route_cache_max_entries: int = Field(default=100, ge=1, alias="ROUTE_CACHE_MAX_ENTRIES")

    # 0 keeps leg synthesis unbounded (one provider call per leg in flight).
    synthesis_max_concurrency: int = Field(default=0, ge=0, le=256, alias="SYNTHESIS_MAX_CONCURRENCY")

    flight_arc_points: int = Field(default=30, ge=2, le=500, alias="FLIGHT_ARC_POINTS")
    flight_curve_max: float = Field(default=0.15, ge=0.0, le=1.0, alias="FLIGHT_CURVE_MAX")
    flight_curve_per_1000km: float = Field(default=0.05, ge=0.0, le=1.0, alias="FLIGHT_CURVE_PER_1000KM")

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


settings = Settings()
