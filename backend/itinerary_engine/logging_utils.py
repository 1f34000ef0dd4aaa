from __future__ import annotations

import logging
from pathlib import Path
from tempfile import gettempdir
from typing import Any, Mapping

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "itinerary_engine"
LOG_FILE_NAME = "itinerary.log.jsonl"

# Attributes LogRecord owns; passing one through `extra` raises KeyError.
RESERVED_RECORD_KEYS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

_STREAM_HANDLER = f"{LOGGER_NAME}.stream"
_FILE_HANDLER = f"{LOGGER_NAME}.file"

_logger: logging.Logger | None = None


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _log_dir_candidates(configured_out_dir: str) -> tuple[Path, ...]:
    return (
        Path(configured_out_dir) / "logs",
        Path.cwd() / "out" / "logs",
        Path(gettempdir()) / "itinerary-engine" / "logs",
    )


def _file_handler(configured_out_dir: str) -> logging.Handler | None:
    for log_dir in _log_dir_candidates(configured_out_dir):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
        except OSError:
            continue
    return None


def _formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "ts", "levelname": "level"},
    )


def get_logger() -> logging.Logger:
    """The engine's JSON logger, configured once per process."""
    global _logger
    if _logger is not None:
        return _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False

    # Reloaders import the module twice; handlers are matched by name.
    attached = {handler.name for handler in logger.handlers}
    formatter = _formatter()
    if _STREAM_HANDLER not in attached:
        stream = logging.StreamHandler()
        stream.name = _STREAM_HANDLER
        stream.setFormatter(formatter)
        logger.addHandler(stream)
    if _FILE_HANDLER not in attached:
        file_handler = _file_handler(settings.out_dir)
        if file_handler is not None:
            file_handler.name = _FILE_HANDLER
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    _logger = logger
    return logger


def event_fields(event: str, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Build the `extra` mapping for an event, moving reserved keys to `field_<key>`."""
    extra: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        extra[f"field_{key}" if key in RESERVED_RECORD_KEYS else key] = value
    return extra


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    logger = get_logger()
    if logger.isEnabledFor(level):
        logger.log(level, event, extra=event_fields(event, fields))
