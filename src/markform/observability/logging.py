"""
markform — logging setup.

File: src/markform/observability/logging.py

Purpose
- Route the engine's structlog events through stdlib ``logging`` and render
  them either as JSON lines or as plain text on a single stream.

What should be included in this file
- ``setup_logging``: configure the ``markform`` logger and structlog once per
  process (idempotent; handlers are replaced, not stacked).
- A JSON-lines formatter with canonical key order.

Functional requirements
- Library code never configures logging; only the CLI (or an embedding
  application) calls ``setup_logging``.
- Event keyword arguments end up under ``fields`` in JSON output.
"""

from __future__ import annotations

import json
import logging
import math
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Final, TextIO

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

DEFAULT_LOGGER_NAME: Final[str] = "markform"
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")

_TEXT_FORMAT: Final[str] = "%(levelname)s %(name)s: %(message)s%(_extras)s"

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = extras

        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    """``LEVEL logger: event key=value ...`` lines for humans."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        extras = _extract_extra_fields(record)
        rendered = " ".join(f"{key}={_render_scalar(extras[key])}" for key in sorted(extras))
        record._extras = f" {rendered}" if rendered else ""
        try:
            return super().format(record)
        finally:
            del record._extras


def setup_logging(
    level: int | str = "WARNING",
    *,
    log_format: str = "text",
    stream: TextIO | None = None,
    logger_name: str = DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Configure the ``markform`` logger and bind structlog to it.

    Parameters
    ----------
    level:
        Level name or number applied to the logger and its handler.
    log_format:
        ``"json"`` for JSON lines, ``"text"`` for plain text.
    stream:
        Target stream; defaults to ``sys.stderr`` at call time.
    logger_name:
        Logger to configure. Engine modules log under ``markform.*``.
    """

    if log_format not in LOG_FORMATS:
        raise ValueError(f"unsupported log format {log_format!r}; expected one of: json, text")
    resolved_level = _parse_log_level(level)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved_level)
    handler.setFormatter(_JsonLineFormatter() if log_format == "json" else _TextFormatter())

    logger = logging.getLogger(logger_name)
    logger.setLevel(resolved_level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return logger


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _render_scalar(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return _normalize_json_value(value.value)
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


__all__ = ["DEFAULT_LOGGER_NAME", "LOG_FORMATS", "JSONValue", "setup_logging"]
