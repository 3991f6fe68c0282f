"""Logging setup for the markform CLI and embedding applications."""

from markform.observability.logging import (
    DEFAULT_LOGGER_NAME,
    LOG_FORMATS,
    JSONValue,
    setup_logging,
)

__all__ = ["DEFAULT_LOGGER_NAME", "LOG_FORMATS", "JSONValue", "setup_logging"]
