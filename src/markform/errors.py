"""Structured error types raised by the markform engine."""

from __future__ import annotations


class MarkformError(Exception):
    """Base class for all markform failures."""


class MarkformParseError(MarkformError):
    """Fatal parse failure for a field or document.

    Carries the offending field id and, where the markup parser recorded it,
    the 1-based source line.
    """

    message: str
    field_id: str | None
    line: int | None
    source: str | None

    def __init__(
        self,
        message: str,
        *,
        field_id: str | None = None,
        line: int | None = None,
        source: str | None = None,
    ) -> None:
        self.message = message
        self.field_id = field_id
        self.line = line
        self.source = source
        super().__init__(self._render())

    def _render(self) -> str:
        location = ""
        if self.source is not None and self.line is not None:
            location = f"{self.source}:{self.line} "
        elif self.source is not None:
            location = f"{self.source} "
        elif self.line is not None:
            location = f"line {self.line} "
        scope = f"[{self.field_id}] " if self.field_id else ""
        return f"{location}{scope}{self.message}"

    def with_location(
        self, *, line: int | None = None, source: str | None = None
    ) -> MarkformParseError:
        """Return a copy with missing location details filled in."""

        return MarkformParseError(
            self.message,
            field_id=self.field_id,
            line=self.line if self.line is not None else line,
            source=self.source if self.source is not None else source,
        )


__all__ = ["MarkformError", "MarkformParseError"]
