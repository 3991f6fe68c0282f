"""Text-to-value coercion shared by field parsing, table parsing, and validation."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Final, TypeGuard
from urllib.parse import urlparse

from markform.constants import MAX_YEAR, MIN_YEAR

_NUMBER_RE: Final[re.Pattern[str]] = re.compile(
    r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$"
)
_INTEGER_RE: Final[re.Pattern[str]] = re.compile(r"^[+-]?\d+$")
_LEADING_INT_RE: Final[re.Pattern[str]] = re.compile(r"^[+-]?\d+")
_ISO_DATE_RE: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_URL_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https", "ftp", "mailto", "file"})


def parse_number(text: str) -> int | float | None:
    """Decimal/exponent number literal, or ``None``.

    Integer literals stay ``int``; everything else becomes ``float``.
    """

    candidate = text.strip()
    if not _NUMBER_RE.match(candidate):
        return None
    if _INTEGER_RE.match(candidate):
        try:
            return int(candidate)
        except ValueError:
            pass  # past the int digit limit; the float check below rejects it
    value = float(candidate)
    return value if math.isfinite(value) else None


def parse_leading_int(text: str) -> int | None:
    """Integer from the leading digits of ``text`` (``"2024 AD"`` -> 2024)."""

    match = _LEADING_INT_RE.match(text.strip())
    if match is None:
        return None
    try:
        return int(match.group(0))
    except ValueError:
        return None


def parse_decimal(text: str) -> int | None:
    """Unsigned decimal digits as ``int``, or ``None``.

    Digit runs too long for ``int`` give ``None`` instead of raising.
    """

    candidate = text.strip()
    if not candidate.isdecimal():
        return None
    try:
        return int(candidate)
    except ValueError:
        return None


def is_valid_url(text: str) -> bool:
    parsed = urlparse(text.strip())
    if parsed.scheme.lower() not in _URL_SCHEMES:
        return False
    if parsed.scheme.lower() in ("mailto", "file"):
        return bool(parsed.path or parsed.netloc)
    return bool(parsed.netloc)


def parse_iso_date(text: str) -> date | None:
    """``YYYY-MM-DD`` calendar date, or ``None``."""

    candidate = text.strip()
    if not _ISO_DATE_RE.match(candidate):
        return None
    try:
        return date.fromisoformat(candidate)
    except ValueError:
        return None


def is_valid_year(value: object) -> TypeGuard[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_YEAR <= value <= MAX_YEAR


__all__ = [
    "is_valid_url",
    "is_valid_year",
    "parse_decimal",
    "parse_iso_date",
    "parse_leading_int",
    "parse_number",
]
