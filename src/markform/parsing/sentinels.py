"""
markform — skip/abort sentinel detection.

File: src/markform/parsing/sentinels.py

Purpose
- Recognize the ``%SKIP%`` and ``%ABORT%`` in-band markers and their reasons.

What should be included in this file
- ``detect_sentinel``: lenient, case-insensitive; accepts the canonical form
  ``%SKIP% (reason)`` and the compact forms ``%SKIP:reason%`` and
  ``%SKIP(reason)%``.
- ``parse_sentinel``: strict, case-sensitive, canonical form only. Used while
  resolving a field's authoritative response.
- ``sentinel_response``: the first step of field state resolution.

Functional requirements
- Text after the canonical token that is not a parenthesized reason still
  yields a bare sentinel, in both detectors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from markform.domain.models import FieldResponse, ResponseState
from markform.errors import MarkformParseError
from markform.markup.nodes import Node
from markform.parsing.accessors import extract_fence_value, get_string_attr

SENTINEL_SKIP: Final[str] = "%SKIP%"
SENTINEL_ABORT: Final[str] = "%ABORT%"


class SentinelType(StrEnum):
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class ParsedSentinel:
    type: SentinelType
    reason: str | None = None

    @property
    def response_state(self) -> ResponseState:
        if self.type is SentinelType.SKIP:
            return ResponseState.SKIPPED
        return ResponseState.ABORTED


_COMPACT_PATTERNS: Final[tuple[tuple[SentinelType, re.Pattern[str]], ...]] = (
    (SentinelType.SKIP, re.compile(r"^%SKIP(?:[:(](.*?))?[)]?%$", re.IGNORECASE | re.DOTALL)),
    (SentinelType.ABORT, re.compile(r"^%ABORT(?:[:(](.*?))?[)]?%$", re.IGNORECASE | re.DOTALL)),
)
_CANONICAL_TOKENS: Final[tuple[tuple[SentinelType, str], ...]] = (
    (SentinelType.SKIP, SENTINEL_SKIP),
    (SentinelType.ABORT, SENTINEL_ABORT),
)
_REASON_RE: Final[re.Pattern[str]] = re.compile(r"^\((.+)\)$", re.DOTALL)


def detect_sentinel(value: object) -> ParsedSentinel | None:
    """Lenient detection over arbitrary values; non-strings yield ``None``."""

    if not isinstance(value, str):
        return None
    trimmed = value.strip()

    for sentinel_type, pattern in _COMPACT_PATTERNS:
        match = pattern.match(trimmed)
        if match is not None:
            return ParsedSentinel(sentinel_type, _clean_reason(match.group(1)))

    upper = trimmed.upper()
    for sentinel_type, token in _CANONICAL_TOKENS:
        if upper.startswith(token):
            return _canonical_tail(sentinel_type, trimmed[len(token) :])
    return None


def parse_sentinel(content: str | None) -> ParsedSentinel | None:
    """Strict, case-sensitive parse of the canonical ``%SKIP% (reason)`` form."""

    if not content:
        return None
    trimmed = content.strip()
    for sentinel_type, token in _CANONICAL_TOKENS:
        if trimmed.startswith(token):
            return _canonical_tail(sentinel_type, trimmed[len(token) :])
    return None


def sentinel_response(node: Node, field_id: str, required: bool) -> FieldResponse | None:
    """Resolve a field's response from a sentinel in its ```value fence.

    Returns ``None`` when the fence holds no sentinel. Raises
    ``MarkformParseError`` when the sentinel contradicts the ``state``
    attribute or would skip a required field.
    """

    sentinel = parse_sentinel(extract_fence_value(node))
    if sentinel is None:
        return None

    state_attr = get_string_attr(node, "state")
    expected_attr = sentinel.response_state.value
    token = SENTINEL_SKIP if sentinel.type is SentinelType.SKIP else SENTINEL_ABORT
    if state_attr is not None and state_attr != expected_attr:
        raise MarkformParseError(
            f"Field '{field_id}' has conflicting state='{state_attr}' with {token} sentinel",
            field_id=field_id,
        )
    if sentinel.type is SentinelType.SKIP:
        if required:
            raise MarkformParseError(
                f"Field '{field_id}' is required but has {token} sentinel. "
                "Cannot skip required fields.",
                field_id=field_id,
            )
        return FieldResponse.skipped(sentinel.reason)
    return FieldResponse.aborted(sentinel.reason)


def _canonical_tail(sentinel_type: SentinelType, rest: str) -> ParsedSentinel:
    rest = rest.strip()
    if not rest:
        return ParsedSentinel(sentinel_type)
    match = _REASON_RE.match(rest)
    if match is not None:
        return ParsedSentinel(sentinel_type, _clean_reason(match.group(1)))
    # Non-parenthesized trailing text: bare sentinel, reason dropped.
    return ParsedSentinel(sentinel_type)


def _clean_reason(raw: str | None) -> str | None:
    if raw is None:
        return None
    reason = raw.strip()
    return reason or None


__all__ = [
    "SENTINEL_ABORT",
    "SENTINEL_SKIP",
    "ParsedSentinel",
    "SentinelType",
    "detect_sentinel",
    "parse_sentinel",
    "sentinel_response",
]
