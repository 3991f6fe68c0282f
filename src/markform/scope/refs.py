"""
markform — scope reference grammar.

File: src/markform/scope/refs.py

Purpose
- Parse and serialize the compact text addresses used by issues and tools:
  ``field``, ``field.option``, ``field.column`` and ``field.column[row]``.

Functional requirements
- Identifier segments match ``[a-z][a-z0-9_]*``.
- ``a.b`` parses provisionally as an option ref; only schema validation can
  tell an option from a table column.
- Parsing never raises; failures come back as ``ScopeRefResult`` errors.
- ``serialize_scope_ref(parse_scope_ref(s).ref) == s`` for canonical ``s``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, TypeAlias

IDENTIFIER_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_]*$")

_IDENT: Final[str] = r"[a-z][a-z0-9_]*"
_CELL_RE: Final[re.Pattern[str]] = re.compile(rf"^({_IDENT})\.({_IDENT})\[([0-9]+)\]$")
_QUALIFIED_RE: Final[re.Pattern[str]] = re.compile(rf"^({_IDENT})\.({_IDENT})$")


@dataclass(frozen=True, slots=True)
class FieldRef:
    field_id: str

    @property
    def scope(self) -> str:
        return "field"


@dataclass(frozen=True, slots=True)
class OptionRef:
    field_id: str
    option_id: str

    @property
    def scope(self) -> str:
        return "option"


@dataclass(frozen=True, slots=True)
class ColumnRef:
    field_id: str
    column_id: str

    @property
    def scope(self) -> str:
        return "column"


@dataclass(frozen=True, slots=True)
class CellRef:
    field_id: str
    column_id: str
    row_index: int

    @property
    def scope(self) -> str:
        return "cell"


ScopeRef: TypeAlias = FieldRef | OptionRef | ColumnRef | CellRef


@dataclass(frozen=True, slots=True)
class ScopeRefResult:
    """Outcome of parsing or validating a scope reference."""

    ok: bool
    ref: ScopeRef | None = None
    error: str | None = None

    @classmethod
    def success(cls, ref: ScopeRef) -> ScopeRefResult:
        return cls(ok=True, ref=ref)

    @classmethod
    def failure(cls, error: str) -> ScopeRefResult:
        return cls(ok=False, error=error)


def parse_scope_ref(text: str) -> ScopeRefResult:
    candidate = text.strip()
    if not candidate:
        return ScopeRefResult.failure("Empty scope reference")

    cell = _CELL_RE.fullmatch(candidate)
    if cell is not None:
        try:
            row_index = int(cell.group(3))
        except ValueError:
            return ScopeRefResult.failure(f"Row index is too large in scope reference: {text}")
        return ScopeRefResult.success(
            CellRef(field_id=cell.group(1), column_id=cell.group(2), row_index=row_index)
        )

    qualified = _QUALIFIED_RE.fullmatch(candidate)
    if qualified is not None:
        return ScopeRefResult.success(
            OptionRef(field_id=qualified.group(1), option_id=qualified.group(2))
        )

    if IDENTIFIER_RE.fullmatch(candidate):
        return ScopeRefResult.success(FieldRef(field_id=candidate))

    return ScopeRefResult.failure(f"Invalid scope reference format: {text}")


def serialize_scope_ref(ref: ScopeRef) -> str:
    if isinstance(ref, FieldRef):
        return ref.field_id
    if isinstance(ref, OptionRef):
        return f"{ref.field_id}.{ref.option_id}"
    if isinstance(ref, ColumnRef):
        return f"{ref.field_id}.{ref.column_id}"
    return f"{ref.field_id}.{ref.column_id}[{ref.row_index}]"


def is_identifier(text: str) -> bool:
    return IDENTIFIER_RE.fullmatch(text) is not None


__all__ = [
    "IDENTIFIER_RE",
    "CellRef",
    "ColumnRef",
    "FieldRef",
    "OptionRef",
    "ScopeRef",
    "ScopeRefResult",
    "is_identifier",
    "parse_scope_ref",
    "serialize_scope_ref",
]
