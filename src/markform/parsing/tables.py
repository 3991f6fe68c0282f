"""
markform — embedded table sub-parser.

File: src/markform/parsing/tables.py

Purpose
- Parse the pipe table inside a ``table-field`` into a column schema and
  rows of ``CellResponse``.

What should be included in this file
- Explicit schema from ``columnIds`` / ``columnLabels`` / ``columnTypes``.
- Inline schema from the table header plus an optional type-declaration row
  (``number``, ``year,required``...).
- Separator-row checks, row padding/truncation, ``\\|`` and ``\\\\``
  escaping for cell text (``escape_table_cell`` / ``unescape_cell``).
- Best-effort cell coercion (``parse_cell_value``) and the strict typed
  coercion re-run by validation (``coerce_cell_value``).

Functional requirements
- Cell type problems never fail parsing: the raw text is kept on an answered
  cell and reported later by the table validator.
- Schema problems (bad column ids, unknown column types, malformed separator)
  are parse errors naming the field.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from markform.domain.models import CellPayload, CellResponse, ColumnType, ResponseState, TableColumn
from markform.errors import MarkformParseError
from markform.markup.nodes import Node
from markform.parsing.accessors import get_string_array_attr
from markform.parsing.coercion import (
    is_valid_url,
    is_valid_year,
    parse_decimal,
    parse_iso_date,
    parse_number,
)
from markform.parsing.sentinels import detect_sentinel

_IDENTIFIER_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_]*$")
_NON_ALNUM_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")
_SEPARATOR_CELL_RE: Final[re.Pattern[str]] = re.compile(r"^:?-+:?$")
_TYPE_DECL_RE: Final[re.Pattern[str]] = re.compile(
    r"^(string|number|url|date|year)(?:\s*,\s*(required))?$"
)
_ESCAPED_CHAR_RE: Final[re.Pattern[str]] = re.compile(r"\\([\\|])")
_ESCAPABLE_RE: Final[re.Pattern[str]] = re.compile(r"\\(?=[\\|]|$)|\|")
_CELL_CONTROL_RE: Final[re.Pattern[str]] = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")
_COLUMN_TYPE_NAMES: Final[tuple[str, ...]] = tuple(column_type.value for column_type in ColumnType)

SCHEMA_EXPLICIT: Final[str] = "explicit"
SCHEMA_INLINE: Final[str] = "inline"


@dataclass(frozen=True, slots=True)
class RawTable:
    """Split cell text before any schema is applied."""

    headers: tuple[str, ...] = ()
    type_row: tuple[str, ...] | None = None
    rows: tuple[tuple[str, ...], ...] = ()


@dataclass(frozen=True, slots=True)
class ParsedTable:
    columns: tuple[TableColumn, ...]
    rows: tuple[dict[str, CellResponse], ...]
    schema_source: str


def slugify(label: str) -> str:
    """Lower-case ``label`` with non-alphanumeric runs collapsed to ``_``."""

    return _NON_ALNUM_RE.sub("_", label.lower()).strip("_")


def unescape_cell(text: str) -> str:
    return _ESCAPED_CHAR_RE.sub(r"\1", text)


def escape_table_cell(value: str) -> str:
    """Escape ``value`` for one pipe-table cell; ``split_table_row`` reads it back unchanged.

    ``|`` becomes ``\\|``, and a backslash that precedes a pipe, another
    backslash, or the end of the cell is doubled. Raises ``ValueError`` for
    line breaks and control characters, which a single table row cannot hold.
    """

    if _CELL_CONTROL_RE.search(value):
        raise ValueError(f"Cell value cannot contain newlines or control characters: {value!r}")
    return _ESCAPABLE_RE.sub(lambda match: "\\" + match.group(0), value)


def split_table_row(line: str) -> list[str]:
    """Split a ``| a | b |`` row into trimmed, unescaped cells."""

    text = line.strip()
    if text.startswith("|"):
        text = text[1:]
    if text.endswith("|") and not text.endswith("\\|"):
        text = text[:-1]

    cells: list[str] = []
    current: list[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == "\\" and index + 1 < len(text):
            current.append(text[index : index + 2])
            index += 2
            continue
        if char == "|":
            cells.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1
    cells.append("".join(current))
    return [unescape_cell(cell).strip() for cell in cells]


def is_separator_row(cells: Sequence[str], column_count: int) -> bool:
    if len(cells) != column_count:
        return False
    return all(_SEPARATOR_CELL_RE.match(cell.replace(" ", "")) for cell in cells)


def parse_type_declaration(cell: str) -> tuple[ColumnType, bool] | None:
    match = _TYPE_DECL_RE.match(cell.strip())
    if match is None:
        return None
    return ColumnType(match.group(1)), match.group(2) is not None


def parse_raw_table(content: str | None, *, field_id: str) -> RawTable:
    """Split table text into header, optional type row, and data rows."""

    if content is None:
        return RawTable()
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    if not lines:
        return RawTable()

    headers = tuple(split_table_row(lines[0]))
    separator_index = 1
    type_row: tuple[str, ...] | None = None
    if len(lines) > 1:
        second = split_table_row(lines[1])
        if len(second) == len(headers) and all(
            parse_type_declaration(cell) is not None for cell in second
        ):
            type_row = tuple(second)
            separator_index = 2

    if separator_index >= len(lines) or not is_separator_row(
        split_table_row(lines[separator_index]), len(headers)
    ):
        raise MarkformParseError(
            f"Table in field '{field_id}' is missing a valid separator row "
            f"after the header ({len(headers)} columns expected)",
            field_id=field_id,
        )

    rows = tuple(tuple(split_table_row(line)) for line in lines[separator_index + 1 :])
    return RawTable(headers=headers, type_row=type_row, rows=rows)


def inline_columns(raw: RawTable, *, field_id: str) -> tuple[TableColumn, ...]:
    columns: list[TableColumn] = []
    seen: set[str] = set()
    for index, label in enumerate(raw.headers):
        column_id = slugify(label) or f"col{index + 1}"
        if column_id in seen:
            raise MarkformParseError(
                f'Duplicate column ID "{column_id}" in table field \'{field_id}\'',
                field_id=field_id,
            )
        seen.add(column_id)
        column_type, required = ColumnType.STRING, False
        if raw.type_row is not None:
            declared = parse_type_declaration(raw.type_row[index])
            if declared is not None:
                column_type, required = declared
        columns.append(
            TableColumn(id=column_id, label=label or column_id, type=column_type, required=required)
        )
    return tuple(columns)


def explicit_columns(
    node: Node, raw: RawTable, *, field_id: str
) -> tuple[TableColumn, ...]:
    column_ids = _column_ids(node, field_id=field_id)
    labels = _column_labels(node, raw, column_ids, field_id=field_id)
    types = _column_types(node, column_ids, field_id=field_id)
    return tuple(
        TableColumn(id=column_id, label=label, type=column_type, required=required)
        for column_id, label, (column_type, required) in zip(column_ids, labels, types, strict=True)
    )


def parse_table(
    node: Node,
    *,
    field_id: str,
    content: str | None,
    logger: Any | None = None,
) -> ParsedTable:
    """Resolve the column schema from ``node`` and parse every row of ``content``."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    raw = parse_raw_table(content, field_id=field_id)

    if "columnIds" in node.attributes:
        columns = explicit_columns(node, raw, field_id=field_id)
        source = SCHEMA_EXPLICIT
    else:
        columns = inline_columns(raw, field_id=field_id)
        source = SCHEMA_INLINE

    rows = tuple(_parse_row(cells, columns) for cells in raw.rows)
    log.debug(
        "table_schema_resolved",
        field_id=field_id,
        schema_source=source,
        columns=len(columns),
        rows=len(rows),
    )
    return ParsedTable(columns=columns, rows=rows, schema_source=source)


def parse_cell_value(text: str, column_type: ColumnType | str) -> CellResponse:
    """Best-effort typed cell response; never raises for type problems."""

    trimmed = text.strip()
    if not trimmed:
        return CellResponse(ResponseState.SKIPPED)

    sentinel = detect_sentinel(trimmed)
    if sentinel is not None:
        return CellResponse(sentinel.response_state, reason=sentinel.reason)

    kind = ColumnType(column_type)
    if kind is ColumnType.NUMBER:
        number = parse_number(trimmed)
        return CellResponse(ResponseState.ANSWERED, value=trimmed if number is None else number)
    if kind is ColumnType.YEAR:
        year = parse_decimal(trimmed)
        return CellResponse(ResponseState.ANSWERED, value=trimmed if year is None else year)
    return CellResponse(ResponseState.ANSWERED, value=trimmed)


def coerce_cell_value(raw: CellPayload, column_type: ColumnType | str) -> CellPayload:
    """Strict typed coercion; raises ``ValueError`` when ``raw`` does not fit."""

    kind = ColumnType(column_type)
    if kind is ColumnType.STRING:
        return raw if isinstance(raw, str) else str(raw)

    if kind is ColumnType.NUMBER:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            if isinstance(raw, float) and not math.isfinite(raw):
                raise ValueError(f"Invalid number: {raw!r}")
            return raw
        number = parse_number(str(raw))
        if number is None:
            raise ValueError(f"Invalid number: {raw!r}")
        return number

    if kind is ColumnType.YEAR:
        candidate: object = raw
        if isinstance(raw, str):
            candidate = parse_decimal(raw)
        if not is_valid_year(candidate):
            raise ValueError(f"Invalid year: {raw!r}. Must be a 4-digit year.")
        return candidate

    text = str(raw).strip()
    if kind is ColumnType.URL:
        if not is_valid_url(text):
            raise ValueError(f"Invalid URL: {raw!r}")
        return text

    if parse_iso_date(text) is None:
        raise ValueError(f"Invalid date: {raw!r}. Use YYYY-MM-DD.")
    return text


def _parse_row(
    cells: Sequence[str], columns: Sequence[TableColumn]
) -> dict[str, CellResponse]:
    padded = list(cells[: len(columns)])
    padded.extend("" for _ in range(len(columns) - len(padded)))
    return {
        column.id: parse_cell_value(cell, column.type)
        for column, cell in zip(columns, padded, strict=True)
    }


def _column_ids(node: Node, *, field_id: str) -> tuple[str, ...]:
    raw_ids = node.attributes.get("columnIds")
    column_ids = get_string_array_attr(node, "columnIds")
    if column_ids is None or (isinstance(raw_ids, list) and len(column_ids) != len(raw_ids)):
        raise MarkformParseError(
            f"table-field '{field_id}' columnIds must be a non-empty array of strings",
            field_id=field_id,
        )

    seen: set[str] = set()
    for column_id in column_ids:
        if not _IDENTIFIER_RE.match(column_id):
            raise MarkformParseError(
                f'Column ID "{column_id}" in table field \'{field_id}\' is not a valid '
                "identifier (lowercase letters, digits, underscores; must start with a letter)",
                field_id=field_id,
            )
        if column_id in seen:
            raise MarkformParseError(
                f'Duplicate column ID "{column_id}" in table field \'{field_id}\'',
                field_id=field_id,
            )
        seen.add(column_id)
    return column_ids


def _column_labels(
    node: Node, raw: RawTable, column_ids: tuple[str, ...], *, field_id: str
) -> tuple[str, ...]:
    labels = get_string_array_attr(node, "columnLabels")
    if labels is not None:
        if len(labels) != len(column_ids):
            raise MarkformParseError(
                f"columnLabels has {len(labels)} entries but columnIds has {len(column_ids)}",
                field_id=field_id,
            )
        return labels

    if raw.headers:
        if len(raw.headers) != len(column_ids):
            raise MarkformParseError(
                f"Table has {len(raw.headers)} headers but columnIds has {len(column_ids)}",
                field_id=field_id,
            )
        return tuple(
            header or column_id for header, column_id in zip(raw.headers, column_ids, strict=True)
        )
    return column_ids


def _column_types(
    node: Node, column_ids: tuple[str, ...], *, field_id: str
) -> tuple[tuple[ColumnType, bool], ...]:
    raw_types = node.attributes.get("columnTypes")
    if raw_types is None:
        return tuple((ColumnType.STRING, False) for _ in column_ids)
    if not isinstance(raw_types, list):
        raise MarkformParseError(
            f"table-field '{field_id}' columnTypes must be an array", field_id=field_id
        )
    if len(raw_types) != len(column_ids):
        raise MarkformParseError(
            f"columnTypes has {len(raw_types)} entries but columnIds has {len(column_ids)}",
            field_id=field_id,
        )
    return tuple(_column_type_entry(entry, field_id=field_id) for entry in raw_types)


def _column_type_entry(entry: object, *, field_id: str) -> tuple[ColumnType, bool]:
    type_name: object = entry
    required: object = False
    if isinstance(entry, Mapping):
        type_name = entry.get("type")
        required = entry.get("required", False)
    if not isinstance(required, bool):
        raise MarkformParseError(
            f"Column 'required' in table field '{field_id}' must be a boolean",
            field_id=field_id,
        )
    if not isinstance(type_name, str) or type_name not in _COLUMN_TYPE_NAMES:
        valid = ", ".join(_COLUMN_TYPE_NAMES)
        raise MarkformParseError(
            f'Column type "{type_name}" is not valid. Valid types: {valid}',
            field_id=field_id,
        )
    return ColumnType(type_name), required


__all__ = [
    "SCHEMA_EXPLICIT",
    "SCHEMA_INLINE",
    "ParsedTable",
    "RawTable",
    "coerce_cell_value",
    "escape_table_cell",
    "explicit_columns",
    "inline_columns",
    "is_separator_row",
    "parse_cell_value",
    "parse_raw_table",
    "parse_table",
    "parse_type_declaration",
    "slugify",
    "split_table_row",
    "unescape_cell",
]
