"""
markform — table field validator.

File: src/markform/validation/tables.py

Purpose
- Check a parsed table value against its field's row bounds and column
  types, re-running the strict typed coercion that parsing deferred.

Functional requirements
- Returns every problem found; never raises.
- Skipped and aborted cells are valid whatever the column type.
- A required table without ``minRows`` needs at least one row.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from markform.domain.models import (
    CellResponse,
    ResponseState,
    TableColumn,
    TableField,
    TableValue,
)
from markform.parsing.tables import coerce_cell_value


class TableErrorCode(StrEnum):
    MIN_ROWS_NOT_MET = "MIN_ROWS_NOT_MET"
    MAX_ROWS_EXCEEDED = "MAX_ROWS_EXCEEDED"
    CELL_MISSING = "CELL_MISSING"
    CELL_EMPTY = "CELL_EMPTY"
    CELL_TYPE_MISMATCH = "CELL_TYPE_MISMATCH"


@dataclass(frozen=True, slots=True)
class TableValidationError:
    code: TableErrorCode
    message: str
    field_id: str
    row_index: int | None = None
    column_id: str | None = None

    @property
    def is_cell_error(self) -> bool:
        return self.row_index is not None and self.column_id is not None


def effective_min_rows(field: TableField) -> int | None:
    if field.min_rows is not None:
        return field.min_rows
    return 1 if field.required else None


def validate_table_field(field: TableField, value: TableValue) -> list[TableValidationError]:
    errors: list[TableValidationError] = []
    row_count = len(value.rows)

    min_rows = effective_min_rows(field)
    if min_rows is not None and row_count < min_rows:
        errors.append(
            TableValidationError(
                TableErrorCode.MIN_ROWS_NOT_MET,
                f'Table "{field.id}" has {row_count} rows but requires at least {min_rows}.',
                field.id,
            )
        )
    if field.max_rows is not None and row_count > field.max_rows:
        errors.append(
            TableValidationError(
                TableErrorCode.MAX_ROWS_EXCEEDED,
                f'Table "{field.id}" has {row_count} rows but maximum is {field.max_rows}.',
                field.id,
            )
        )

    for row_index, row in enumerate(value.rows):
        for column in field.columns:
            cell = row.get(column.id)
            if cell is None:
                errors.append(
                    TableValidationError(
                        TableErrorCode.CELL_MISSING,
                        f'Row {row_index + 1} is missing cell for column "{column.id}".',
                        field.id,
                        row_index,
                        column.id,
                    )
                )
                continue
            error = _validate_cell(field.id, column, row_index, cell)
            if error is not None:
                errors.append(error)
    return errors


def _validate_cell(
    field_id: str, column: TableColumn, row_index: int, cell: CellResponse
) -> TableValidationError | None:
    if cell.state is ResponseState.UNANSWERED:
        return TableValidationError(
            TableErrorCode.CELL_EMPTY,
            f'Cell at row {row_index + 1}, column "{column.id}" is empty. '
            "Provide a value or use %SKIP%.",
            field_id,
            row_index,
            column.id,
        )
    if cell.state is not ResponseState.ANSWERED or cell.value is None:
        return None
    try:
        coerce_cell_value(cell.value, column.type)
    except ValueError:
        return TableValidationError(
            TableErrorCode.CELL_TYPE_MISMATCH,
            f'Cell "{cell.value}" at row {row_index + 1}, column "{column.id}" '
            f"is not a valid {column.type}.",
            field_id,
            row_index,
            column.id,
        )
    return None


__all__ = [
    "TableErrorCode",
    "TableValidationError",
    "effective_min_rows",
    "validate_table_field",
]
