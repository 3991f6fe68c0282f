"""
markform — unit tests for the table field validator

File: tests/unit/validation/test_table_validator.py

Purpose
- Verify row-count bounds and per-cell checks on parsed table values.

What this test file should cover
- Effective minimum rows for required tables without ``minRows``.
- Max-rows overflow, empty cells, missing cells, and deferred type mismatches.
- Skipped and aborted cells passing regardless of column type.
"""

from __future__ import annotations

import pytest

from markform.domain.models import (
    CellResponse,
    ColumnType,
    ResponseState,
    TableColumn,
    TableField,
    TableValue,
)
from markform.validation.tables import (
    TableErrorCode,
    effective_min_rows,
    validate_table_field,
)

_COLUMNS = (
    TableColumn("name", "Name"),
    TableColumn("born", "Born", ColumnType.YEAR),
    TableColumn("site", "Site", ColumnType.URL),
)


def _answered(value: str | int | float) -> CellResponse:
    return CellResponse(ResponseState.ANSWERED, value=value)


def _row(name: CellResponse, born: CellResponse, site: CellResponse) -> dict[str, CellResponse]:
    return {"name": name, "born": born, "site": site}


@pytest.mark.unit
def test_effective_min_rows() -> None:
    assert effective_min_rows(TableField(id="t", label="T")) is None
    assert effective_min_rows(TableField(id="t", label="T", required=True)) == 1
    assert effective_min_rows(TableField(id="t", label="T", required=True, min_rows=3)) == 3
    assert effective_min_rows(TableField(id="t", label="T", min_rows=0)) == 0


@pytest.mark.unit
def test_valid_table_has_no_errors() -> None:
    field = TableField(id="people", label="People", columns=_COLUMNS, min_rows=1, max_rows=2)
    value = TableValue(
        rows=(
            _row(_answered("Ada"), _answered(1815), _answered("https://ada.org")),
            _row(
                _answered("Bo"),
                CellResponse(ResponseState.SKIPPED, reason="unknown"),
                CellResponse(ResponseState.ABORTED),
            ),
        )
    )
    assert validate_table_field(field, value) == []


@pytest.mark.unit
def test_required_table_without_rows_needs_one() -> None:
    field = TableField(id="t", label="T", columns=_COLUMNS, required=True)
    (error,) = validate_table_field(field, TableValue())
    assert error.code is TableErrorCode.MIN_ROWS_NOT_MET
    assert error.message == 'Table "t" has 0 rows but requires at least 1.'
    assert not error.is_cell_error


@pytest.mark.unit
def test_row_bounds() -> None:
    row = _row(_answered("A"), _answered(2000), _answered("https://a.io"))
    field = TableField(id="t", label="T", columns=_COLUMNS, min_rows=2, max_rows=2)
    (too_few,) = validate_table_field(field, TableValue(rows=(row,)))
    assert too_few.message == 'Table "t" has 1 rows but requires at least 2.'

    (too_many,) = validate_table_field(field, TableValue(rows=(row, row, row)))
    assert too_many.code is TableErrorCode.MAX_ROWS_EXCEEDED
    assert too_many.message == 'Table "t" has 3 rows but maximum is 2.'


@pytest.mark.unit
def test_cell_type_mismatch_is_reported_per_cell() -> None:
    field = TableField(id="t", label="T", columns=_COLUMNS)
    value = TableValue(
        rows=(
            _row(_answered("A"), _answered("soon"), _answered("https://a.io")),
            _row(_answered("B"), _answered(1999), _answered("not a url")),
        )
    )
    errors = validate_table_field(field, value)
    assert [(e.code, e.row_index, e.column_id) for e in errors] == [
        (TableErrorCode.CELL_TYPE_MISMATCH, 0, "born"),
        (TableErrorCode.CELL_TYPE_MISMATCH, 1, "site"),
    ]
    assert errors[0].message == 'Cell "soon" at row 1, column "born" is not a valid year.'
    assert all(error.is_cell_error for error in errors)


@pytest.mark.unit
def test_missing_and_unanswered_cells() -> None:
    field = TableField(id="t", label="T", columns=_COLUMNS)
    value = TableValue(
        rows=(
            {"name": CellResponse(ResponseState.UNANSWERED), "born": _answered(1900)},
        )
    )
    errors = validate_table_field(field, value)
    assert [(e.code, e.column_id) for e in errors] == [
        (TableErrorCode.CELL_EMPTY, "name"),
        (TableErrorCode.CELL_MISSING, "site"),
    ]
    assert "use %SKIP%" in errors[0].message
