"""Schema-aware validation and option/column disambiguation for scope refs."""

from __future__ import annotations

from collections.abc import Mapping

from markform.domain.models import (
    CHOOSER_KINDS,
    FieldDefinition,
    FieldKind,
    FormSchema,
    TableField,
)
from markform.scope.refs import (
    CellRef,
    ColumnRef,
    FieldRef,
    OptionRef,
    ScopeRef,
    ScopeRefResult,
    parse_scope_ref,
)


def validate_scope_ref(
    ref: ScopeRef,
    schema: FormSchema,
    row_counts: Mapping[str, int] | None = None,
) -> ScopeRefResult:
    """Check ``ref`` against ``schema``.

    On success the result carries the resolved ref: an ``OptionRef`` that
    targets a table comes back as a ``ColumnRef``. Row bounds for cell refs
    are only checked when ``row_counts`` is supplied.
    """

    definition = schema.field_by_id(ref.field_id)
    if definition is None:
        return ScopeRefResult.failure(f'Unknown field "{ref.field_id}"')

    if isinstance(ref, FieldRef):
        return ScopeRefResult.success(ref)

    if isinstance(ref, OptionRef):
        if definition.kind in CHOOSER_KINDS:
            return _validate_option(ref, definition)
        if isinstance(definition, TableField):
            return _validate_column(ColumnRef(ref.field_id, ref.option_id), definition)
        return ScopeRefResult.failure(
            f'Field "{ref.field_id}" is a {definition.kind} field, not selectable or table'
        )

    if not isinstance(definition, TableField):
        return ScopeRefResult.failure(
            f'Field "{ref.field_id}" is a {definition.kind} field, not a {FieldKind.TABLE} field'
        )
    if isinstance(ref, ColumnRef):
        return _validate_column(ref, definition)
    return _validate_cell(ref, definition, row_counts)


def check_scope_ref(
    text: str,
    schema: FormSchema,
    row_counts: Mapping[str, int] | None = None,
) -> ScopeRefResult:
    """Parse ``text`` and validate the result in one step."""

    parsed = parse_scope_ref(text)
    if not parsed.ok or parsed.ref is None:
        return parsed
    return validate_scope_ref(parsed.ref, schema, row_counts)


def _validate_option(ref: OptionRef, definition: FieldDefinition) -> ScopeRefResult:
    option_ids = [option.id for option in getattr(definition, "options", ())]
    if ref.option_id in option_ids:
        return ScopeRefResult.success(ref)
    return ScopeRefResult.failure(
        f'Unknown option "{ref.option_id}" in field "{ref.field_id}". '
        f"Valid options: {', '.join(option_ids) or '(none)'}"
    )


def _validate_column(ref: ColumnRef, definition: TableField) -> ScopeRefResult:
    if definition.column(ref.column_id) is not None:
        return ScopeRefResult.success(ref)
    column_ids = [column.id for column in definition.columns]
    return ScopeRefResult.failure(
        f'Unknown column "{ref.column_id}" in table "{ref.field_id}". '
        f"Valid columns: {', '.join(column_ids) or '(none)'}"
    )


def _validate_cell(
    ref: CellRef, definition: TableField, row_counts: Mapping[str, int] | None
) -> ScopeRefResult:
    column = _validate_column(ColumnRef(ref.field_id, ref.column_id), definition)
    if not column.ok:
        return column
    if row_counts is None:
        return ScopeRefResult.success(ref)
    row_count = row_counts.get(ref.field_id, 0)
    if ref.row_index >= row_count:
        return ScopeRefResult.failure(
            f'Row index {ref.row_index} is out of bounds for table "{ref.field_id}" '
            f"({row_count} rows)"
        )
    return ScopeRefResult.success(ref)


__all__ = ["check_scope_ref", "validate_scope_ref"]
