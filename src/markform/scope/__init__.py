"""Scope references: addresses for fields, options, table columns, and cells."""

from markform.scope.refs import (
    CellRef,
    ColumnRef,
    FieldRef,
    OptionRef,
    ScopeRef,
    ScopeRefResult,
    is_identifier,
    parse_scope_ref,
    serialize_scope_ref,
)
from markform.scope.validation import check_scope_ref, validate_scope_ref

__all__ = [
    "CellRef",
    "ColumnRef",
    "FieldRef",
    "OptionRef",
    "ScopeRef",
    "ScopeRefResult",
    "check_scope_ref",
    "is_identifier",
    "parse_scope_ref",
    "serialize_scope_ref",
    "validate_scope_ref",
]
