"""Domain models for the markform field model, values, and responses."""

from markform.domain.models import (
    CHOOSER_KINDS,
    LIST_KINDS,
    SCALAR_KINDS,
    CellResponse,
    CheckboxesField,
    CheckboxesValue,
    CheckboxMode,
    CheckboxState,
    ColumnType,
    FieldDefinition,
    FieldKind,
    FieldResponse,
    FieldValue,
    FormSchema,
    ParsedForm,
    PriorityLevel,
    ResponseState,
    TableColumn,
    TableField,
    TableValue,
    ValidationIssue,
    is_value_empty,
)

__all__ = [
    "CHOOSER_KINDS",
    "LIST_KINDS",
    "SCALAR_KINDS",
    "CellResponse",
    "CheckboxMode",
    "CheckboxState",
    "CheckboxesField",
    "CheckboxesValue",
    "ColumnType",
    "FieldDefinition",
    "FieldKind",
    "FieldResponse",
    "FieldValue",
    "FormSchema",
    "ParsedForm",
    "PriorityLevel",
    "ResponseState",
    "TableColumn",
    "TableField",
    "TableValue",
    "ValidationIssue",
    "is_value_empty",
]
