"""Built-in field and table validation."""

from markform.validation.fields import (
    COMPLETENESS_CODES,
    CodeValidator,
    IssueCode,
    ValidatorContext,
    is_valid,
    validate_field,
    validate_form,
    value_issues,
)
from markform.validation.tables import TableErrorCode, TableValidationError, validate_table_field

__all__ = [
    "COMPLETENESS_CODES",
    "CodeValidator",
    "IssueCode",
    "TableErrorCode",
    "TableValidationError",
    "ValidatorContext",
    "is_valid",
    "validate_field",
    "validate_form",
    "validate_table_field",
    "value_issues",
]
