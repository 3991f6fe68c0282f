"""
markform — built-in field validation.

File: src/markform/validation/fields.py

Purpose
- Check every field's current value against its declared constraints and
  report the findings as ``ValidationIssue`` values.

What should be included in this file
- One checker per field kind, held in a registry checked at import time to
  cover every ``FieldKind``.
- Optional code validators resolved by id from a caller-supplied registry
  (the ``validate`` attribute on fields and groups).

Functional requirements
- Never raises for bad values; problems become issues.
- Skipped and aborted fields produce no issues.
- Issue refs are scope reference strings: the field id, or a cell ref for
  table cell problems.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final

from markform.domain.models import (
    CheckboxesField,
    CheckboxesValue,
    CheckboxMode,
    CheckboxState,
    DateField,
    FieldDefinition,
    FieldGroup,
    FieldKind,
    FieldResponse,
    FieldValue,
    FormSchema,
    IssueSeverity,
    ListValue,
    MultiSelectField,
    MultiSelectValue,
    NumberField,
    ParsedForm,
    ResponseState,
    ScalarValue,
    SingleSelectField,
    SingleSelectValue,
    StringField,
    StringListField,
    TableField,
    TableValue,
    UrlField,
    UrlListField,
    ValidationIssue,
    ValidatorRef,
    YearField,
    default_checkbox_state,
)
from markform.parsing.coercion import is_valid_url, is_valid_year, parse_iso_date
from markform.validation.tables import validate_table_field

SOURCE_BUILTIN: Final[str] = "builtin"
SOURCE_CODE: Final[str] = "code"


class IssueCode(StrEnum):
    REQUIRED_MISSING = "required_missing"
    CHECKBOX_INCOMPLETE = "checkbox_incomplete"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    PATTERN_MISMATCH = "pattern_mismatch"
    INVALID_PATTERN = "invalid_pattern"
    NOT_INTEGER = "not_integer"
    MIN_VALUE = "min_value"
    MAX_VALUE = "max_value"
    MIN_ITEMS = "min_items"
    MAX_ITEMS = "max_items"
    ITEM_MIN_LENGTH = "item_min_length"
    ITEM_MAX_LENGTH = "item_max_length"
    DUPLICATE_ITEM = "duplicate_item"
    INVALID_URL = "invalid_url"
    INVALID_DATE = "invalid_date"
    INVALID_YEAR = "invalid_year"
    INVALID_SELECTION = "invalid_selection"
    MIN_SELECTIONS = "min_selections"
    MAX_SELECTIONS = "max_selections"
    MIN_DONE = "min_done"
    VALIDATOR_NOT_FOUND = "validator_not_found"
    VALIDATOR_FAILED = "validator_failed"


# Codes that describe missing answers rather than wrong ones.
COMPLETENESS_CODES: Final[frozenset[str]] = frozenset(
    {IssueCode.REQUIRED_MISSING, IssueCode.CHECKBOX_INCOMPLETE}
)


@dataclass(frozen=True, slots=True)
class ValidatorContext:
    """What a code validator sees: the whole form plus its target and params."""

    schema: FormSchema
    responses: Mapping[str, FieldResponse]
    target_id: str
    target: FieldDefinition | FieldGroup
    params: Mapping[str, object] = field(default_factory=dict)


CodeValidator = Callable[[ValidatorContext], Sequence[ValidationIssue]]
_Checker = Callable[[Any, Any], list[ValidationIssue]]


def _issue(definition: FieldDefinition, code: IssueCode, message: str) -> ValidationIssue:
    return ValidationIssue(
        ref=definition.id,
        code=code.value,
        message=message,
        severity=IssueSeverity.ERROR,
        source=SOURCE_BUILTIN,
    )


def _required_missing(definition: FieldDefinition, suffix: str = "is empty") -> ValidationIssue:
    return _issue(
        definition, IssueCode.REQUIRED_MISSING, f'Required field "{definition.label}" {suffix}'
    )


# ---------------------------------------------------------------------------
# Per-kind checkers
# ---------------------------------------------------------------------------


def _check_string(definition: StringField, value: ScalarValue | None) -> list[ValidationIssue]:
    text = value.value if value is not None and isinstance(value.value, str) else None
    if definition.required and (text is None or not text.strip()):
        return [_required_missing(definition)]
    if not text:
        return []

    issues: list[ValidationIssue] = []
    label = definition.label
    if definition.min_length is not None and len(text) < definition.min_length:
        issues.append(
            _issue(
                definition,
                IssueCode.MIN_LENGTH,
                f'"{label}" must be at least {definition.min_length} characters (got {len(text)})',
            )
        )
    if definition.max_length is not None and len(text) > definition.max_length:
        issues.append(
            _issue(
                definition,
                IssueCode.MAX_LENGTH,
                f'"{label}" must be at most {definition.max_length} characters (got {len(text)})',
            )
        )
    if definition.pattern:
        try:
            matched = re.search(definition.pattern, text) is not None
        except re.error:
            issues.append(
                _issue(
                    definition,
                    IssueCode.INVALID_PATTERN,
                    f'Invalid pattern "{definition.pattern}" for field "{label}"',
                )
            )
        else:
            if not matched:
                issues.append(
                    _issue(
                        definition,
                        IssueCode.PATTERN_MISMATCH,
                        f'"{label}" does not match required pattern',
                    )
                )
    return issues


def _check_bounds(
    definition: FieldDefinition,
    number: int | float,
    minimum: int | float | None,
    maximum: int | float | None,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if minimum is not None and number < minimum:
        issues.append(
            _issue(
                definition,
                IssueCode.MIN_VALUE,
                f'"{definition.label}" must be at least {minimum} (got {number})',
            )
        )
    if maximum is not None and number > maximum:
        issues.append(
            _issue(
                definition,
                IssueCode.MAX_VALUE,
                f'"{definition.label}" must be at most {maximum} (got {number})',
            )
        )
    return issues


def _check_number(definition: NumberField, value: ScalarValue | None) -> list[ValidationIssue]:
    number = value.value if value is not None else None
    if isinstance(number, str):
        number = None
    if number is None:
        return [_required_missing(definition)] if definition.required else []

    issues: list[ValidationIssue] = []
    if definition.integer and isinstance(number, float) and not number.is_integer():
        issues.append(
            _issue(definition, IssueCode.NOT_INTEGER, f'"{definition.label}" must be an integer')
        )
    issues.extend(_check_bounds(definition, number, definition.min, definition.max))
    return issues


def _check_year(definition: YearField, value: ScalarValue | None) -> list[ValidationIssue]:
    year = value.value if value is not None else None
    if year is None:
        return [_required_missing(definition)] if definition.required else []
    if not is_valid_year(year):
        return [
            _issue(
                definition,
                IssueCode.INVALID_YEAR,
                f'"{definition.label}" must be a 4-digit year (got {year})',
            )
        ]
    return _check_bounds(definition, year, definition.min, definition.max)


def _check_url(definition: UrlField, value: ScalarValue | None) -> list[ValidationIssue]:
    url = value.value if value is not None and isinstance(value.value, str) else None
    if url is None:
        return [_required_missing(definition)] if definition.required else []
    if not is_valid_url(url):
        return [
            _issue(
                definition,
                IssueCode.INVALID_URL,
                f'"{definition.label}" is not a valid URL: "{url}"',
            )
        ]
    return []


def _check_date(definition: DateField, value: ScalarValue | None) -> list[ValidationIssue]:
    text = value.value if value is not None and isinstance(value.value, str) else None
    if text is None:
        return [_required_missing(definition)] if definition.required else []
    parsed = parse_iso_date(text)
    if parsed is None:
        return [
            _issue(
                definition,
                IssueCode.INVALID_DATE,
                f'"{definition.label}" must be a date in YYYY-MM-DD format (got "{text}")',
            )
        ]

    issues: list[ValidationIssue] = []
    minimum = parse_iso_date(definition.min) if definition.min else None
    maximum = parse_iso_date(definition.max) if definition.max else None
    if minimum is not None and parsed < minimum:
        issues.append(
            _issue(
                definition,
                IssueCode.MIN_VALUE,
                f'"{definition.label}" must be on or after {definition.min} (got {text})',
            )
        )
    if maximum is not None and parsed > maximum:
        issues.append(
            _issue(
                definition,
                IssueCode.MAX_VALUE,
                f'"{definition.label}" must be on or before {definition.max} (got {text})',
            )
        )
    return issues


def _check_list(
    definition: StringListField | UrlListField, value: ListValue | None
) -> list[ValidationIssue]:
    items = value.items if value is not None else ()
    if not items:
        return [_required_missing(definition)] if definition.required else []

    issues: list[ValidationIssue] = []
    label = definition.label
    if definition.min_items is not None and len(items) < definition.min_items:
        issues.append(
            _issue(
                definition,
                IssueCode.MIN_ITEMS,
                f'"{label}" must have at least {definition.min_items} items (got {len(items)})',
            )
        )
    if definition.max_items is not None and len(items) > definition.max_items:
        issues.append(
            _issue(
                definition,
                IssueCode.MAX_ITEMS,
                f'"{label}" must have at most {definition.max_items} items (got {len(items)})',
            )
        )

    if isinstance(definition, StringListField):
        for index, item in enumerate(items, start=1):
            if definition.item_min_length is not None and len(item) < definition.item_min_length:
                issues.append(
                    _issue(
                        definition,
                        IssueCode.ITEM_MIN_LENGTH,
                        f'Item {index} in "{label}" must be at least '
                        f"{definition.item_min_length} characters",
                    )
                )
            if definition.item_max_length is not None and len(item) > definition.item_max_length:
                issues.append(
                    _issue(
                        definition,
                        IssueCode.ITEM_MAX_LENGTH,
                        f'Item {index} in "{label}" must be at most '
                        f"{definition.item_max_length} characters",
                    )
                )
    else:
        for index, item in enumerate(items, start=1):
            if not is_valid_url(item):
                issues.append(
                    _issue(
                        definition,
                        IssueCode.INVALID_URL,
                        f'Item {index} in "{label}" is not a valid URL: "{item}"',
                    )
                )

    if definition.unique_items:
        seen: set[str] = set()
        for item in items:
            if item in seen:
                issues.append(
                    _issue(
                        definition,
                        IssueCode.DUPLICATE_ITEM,
                        f'Duplicate item "{item}" in "{label}"',
                    )
                )
                break
            seen.add(item)
    return issues


def _check_single_select(
    definition: SingleSelectField, value: SingleSelectValue | None
) -> list[ValidationIssue]:
    selected = value.selected if value is not None else None
    if selected is None:
        return [_required_missing(definition, "has no selection")] if definition.required else []
    if selected not in {option.id for option in definition.options}:
        return [
            _issue(
                definition,
                IssueCode.INVALID_SELECTION,
                f'Invalid selection "{selected}" in "{definition.label}"',
            )
        ]
    return []


def _check_multi_select(
    definition: MultiSelectField, value: MultiSelectValue | None
) -> list[ValidationIssue]:
    selected = value.selected if value is not None else ()
    if not selected:
        return [_required_missing(definition, "has no selections")] if definition.required else []

    issues: list[ValidationIssue] = []
    label = definition.label
    count = len(selected)
    if definition.min_selections is not None and count < definition.min_selections:
        issues.append(
            _issue(
                definition,
                IssueCode.MIN_SELECTIONS,
                f'"{label}" must have at least {definition.min_selections} '
                f"selections (got {count})",
            )
        )
    if definition.max_selections is not None and count > definition.max_selections:
        issues.append(
            _issue(
                definition,
                IssueCode.MAX_SELECTIONS,
                f'"{label}" must have at most {definition.max_selections} selections (got {count})',
            )
        )
    valid = {option.id for option in definition.options}
    for option_id in selected:
        if option_id not in valid:
            issues.append(
                _issue(
                    definition,
                    IssueCode.INVALID_SELECTION,
                    f'Invalid selection "{option_id}" in "{label}"',
                )
            )
    return issues


def _check_checkboxes(
    definition: CheckboxesField, value: CheckboxesValue | None
) -> list[ValidationIssue]:
    states = value.values if value is not None else {}
    mode = definition.checkbox_mode
    default = default_checkbox_state(mode)
    done = incomplete = unfilled = 0
    for option in definition.options:
        state = states.get(option.id, default)
        if mode is CheckboxMode.EXPLICIT:
            if state is CheckboxState.UNFILLED:
                unfilled += 1
            else:
                done += 1
        elif mode is CheckboxMode.MULTI:
            if state in (CheckboxState.DONE, CheckboxState.NA):
                done += 1
            elif state in (CheckboxState.INCOMPLETE, CheckboxState.ACTIVE):
                incomplete += 1
        elif state is CheckboxState.DONE:
            done += 1

    issues: list[ValidationIssue] = []
    label = definition.label
    if definition.required:
        message: str | None = None
        if mode is CheckboxMode.EXPLICIT and unfilled:
            message = f'All items in "{label}" must be answered ({unfilled} unfilled)'
        elif mode is CheckboxMode.MULTI and (incomplete or not done):
            message = f'All items in "{label}" must be completed'
        elif mode is CheckboxMode.SIMPLE and done < len(definition.options):
            remaining = len(definition.options) - done
            message = f'All items in "{label}" must be checked ({remaining} unchecked)'
        if message is not None:
            issues.append(_issue(definition, IssueCode.CHECKBOX_INCOMPLETE, message))

    if definition.min_done is not None and done < definition.min_done:
        issues.append(
            _issue(
                definition,
                IssueCode.MIN_DONE,
                f'"{label}" requires at least {definition.min_done} items done (got {done})',
            )
        )
    return issues


def _check_table(definition: TableField, value: TableValue | None) -> list[ValidationIssue]:
    if value is None or not value.rows:
        return [_required_missing(definition)] if definition.required else []
    issues: list[ValidationIssue] = []
    for error in validate_table_field(definition, value):
        ref = definition.id
        if error.is_cell_error:
            ref = f"{definition.id}.{error.column_id}[{error.row_index}]"
        issues.append(
            ValidationIssue(
                ref=ref,
                code=error.code.value,
                message=error.message,
                severity=IssueSeverity.ERROR,
                source=SOURCE_BUILTIN,
            )
        )
    return issues


FIELD_CHECKERS: Final[Mapping[FieldKind, _Checker]] = MappingProxyType(
    {
        FieldKind.STRING: _check_string,
        FieldKind.NUMBER: _check_number,
        FieldKind.STRING_LIST: _check_list,
        FieldKind.SINGLE_SELECT: _check_single_select,
        FieldKind.MULTI_SELECT: _check_multi_select,
        FieldKind.CHECKBOXES: _check_checkboxes,
        FieldKind.URL: _check_url,
        FieldKind.URL_LIST: _check_list,
        FieldKind.DATE: _check_date,
        FieldKind.YEAR: _check_year,
        FieldKind.TABLE: _check_table,
    }
)


def _assert_checkers_complete() -> None:
    missing = sorted(kind.value for kind in FieldKind if kind not in FIELD_CHECKERS)
    if missing:
        raise RuntimeError(f"field checker registry incomplete: {missing}")


_assert_checkers_complete()


# ---------------------------------------------------------------------------
# Code validators
# ---------------------------------------------------------------------------


def _validator_id_and_params(ref: ValidatorRef) -> tuple[str, dict[str, object]]:
    if isinstance(ref, str):
        return ref, {}
    params = {key: value for key, value in ref.items() if key != "id"}
    return str(ref.get("id", "")), params


def run_code_validators(
    target: FieldDefinition | FieldGroup,
    form: ParsedForm,
    registry: Mapping[str, CodeValidator],
) -> list[ValidationIssue]:
    """Run the validators named by ``target.validate``.

    Unknown validator ids are reported as warnings; a validator that raises
    is reported as an error issue naming it.
    """

    issues: list[ValidationIssue] = []
    noun = "group" if isinstance(target, FieldGroup) else "field"
    name = target.id if isinstance(target, FieldGroup) else target.label
    for ref in target.validate:
        validator_id, params = _validator_id_and_params(ref)
        validator = registry.get(validator_id)
        if validator is None:
            issues.append(
                ValidationIssue(
                    ref=target.id,
                    code=IssueCode.VALIDATOR_NOT_FOUND.value,
                    message=f'Validator "{validator_id}" not found for {noun} "{name}"',
                    severity=IssueSeverity.WARNING,
                    source=SOURCE_CODE,
                    validator_id=validator_id,
                )
            )
            continue
        context = ValidatorContext(
            schema=form.schema,
            responses=form.responses_by_field_id,
            target_id=target.id,
            target=target,
            params=params,
        )
        try:
            issues.extend(validator(context))
        except Exception as exc:
            issues.append(
                ValidationIssue(
                    ref=target.id,
                    code=IssueCode.VALIDATOR_FAILED.value,
                    message=f'Validator "{validator_id}" threw an error: {exc}',
                    severity=IssueSeverity.ERROR,
                    source=SOURCE_CODE,
                    validator_id=validator_id,
                )
            )
    return issues


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def validate_field(definition: FieldDefinition, response: FieldResponse) -> list[ValidationIssue]:
    """Built-in checks for one field; skipped and aborted fields are exempt."""

    if response.state in (ResponseState.SKIPPED, ResponseState.ABORTED):
        return []
    value: FieldValue | None = response.value if response.state is ResponseState.ANSWERED else None
    checker = FIELD_CHECKERS[definition.kind]
    return checker(definition, value)


def validate_form(
    form: ParsedForm,
    *,
    validators: Mapping[str, CodeValidator] | None = None,
) -> list[ValidationIssue]:
    """Every issue in ``form``, in schema order.

    Code validators run only when a ``validators`` registry is supplied.
    """

    issues: list[ValidationIssue] = []
    for group in form.schema.groups:
        for definition in group.children:
            issues.extend(validate_field(definition, form.response_for(definition.id)))
            if validators is not None:
                issues.extend(run_code_validators(definition, form, validators))
        if validators is not None:
            issues.extend(run_code_validators(group, form, validators))
    return issues


def is_valid(issues: Sequence[ValidationIssue]) -> bool:
    return not any(issue.severity is IssueSeverity.ERROR for issue in issues)


def value_issues(issues: Sequence[ValidationIssue]) -> list[ValidationIssue]:
    """Issues about wrong values, dropping those about missing answers."""

    return [issue for issue in issues if issue.code not in COMPLETENESS_CODES]


__all__ = [
    "COMPLETENESS_CODES",
    "FIELD_CHECKERS",
    "CodeValidator",
    "IssueCode",
    "ValidatorContext",
    "is_valid",
    "run_code_validators",
    "validate_field",
    "validate_form",
    "value_issues",
]
