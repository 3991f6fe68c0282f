"""
markform — patch application

File: src/markform/fill/patches.py

Purpose
- Apply a batch of fill operations (``Patch`` values) to a ``ParsedForm``
  and return the updated form with its fresh inspection.

What should be included in this file
- ``PatchOp``: one ``set_*`` op per field kind, plus ``clear_field``,
  ``skip_field``, ``abort_field``, ``add_note`` and ``remove_note``.
- Normalization of common shape mismatches (a single string for a list, a
  single option id for a multi-select, an id list or booleans for
  checkboxes), each reported as a ``PatchWarning``.
- Per-patch checks that produce a ``PatchRejection`` with the patch index.

Functional requirements
- Best effort: valid patches apply even when others in the batch are
  rejected. Status is ``applied``, ``partial``, or ``rejected`` (nothing
  applied, form unchanged).
- Every patch is checked against the input form, not against the effect of
  earlier patches in the same batch.
- Sentinel text (``%SKIP%``, ``%ABORT%``) inside a field value is rejected;
  table cells may carry sentinels to skip or abort single cells.
- ``set_checkboxes`` merges into the field's current states.
- A ``set_*`` value that is empty for its kind clears the field.

Non-functional requirements
- The input form is never mutated; the result carries a new ``ParsedForm``.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final

import structlog

from markform.domain.models import (
    CHECKBOX_STATES_BY_MODE,
    CanonicalModel,
    CellResponse,
    CheckboxesField,
    CheckboxesValue,
    CheckboxMode,
    CheckboxState,
    FieldDefinition,
    FieldKind,
    FieldResponse,
    FieldValue,
    ListValue,
    MultiSelectField,
    MultiSelectValue,
    Note,
    ParsedForm,
    ResponseState,
    ScalarValue,
    SingleSelectField,
    SingleSelectValue,
    TableField,
    TableValue,
    default_checkbox_state,
    is_value_empty,
)
from markform.errors import MarkformError
from markform.parsing.coercion import parse_decimal, parse_number
from markform.parsing.sentinels import SENTINEL_ABORT, SENTINEL_SKIP, SentinelType, detect_sentinel
from markform.parsing.tables import escape_table_cell
from markform.progress.inspect import InspectResult, inspect_form
from markform.validation.fields import CodeValidator

NOTE_ID_PREFIX: Final[str] = "n"


class PatchOp(StrEnum):
    SET_STRING = "set_string"
    SET_NUMBER = "set_number"
    SET_STRING_LIST = "set_string_list"
    SET_SINGLE_SELECT = "set_single_select"
    SET_MULTI_SELECT = "set_multi_select"
    SET_CHECKBOXES = "set_checkboxes"
    SET_URL = "set_url"
    SET_URL_LIST = "set_url_list"
    SET_DATE = "set_date"
    SET_YEAR = "set_year"
    SET_TABLE = "set_table"
    CLEAR_FIELD = "clear_field"
    SKIP_FIELD = "skip_field"
    ABORT_FIELD = "abort_field"
    ADD_NOTE = "add_note"
    REMOVE_NOTE = "remove_note"


class ApplyStatus(StrEnum):
    APPLIED = "applied"
    PARTIAL = "partial"
    REJECTED = "rejected"


class PatchCoercion(StrEnum):
    STRING_TO_LIST = "string_to_list"
    URL_TO_LIST = "url_to_list"
    OPTION_TO_ARRAY = "option_to_array"
    ARRAY_TO_CHECKBOXES = "array_to_checkboxes"
    BOOLEAN_TO_CHECKBOX = "boolean_to_checkbox"


SET_OP_KINDS: Final[Mapping[PatchOp, FieldKind]] = MappingProxyType(
    {
        PatchOp.SET_STRING: FieldKind.STRING,
        PatchOp.SET_NUMBER: FieldKind.NUMBER,
        PatchOp.SET_STRING_LIST: FieldKind.STRING_LIST,
        PatchOp.SET_SINGLE_SELECT: FieldKind.SINGLE_SELECT,
        PatchOp.SET_MULTI_SELECT: FieldKind.MULTI_SELECT,
        PatchOp.SET_CHECKBOXES: FieldKind.CHECKBOXES,
        PatchOp.SET_URL: FieldKind.URL,
        PatchOp.SET_URL_LIST: FieldKind.URL_LIST,
        PatchOp.SET_DATE: FieldKind.DATE,
        PatchOp.SET_YEAR: FieldKind.YEAR,
        PatchOp.SET_TABLE: FieldKind.TABLE,
    }
)
SET_OP_KINDS_BY_KIND: Final[Mapping[FieldKind, PatchOp]] = MappingProxyType(
    {kind: op for op, kind in SET_OP_KINDS.items()}
)

_TEXT_OPS: Final[frozenset[PatchOp]] = frozenset(
    {PatchOp.SET_STRING, PatchOp.SET_URL, PatchOp.SET_DATE}
)
_LIST_OPS: Final[frozenset[PatchOp]] = frozenset({PatchOp.SET_STRING_LIST, PatchOp.SET_URL_LIST})
_NOTE_OPS: Final[frozenset[PatchOp]] = frozenset({PatchOp.ADD_NOTE, PatchOp.REMOVE_NOTE})

_PATCH_KEYS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "op": "op",
        "fieldId": "field_id",
        "field_id": "field_id",
        "value": "value",
        "reason": "reason",
        "ref": "ref",
        "role": "role",
        "text": "text",
        "noteId": "note_id",
        "note_id": "note_id",
    }
)


@dataclass(frozen=True, slots=True)
class Patch(CanonicalModel):
    """One fill operation. ``value`` holds plain JSON-shaped data."""

    op: PatchOp
    field_id: str | None = None
    value: Any = None
    reason: str | None = None
    ref: str | None = None
    role: str | None = None
    text: str | None = None
    note_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "op", PatchOp(self.op))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Patch:
        """Build a patch from a JSON object; camelCase and snake_case keys are accepted."""

        unknown = sorted(str(key) for key in data if key not in _PATCH_KEYS)
        if unknown:
            raise MarkformError(f"Unknown patch keys: {', '.join(unknown)}")
        kwargs = {_PATCH_KEYS[key]: value for key, value in data.items()}
        op = kwargs.get("op")
        try:
            return cls(**kwargs)
        except (TypeError, ValueError) as exc:
            raise MarkformError(f"Invalid patch op {op!r}") from exc


@dataclass(frozen=True, slots=True)
class PatchRejection(CanonicalModel):
    patch_index: int
    message: str
    field_id: str | None = None
    field_kind: FieldKind | None = None
    column_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PatchWarning(CanonicalModel):
    patch_index: int
    field_id: str
    coercion: PatchCoercion
    message: str


@dataclass(frozen=True, slots=True)
class ApplyResult(CanonicalModel):
    status: ApplyStatus
    form: ParsedForm
    inspection: InspectResult
    applied: tuple[Patch, ...] = ()
    rejected: tuple[PatchRejection, ...] = ()
    warnings: tuple[PatchWarning, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.inspection.is_complete


class _Rejected(Exception):
    """Internal signal carrying a patch rejection out of the checks."""

    def __init__(self, rejection: PatchRejection) -> None:
        super().__init__(rejection.message)
        self.rejection = rejection


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_patch(
    form: ParsedForm, patch: Patch, index: int
) -> tuple[Patch, PatchWarning | None]:
    """Coerce common value-shape mismatches; other patches pass through unchanged."""

    if patch.op in _NOTE_OPS or patch.field_id is None:
        return patch, None
    definition = form.schema.field_by_id(patch.field_id)
    if definition is None or SET_OP_KINDS.get(patch.op) is not definition.kind:
        return patch, None

    value = patch.value
    if patch.op in _LIST_OPS and isinstance(value, str):
        coercion = (
            PatchCoercion.URL_TO_LIST
            if patch.op is PatchOp.SET_URL_LIST
            else PatchCoercion.STRING_TO_LIST
        )
        noun = "URL" if patch.op is PatchOp.SET_URL_LIST else "string"
        return _coerced(
            patch, [value], index, coercion, f"Coerced single {noun} to {definition.kind}"
        )
    if patch.op is PatchOp.SET_MULTI_SELECT and isinstance(value, str):
        return _coerced(
            patch,
            [value],
            index,
            PatchCoercion.OPTION_TO_ARRAY,
            "Coerced single option ID to multi_select array",
        )
    if patch.op is PatchOp.SET_CHECKBOXES and isinstance(definition, CheckboxesField):
        return _normalize_checkboxes(patch, definition, index)
    return patch, None


def _normalize_checkboxes(
    patch: Patch, definition: CheckboxesField, index: int
) -> tuple[Patch, PatchWarning | None]:
    value = patch.value
    mode = definition.checkbox_mode
    if isinstance(value, (list, tuple)):
        checked = _checked_state(mode)
        states = {item: checked.value for item in value if isinstance(item, str)}
        if not value:
            return dataclasses.replace(patch, value=states), None
        return _coerced(
            patch,
            states,
            index,
            PatchCoercion.ARRAY_TO_CHECKBOXES,
            f"Coerced array to checkboxes object with '{checked}' state",
        )
    if isinstance(value, Mapping) and any(isinstance(item, bool) for item in value.values()):
        states = {
            option_id: (_boolean_state(item, mode).value if isinstance(item, bool) else item)
            for option_id, item in value.items()
        }
        return _coerced(
            patch,
            states,
            index,
            PatchCoercion.BOOLEAN_TO_CHECKBOX,
            "Coerced boolean values to checkbox state strings",
        )
    return patch, None


def _coerced(
    patch: Patch, value: object, index: int, coercion: PatchCoercion, message: str
) -> tuple[Patch, PatchWarning]:
    warning = PatchWarning(
        patch_index=index, field_id=patch.field_id or "", coercion=coercion, message=message
    )
    return dataclasses.replace(patch, value=value), warning


def _checked_state(mode: CheckboxMode) -> CheckboxState:
    return CheckboxState.YES if mode is CheckboxMode.EXPLICIT else CheckboxState.DONE


def _boolean_state(flag: bool, mode: CheckboxMode) -> CheckboxState:
    if flag:
        return _checked_state(mode)
    return CheckboxState.NO if mode is CheckboxMode.EXPLICIT else CheckboxState.TODO


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def check_patch(form: ParsedForm, patch: Patch, index: int) -> PatchRejection | None:
    """Return why ``patch`` cannot apply to ``form``, or ``None`` when it can."""

    try:
        _check(form, patch, index)
    except _Rejected as rejected:
        return rejected.rejection
    return None


def _reject(
    index: int,
    message: str,
    definition: FieldDefinition | None = None,
    *,
    column_ids: tuple[str, ...] = (),
) -> _Rejected:
    return _Rejected(
        PatchRejection(
            patch_index=index,
            message=message,
            field_id=definition.id if definition is not None else None,
            field_kind=definition.kind if definition is not None else None,
            column_ids=column_ids,
        )
    )


def _check(form: ParsedForm, patch: Patch, index: int) -> None:
    if patch.op is PatchOp.ADD_NOTE:
        if not patch.ref or patch.ref not in form.id_index:
            raise _reject(index, f'Reference "{patch.ref}" not found in form')
        if not patch.role:
            raise _reject(index, "add_note requires a role")
        if not isinstance(patch.text, str):
            raise _reject(index, "add_note requires text")
        return
    if patch.op is PatchOp.REMOVE_NOTE:
        if not any(note.id == patch.note_id for note in form.notes):
            raise _reject(index, f"Note with id '{patch.note_id}' not found")
        return

    definition = form.schema.field_by_id(patch.field_id) if patch.field_id else None
    if definition is None:
        raise _reject(index, f'Field "{patch.field_id}" not found')

    expected = SET_OP_KINDS.get(patch.op)
    if expected is not None and definition.kind is not expected:
        raise _reject(
            index,
            f'Cannot apply {patch.op} to {definition.kind} field "{definition.id}"',
            definition,
        )
    if patch.op is PatchOp.SKIP_FIELD and definition.required:
        raise _reject(index, f'Cannot skip required field "{definition.id}"', definition)
    if expected is None or patch.value is None:
        return

    if patch.op in _TEXT_OPS:
        text = _require(isinstance(patch.value, str), patch.value, index, definition, "a string")
        _check_no_sentinel(text, index, definition)
    elif patch.op is PatchOp.SET_NUMBER:
        _require(_as_number(patch.value) is not None, patch.value, index, definition, "a number")
    elif patch.op is PatchOp.SET_YEAR:
        _require(_as_year(patch.value) is not None, patch.value, index, definition, "a year")
    elif patch.op in _LIST_OPS:
        _check_list(patch.value, index, definition)
    elif isinstance(definition, SingleSelectField):
        _check_options((patch.value,), index, definition)
    elif isinstance(definition, MultiSelectField):
        if not isinstance(patch.value, (list, tuple)):
            raise _reject(
                index,
                f'Invalid set_multi_select patch for field "{definition.id}": '
                "value must be an array of option IDs",
                definition,
            )
        _check_options(patch.value, index, definition)
    elif isinstance(definition, CheckboxesField):
        _check_checkboxes(patch.value, index, definition)
    elif isinstance(definition, TableField):
        _check_table(patch.value, index, definition)


def _require(
    ok: bool, value: object, index: int, definition: FieldDefinition, noun: str
) -> Any:
    if not ok:
        raise _reject(
            index,
            f'Invalid value {value!r} for {definition.kind} field "{definition.id}": '
            f"value must be {noun}",
            definition,
        )
    return value


def _check_no_sentinel(text: str, index: int, definition: FieldDefinition) -> None:
    sentinel = detect_sentinel(text)
    if sentinel is None:
        return
    token, op = (
        (SENTINEL_SKIP, PatchOp.SKIP_FIELD)
        if sentinel.type is SentinelType.SKIP
        else (SENTINEL_ABORT, PatchOp.ABORT_FIELD)
    )
    raise _reject(
        index,
        f'Value contains {token} sentinel for field "{definition.id}". '
        f"Use {op} operation instead of embedding sentinel in value.",
        definition,
    )


def _check_list(value: object, index: int, definition: FieldDefinition) -> None:
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        noun = "URLs" if definition.kind is FieldKind.URL_LIST else "strings"
        raise _reject(
            index,
            f'Invalid {SET_OP_KINDS_BY_KIND[definition.kind]} patch for field '
            f'"{definition.id}": value must be an array of {noun}',
            definition,
        )
    for item in value:
        if "\n" in item or "\r" in item:
            raise _reject(
                index, f'List items for field "{definition.id}" must be single lines', definition
            )
        _check_no_sentinel(item, index, definition)


def _check_options(
    selected: Sequence[object], index: int, definition: FieldDefinition
) -> None:
    valid = {option.id for option in getattr(definition, "options", ())}
    for option_id in selected:
        if option_id not in valid:
            raise _reject(
                index, f'Invalid option "{option_id}" for field "{definition.id}"', definition
            )


def _check_checkboxes(value: object, index: int, definition: CheckboxesField) -> None:
    if not isinstance(value, Mapping):
        raise _reject(
            index,
            f'Invalid set_checkboxes patch for field "{definition.id}": value must be an '
            'object mapping option IDs to checkbox state strings (e.g. "todo", "done", '
            '"yes", "no")',
            definition,
        )
    _check_options(tuple(value), index, definition)
    allowed = CHECKBOX_STATES_BY_MODE[definition.checkbox_mode]
    for option_id, state in value.items():
        if state not in {member.value for member in allowed}:
            valid = ", ".join(sorted(member.value for member in allowed))
            raise _reject(
                index,
                f'Invalid checkbox state "{state}" for option "{option_id}" in field '
                f'"{definition.id}" (checkboxMode="{definition.checkbox_mode}"). '
                f"Must be one of: {valid}",
                definition,
            )


def _check_table(value: object, index: int, definition: TableField) -> None:
    column_ids = tuple(column.id for column in definition.columns)
    if not isinstance(value, (list, tuple)):
        raise _reject(
            index,
            f'Invalid set_table patch for field "{definition.id}": value must be an array of '
            "row objects. Each row should map column IDs to values. "
            f"Columns: [{', '.join(column_ids)}]",
            definition,
            column_ids=column_ids,
        )
    for row in value:
        if row is None:
            continue
        if not isinstance(row, Mapping):
            raise _reject(
                index,
                f'Rows for table field "{definition.id}" must be objects',
                definition,
                column_ids=column_ids,
            )
        for column_id, cell in row.items():
            if column_id not in column_ids:
                raise _reject(
                    index,
                    f'Invalid column "{column_id}" for table field "{definition.id}"',
                    definition,
                    column_ids=column_ids,
                )
            _check_cell(cell, column_id, index, definition)


def _check_cell(cell: object, column_id: str, index: int, definition: TableField) -> None:
    if cell is None:
        return
    if isinstance(cell, str):
        try:
            escape_table_cell(cell.strip())
        except ValueError as exc:
            raise _reject(
                index, f'Column "{column_id}" of table field "{definition.id}": {exc}', definition
            ) from exc
        return
    if isinstance(cell, bool) or not isinstance(cell, (int, float)):
        raise _reject(
            index,
            f'Column "{column_id}" of table field "{definition.id}" must hold a string, '
            f"a number, or null, not {type(cell).__name__}",
            definition,
        )
    if isinstance(cell, float) and not math.isfinite(cell):
        raise _reject(
            index,
            f'Column "{column_id}" of table field "{definition.id}" must be a finite number',
            definition,
        )


# ---------------------------------------------------------------------------
# Value conversion
# ---------------------------------------------------------------------------


def _as_number(value: object) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        return parse_number(value)
    return None


def _as_year(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return parse_decimal(value)
    return None


def _to_cell(value: object) -> CellResponse:
    if value is None:
        return CellResponse(ResponseState.SKIPPED)
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return CellResponse(ResponseState.SKIPPED)
        sentinel = detect_sentinel(trimmed)
        if sentinel is not None:
            return CellResponse(sentinel.response_state, reason=sentinel.reason)
        return CellResponse(ResponseState.ANSWERED, value=trimmed)
    return CellResponse(ResponseState.ANSWERED, value=value)


def _field_value(definition: FieldDefinition, patch: Patch, current: FieldResponse) -> FieldValue:
    value = patch.value
    if patch.op in _TEXT_OPS:
        text = value.strip() if isinstance(value, str) else ""
        return ScalarValue(definition.kind, text or None)
    if patch.op is PatchOp.SET_NUMBER:
        return ScalarValue(FieldKind.NUMBER, _as_number(value))
    if patch.op is PatchOp.SET_YEAR:
        return ScalarValue(FieldKind.YEAR, _as_year(value))
    if patch.op in _LIST_OPS:
        items = tuple(item.strip() for item in value or () if item.strip())
        return ListValue(definition.kind, items)
    if patch.op is PatchOp.SET_SINGLE_SELECT:
        return SingleSelectValue(value)
    if patch.op is PatchOp.SET_MULTI_SELECT:
        return MultiSelectValue(tuple(dict.fromkeys(value or ())))
    if isinstance(definition, CheckboxesField):
        return _merged_checkboxes(definition, current, value or {})
    if isinstance(definition, TableField):
        rows = tuple(
            {column.id: _to_cell((row or {}).get(column.id)) for column in definition.columns}
            for row in value or ()
        )
        return TableValue(rows=rows)
    raise MarkformError(f"Unsupported patch op {patch.op}")


def _merged_checkboxes(
    definition: CheckboxesField, current: FieldResponse, updates: Mapping[str, str]
) -> CheckboxesValue:
    default = default_checkbox_state(definition.checkbox_mode)
    states = {option.id: default for option in definition.options}
    if isinstance(current.value, CheckboxesValue):
        states.update(current.value.values)
    states.update({option_id: CheckboxState(state) for option_id, state in updates.items()})
    return CheckboxesValue(states)


def next_note_id(notes: Sequence[Note]) -> str:
    """Smallest unused ``n<k>`` id."""

    existing = {note.id for note in notes}
    counter = 1
    while f"{NOTE_ID_PREFIX}{counter}" in existing:
        counter += 1
    return f"{NOTE_ID_PREFIX}{counter}"


def _apply(
    form: ParsedForm,
    responses: dict[str, FieldResponse],
    notes: list[Note],
    patch: Patch,
) -> None:
    if patch.op is PatchOp.ADD_NOTE:
        note_id = next_note_id(notes)
        notes.append(
            Note(id=note_id, ref=patch.ref or "", role=patch.role or "", text=patch.text or "")
        )
        return
    if patch.op is PatchOp.REMOVE_NOTE:
        notes[:] = [note for note in notes if note.id != patch.note_id]
        return

    field_id = patch.field_id or ""
    if patch.op is PatchOp.CLEAR_FIELD:
        responses[field_id] = FieldResponse.unanswered()
    elif patch.op is PatchOp.SKIP_FIELD:
        responses[field_id] = FieldResponse.skipped(patch.reason or None)
    elif patch.op is PatchOp.ABORT_FIELD:
        responses[field_id] = FieldResponse.aborted(patch.reason or None)
    elif patch.value is None:
        responses[field_id] = FieldResponse.unanswered()
    else:
        definition = form.schema.field_by_id(field_id)
        if definition is None:
            raise MarkformError(f"Cannot apply patch to unknown field '{field_id}'")
        current = responses.get(field_id, FieldResponse.unanswered())
        value = _field_value(definition, patch, current)
        responses[field_id] = (
            FieldResponse.unanswered() if is_value_empty(value) else FieldResponse.answered(value)
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def apply_patches(
    form: ParsedForm,
    patches: Sequence[Patch],
    *,
    validators: Mapping[str, CodeValidator] | None = None,
    logger: Any | None = None,
) -> ApplyResult:
    """Apply ``patches`` to a copy of ``form`` and inspect the result.

    Each patch is normalized, then checked on its own; rejected patches are
    reported by index and skipped. When every patch is rejected the returned
    form is ``form`` itself.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)

    applied: list[Patch] = []
    rejected: list[PatchRejection] = []
    warnings: list[PatchWarning] = []
    for index, raw in enumerate(patches):
        patch, warning = normalize_patch(form, raw, index)
        rejection = check_patch(form, patch, index)
        if rejection is not None:
            rejected.append(rejection)
            continue
        applied.append(patch)
        if warning is not None:
            warnings.append(warning)

    updated = form
    if applied:
        responses = dict(form.responses_by_field_id)
        notes = list(form.notes)
        for patch in applied:
            _apply(form, responses, notes, patch)
        updated = dataclasses.replace(form, responses_by_field_id=responses, notes=tuple(notes))

    if not applied and rejected:
        status = ApplyStatus.REJECTED
    elif rejected:
        status = ApplyStatus.PARTIAL
    else:
        status = ApplyStatus.APPLIED

    inspection = inspect_form(updated, validators=validators, logger=log)
    log.debug(
        "patches_applied",
        form_id=form.schema.id,
        status=status.value,
        applied=len(applied),
        rejected=len(rejected),
        warnings=len(warnings),
    )
    return ApplyResult(
        status=status,
        form=updated,
        inspection=inspection,
        applied=tuple(applied),
        rejected=tuple(rejected),
        warnings=tuple(warnings),
    )


__all__ = [
    "NOTE_ID_PREFIX",
    "SET_OP_KINDS",
    "ApplyResult",
    "ApplyStatus",
    "Patch",
    "PatchCoercion",
    "PatchOp",
    "PatchRejection",
    "PatchWarning",
    "apply_patches",
    "check_patch",
    "next_note_id",
    "normalize_patch",
]
