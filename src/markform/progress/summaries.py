"""
markform — progress engine

File: src/markform/progress/summaries.py

Purpose
- Derive structure counts, per-field progress, and whole-form state from a
  schema, its responses, and the validation issues found for it.

What should be included in this file
- ``compute_structure_summary``: one pass over the schema.
- ``is_field_submitted``: the emptiness rule, except checkboxes count as
  submitted once any option leaves its mode's default state.
- ``compute_field_progress`` / ``compute_progress_summary``: derived, never
  stored, progress state per field and aggregate counts.
- ``compute_form_state`` / ``is_form_complete``.

Functional requirements
- A field is ``empty`` when not submitted, else ``invalid`` with any issue,
  else ``incomplete`` when a checkbox completeness rule fails, else
  ``complete``.
- Once any field is skipped, completion also requires every field to be
  answered or skipped.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields as dataclass_fields
from enum import StrEnum
from typing import Protocol

from markform.domain.models import (
    CanonicalModel,
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
    ListValue,
    MultiSelectValue,
    Note,
    ResponseState,
    ScalarValue,
    SingleSelectValue,
    TableField,
    TableValue,
    default_checkbox_state,
)


class ProgressState(StrEnum):
    EMPTY = "empty"
    INCOMPLETE = "incomplete"
    INVALID = "invalid"
    COMPLETE = "complete"


class HasRef(Protocol):
    @property
    def ref(self) -> str: ...


@dataclass(frozen=True, slots=True)
class QualifiedOption(CanonicalModel):
    parent_field_id: str
    parent_field_kind: FieldKind


@dataclass(frozen=True, slots=True)
class QualifiedColumn(CanonicalModel):
    parent_field_id: str
    column_type: ColumnType


@dataclass(frozen=True, slots=True)
class StructureSummary(CanonicalModel):
    group_count: int
    field_count: int
    option_count: int
    column_count: int
    field_count_by_kind: Mapping[str, int]
    groups_by_id: Mapping[str, str]
    fields_by_id: Mapping[str, FieldKind]
    options_by_id: Mapping[str, QualifiedOption]
    columns_by_id: Mapping[str, QualifiedColumn]


@dataclass(frozen=True, slots=True)
class CheckboxProgress(CanonicalModel):
    total: int
    by_state: Mapping[str, int]

    def count(self, state: CheckboxState) -> int:
        return self.by_state.get(state.value, 0)


@dataclass(frozen=True, slots=True)
class FieldProgress(CanonicalModel):
    kind: FieldKind
    required: bool
    answer_state: ResponseState
    submitted: bool
    state: ProgressState
    issue_count: int = 0
    note_count: int = 0
    checkbox_progress: CheckboxProgress | None = None

    @property
    def valid(self) -> bool:
        return self.issue_count == 0


@dataclass(frozen=True, slots=True)
class ProgressCounts(CanonicalModel):
    total: int = 0
    required: int = 0
    submitted: int = 0
    complete: int = 0
    incomplete: int = 0
    invalid: int = 0
    empty_required: int = 0
    empty_optional: int = 0
    answered: int = 0
    skipped: int = 0
    aborted: int = 0
    unanswered: int = 0
    notes: int = 0


@dataclass(frozen=True, slots=True)
class ProgressSummary(CanonicalModel):
    counts: ProgressCounts
    fields: Mapping[str, FieldProgress] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AllSummaries(CanonicalModel):
    structure: StructureSummary
    progress: ProgressSummary
    form_state: ProgressState
    is_complete: bool


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


def compute_structure_summary(schema: FormSchema) -> StructureSummary:
    by_kind = {kind.value: 0 for kind in FieldKind}
    groups: dict[str, str] = {}
    fields: dict[str, FieldKind] = {}
    options: dict[str, QualifiedOption] = {}
    columns: dict[str, QualifiedColumn] = {}

    for group in schema.groups:
        groups[group.id] = "field_group"
        for definition in group.children:
            by_kind[definition.kind.value] += 1
            fields[definition.id] = definition.kind
            for option in getattr(definition, "options", ()):
                options[f"{definition.id}.{option.id}"] = QualifiedOption(
                    definition.id, definition.kind
                )
            if isinstance(definition, TableField):
                for column in definition.columns:
                    columns[f"{definition.id}.{column.id}"] = QualifiedColumn(
                        definition.id, column.type
                    )

    return StructureSummary(
        group_count=len(groups),
        field_count=len(fields),
        option_count=len(options),
        column_count=len(columns),
        field_count_by_kind=by_kind,
        groups_by_id=groups,
        fields_by_id=fields,
        options_by_id=options,
        columns_by_id=columns,
    )


# ---------------------------------------------------------------------------
# Per-field progress
# ---------------------------------------------------------------------------


def is_field_submitted(definition: FieldDefinition, value: FieldValue | None) -> bool:
    if value is None:
        return False
    if isinstance(value, ScalarValue):
        if isinstance(value.value, str):
            return bool(value.value.strip())
        return value.value is not None
    if isinstance(value, ListValue):
        return bool(value.items)
    if isinstance(value, SingleSelectValue):
        return value.selected is not None
    if isinstance(value, MultiSelectValue):
        return bool(value.selected)
    if isinstance(value, CheckboxesValue):
        if not isinstance(definition, CheckboxesField):
            return False
        default = default_checkbox_state(definition.checkbox_mode)
        return any(
            value.values.get(option.id, default) is not default for option in definition.options
        )
    if isinstance(value, TableValue):
        return bool(value.rows)
    return False


def checkbox_progress(definition: CheckboxesField, value: FieldValue | None) -> CheckboxProgress:
    default = default_checkbox_state(definition.checkbox_mode)
    states = value.values if isinstance(value, CheckboxesValue) else {}
    by_state = {state.value: 0 for state in CheckboxState}
    for option in definition.options:
        by_state[states.get(option.id, default).value] += 1
    return CheckboxProgress(total=len(definition.options), by_state=by_state)


def is_checkbox_complete(definition: CheckboxesField, value: FieldValue | None) -> bool:
    """Mode-specific completeness: explicit leaves nothing unfilled, multi nothing open."""

    counts = checkbox_progress(definition, value)
    if definition.checkbox_mode is CheckboxMode.EXPLICIT:
        return counts.count(CheckboxState.UNFILLED) == 0
    if definition.checkbox_mode is CheckboxMode.MULTI:
        return not any(
            counts.count(state)
            for state in (CheckboxState.TODO, CheckboxState.INCOMPLETE, CheckboxState.ACTIVE)
        )
    return True


def issues_for_field(field_id: str, issues: Iterable[HasRef]) -> list[HasRef]:
    """Issues addressed to the field itself or to any of its options, columns, or cells."""

    prefix = f"{field_id}."
    return [issue for issue in issues if issue.ref == field_id or issue.ref.startswith(prefix)]


def compute_field_progress(
    definition: FieldDefinition,
    response: FieldResponse,
    issues: Sequence[HasRef] = (),
    notes: Sequence[Note] = (),
) -> FieldProgress:
    value = response.value if response.state is ResponseState.ANSWERED else None
    submitted = is_field_submitted(definition, value)
    issue_count = len(issues_for_field(definition.id, issues))

    if not submitted:
        state = ProgressState.EMPTY
    elif issue_count:
        state = ProgressState.INVALID
    elif isinstance(definition, CheckboxesField) and not is_checkbox_complete(definition, value):
        state = ProgressState.INCOMPLETE
    else:
        state = ProgressState.COMPLETE

    boxes = None
    if isinstance(definition, CheckboxesField):
        boxes = checkbox_progress(definition, value)

    return FieldProgress(
        kind=definition.kind,
        required=definition.required,
        answer_state=response.state,
        submitted=submitted,
        state=state,
        issue_count=issue_count,
        note_count=sum(1 for note in notes if note.ref == definition.id),
        checkbox_progress=boxes,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def compute_progress_summary(
    schema: FormSchema,
    responses: Mapping[str, FieldResponse],
    issues: Sequence[HasRef] = (),
    notes: Sequence[Note] = (),
) -> ProgressSummary:
    fields: dict[str, FieldProgress] = {}
    tally = {counter.name: 0 for counter in dataclass_fields(ProgressCounts)}

    for definition in schema.iter_fields():
        response = responses.get(definition.id, FieldResponse.unanswered())
        progress = compute_field_progress(definition, response, issues, notes)
        fields[definition.id] = progress

        tally["total"] += 1
        tally[progress.answer_state.value] += 1
        if progress.required:
            tally["required"] += 1
        if progress.submitted:
            tally["submitted"] += 1
        if progress.state is ProgressState.COMPLETE:
            tally["complete"] += 1
        elif progress.state is ProgressState.INCOMPLETE:
            tally["incomplete"] += 1
        elif progress.state is ProgressState.INVALID:
            tally["invalid"] += 1
        elif progress.answer_state is not ResponseState.SKIPPED:
            tally["empty_required" if progress.required else "empty_optional"] += 1

    tally["notes"] = len(notes)
    return ProgressSummary(counts=ProgressCounts(**tally), fields=fields)


def compute_form_state(progress: ProgressSummary) -> ProgressState:
    counts = progress.counts
    if counts.invalid:
        return ProgressState.INVALID
    if counts.incomplete:
        return ProgressState.INCOMPLETE
    if counts.empty_required == 0:
        return ProgressState.COMPLETE
    if counts.submitted:
        return ProgressState.INCOMPLETE
    return ProgressState.EMPTY


def is_form_complete(progress: ProgressSummary) -> bool:
    """Base rule, tightened to "every field addressed" once anything is skipped."""

    counts = progress.counts
    base = counts.invalid == 0 and counts.incomplete == 0 and counts.empty_required == 0
    if not base:
        return False
    if counts.skipped:
        return counts.answered + counts.skipped == counts.total
    return True


def compute_all_summaries(
    schema: FormSchema,
    responses: Mapping[str, FieldResponse],
    issues: Sequence[HasRef] = (),
    notes: Sequence[Note] = (),
) -> AllSummaries:
    progress = compute_progress_summary(schema, responses, issues, notes)
    return AllSummaries(
        structure=compute_structure_summary(schema),
        progress=progress,
        form_state=compute_form_state(progress),
        is_complete=is_form_complete(progress),
    )


__all__ = [
    "AllSummaries",
    "CheckboxProgress",
    "FieldProgress",
    "HasRef",
    "ProgressCounts",
    "ProgressState",
    "ProgressSummary",
    "QualifiedColumn",
    "QualifiedOption",
    "StructureSummary",
    "checkbox_progress",
    "compute_all_summaries",
    "compute_field_progress",
    "compute_form_state",
    "compute_progress_summary",
    "compute_structure_summary",
    "is_checkbox_complete",
    "is_field_submitted",
    "issues_for_field",
    "is_form_complete",
]
