"""
markform — form inspection

File: src/markform/progress/inspect.py

Purpose
- One call that validates a parsed form, computes every summary, and turns
  the findings into a prioritized to-do list of ``InspectIssue`` values.

Functional requirements
- ``extra_skips`` marks fields skipped from outside the document. Skipping a
  required field is allowed here, and any skip switches completion to the
  strict "every field addressed" rule.
- Missing required answers and incomplete checkboxes are reported as issues
  but do not make a field invalid; only wrong values do.
- Issues are ordered by priority tier (1 is most urgent), then severity,
  then score, then ref.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final

import structlog

from markform.domain.models import (
    CanonicalModel,
    FieldResponse,
    IssueSeverity,
    ParsedForm,
    PriorityLevel,
    ResponseState,
    ValidationIssue,
)
from markform.errors import MarkformError
from markform.progress.summaries import (
    ProgressState,
    ProgressSummary,
    StructureSummary,
    compute_all_summaries,
    issues_for_field,
)
from markform.scope.validation import check_scope_ref
from markform.validation.fields import CodeValidator, IssueCode, validate_form, value_issues
from markform.validation.tables import TableErrorCode

ALL_ROLES: Final[str] = "*"


class IssueReason(StrEnum):
    REQUIRED_MISSING = "required_missing"
    VALIDATION_ERROR = "validation_error"
    CHECKBOX_INCOMPLETE = "checkbox_incomplete"
    MIN_ITEMS_NOT_MET = "min_items_not_met"
    OPTIONAL_UNANSWERED = "optional_unanswered"


class InspectSeverity(StrEnum):
    REQUIRED = "required"
    RECOMMENDED = "recommended"


class IssueScope(StrEnum):
    FORM = "form"
    GROUP = "group"
    FIELD = "field"
    OPTION = "option"
    COLUMN = "column"
    CELL = "cell"


_REASON_BY_CODE: Final[Mapping[str, IssueReason]] = {
    IssueCode.REQUIRED_MISSING: IssueReason.REQUIRED_MISSING,
    IssueCode.CHECKBOX_INCOMPLETE: IssueReason.CHECKBOX_INCOMPLETE,
    IssueCode.MIN_ITEMS: IssueReason.MIN_ITEMS_NOT_MET,
    IssueCode.MIN_SELECTIONS: IssueReason.MIN_ITEMS_NOT_MET,
    IssueCode.MIN_DONE: IssueReason.MIN_ITEMS_NOT_MET,
    TableErrorCode.MIN_ROWS_NOT_MET: IssueReason.MIN_ITEMS_NOT_MET,
}

_FIELD_PRIORITY_WEIGHTS: Final[Mapping[PriorityLevel, int]] = {
    PriorityLevel.HIGH: 3,
    PriorityLevel.MEDIUM: 2,
    PriorityLevel.LOW: 1,
}

_REASON_SCORES: Final[Mapping[IssueReason, int]] = {
    IssueReason.REQUIRED_MISSING: 3,
    IssueReason.VALIDATION_ERROR: 2,
    IssueReason.CHECKBOX_INCOMPLETE: 2,
    IssueReason.MIN_ITEMS_NOT_MET: 2,
    IssueReason.OPTIONAL_UNANSWERED: 1,
}


@dataclass(frozen=True, slots=True)
class InspectIssue(CanonicalModel):
    ref: str
    scope: IssueScope
    reason: IssueReason
    message: str
    severity: InspectSeverity
    priority: int = 0


@dataclass(frozen=True, slots=True)
class InspectResult(CanonicalModel):
    structure: StructureSummary
    progress: ProgressSummary
    issues: tuple[InspectIssue, ...]
    validation_issues: tuple[ValidationIssue, ...]
    form_state: ProgressState
    is_complete: bool

    @property
    def is_valid(self) -> bool:
        return self.progress.counts.invalid == 0


def apply_skips(form: ParsedForm, field_ids: Iterable[str]) -> ParsedForm:
    """Copy of ``form`` with the named fields marked skipped."""

    skips = list(field_ids)
    if not skips:
        return form
    responses = dict(form.responses_by_field_id)
    for field_id in skips:
        if form.schema.field_by_id(field_id) is None:
            raise MarkformError(f"Cannot skip unknown field '{field_id}'")
        responses[field_id] = FieldResponse.skipped()
    return dataclasses.replace(form, responses_by_field_id=responses)


def inspect_form(
    form: ParsedForm,
    extra_skips: Iterable[str] = (),
    *,
    target_roles: Sequence[str] | None = None,
    validators: Mapping[str, CodeValidator] | None = None,
    logger: Any | None = None,
) -> InspectResult:
    log = logger if logger is not None else structlog.get_logger(__name__)
    effective = apply_skips(form, extra_skips)

    validation = validate_form(effective, validators=validators)
    summaries = compute_all_summaries(
        effective.schema,
        effective.responses_by_field_id,
        value_issues(validation),
        effective.notes,
    )

    issues = [_to_inspect_issue(issue, effective) for issue in validation]
    issues.extend(_optional_unanswered(effective, summaries.progress, issues))
    ordered = _filter_by_role(_prioritize(issues, effective), effective, target_roles)

    log.debug(
        "form_inspected",
        form_id=effective.schema.id,
        form_state=summaries.form_state.value,
        is_complete=summaries.is_complete,
        issues=len(ordered),
    )
    return InspectResult(
        structure=summaries.structure,
        progress=summaries.progress,
        issues=tuple(ordered),
        validation_issues=tuple(validation),
        form_state=summaries.form_state,
        is_complete=summaries.is_complete,
    )


def determine_scope(ref: str, form: ParsedForm) -> IssueScope:
    if ref == form.schema.id:
        return IssueScope.FORM
    if any(group.id == ref for group in form.schema.groups):
        return IssueScope.GROUP
    result = check_scope_ref(ref, form.schema)
    if result.ok and result.ref is not None:
        return IssueScope(result.ref.scope)
    return IssueScope.FIELD


def _to_inspect_issue(issue: ValidationIssue, form: ParsedForm) -> InspectIssue:
    reason = _REASON_BY_CODE.get(issue.code, IssueReason.VALIDATION_ERROR)
    severity = (
        InspectSeverity.REQUIRED
        if issue.severity is IssueSeverity.ERROR
        else InspectSeverity.RECOMMENDED
    )
    return InspectIssue(
        ref=issue.ref,
        scope=determine_scope(issue.ref, form),
        reason=reason,
        message=issue.message,
        severity=severity,
    )


def _optional_unanswered(
    form: ParsedForm, progress: ProgressSummary, existing: Sequence[InspectIssue]
) -> list[InspectIssue]:
    extra: list[InspectIssue] = []
    for definition in form.schema.iter_fields():
        field_progress = progress.fields[definition.id]
        if definition.required or field_progress.submitted:
            continue
        if field_progress.answer_state is not ResponseState.UNANSWERED:
            continue
        if issues_for_field(definition.id, existing):
            continue
        extra.append(
            InspectIssue(
                ref=definition.id,
                scope=IssueScope.FIELD,
                reason=IssueReason.OPTIONAL_UNANSWERED,
                message="Optional field not yet addressed",
                severity=InspectSeverity.RECOMMENDED,
            )
        )
    return extra


def _field_id(ref: str) -> str:
    return ref.split(".", 1)[0]


def _score(issue: InspectIssue, form: ParsedForm) -> int:
    definition = form.schema.field_by_id(_field_id(issue.ref))
    priority = definition.priority if definition is not None else PriorityLevel.MEDIUM
    score = _FIELD_PRIORITY_WEIGHTS[priority] + _REASON_SCORES[issue.reason]
    if (
        issue.reason is IssueReason.CHECKBOX_INCOMPLETE
        and issue.severity is InspectSeverity.REQUIRED
    ):
        score += 1
    return score


def _tier(score: int) -> int:
    if score >= 5:
        return 1
    if score >= 4:
        return 2
    if score >= 3:
        return 3
    if score >= 2:
        return 4
    return 5


def _prioritize(issues: Sequence[InspectIssue], form: ParsedForm) -> list[InspectIssue]:
    scored: list[tuple[InspectIssue, int]] = []
    for issue in issues:
        score = _score(issue, form)
        scored.append((dataclasses.replace(issue, priority=_tier(score)), score))
    scored.sort(
        key=lambda pair: (
            pair[0].priority,
            pair[0].severity is not InspectSeverity.REQUIRED,
            -pair[1],
            pair[0].ref,
        )
    )
    return [issue for issue, _ in scored]


def _filter_by_role(
    issues: list[InspectIssue], form: ParsedForm, target_roles: Sequence[str] | None
) -> list[InspectIssue]:
    if target_roles is None or ALL_ROLES in target_roles:
        return issues
    kept: list[InspectIssue] = []
    for issue in issues:
        definition = form.schema.field_by_id(_field_id(issue.ref))
        if definition is None or definition.role in target_roles:
            kept.append(issue)
    return kept


__all__ = [
    "ALL_ROLES",
    "InspectIssue",
    "InspectResult",
    "InspectSeverity",
    "IssueReason",
    "IssueScope",
    "apply_skips",
    "determine_scope",
    "inspect_form",
]
