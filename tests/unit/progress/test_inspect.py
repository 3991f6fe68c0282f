"""
markform — unit tests for form inspection

File: tests/unit/progress/test_inspect.py

Purpose
- Verify that inspection validates, summarizes, and returns a prioritized,
  role-filtered issue list.

What this test file should cover
- Reason mapping, scores, tiers, and ordering.
- Optional-unanswered recommendations.
- External skips, including unknown ids.
- Scope detection for form, group, option, and fallback refs.
- The ``form_inspected`` log event.
"""

from __future__ import annotations

import pytest

from markform.domain.models import (
    CheckboxesField,
    CheckboxesValue,
    CheckboxState,
    FieldGroup,
    FieldKind,
    FieldResponse,
    FormSchema,
    NumberField,
    Option,
    ParsedForm,
    PriorityLevel,
    ResponseState,
    ScalarValue,
    StringField,
)
from markform.errors import MarkformError
from markform.progress.inspect import (
    ALL_ROLES,
    InspectSeverity,
    IssueReason,
    IssueScope,
    apply_skips,
    determine_scope,
    inspect_form,
)
from markform.progress.summaries import ProgressState

_SCHEMA = FormSchema(
    id="intake",
    groups=(
        FieldGroup(
            id="basics",
            children=(
                StringField(
                    id="name",
                    label="Name",
                    required=True,
                    priority=PriorityLevel.HIGH,
                    role="user",
                ),
                NumberField(id="age", label="Age", min=0),
                CheckboxesField(
                    id="tasks",
                    label="Tasks",
                    required=True,
                    options=(Option("a", "A"), Option("b", "B")),
                ),
                StringField(id="comments", label="Comments", priority=PriorityLevel.LOW),
            ),
        ),
    ),
)


def _form(**responses: FieldResponse) -> ParsedForm:
    return ParsedForm(schema=_SCHEMA, responses_by_field_id=responses)


def _number(value: int) -> FieldResponse:
    return FieldResponse.answered(ScalarValue(FieldKind.NUMBER, value))


def _tasks(a: str, b: str) -> FieldResponse:
    return FieldResponse.answered(CheckboxesValue({"a": CheckboxState(a), "b": CheckboxState(b)}))


_IN_PROGRESS = _form(age=_number(-1), tasks=_tasks("done", "active"))
_FINISHED = _form(
    name=FieldResponse.answered(ScalarValue(FieldKind.STRING, "Ada")),
    age=_number(36),
    tasks=_tasks("done", "na"),
)


@pytest.mark.unit
def test_inspect_orders_issues_by_tier_then_score() -> None:
    result = inspect_form(_IN_PROGRESS)

    assert [issue.ref for issue in result.issues] == ["name", "tasks", "age", "comments"]
    assert [issue.priority for issue in result.issues] == [1, 1, 2, 4]
    assert [issue.reason for issue in result.issues] == [
        IssueReason.REQUIRED_MISSING,
        IssueReason.CHECKBOX_INCOMPLETE,
        IssueReason.VALIDATION_ERROR,
        IssueReason.OPTIONAL_UNANSWERED,
    ]
    assert [issue.severity for issue in result.issues] == [
        InspectSeverity.REQUIRED,
        InspectSeverity.REQUIRED,
        InspectSeverity.REQUIRED,
        InspectSeverity.RECOMMENDED,
    ]
    assert result.issues[-1].message == "Optional field not yet addressed"
    assert {issue.code for issue in result.validation_issues} == {
        "required_missing",
        "checkbox_incomplete",
        "min_value",
    }


@pytest.mark.unit
def test_completeness_issues_do_not_make_fields_invalid() -> None:
    result = inspect_form(_IN_PROGRESS)
    fields = result.progress.fields

    assert fields["name"].state is ProgressState.EMPTY
    assert fields["age"].state is ProgressState.INVALID
    assert fields["tasks"].state is ProgressState.INCOMPLETE
    assert result.progress.counts.invalid == 1
    assert result.form_state is ProgressState.INVALID
    assert not result.is_valid
    assert not result.is_complete


@pytest.mark.unit
def test_finished_form_only_recommends_optional_fields() -> None:
    result = inspect_form(_FINISHED)
    assert [(issue.ref, issue.reason) for issue in result.issues] == [
        ("comments", IssueReason.OPTIONAL_UNANSWERED)
    ]
    assert result.form_state is ProgressState.COMPLETE
    assert result.is_complete
    assert result.is_valid


@pytest.mark.unit
def test_extra_skips_address_optional_fields() -> None:
    result = inspect_form(_FINISHED, extra_skips=["comments"])
    assert result.issues == ()
    assert result.progress.fields["comments"].answer_state is ResponseState.SKIPPED
    assert result.progress.counts.skipped == 1
    assert result.is_complete


@pytest.mark.unit
def test_skipping_a_required_field_drops_its_missing_issue() -> None:
    result = inspect_form(_IN_PROGRESS, extra_skips=["name"])
    assert "name" not in [issue.ref for issue in result.issues]
    assert result.progress.counts.empty_required == 0


@pytest.mark.unit
def test_apply_skips() -> None:
    assert apply_skips(_FINISHED, []) is _FINISHED

    skipped = apply_skips(_FINISHED, ["comments"])
    assert skipped.response_for("comments") == FieldResponse.skipped()
    assert _FINISHED.response_for("comments").state is ResponseState.UNANSWERED

    with pytest.raises(MarkformError, match="Cannot skip unknown field 'ghost'"):
        apply_skips(_FINISHED, ["ghost"])


@pytest.mark.unit
def test_target_roles_filter_issues() -> None:
    user_only = inspect_form(_IN_PROGRESS, target_roles=["user"])
    assert [issue.ref for issue in user_only.issues] == ["name"]

    everyone = inspect_form(_IN_PROGRESS, target_roles=[ALL_ROLES])
    assert len(everyone.issues) == 4

    agent = inspect_form(_IN_PROGRESS, target_roles=["agent"])
    assert [issue.ref for issue in agent.issues] == ["tasks", "age", "comments"]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("ref", "scope"),
    [
        ("intake", IssueScope.FORM),
        ("basics", IssueScope.GROUP),
        ("name", IssueScope.FIELD),
        ("tasks.a", IssueScope.OPTION),
        ("tasks.zzz", IssueScope.FIELD),
        ("not a ref", IssueScope.FIELD),
    ],
)
def test_determine_scope(ref: str, scope: IssueScope) -> None:
    assert determine_scope(ref, _IN_PROGRESS) is scope


@pytest.mark.unit
def test_inspect_logs_summary_event() -> None:
    events: list[tuple[str, dict[str, object]]] = []

    class _Recorder:
        def debug(self, event: str, **fields: object) -> None:
            events.append((event, fields))

    inspect_form(_IN_PROGRESS, logger=_Recorder())
    assert events == [
        (
            "form_inspected",
            {"form_id": "intake", "form_state": "invalid", "is_complete": False, "issues": 4},
        )
    ]


@pytest.mark.unit
def test_inspect_result_serializes() -> None:
    payload = inspect_form(_IN_PROGRESS).to_dict()
    assert payload["form_state"] == "invalid"
    issues = payload["issues"]
    assert isinstance(issues, list)
    assert issues[0] == {
        "message": 'Required field "Name" is empty',
        "priority": 1,
        "reason": "required_missing",
        "ref": "name",
        "scope": "field",
        "severity": "required",
    }
