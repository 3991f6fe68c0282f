"""
markform — unit tests for the document parser

File: tests/unit/parsing/test_form_parser.py

Purpose
- Verify whole-document parsing: schema assembly, responses, id index, notes,
  documentation blocks, frontmatter metadata, and implicit modes.

What this test file should cover
- Groups, the implicit ``default`` group, and document field order.
- Duplicate-id detection across fields, groups, and option refs.
- Notes and doc blocks validated against the id index.
- Implicit checkboxes mode and its guard against mixed documents.
- Parse errors carrying source line and field id.
"""

from __future__ import annotations

import pytest

from markform.config.schema import ParseSettings
from markform.domain.models import (
    CellResponse,
    CheckboxesField,
    CheckboxesValue,
    CheckboxState,
    FieldKind,
    FieldResponse,
    IdIndexEntry,
    PriorityLevel,
    ResponseState,
    ScalarValue,
    TableValue,
)
from markform.errors import MarkformParseError
from markform.parsing.form import parse_form, parse_frontmatter

_DOCUMENT = """---
markform:
  spec: MF/0.1
  title: Intake
  description: Collects basics.
roles: [user, agent, reviewer]
role_instructions:
  user: Fill in your details.
---
# Intake form

{% form id="intake" title="Intake" %}

{% group id="basics" title="Basics" %}
{% string-field id="name" label="Name" required=true role="user" %}
```value
Ada Lovelace
```
{% /string-field %}

{% single-select id="color" label="Favorite color" %}
- [ ] Red {% #red %}
- [x] Blue {% #blue %}
{% /single-select %}
{% /group %}

{% number-field id="age" label="Age" priority="high" %}{% /number-field %}

{% note id="n1" ref="name" role="agent" %}Confirm spelling.{% /note %}

{% instructions ref="basics" %}
Answer every question.
{% /instructions %}

{% /form %}
"""


@pytest.mark.unit
def test_parse_form_builds_schema_and_responses() -> None:
    form = parse_form(_DOCUMENT, source="intake.md")

    assert form.schema.id == "intake"
    assert form.schema.title == "Intake"
    assert form.schema.description == "Collects basics."
    assert [group.id for group in form.schema.groups] == ["basics", "default"]
    assert form.schema.groups[1].implicit is True
    assert form.order_index == ("name", "color", "age")

    name = form.schema.field_by_id("name")
    assert name is not None
    assert name.role == "user"
    age = form.schema.field_by_id("age")
    assert age is not None
    assert age.priority is PriorityLevel.HIGH
    assert age.role == "agent"

    assert form.response_for("name") == FieldResponse.answered(
        ScalarValue(FieldKind.STRING, "Ada Lovelace")
    )
    assert form.response_for("color").value is not None
    assert form.response_for("age").state is ResponseState.UNANSWERED


@pytest.mark.unit
def test_parse_form_builds_id_index() -> None:
    form = parse_form(_DOCUMENT)
    assert form.id_index["intake"] == IdIndexEntry("form")
    assert form.id_index["basics"] == IdIndexEntry("group", parent_id="intake")
    assert form.id_index["name"] == IdIndexEntry("field", parent_id="basics")
    assert form.id_index["color.blue"] == IdIndexEntry(
        "option", parent_id="basics", field_id="color"
    )
    assert form.id_index["age"] == IdIndexEntry("field", parent_id="intake")
    assert form.id_index["default"] == IdIndexEntry("group", parent_id="intake")


@pytest.mark.unit
def test_parse_form_collects_notes_docs_and_metadata() -> None:
    form = parse_form(_DOCUMENT)
    assert [(note.id, note.ref, note.role, note.text) for note in form.notes] == [
        ("n1", "name", "agent", "Confirm spelling.")
    ]
    assert [(doc.tag, doc.ref, doc.body) for doc in form.docs] == [
        ("instructions", "basics", "Answer every question.")
    ]
    assert form.metadata is not None
    assert form.metadata.spec_version == "MF/0.1"
    assert form.metadata.roles == ("user", "agent", "reviewer")
    assert form.metadata.role_instructions == {"user": "Fill in your details."}


@pytest.mark.unit
def test_parse_form_uses_settings_defaults() -> None:
    settings = ParseSettings(default_role="user", default_priority=PriorityLevel.LOW)
    form = parse_form(_DOCUMENT, settings)
    color = form.schema.field_by_id("color")
    assert color is not None
    assert color.role == "user"
    assert color.priority is PriorityLevel.LOW


@pytest.mark.unit
def test_parse_form_logs_summary_event() -> None:
    events: list[tuple[str, dict[str, object]]] = []

    class _Recorder:
        def debug(self, event: str, **fields: object) -> None:
            events.append((event, fields))

        def warning(self, event: str, **fields: object) -> None:
            events.append((event, fields))

    parse_form(_DOCUMENT, source="intake.md", logger=_Recorder())
    assert events[-1] == (
        "form_parsed",
        {"form_id": "intake", "source": "intake.md", "groups": 2, "fields": 3, "notes": 1},
    )


def _form(body: str) -> str:
    return '{% form id="f" %}\n' + body + "\n{% /form %}\n"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("# nothing here", "No form tag found"),
        ('{% form id="a" %}{% /form %}\n{% form id="b" %}{% /form %}', "Multiple form tags"),
        ("{% form %}\n{% /form %}", "form missing required 'id'"),
        (
            _form(
                '{% string-field id="x" label="X" %}{% /string-field %}\n'
                '{% number-field id="x" label="X2" %}{% /number-field %}'
            ),
            "Duplicate ID 'x'",
        ),
        (_form('{% group id="f" %}{% /group %}'), "Duplicate ID 'f'"),
        (
            _form('{% group id="g" state="answered" %}{% /group %}'),
            "state attribute is not allowed",
        ),
        (_form("{% group %}{% /group %}"), "group missing required 'id'"),
        (_form('{% widget id="w" %}{% /widget %}'), "Unknown tag 'widget'"),
        (
            _form('{% string-field id="s" label="S" %}{% /string-field %}\n'
                  '{% note id="n" ref="missing" role="agent" %}x{% /note %}'),
            "references unknown ID 'missing'",
        ),
        (
            _form('{% string-field id="s" label="S" %}{% /string-field %}\n'
                  '{% note id="n" ref="s" %}x{% /note %}'),
            "missing required 'role'",
        ),
        (
            _form('{% string-field id="s" label="S" %}{% /string-field %}\n'
                  '{% note id="n" ref="s" role="a" state="skipped" %}x{% /note %}'),
            "Notes do not link to response state",
        ),
        (
            _form('{% string-field id="s" label="S" %}{% /string-field %}\n'
                  '{% note id="n" ref="s" role="a" %}x{% /note %}\n'
                  '{% note id="n" ref="s" role="a" %}y{% /note %}'),
            "Duplicate note ID 'n'",
        ),
        (
            _form('{% string-field id="s" label="S" %}{% /string-field %}\n'
                  '{% description ref="s" %}a{% /description %}\n'
                  '{% description ref="s" %}b{% /description %}'),
            "Duplicate description block for ref='s'",
        ),
        (
            _form('{% string-field id="s" label="S" %}{% /string-field %}\n'
                  "{% documentation %}a{% /documentation %}"),
            "documentation block missing required 'ref'",
        ),
    ],
)
def test_parse_form_structural_errors(text: str, message: str) -> None:
    with pytest.raises(MarkformParseError, match=message):
        parse_form(text)


@pytest.mark.unit
def test_field_error_carries_line_and_source() -> None:
    text = _form('\n{% number-field id="n" label="N" priority="urgent" %}{% /number-field %}')
    with pytest.raises(MarkformParseError) as exc_info:
        parse_form(text, source="bad.md")
    error = exc_info.value
    assert error.line == 3
    assert error.source == "bad.md"
    assert error.field_id == "n"
    assert str(error).startswith("bad.md:3 [n] Invalid priority")


@pytest.mark.unit
def test_duplicate_option_ref_against_field_id() -> None:
    text = _form(
        '{% single-select id="a" label="A" %}\n- [ ] B {% #b %}\n{% /single-select %}\n'
        '{% string-field id="a.b" label="AB" %}{% /string-field %}'
    )
    with pytest.raises(MarkformParseError, match="Duplicate ID 'a.b'"):
        parse_form(text)


@pytest.mark.unit
def test_invalid_frontmatter_yaml() -> None:
    with pytest.raises(MarkformParseError, match="Failed to parse frontmatter YAML"):
        parse_form("---\nkey: [unclosed\n---\n" + _form(""))
    with pytest.raises(MarkformParseError, match="must be a YAML mapping"):
        parse_frontmatter("- a\n- b")


@pytest.mark.unit
def test_overlong_frontmatter_integer_is_parse_error() -> None:
    with pytest.raises(MarkformParseError, match="Failed to parse frontmatter YAML"):
        parse_frontmatter(f"count: {'9' * 5000}")


@pytest.mark.unit
def test_overlong_digit_values_do_not_abort_parsing() -> None:
    digits = "1" * 5000
    body = (
        '{% number-field id="count" label="Count" %}\n```value\nDIGITS\n```\n'
        "{% /number-field %}\n"
        '{% table-field id="eras" label="Eras" %}\n```value\n'
        "| Start |\n| year |\n|---|\n| DIGITS |\n```\n{% /table-field %}"
    ).replace("DIGITS", digits)
    form = parse_form(_form(body))
    assert form.response_for("count") == FieldResponse.unanswered()
    eras = form.response_for("eras").value
    assert isinstance(eras, TableValue)
    assert eras.rows[0]["start"] == CellResponse(ResponseState.ANSWERED, value=digits)


@pytest.mark.unit
def test_frontmatter_without_markform_section_has_no_metadata() -> None:
    parsed = parse_frontmatter("title: plain")
    assert parsed.data == {"title": "plain"}
    assert parsed.metadata is None
    assert parse_frontmatter(None).data == {}


@pytest.mark.unit
def test_frontmatter_defaults_for_missing_keys() -> None:
    parsed = parse_frontmatter("markform: {}")
    assert parsed.metadata is not None
    assert parsed.metadata.spec_version == "MF/0.1"
    assert parsed.metadata.roles == ("user", "agent")


@pytest.mark.unit
def test_implicit_checkboxes_mode() -> None:
    form = parse_form(
        _form("## Launch checklist\n\n- [x] Write docs {% #docs %}\n- [ ] Publish {% #publish %}")
    )
    assert form.order_index == ("checkboxes",)
    (group,) = form.schema.groups
    assert group.id == "default"
    assert group.implicit is True
    (definition,) = group.children
    assert isinstance(definition, CheckboxesField)
    assert definition.implicit is True
    assert [option.id for option in definition.options] == ["docs", "publish"]
    assert form.response_for("checkboxes") == FieldResponse.answered(
        CheckboxesValue({"docs": CheckboxState.DONE, "publish": CheckboxState.TODO})
    )
    assert form.id_index["checkboxes.publish"].field_id == "checkboxes"


@pytest.mark.unit
def test_implicit_checkboxes_reject_explicit_mode_markers() -> None:
    with pytest.raises(MarkformParseError, match="not valid for checkboxMode") as exc_info:
        parse_form(_form("- [x] Docs {% #docs %}\n- [y] Legal {% #legal %}"), source="todo.md")
    assert exc_info.value.field_id == "checkboxes"
    assert exc_info.value.line == 3


@pytest.mark.unit
def test_implicit_checkboxes_require_ids() -> None:
    with pytest.raises(MarkformParseError, match="missing ID annotation"):
        parse_form(_form("- [ ] Anonymous task"))


@pytest.mark.unit
def test_loose_checkboxes_beside_non_chooser_fields_are_rejected() -> None:
    text = _form(
        '{% string-field id="s" label="S" %}{% /string-field %}\n\n- [ ] Stray {% #stray %}'
    )
    with pytest.raises(MarkformParseError, match="Checkboxes found outside of field tags"):
        parse_form(text)


@pytest.mark.unit
def test_loose_checkboxes_beside_chooser_fields_are_ignored() -> None:
    text = _form(
        '{% checkboxes id="c" label="C" %}\n- [ ] A {% #a %}\n{% /checkboxes %}\n\n'
        "- [ ] Stray {% #stray %}"
    )
    form = parse_form(text)
    assert form.order_index == ("c",)


@pytest.mark.unit
def test_row_counts_reports_table_rows() -> None:
    text = _form(
        '{% table-field id="t" label="T" %}\n```value\n| a |\n|---|\n| 1 |\n| 2 |\n```\n'
        "{% /table-field %}\n"
        '{% table-field id="empty" label="E" %}\n```value\n| a |\n|---|\n```\n'
        "{% /table-field %}"
    )
    assert parse_form(text).row_counts() == {"t": 2, "empty": 0}
