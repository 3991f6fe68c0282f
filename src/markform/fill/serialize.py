"""
markform — canonical form serializer

File: src/markform/fill/serialize.py

Purpose
- Write a ``ParsedForm`` back to markform Markdown, so a filled form can be
  saved and parsed again.

What should be included in this file
- Frontmatter (``markform.spec``, roles, role instructions) via PyYAML.
- ``form`` / ``group`` / field tags with attributes in sorted order; values
  equal to the parse defaults are left out.
- Answered values in a ```value fence; skipped and aborted fields as a
  ``state`` attribute plus a ``%SKIP% (reason)`` fence when a reason exists.
- Option lists with one marker per checkbox state.
- Tables with explicit ``columnIds`` / ``columnLabels`` / ``columnTypes``
  and an escaped pipe table in the value fence.
- Documentation blocks after the element they describe; notes at the end
  of the form.

Functional requirements
- ``parse_form(serialize_form(form))`` reproduces the schema, responses,
  notes and documentation blocks of ``form`` under the same settings.
- Fields outside any group, and implicit checkboxes, are written without a
  wrapping tag, so they land in the implicit group again.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Final

import yaml

from markform.config.schema import DEFAULT_SETTINGS, ParseSettings
from markform.constants import DEFAULT_SPEC_VERSION
from markform.domain.models import (
    ApprovalMode,
    CellResponse,
    CheckboxesField,
    CheckboxesValue,
    CheckboxMode,
    CheckboxState,
    DocumentationBlock,
    FieldDefinition,
    FieldGroup,
    FieldKind,
    FieldResponse,
    ListValue,
    MultiSelectValue,
    Note,
    Option,
    ParsedForm,
    ResponseState,
    ScalarValue,
    SingleSelectValue,
    TableField,
    TableValue,
    default_checkbox_state,
)
from markform.errors import MarkformError
from markform.parsing.accessors import VALUE_FENCE_LANGUAGE
from markform.parsing.fields import KIND_TAGS
from markform.parsing.form import FORM_TAG, GROUP_TAG, NOTE_TAG
from markform.parsing.sentinels import SENTINEL_ABORT, SENTINEL_SKIP
from markform.parsing.tables import escape_table_cell

MARKER_BY_STATE: Final[Mapping[CheckboxState, str]] = MappingProxyType(
    {
        CheckboxState.TODO: "[ ]",
        CheckboxState.DONE: "[x]",
        CheckboxState.INCOMPLETE: "[/]",
        CheckboxState.ACTIVE: "[*]",
        CheckboxState.NA: "[-]",
        CheckboxState.UNFILLED: "[ ]",
        CheckboxState.YES: "[y]",
        CheckboxState.NO: "[n]",
    }
)

# (markup attribute, definition attribute) pairs written when not None.
KIND_ATTRIBUTES: Final[Mapping[FieldKind, tuple[tuple[str, str], ...]]] = MappingProxyType(
    {
        FieldKind.STRING: (
            ("multiline", "multiline"),
            ("pattern", "pattern"),
            ("minLength", "min_length"),
            ("maxLength", "max_length"),
        ),
        FieldKind.NUMBER: (("min", "min"), ("max", "max"), ("integer", "integer")),
        FieldKind.STRING_LIST: (
            ("minItems", "min_items"),
            ("maxItems", "max_items"),
            ("itemMinLength", "item_min_length"),
            ("itemMaxLength", "item_max_length"),
            ("uniqueItems", "unique_items"),
        ),
        FieldKind.SINGLE_SELECT: (),
        FieldKind.MULTI_SELECT: (
            ("minSelections", "min_selections"),
            ("maxSelections", "max_selections"),
        ),
        FieldKind.CHECKBOXES: (("minDone", "min_done"),),
        FieldKind.URL: (),
        FieldKind.URL_LIST: (
            ("minItems", "min_items"),
            ("maxItems", "max_items"),
            ("uniqueItems", "unique_items"),
        ),
        FieldKind.DATE: (("min", "min"), ("max", "max")),
        FieldKind.YEAR: (("min", "min"), ("max", "max")),
        FieldKind.TABLE: (("minRows", "min_rows"), ("maxRows", "max_rows")),
    }
)

_BACKTICK_RUN_RE: Final[re.Pattern[str]] = re.compile(r"`+")
_TAG_CLOSE: Final[str] = "%}"


def _assert_attributes_complete() -> None:
    missing = sorted(kind.value for kind in FieldKind if kind not in KIND_ATTRIBUTES)
    if missing:
        raise RuntimeError(f"serializer attribute table incomplete: kinds={missing}")


_assert_attributes_complete()


# ---------------------------------------------------------------------------
# Attributes and fences
# ---------------------------------------------------------------------------


def _jsonable(value: object) -> object:
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def format_attribute_value(value: object) -> str:
    """One attribute value as tag markup: JSON strings, numbers, booleans, arrays, objects."""

    rendered = json.dumps(_jsonable(value), ensure_ascii=False)
    if _TAG_CLOSE in rendered:
        raise MarkformError(f"Attribute value cannot contain '{_TAG_CLOSE}': {rendered}")
    return rendered


def format_attributes(attributes: Mapping[str, object]) -> str:
    """``name=value`` pairs sorted by name; ``None`` values are left out."""

    return " ".join(
        f"{name}={format_attribute_value(attributes[name])}"
        for name in sorted(attributes)
        if attributes[name] is not None
    )


def open_tag(name: str, attributes: Mapping[str, object]) -> str:
    rendered = format_attributes(attributes)
    return f"{{% {name} {rendered} %}}" if rendered else f"{{% {name} %}}"


def close_tag(name: str) -> str:
    return f"{{% /{name} %}}"


def value_fence(content: str) -> list[str]:
    """A ```value fence whose marker outruns every backtick run in ``content``."""

    longest = max((len(run) for run in _BACKTICK_RUN_RE.findall(content)), default=0)
    marker = "`" * max(3, longest + 1)
    return [f"{marker}{VALUE_FENCE_LANGUAGE}", *content.split("\n"), marker]


def format_number(value: int | float) -> str:
    return str(value) if isinstance(value, int) else repr(value)


def sentinel_text(state: ResponseState, reason: str | None) -> str:
    """``%SKIP%`` / ``%ABORT%`` with an optional ``(reason)``."""

    token = SENTINEL_SKIP if state is ResponseState.SKIPPED else SENTINEL_ABORT
    return f"{token} ({reason})" if reason else token


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


def field_attributes(
    definition: FieldDefinition, response: FieldResponse, settings: ParseSettings
) -> dict[str, object]:
    attributes: dict[str, object] = {"id": definition.id, "label": definition.label}
    explicit = (
        isinstance(definition, CheckboxesField)
        and definition.checkbox_mode is CheckboxMode.EXPLICIT
    )
    if definition.required and not explicit:
        attributes["required"] = True
    if definition.priority is not settings.default_priority:
        attributes["priority"] = definition.priority.value
    if definition.role != settings.default_role:
        attributes["role"] = definition.role
    if definition.validate:
        attributes["validate"] = list(definition.validate)
    attributes["report"] = definition.report
    attributes["placeholder"] = definition.placeholder
    if definition.examples:
        attributes["examples"] = list(definition.examples)
    for markup_name, attribute in KIND_ATTRIBUTES[definition.kind]:
        attributes[markup_name] = getattr(definition, attribute)

    if isinstance(definition, CheckboxesField):
        if definition.checkbox_mode is not CheckboxMode.MULTI:
            attributes["checkboxMode"] = definition.checkbox_mode.value
        if definition.approval_mode is not ApprovalMode.NONE:
            attributes["approvalMode"] = definition.approval_mode.value
    if isinstance(definition, TableField) and definition.columns:
        attributes["columnIds"] = [column.id for column in definition.columns]
        attributes["columnLabels"] = [column.label for column in definition.columns]
        attributes["columnTypes"] = [
            {"type": column.type.value, "required": True}
            if column.required
            else column.type.value
            for column in definition.columns
        ]
    if response.state in (ResponseState.SKIPPED, ResponseState.ABORTED):
        attributes["state"] = response.state.value
    return attributes


def option_lines(options: Iterable[Option], markers: Mapping[str, str]) -> list[str]:
    return [
        f"- {markers.get(option.id, '[ ]')} {option.label} {{% #{option.id} %}}"
        for option in options
    ]


def _option_markers(definition: FieldDefinition, response: FieldResponse) -> dict[str, str]:
    value = response.value
    if isinstance(value, SingleSelectValue) and value.selected is not None:
        return {value.selected: MARKER_BY_STATE[CheckboxState.DONE]}
    if isinstance(value, MultiSelectValue):
        return {option_id: MARKER_BY_STATE[CheckboxState.DONE] for option_id in value.selected}
    if isinstance(definition, CheckboxesField):
        default = default_checkbox_state(definition.checkbox_mode)
        states = value.values if isinstance(value, CheckboxesValue) else {}
        return {
            option.id: MARKER_BY_STATE[states.get(option.id, default)]
            for option in definition.options
        }
    return {}


def table_lines(definition: TableField, value: TableValue) -> list[str]:
    """Header, separator, and one escaped row per table row."""

    header = [escape_table_cell(column.label) for column in definition.columns]
    lines = [_row(header), _row(["---"] * len(header))]
    for row in value.rows:
        cells = [_cell_text(row.get(column.id)) for column in definition.columns]
        lines.append(_row(cells))
    return lines


def _row(cells: list[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def _cell_text(cell: CellResponse | None) -> str:
    if cell is None or (cell.state is ResponseState.SKIPPED and not cell.reason):
        return ""
    if cell.state in (ResponseState.SKIPPED, ResponseState.ABORTED):
        return escape_table_cell(sentinel_text(cell.state, cell.reason))
    payload = cell.value
    if isinstance(payload, (int, float)):
        return escape_table_cell(format_number(payload))
    return escape_table_cell(payload or "")


def _fence_content(definition: FieldDefinition, response: FieldResponse) -> str | None:
    if response.state in (ResponseState.SKIPPED, ResponseState.ABORTED):
        return sentinel_text(response.state, response.reason) if response.reason else None
    value = response.value
    if response.state is not ResponseState.ANSWERED or value is None:
        return None
    if isinstance(value, ScalarValue) and value.value is not None:
        scalar = value.value
        return scalar if isinstance(scalar, str) else format_number(scalar)
    if isinstance(value, ListValue) and value.items:
        return "\n".join(value.items)
    if isinstance(definition, TableField) and isinstance(value, TableValue) and value.rows:
        return "\n".join(table_lines(definition, value))
    return None


def serialize_field(
    definition: FieldDefinition,
    response: FieldResponse,
    settings: ParseSettings = DEFAULT_SETTINGS,
) -> str:
    """One field tag with its options and value fence."""

    tag = KIND_TAGS[definition.kind]
    lines = [open_tag(tag, field_attributes(definition, response, settings))]
    options = getattr(definition, "options", None)
    if options is not None:
        lines.extend(option_lines(options, _option_markers(definition, response)))
    content = _fence_content(definition, response)
    if content is not None:
        lines.extend(value_fence(content))
    lines.append(close_tag(tag))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def serialize_doc_block(doc: DocumentationBlock) -> str:
    lines = [open_tag(doc.tag, {"ref": doc.ref, "report": doc.report})]
    if doc.body:
        lines.append(doc.body)
    lines.append(close_tag(doc.tag))
    return "\n".join(lines)


def serialize_note(note: Note) -> str:
    lines = [open_tag(NOTE_TAG, {"id": note.id, "ref": note.ref, "role": note.role})]
    if note.text:
        lines.append(note.text)
    lines.append(close_tag(NOTE_TAG))
    return "\n".join(lines)


def serialize_frontmatter(form: ParsedForm, spec_version: str | None = None) -> str:
    metadata = form.metadata
    section: dict[str, object] = {
        "spec": spec_version
        or (metadata.spec_version if metadata is not None else DEFAULT_SPEC_VERSION)
    }
    if metadata is not None and metadata.title:
        section["title"] = metadata.title
    if form.schema.description:
        section["description"] = form.schema.description
    data: dict[str, object] = {"markform": section}
    if metadata is not None:
        data["roles"] = list(metadata.roles)
        if metadata.role_instructions:
            data["role_instructions"] = dict(metadata.role_instructions)
    dumped = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"---\n{dumped}---"


class _DocPlacer:
    """Hands out documentation blocks by ref, each exactly once."""

    def __init__(self, docs: Iterable[DocumentationBlock]) -> None:
        self._by_ref: dict[str, list[DocumentationBlock]] = {}
        for doc in docs:
            self._by_ref.setdefault(doc.ref, []).append(doc)

    def take(self, *refs: str) -> list[str]:
        blocks: list[str] = []
        for ref in refs:
            blocks.extend(serialize_doc_block(doc) for doc in self._by_ref.pop(ref, ()))
        return blocks

    def rest(self) -> list[str]:
        return self.take(*list(self._by_ref))


def _field_blocks(
    definition: FieldDefinition,
    form: ParsedForm,
    placer: _DocPlacer,
    settings: ParseSettings,
) -> list[str]:
    response = form.response_for(definition.id)
    option_refs = [f"{definition.id}.{option.id}" for option in getattr(definition, "options", ())]
    if isinstance(definition, CheckboxesField) and definition.implicit:
        markers = _option_markers(definition, response)
        return ["\n".join(option_lines(definition.options, markers)), *placer.take(*option_refs)]
    return [
        serialize_field(definition, response, settings),
        *placer.take(definition.id, *option_refs),
    ]


def _group_blocks(
    group: FieldGroup, form: ParsedForm, placer: _DocPlacer, settings: ParseSettings
) -> list[str]:
    children = [
        block
        for definition in group.children
        for block in _field_blocks(definition, form, placer, settings)
    ]
    if group.implicit:
        return children
    attributes: dict[str, object] = {
        "id": group.id,
        "title": group.title,
        "report": group.report,
    }
    if group.validate:
        attributes["validate"] = list(group.validate)
    body = "\n\n".join([*placer.take(group.id), *children])
    parts = [open_tag(GROUP_TAG, attributes), body, close_tag(GROUP_TAG)]
    return ["\n\n".join(part for part in parts if part)]


def serialize_form(
    form: ParsedForm,
    *,
    spec_version: str | None = None,
    settings: ParseSettings | None = None,
) -> str:
    """Canonical markform Markdown for ``form``.

    ``settings`` names the parse defaults left implicit in the output (field
    role and priority); use the settings the form will be parsed with.
    """

    active = settings if settings is not None else DEFAULT_SETTINGS
    schema = form.schema
    placer = _DocPlacer(form.docs)

    blocks = [open_tag(FORM_TAG, {"id": schema.id, "title": schema.title})]
    blocks.extend(placer.take(schema.id))
    ordered = [group for group in schema.groups if not group.implicit]
    ordered.extend(group for group in schema.groups if group.implicit)
    for group in ordered:
        blocks.extend(_group_blocks(group, form, placer, active))
    blocks.extend(placer.rest())
    blocks.extend(serialize_note(note) for note in form.notes)
    blocks.append(close_tag(FORM_TAG))

    return f"{serialize_frontmatter(form, spec_version)}\n\n" + "\n\n".join(blocks) + "\n"


__all__ = [
    "KIND_ATTRIBUTES",
    "MARKER_BY_STATE",
    "field_attributes",
    "format_attribute_value",
    "format_attributes",
    "format_number",
    "sentinel_text",
    "serialize_doc_block",
    "serialize_field",
    "serialize_form",
    "serialize_frontmatter",
    "serialize_note",
    "table_lines",
    "value_fence",
]
