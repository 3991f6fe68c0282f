"""
markform — field parsers and tag dispatcher.

File: src/markform/parsing/fields.py

Purpose
- Turn one field tag node into a ``(FieldDefinition, FieldResponse)`` pair.

What should be included in this file
- One parser per field kind, sharing attribute reading and state resolution.
- ``FIELD_PARSERS``: registry keyed by tag name, checked at import time to
  cover every ``FieldKind``.
- ``parse_field``: dispatch by tag name; the generic ``{% field kind=... %}``
  tag routes through the same registry.

Functional requirements
- State resolution order: strict sentinel, value coercion, explicit ``state``
  attribute, then emptiness inference.
- Missing id/label, invalid enum attributes, duplicate or unannotated
  options, bad examples, and contradictory state are parse errors.

Non-functional requirements
- Pure functions: role/priority defaults arrive through ``ParseSettings``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Final, Protocol, TypeVar

import structlog

from markform.config.schema import DEFAULT_SETTINGS, ParseSettings
from markform.domain.models import (
    CHECKBOX_STATES_BY_MODE,
    CHOOSER_KINDS,
    ApprovalMode,
    CheckboxesField,
    CheckboxesValue,
    CheckboxMode,
    CheckboxState,
    DateField,
    FieldDefinition,
    FieldKind,
    FieldResponse,
    FieldValue,
    ListValue,
    MultiSelectField,
    MultiSelectValue,
    NumberField,
    Option,
    PriorityLevel,
    ScalarValue,
    SingleSelectField,
    SingleSelectValue,
    StringField,
    StringListField,
    TableField,
    TableValue,
    UrlField,
    UrlListField,
    YearField,
    default_checkbox_state,
    is_value_empty,
)
from markform.errors import MarkformParseError
from markform.markup.nodes import Node
from markform.parsing.accessors import (
    CHECKBOX_MARKERS,
    extract_fence_value,
    extract_option_items,
    extract_table_content,
    get_boolean_attr,
    get_int_attr,
    get_number_attr,
    get_string_array_attr,
    get_string_attr,
    get_validate_attr,
    is_tag_node,
    parse_option_text,
)
from markform.parsing.coercion import (
    is_valid_url,
    is_valid_year,
    parse_decimal,
    parse_iso_date,
    parse_leading_int,
    parse_number,
)
from markform.parsing.sentinels import detect_sentinel, sentinel_response
from markform.parsing.tables import parse_table

GENERIC_FIELD_TAG: Final[str] = "field"

_VALID_STATE_ATTRS: Final[frozenset[str]] = frozenset({"empty", "answered", "skipped", "aborted"})

_E = TypeVar("_E", PriorityLevel, CheckboxMode, ApprovalMode)


@dataclass(frozen=True, slots=True)
class ParsedField:
    field: FieldDefinition
    response: FieldResponse


class FieldParser(Protocol):
    def __call__(
        self,
        node: Node,
        settings: ParseSettings = ...,
        *,
        logger: Any | None = ...,
    ) -> ParsedField: ...


# ---------------------------------------------------------------------------
# Shared attribute reading and state resolution
# ---------------------------------------------------------------------------


def resolve_response(
    node: Node, value: FieldValue, field_id: str, required: bool
) -> FieldResponse:
    """Resolve a response from the ``state`` attribute or value emptiness."""

    state_attr = get_string_attr(node, "state")
    is_filled = not is_value_empty(value)
    if state_attr is None:
        return FieldResponse.answered(value) if is_filled else FieldResponse.unanswered()

    if state_attr not in _VALID_STATE_ATTRS:
        raise MarkformParseError(
            f"Invalid state attribute '{state_attr}' on field '{field_id}'. "
            "Must be empty, answered, skipped, or aborted",
            field_id=field_id,
        )
    if state_attr in ("skipped", "aborted") and is_filled:
        raise MarkformParseError(
            f"Field '{field_id}' has state='{state_attr}' but contains a value. "
            f"{state_attr} fields cannot have values.",
            field_id=field_id,
        )
    if state_attr == "skipped":
        if required:
            raise MarkformParseError(
                f"Field '{field_id}' is required but has state='skipped'. "
                "Cannot skip required fields.",
                field_id=field_id,
            )
        return FieldResponse.skipped()
    if state_attr == "aborted":
        return FieldResponse.aborted()
    if state_attr == "empty":
        return FieldResponse.unanswered()
    if not is_filled:
        raise MarkformParseError(
            f"Field '{field_id}' has state='answered' but has no value", field_id=field_id
        )
    return FieldResponse.answered(value)


def _identity(node: Node, tag: str) -> tuple[str, str]:
    field_id = get_string_attr(node, "id")
    if not field_id:
        raise MarkformParseError(f"{tag} missing required 'id' attribute")
    label = get_string_attr(node, "label")
    if not label:
        raise MarkformParseError(
            f"{tag} '{field_id}' missing required 'label' attribute", field_id=field_id
        )
    return field_id, label


def _enum_attr(
    node: Node, name: str, enum_type: type[_E], default: _E, *, field_id: str
) -> _E:
    raw = node.attributes.get(name)
    if raw is None:
        return default
    allowed = ", ".join(member.value for member in enum_type)
    if not isinstance(raw, str) or raw not in {member.value for member in enum_type}:
        raise MarkformParseError(
            f"Invalid {name} '{raw}' on field '{field_id}'. Must be one of: {allowed}",
            field_id=field_id,
        )
    return enum_type(raw)


def _common_kwargs(
    node: Node,
    kind: FieldKind,
    field_id: str,
    label: str,
    required: bool,
    settings: ParseSettings,
) -> dict[str, Any]:
    placeholder_attr = node.attributes.get("placeholder")
    examples_attr = node.attributes.get("examples")
    if kind in CHOOSER_KINDS and (placeholder_attr is not None or examples_attr is not None):
        raise MarkformParseError(
            f"Field '{field_id}' of kind {kind} does not accept placeholder or examples "
            "attributes",
            field_id=field_id,
        )

    return {
        "id": field_id,
        "label": label,
        "required": required,
        "priority": _enum_attr(
            node, "priority", PriorityLevel, settings.default_priority, field_id=field_id
        ),
        "role": get_string_attr(node, "role") or settings.default_role,
        "validate": get_validate_attr(node) or (),
        "report": get_boolean_attr(node, "report"),
        "placeholder": get_string_attr(node, "placeholder"),
        "examples": get_string_array_attr(node, "examples") or (),
    }


def _check_examples(kind: FieldKind, field_id: str, examples: tuple[str, ...]) -> None:
    for example in examples:
        if kind is FieldKind.NUMBER:
            ok = parse_number(example) is not None
        elif kind is FieldKind.URL:
            ok = is_valid_url(example)
        elif kind is FieldKind.DATE:
            ok = parse_iso_date(example) is not None
        elif kind is FieldKind.YEAR:
            ok = is_valid_year(parse_decimal(example))
        else:
            return
        if not ok:
            raise MarkformParseError(
                f"Example '{example}' on field '{field_id}' is not a valid {kind} value",
                field_id=field_id,
            )


def _warn_on_placeholder(
    kind: FieldKind, kwargs: Mapping[str, Any], settings: ParseSettings, log: Any
) -> None:
    placeholder = kwargs.get("placeholder")
    if placeholder is None or not settings.warn_on_placeholder:
        return
    reason: str | None = None
    if detect_sentinel(placeholder) is not None:
        reason = "placeholder looks like a skip/abort sentinel"
    elif kind is FieldKind.NUMBER and parse_number(placeholder) is None:
        reason = "placeholder is not numeric"
    if reason is not None:
        log.warning(
            "field_placeholder_warning",
            field_id=kwargs["id"],
            placeholder=placeholder,
            reason=reason,
        )


def _text_entry_kwargs(
    node: Node,
    kind: FieldKind,
    tag: str,
    settings: ParseSettings,
    log: Any,
) -> dict[str, Any]:
    field_id, label = _identity(node, tag)
    required = get_boolean_attr(node, "required") or False
    kwargs = _common_kwargs(node, kind, field_id, label, required, settings)
    _check_examples(kind, field_id, kwargs["examples"])
    _warn_on_placeholder(kind, kwargs, settings, log)
    return kwargs


def _fence_text(node: Node) -> str | None:
    content = extract_fence_value(node)
    if content is None:
        return None
    trimmed = content.strip()
    return trimmed or None


def _fence_lines(node: Node) -> tuple[str, ...]:
    content = extract_fence_value(node)
    if content is None:
        return ()
    return tuple(line.strip() for line in content.splitlines() if line.strip())


def _finish(
    node: Node,
    definition: FieldDefinition,
    value_factory: Callable[[], FieldValue],
) -> ParsedField:
    presolved = sentinel_response(node, definition.id, definition.required)
    if presolved is not None:
        return ParsedField(definition, presolved)
    value = value_factory()
    response = resolve_response(node, value, definition.id, definition.required)
    return ParsedField(definition, response)


def _logger(logger: Any | None) -> Any:
    return logger if logger is not None else structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Scalar and list kinds
# ---------------------------------------------------------------------------


def parse_string_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(node, FieldKind.STRING, "string-field", settings, _logger(logger))
    definition = StringField(
        **kwargs,
        multiline=get_boolean_attr(node, "multiline"),
        pattern=get_string_attr(node, "pattern"),
        min_length=get_int_attr(node, "minLength"),
        max_length=get_int_attr(node, "maxLength"),
    )
    return _finish(node, definition, lambda: ScalarValue(FieldKind.STRING, _fence_text(node)))


def parse_number_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(node, FieldKind.NUMBER, "number-field", settings, _logger(logger))
    definition = NumberField(
        **kwargs,
        min=get_number_attr(node, "min"),
        max=get_number_attr(node, "max"),
        integer=get_boolean_attr(node, "integer"),
    )

    def _value() -> ScalarValue:
        text = _fence_text(node)
        return ScalarValue(FieldKind.NUMBER, parse_number(text) if text else None)

    return _finish(node, definition, _value)


def parse_string_list_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(
        node, FieldKind.STRING_LIST, "string-list", settings, _logger(logger)
    )
    definition = StringListField(
        **kwargs,
        min_items=get_int_attr(node, "minItems"),
        max_items=get_int_attr(node, "maxItems"),
        item_min_length=get_int_attr(node, "itemMinLength"),
        item_max_length=get_int_attr(node, "itemMaxLength"),
        unique_items=get_boolean_attr(node, "uniqueItems"),
    )
    return _finish(node, definition, lambda: ListValue(FieldKind.STRING_LIST, _fence_lines(node)))


def parse_url_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(node, FieldKind.URL, "url-field", settings, _logger(logger))
    definition = UrlField(**kwargs)
    return _finish(node, definition, lambda: ScalarValue(FieldKind.URL, _fence_text(node)))


def parse_url_list_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(node, FieldKind.URL_LIST, "url-list", settings, _logger(logger))
    definition = UrlListField(
        **kwargs,
        min_items=get_int_attr(node, "minItems"),
        max_items=get_int_attr(node, "maxItems"),
        unique_items=get_boolean_attr(node, "uniqueItems"),
    )
    return _finish(node, definition, lambda: ListValue(FieldKind.URL_LIST, _fence_lines(node)))


def parse_date_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(node, FieldKind.DATE, "date-field", settings, _logger(logger))
    definition = DateField(
        **kwargs,
        min=get_string_attr(node, "min"),
        max=get_string_attr(node, "max"),
    )
    return _finish(node, definition, lambda: ScalarValue(FieldKind.DATE, _fence_text(node)))


def parse_year_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _text_entry_kwargs(node, FieldKind.YEAR, "year-field", settings, _logger(logger))
    definition = YearField(
        **kwargs,
        min=get_int_attr(node, "min"),
        max=get_int_attr(node, "max"),
    )

    def _value() -> ScalarValue:
        text = _fence_text(node)
        return ScalarValue(FieldKind.YEAR, parse_leading_int(text) if text else None)

    return _finish(node, definition, _value)


# ---------------------------------------------------------------------------
# Chooser kinds
# ---------------------------------------------------------------------------


def parse_options(node: Node, field_id: str) -> tuple[tuple[Option, ...], dict[str, CheckboxState]]:
    """Options in document order plus the state implied by each marker."""

    options: list[Option] = []
    marked: dict[str, CheckboxState] = {}
    seen: set[str] = set()
    for item in extract_option_items(node):
        parsed = parse_option_text(item.text)
        if parsed is None:
            continue
        if not item.id:
            raise MarkformParseError(
                f"Option in field '{field_id}' missing ID annotation. Use {{% #option_id %}}",
                field_id=field_id,
            )
        if item.id in seen:
            raise MarkformParseError(
                f"Duplicate option ID '{item.id}' in field '{field_id}'", field_id=field_id
            )
        seen.add(item.id)
        options.append(Option(id=item.id, label=parsed.label))
        state = CHECKBOX_MARKERS.get(parsed.marker)
        if state is not None:
            marked[item.id] = state
    return tuple(options), marked


def _chooser_kwargs(
    node: Node, kind: FieldKind, tag: str, settings: ParseSettings, *, required: bool | None = None
) -> dict[str, Any]:
    field_id, label = _identity(node, tag)
    if required is None:
        required = get_boolean_attr(node, "required") or False
    return _common_kwargs(node, kind, field_id, label, required, settings)


def parse_single_select_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _chooser_kwargs(node, FieldKind.SINGLE_SELECT, "single-select", settings)
    options, marked = parse_options(node, kwargs["id"])
    definition = SingleSelectField(**kwargs, options=options)
    selected = next(
        (option.id for option in options if marked.get(option.id) is CheckboxState.DONE), None
    )
    return _finish(node, definition, lambda: SingleSelectValue(selected))


def parse_multi_select_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    kwargs = _chooser_kwargs(node, FieldKind.MULTI_SELECT, "multi-select", settings)
    options, marked = parse_options(node, kwargs["id"])
    definition = MultiSelectField(
        **kwargs,
        options=options,
        min_selections=get_int_attr(node, "minSelections"),
        max_selections=get_int_attr(node, "maxSelections"),
    )
    selected = tuple(
        option.id for option in options if marked.get(option.id) is CheckboxState.DONE
    )
    return _finish(node, definition, lambda: MultiSelectValue(selected))


def parse_checkboxes_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    field_id, label = _identity(node, "checkboxes")
    mode = _enum_attr(node, "checkboxMode", CheckboxMode, CheckboxMode.MULTI, field_id=field_id)
    approval = _enum_attr(
        node, "approvalMode", ApprovalMode, ApprovalMode.NONE, field_id=field_id
    )

    required_attr = get_boolean_attr(node, "required")
    if mode is CheckboxMode.EXPLICIT:
        if required_attr is False:
            raise MarkformParseError(
                f'Checkbox field "{label}" has checkboxMode="explicit" which is inherently '
                "required. Cannot set required=false. Remove required attribute or change "
                "checkboxMode.",
                field_id=field_id,
            )
        required = True
    else:
        required = required_attr or False

    kwargs = _chooser_kwargs(node, FieldKind.CHECKBOXES, "checkboxes", settings, required=required)
    options, marked = parse_options(node, field_id)
    check_marker_states(field_id, marked, mode)
    definition = CheckboxesField(
        **kwargs,
        options=options,
        checkbox_mode=mode,
        approval_mode=approval,
        min_done=get_int_attr(node, "minDone"),
    )
    return _finish(node, definition, lambda: checkbox_value(options, marked, mode))


def check_marker_states(
    field_id: str, marked: Mapping[str, CheckboxState], mode: CheckboxMode
) -> None:
    """Reject markers whose state is outside ``mode``'s state set; ``[ ]`` fits every mode."""

    allowed = CHECKBOX_STATES_BY_MODE[mode]
    for option_id, state in marked.items():
        if state is CheckboxState.TODO or state in allowed:
            continue
        raise MarkformParseError(
            f"Option '{option_id}' in field '{field_id}' has state '{state}', "
            f"which is not valid for checkboxMode=\"{mode}\"",
            field_id=field_id,
        )


def checkbox_value(
    options: tuple[Option, ...], marked: Mapping[str, CheckboxState], mode: CheckboxMode
) -> CheckboxesValue:
    """Every option's state; unmarked and ``[ ]`` options take the mode default."""

    default = default_checkbox_state(mode)
    values: dict[str, CheckboxState] = {}
    for option in options:
        state = marked.get(option.id)
        values[option.id] = default if state in (None, CheckboxState.TODO) else state
    return CheckboxesValue(values)


# ---------------------------------------------------------------------------
# Table kind
# ---------------------------------------------------------------------------


def parse_table_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField:
    log = _logger(logger)
    kwargs = _text_entry_kwargs(node, FieldKind.TABLE, "table-field", settings, log)
    field_id = kwargs["id"]

    presolved = sentinel_response(node, field_id, kwargs["required"])
    # A sentinel fence is not table text; the schema comes from the rest.
    content = extract_table_content(node, include_fence=presolved is None)
    table = parse_table(node, field_id=field_id, content=content, logger=log)

    definition = TableField(
        **kwargs,
        columns=table.columns,
        min_rows=get_int_attr(node, "minRows"),
        max_rows=get_int_attr(node, "maxRows"),
    )
    if presolved is not None:
        return ParsedField(definition, presolved)
    value = TableValue(rows=table.rows)
    return ParsedField(definition, resolve_response(node, value, field_id, definition.required))


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

KIND_TAGS: Final[Mapping[FieldKind, str]] = MappingProxyType(
    {
        FieldKind.STRING: "string-field",
        FieldKind.NUMBER: "number-field",
        FieldKind.STRING_LIST: "string-list",
        FieldKind.SINGLE_SELECT: "single-select",
        FieldKind.MULTI_SELECT: "multi-select",
        FieldKind.CHECKBOXES: "checkboxes",
        FieldKind.URL: "url-field",
        FieldKind.URL_LIST: "url-list",
        FieldKind.DATE: "date-field",
        FieldKind.YEAR: "year-field",
        FieldKind.TABLE: "table-field",
    }
)

FIELD_PARSERS: Final[Mapping[str, FieldParser]] = MappingProxyType(
    {
        "string-field": parse_string_field,
        "number-field": parse_number_field,
        "string-list": parse_string_list_field,
        "single-select": parse_single_select_field,
        "multi-select": parse_multi_select_field,
        "checkboxes": parse_checkboxes_field,
        "url-field": parse_url_field,
        "url-list": parse_url_list_field,
        "date-field": parse_date_field,
        "year-field": parse_year_field,
        "table-field": parse_table_field,
    }
)


def _assert_registry_complete() -> None:
    missing = sorted(kind.value for kind in FieldKind if kind not in KIND_TAGS)
    unrouted = sorted(tag for tag in KIND_TAGS.values() if tag not in FIELD_PARSERS)
    if missing or unrouted:
        raise RuntimeError(
            f"field parser registry incomplete: kinds={missing} tags={unrouted}"
        )


_assert_registry_complete()


def is_field_tag(node: Node) -> bool:
    return is_tag_node(node) and (node.tag in FIELD_PARSERS or node.tag == GENERIC_FIELD_TAG)


def parse_field(
    node: Node, settings: ParseSettings = DEFAULT_SETTINGS, *, logger: Any | None = None
) -> ParsedField | None:
    """Parse a field tag; ``None`` for non-tag nodes and unrecognized tags."""

    if not is_tag_node(node) or node.tag is None:
        return None

    tag = node.tag
    if tag == GENERIC_FIELD_TAG:
        kind_attr = get_string_attr(node, "kind")
        try:
            tag = KIND_TAGS[FieldKind(kind_attr or "")]
        except ValueError:
            field_id = get_string_attr(node, "id")
            allowed = ", ".join(kind.value for kind in FieldKind)
            raise MarkformParseError(
                f"Invalid kind '{kind_attr}' on field tag. Must be one of: {allowed}",
                field_id=field_id,
            ) from None

    parser = FIELD_PARSERS.get(tag)
    if parser is None:
        return None
    return parser(node, settings, logger=logger)


__all__ = [
    "FIELD_PARSERS",
    "GENERIC_FIELD_TAG",
    "KIND_TAGS",
    "FieldParser",
    "ParsedField",
    "check_marker_states",
    "checkbox_value",
    "is_field_tag",
    "parse_checkboxes_field",
    "parse_date_field",
    "parse_field",
    "parse_multi_select_field",
    "parse_number_field",
    "parse_options",
    "parse_single_select_field",
    "parse_string_field",
    "parse_string_list_field",
    "parse_table_field",
    "parse_url_field",
    "parse_url_list_field",
    "parse_year_field",
    "resolve_response",
]
