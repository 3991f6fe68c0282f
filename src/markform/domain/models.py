"""Dataclass domain models for form schemas, values, and responses."""

from __future__ import annotations

import json
import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum, StrEnum
from typing import ClassVar, Final, NoReturn, TypeAlias, cast

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class FieldKind(StrEnum):
    STRING = "string"
    NUMBER = "number"
    STRING_LIST = "string_list"
    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    CHECKBOXES = "checkboxes"
    URL = "url"
    URL_LIST = "url_list"
    DATE = "date"
    YEAR = "year"
    TABLE = "table"


class PriorityLevel(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CheckboxMode(StrEnum):
    MULTI = "multi"
    SIMPLE = "simple"
    EXPLICIT = "explicit"


class ApprovalMode(StrEnum):
    NONE = "none"
    BLOCKING = "blocking"


class ColumnType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    URL = "url"
    DATE = "date"
    YEAR = "year"


class CheckboxState(StrEnum):
    TODO = "todo"
    DONE = "done"
    INCOMPLETE = "incomplete"
    ACTIVE = "active"
    NA = "na"
    UNFILLED = "unfilled"
    YES = "yes"
    NO = "no"


class ResponseState(StrEnum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    SKIPPED = "skipped"
    ABORTED = "aborted"


class IssueSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


SCALAR_KINDS: Final[frozenset[FieldKind]] = frozenset(
    {FieldKind.STRING, FieldKind.NUMBER, FieldKind.URL, FieldKind.DATE, FieldKind.YEAR}
)
LIST_KINDS: Final[frozenset[FieldKind]] = frozenset({FieldKind.STRING_LIST, FieldKind.URL_LIST})
CHOOSER_KINDS: Final[frozenset[FieldKind]] = frozenset(
    {FieldKind.SINGLE_SELECT, FieldKind.MULTI_SELECT, FieldKind.CHECKBOXES}
)
TEXT_ENTRY_KINDS: Final[frozenset[FieldKind]] = frozenset(
    {*SCALAR_KINDS, *LIST_KINDS, FieldKind.TABLE}
)

CHECKBOX_STATES_BY_MODE: Final[Mapping[CheckboxMode, frozenset[CheckboxState]]] = {
    CheckboxMode.MULTI: frozenset(
        {
            CheckboxState.TODO,
            CheckboxState.DONE,
            CheckboxState.INCOMPLETE,
            CheckboxState.ACTIVE,
            CheckboxState.NA,
        }
    ),
    CheckboxMode.SIMPLE: frozenset({CheckboxState.TODO, CheckboxState.DONE}),
    CheckboxMode.EXPLICIT: frozenset(
        {CheckboxState.UNFILLED, CheckboxState.YES, CheckboxState.NO}
    ),
}

ValidatorRef: TypeAlias = str | Mapping[str, object]


def default_checkbox_state(mode: CheckboxMode) -> CheckboxState:
    """Return the unchecked state for a checkbox mode."""

    return CheckboxState.UNFILLED if mode is CheckboxMode.EXPLICIT else CheckboxState.TODO


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    __slots__ = ()

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, (tuple, list, frozenset)):
        items = sorted(value) if isinstance(value, frozenset) else value
        return [_serialize_value(item, f"{path}[]") for item in items]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value) and not isinstance(value, type):
        out_obj: dict[str, JSONValue] = {}
        discriminant = getattr(type(value), "kind", None)
        if isinstance(discriminant, FieldKind):
            out_obj["kind"] = discriminant.value
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


def _require_text(value: object, path: str) -> str:
    if not isinstance(value, str) or not value:
        _fail(path, "must be a non-empty string")
    return value


def _freeze_tuple(instance: object, name: str) -> None:
    raw = getattr(instance, name)
    if not isinstance(raw, tuple):
        object.__setattr__(instance, name, tuple(raw))


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Option(CanonicalModel):
    id: str
    label: str

    def __post_init__(self) -> None:
        _require_text(self.id, "Option.id")


@dataclass(frozen=True, slots=True)
class TableColumn(CanonicalModel):
    id: str
    label: str
    type: ColumnType = ColumnType.STRING
    required: bool = False

    def __post_init__(self) -> None:
        _require_text(self.id, "TableColumn.id")
        object.__setattr__(self, "type", ColumnType(self.type))


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldDefinition(CanonicalModel):
    """Attributes shared by every field kind.

    Subclasses set ``kind`` and add their kind-specific constraints. Definitions
    are immutable once parsed.
    """

    kind: ClassVar[FieldKind]

    id: str
    label: str
    required: bool = False
    priority: PriorityLevel = PriorityLevel.MEDIUM
    role: str = "agent"
    validate: tuple[ValidatorRef, ...] = ()
    report: bool | None = None
    placeholder: str | None = None
    examples: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        path = f"{type(self).__name__}.id"
        _require_text(self.id, path)
        _require_text(self.label, f"{type(self).__name__}.label")
        object.__setattr__(self, "priority", PriorityLevel(self.priority))
        _freeze_tuple(self, "validate")
        _freeze_tuple(self, "examples")
        if self.kind in CHOOSER_KINDS and (self.placeholder is not None or self.examples):
            _fail(path, f"{self.kind} fields do not accept placeholder or examples")
        self._validate_kind()

    def _validate_kind(self) -> None:
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class StringField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.STRING

    multiline: bool | None = None
    pattern: str | None = None
    min_length: int | None = None
    max_length: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class NumberField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.NUMBER

    min: float | None = None
    max: float | None = None
    integer: bool | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class StringListField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.STRING_LIST

    min_items: int | None = None
    max_items: int | None = None
    item_min_length: int | None = None
    item_max_length: int | None = None
    unique_items: bool | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class UrlField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.URL


@dataclass(frozen=True, slots=True, kw_only=True)
class UrlListField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.URL_LIST

    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class DateField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.DATE

    min: str | None = None
    max: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class YearField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.YEAR

    min: int | None = None
    max: int | None = None


def _check_unique_options(definition: FieldDefinition, options: tuple[Option, ...]) -> None:
    seen: set[str] = set()
    for option in options:
        if option.id in seen:
            _fail(f"{type(definition).__name__}.options", f"duplicate option id {option.id!r}")
        seen.add(option.id)


@dataclass(frozen=True, slots=True, kw_only=True)
class SingleSelectField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.SINGLE_SELECT

    options: tuple[Option, ...] = ()

    def _validate_kind(self) -> None:
        _freeze_tuple(self, "options")
        _check_unique_options(self, self.options)


@dataclass(frozen=True, slots=True, kw_only=True)
class MultiSelectField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.MULTI_SELECT

    options: tuple[Option, ...] = ()
    min_selections: int | None = None
    max_selections: int | None = None

    def _validate_kind(self) -> None:
        _freeze_tuple(self, "options")
        _check_unique_options(self, self.options)


@dataclass(frozen=True, slots=True, kw_only=True)
class CheckboxesField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.CHECKBOXES

    options: tuple[Option, ...] = ()
    checkbox_mode: CheckboxMode = CheckboxMode.MULTI
    approval_mode: ApprovalMode = ApprovalMode.NONE
    min_done: int | None = None
    implicit: bool = False

    def _validate_kind(self) -> None:
        _freeze_tuple(self, "options")
        _check_unique_options(self, self.options)
        object.__setattr__(self, "checkbox_mode", CheckboxMode(self.checkbox_mode))
        object.__setattr__(self, "approval_mode", ApprovalMode(self.approval_mode))
        if self.checkbox_mode is CheckboxMode.EXPLICIT and not self.required:
            _fail("CheckboxesField.required", "explicit checkbox mode is always required")


@dataclass(frozen=True, slots=True, kw_only=True)
class TableField(FieldDefinition):
    kind: ClassVar[FieldKind] = FieldKind.TABLE

    columns: tuple[TableColumn, ...] = ()
    min_rows: int | None = None
    max_rows: int | None = None

    def _validate_kind(self) -> None:
        _freeze_tuple(self, "columns")
        seen: set[str] = set()
        for column in self.columns:
            if column.id in seen:
                _fail("TableField.columns", f"duplicate column id {column.id!r}")
            seen.add(column.id)

    def column(self, column_id: str) -> TableColumn | None:
        for candidate in self.columns:
            if candidate.id == column_id:
                return candidate
        return None


ChooserField: TypeAlias = SingleSelectField | MultiSelectField | CheckboxesField


# ---------------------------------------------------------------------------
# Values and responses
# ---------------------------------------------------------------------------

CellPayload: TypeAlias = str | int | float


@dataclass(frozen=True, slots=True)
class CellResponse(CanonicalModel):
    """Response for one table cell.

    An answered cell may hold a raw string that does not match its column type;
    typed coercion is re-run by the table validator.
    """

    state: ResponseState
    value: CellPayload | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "state", ResponseState(self.state))
        _check_response_shape("CellResponse", self.state, self.value, self.reason)


@dataclass(frozen=True, slots=True)
class ScalarValue(CanonicalModel):
    kind: FieldKind
    value: str | int | float | None = None

    def __post_init__(self) -> None:
        if FieldKind(self.kind) not in SCALAR_KINDS:
            _fail("ScalarValue.kind", f"{self.kind!r} is not a scalar kind")


@dataclass(frozen=True, slots=True)
class ListValue(CanonicalModel):
    kind: FieldKind
    items: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if FieldKind(self.kind) not in LIST_KINDS:
            _fail("ListValue.kind", f"{self.kind!r} is not a list kind")
        _freeze_tuple(self, "items")


@dataclass(frozen=True, slots=True)
class SingleSelectValue(CanonicalModel):
    selected: str | None = None
    kind: FieldKind = FieldKind.SINGLE_SELECT


@dataclass(frozen=True, slots=True)
class MultiSelectValue(CanonicalModel):
    selected: tuple[str, ...] = ()
    kind: FieldKind = FieldKind.MULTI_SELECT

    def __post_init__(self) -> None:
        _freeze_tuple(self, "selected")


@dataclass(frozen=True, slots=True)
class CheckboxesValue(CanonicalModel):
    values: Mapping[str, CheckboxState] = field(default_factory=dict)
    kind: FieldKind = FieldKind.CHECKBOXES

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "values",
            {option_id: CheckboxState(state) for option_id, state in self.values.items()},
        )


@dataclass(frozen=True, slots=True)
class TableValue(CanonicalModel):
    rows: tuple[Mapping[str, CellResponse], ...] = ()
    kind: FieldKind = FieldKind.TABLE

    def __post_init__(self) -> None:
        object.__setattr__(self, "rows", tuple(dict(row) for row in self.rows))


FieldValue: TypeAlias = (
    ScalarValue
    | ListValue
    | SingleSelectValue
    | MultiSelectValue
    | CheckboxesValue
    | TableValue
)


def is_value_empty(value: FieldValue) -> bool:
    """Return whether a value counts as unanswered content for its kind."""

    if isinstance(value, ScalarValue):
        return value.value is None
    if isinstance(value, ListValue):
        return not value.items
    if isinstance(value, SingleSelectValue):
        return value.selected is None
    if isinstance(value, MultiSelectValue):
        return not value.selected
    if isinstance(value, CheckboxesValue):
        return all(
            state in (CheckboxState.TODO, CheckboxState.UNFILLED) for state in value.values.values()
        )
    if isinstance(value, TableValue):
        return not value.rows
    _fail("FieldValue", f"unsupported value type {type(value).__name__}")


def _check_response_shape(
    path: str, state: ResponseState, value: object | None, reason: str | None
) -> None:
    if state is ResponseState.ANSWERED:
        if value is None:
            _fail(path, "answered responses must carry a value")
    elif value is not None:
        _fail(path, f"{state} responses cannot carry a value")
    if reason is not None and state not in (ResponseState.SKIPPED, ResponseState.ABORTED):
        _fail(path, "only skipped or aborted responses carry a reason")


@dataclass(frozen=True, slots=True)
class FieldResponse(CanonicalModel):
    state: ResponseState
    value: FieldValue | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "state", ResponseState(self.state))
        _check_response_shape("FieldResponse", self.state, self.value, self.reason)

    @classmethod
    def unanswered(cls) -> FieldResponse:
        return cls(ResponseState.UNANSWERED)

    @classmethod
    def answered(cls, value: FieldValue) -> FieldResponse:
        return cls(ResponseState.ANSWERED, value=value)

    @classmethod
    def skipped(cls, reason: str | None = None) -> FieldResponse:
        return cls(ResponseState.SKIPPED, reason=reason)

    @classmethod
    def aborted(cls, reason: str | None = None) -> FieldResponse:
        return cls(ResponseState.ABORTED, reason=reason)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldGroup(CanonicalModel):
    id: str
    title: str | None = None
    children: tuple[FieldDefinition, ...] = ()
    validate: tuple[ValidatorRef, ...] = ()
    report: bool | None = None
    implicit: bool = False

    def __post_init__(self) -> None:
        _require_text(self.id, "FieldGroup.id")
        _freeze_tuple(self, "children")
        _freeze_tuple(self, "validate")


@dataclass(frozen=True, slots=True)
class FormSchema(CanonicalModel):
    id: str
    title: str | None = None
    description: str | None = None
    groups: tuple[FieldGroup, ...] = ()

    def __post_init__(self) -> None:
        _require_text(self.id, "FormSchema.id")
        _freeze_tuple(self, "groups")

    def iter_fields(self) -> Iterator[FieldDefinition]:
        for group in self.groups:
            yield from group.children

    def field_by_id(self, field_id: str) -> FieldDefinition | None:
        for candidate in self.iter_fields():
            if candidate.id == field_id:
                return candidate
        return None


@dataclass(frozen=True, slots=True)
class Note(CanonicalModel):
    id: str
    ref: str
    role: str
    text: str = ""


@dataclass(frozen=True, slots=True)
class DocumentationBlock(CanonicalModel):
    tag: str
    ref: str
    body: str = ""
    report: bool | None = None


@dataclass(frozen=True, slots=True)
class IdIndexEntry(CanonicalModel):
    node_type: str
    parent_id: str | None = None
    field_id: str | None = None


@dataclass(frozen=True, slots=True)
class FormMetadata(CanonicalModel):
    spec_version: str
    roles: tuple[str, ...] = ()
    role_instructions: Mapping[str, str] = field(default_factory=dict)
    title: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        _freeze_tuple(self, "roles")


@dataclass(frozen=True, slots=True)
class ParsedForm(CanonicalModel):
    schema: FormSchema
    responses_by_field_id: Mapping[str, FieldResponse]
    notes: tuple[Note, ...] = ()
    docs: tuple[DocumentationBlock, ...] = ()
    order_index: tuple[str, ...] = ()
    id_index: Mapping[str, IdIndexEntry] = field(default_factory=dict)
    metadata: FormMetadata | None = None

    def __post_init__(self) -> None:
        _freeze_tuple(self, "notes")
        _freeze_tuple(self, "docs")
        _freeze_tuple(self, "order_index")

    def response_for(self, field_id: str) -> FieldResponse:
        return self.responses_by_field_id.get(field_id, FieldResponse.unanswered())

    def row_counts(self) -> dict[str, int]:
        """Live row counts for every answered table field."""

        counts: dict[str, int] = {}
        for definition in self.schema.iter_fields():
            if not isinstance(definition, TableField):
                continue
            value = self.response_for(definition.id).value
            counts[definition.id] = len(value.rows) if isinstance(value, TableValue) else 0
        return counts


@dataclass(frozen=True, slots=True)
class ValidationIssue(CanonicalModel):
    """One validation finding, addressed by a scope reference string."""

    ref: str
    code: str
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR
    source: str = "builtin"
    validator_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", IssueSeverity(self.severity))


__all__ = [
    "CHECKBOX_STATES_BY_MODE",
    "CHOOSER_KINDS",
    "LIST_KINDS",
    "SCALAR_KINDS",
    "TEXT_ENTRY_KINDS",
    "ApprovalMode",
    "CanonicalModel",
    "CellPayload",
    "CellResponse",
    "CheckboxMode",
    "CheckboxState",
    "CheckboxesField",
    "CheckboxesValue",
    "ChooserField",
    "ColumnType",
    "DateField",
    "DocumentationBlock",
    "FieldDefinition",
    "FieldGroup",
    "FieldKind",
    "FieldResponse",
    "FieldValue",
    "FormMetadata",
    "FormSchema",
    "IdIndexEntry",
    "IssueSeverity",
    "JSONValue",
    "ListValue",
    "MultiSelectField",
    "MultiSelectValue",
    "Note",
    "NumberField",
    "Option",
    "ParsedForm",
    "PriorityLevel",
    "ResponseState",
    "ScalarValue",
    "SingleSelectField",
    "SingleSelectValue",
    "StringField",
    "StringListField",
    "TableColumn",
    "TableField",
    "TableValue",
    "UrlField",
    "UrlListField",
    "ValidationIssue",
    "ValidatorRef",
    "YearField",
    "default_checkbox_state",
    "is_value_empty",
]
