"""
markform — document parser

File: src/markform/parsing/form.py

Purpose
- Parse a whole markform document into a ``ParsedForm``: the schema, one
  response per field, notes, documentation blocks, and an id index.

What should be included in this file
- Frontmatter interpretation (the ``markform`` section, roles, role
  instructions) via PyYAML.
- Exactly one ``form`` tag; ``group`` tags; fields directly under the form
  collected into the implicit ``default`` group.
- Implicit checkboxes mode: a form with no explicit fields turns every
  ID-annotated checkbox item into one ``checkboxes`` field.
- ``note`` and documentation tags, validated against the id index.

Functional requirements
- Duplicate ids (form, groups, fields, qualified option refs) are parse
  errors.
- Field-level parse errors propagate with the tag's source line attached.

Non-functional requirements
- No module state; settings and logger are passed in.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Final

import structlog
import yaml

from markform.config.schema import DEFAULT_SETTINGS, ParseSettings
from markform.constants import (
    DEFAULT_ROLES,
    DEFAULT_SPEC_VERSION,
    IMPLICIT_CHECKBOXES_ID,
    IMPLICIT_GROUP_ID,
)
from markform.domain.models import (
    CHOOSER_KINDS,
    CheckboxesField,
    CheckboxesValue,
    CheckboxMode,
    CheckboxState,
    DocumentationBlock,
    FieldDefinition,
    FieldGroup,
    FieldResponse,
    FormMetadata,
    FormSchema,
    IdIndexEntry,
    Note,
    Option,
    ParsedForm,
)
from markform.errors import MarkformParseError
from markform.markup.nodes import NODE_HEADING, NODE_ITEM, NODE_LIST, NODE_PARAGRAPH, Node
from markform.markup.tree_builder import build_tree
from markform.parsing.accessors import (
    CHECKBOX_MARKERS,
    collect_text,
    get_boolean_attr,
    get_string_attr,
    get_validate_attr,
    is_tag_node,
    parse_option_text,
)
from markform.parsing.fields import ParsedField, check_marker_states, is_field_tag, parse_field

FORM_TAG: Final[str] = "form"
GROUP_TAG: Final[str] = "group"
NOTE_TAG: Final[str] = "note"
DOC_TAGS: Final[tuple[str, ...]] = ("description", "instructions", "documentation")

_STRUCTURAL_TAGS: Final[frozenset[str]] = frozenset({GROUP_TAG, NOTE_TAG, *DOC_TAGS})


@dataclass(frozen=True, slots=True)
class Frontmatter:
    data: Mapping[str, object]
    metadata: FormMetadata | None = None


@dataclass(slots=True)
class _GroupDraft:
    id: str
    title: str | None = None
    children: list[FieldDefinition] = field(default_factory=list)
    validate: tuple[Any, ...] = ()
    report: bool | None = None
    implicit: bool = False

    def freeze(self) -> FieldGroup:
        return FieldGroup(
            id=self.id,
            title=self.title,
            children=tuple(self.children),
            validate=self.validate,
            report=self.report,
            implicit=self.implicit,
        )


def parse_frontmatter(raw: str | None, *, source: str | None = None) -> Frontmatter:
    """Interpret raw frontmatter text; ``metadata`` is set only with a ``markform`` section."""

    if raw is None or not raw.strip():
        return Frontmatter(data={})
    try:
        loaded = yaml.safe_load(raw)
    except (yaml.YAMLError, ValueError) as exc:
        raise MarkformParseError("Failed to parse frontmatter YAML", source=source) from exc
    if loaded is None:
        return Frontmatter(data={})
    if not isinstance(loaded, dict):
        raise MarkformParseError("Frontmatter must be a YAML mapping", source=source)

    section = loaded.get("markform")
    if not isinstance(section, dict):
        return Frontmatter(data=loaded)

    spec_version = section.get("spec")
    roles = loaded.get("roles")
    instructions = loaded.get("role_instructions")
    metadata = FormMetadata(
        spec_version=spec_version if isinstance(spec_version, str) else DEFAULT_SPEC_VERSION,
        roles=tuple(str(role) for role in roles) if isinstance(roles, list) else DEFAULT_ROLES,
        role_instructions=(
            {str(key): str(value) for key, value in instructions.items()}
            if isinstance(instructions, dict)
            else {}
        ),
        title=section.get("title") if isinstance(section.get("title"), str) else None,
        description=(
            section.get("description") if isinstance(section.get("description"), str) else None
        ),
    )
    return Frontmatter(data=loaded, metadata=metadata)


class _FormParser:
    """Accumulates fields, responses, and the id index for one form tag."""

    def __init__(self, settings: ParseSettings, source: str | None, log: Any) -> None:
        self._settings = settings
        self._source = source
        self._log = log
        self.id_index: dict[str, IdIndexEntry] = {}
        self.order_index: list[str] = []
        self.responses: dict[str, FieldResponse] = {}
        self.groups: list[_GroupDraft] = []
        self.ungrouped: list[FieldDefinition] = []

    # -- errors -----------------------------------------------------------

    def _error(
        self, message: str, node: Node | None = None, field_id: str | None = None
    ) -> MarkformParseError:
        return MarkformParseError(
            message,
            field_id=field_id,
            line=node.line if node is not None else None,
            source=self._source,
        )

    # -- fields -----------------------------------------------------------

    def _register(self, key: str, entry: IdIndexEntry, node: Node | None) -> None:
        if key in self.id_index:
            if entry.node_type == "option":
                raise self._error(f"Duplicate option ref '{key}'", node, entry.field_id)
            raise self._error(f"Duplicate ID '{key}'", node)
        self.id_index[key] = entry

    def _parse_field(self, node: Node) -> ParsedField | None:
        try:
            return parse_field(node, self._settings, logger=self._log)
        except MarkformParseError as exc:
            raise exc.with_location(line=node.line, source=self._source) from exc

    def _add_field(self, node: Node, parsed: ParsedField, parent_id: str) -> None:
        definition = parsed.field
        self._register(definition.id, IdIndexEntry("field", parent_id=parent_id), node)
        self.responses[definition.id] = parsed.response
        self.order_index.append(definition.id)
        for option in getattr(definition, "options", ()):
            self._register(
                f"{definition.id}.{option.id}",
                IdIndexEntry("option", parent_id=parent_id, field_id=definition.id),
                node,
            )

    # -- structure --------------------------------------------------------

    def parse_group(self, node: Node, form_id: str) -> None:
        group_id = get_string_attr(node, "id")
        if not group_id:
            raise self._error("group missing required 'id' attribute", node)
        if group_id in self.id_index:
            raise self._error(f"Duplicate ID '{group_id}'", node)
        if get_string_attr(node, "state") is not None:
            raise self._error(
                f"Field-group '{group_id}' has state attribute. "
                "state attribute is not allowed on groups.",
                node,
            )
        self.id_index[group_id] = IdIndexEntry("group", parent_id=form_id)

        draft = _GroupDraft(
            id=group_id,
            title=get_string_attr(node, "title"),
            validate=get_validate_attr(node) or (),
            report=get_boolean_attr(node, "report"),
        )
        for field_node in _field_nodes(node.children):
            parsed = self._parse_field(field_node)
            if parsed is None:
                continue
            self._add_field(field_node, parsed, group_id)
            draft.children.append(parsed.field)
        self.groups.append(draft)

    def parse_content(self, node: Node, form_id: str) -> None:
        if is_tag_node(node):
            tag = node.tag or ""
            if tag == GROUP_TAG:
                self.parse_group(node, form_id)
                return
            if is_field_tag(node):
                parsed = self._parse_field(node)
                if parsed is not None:
                    self._add_field(node, parsed, form_id)
                    self.ungrouped.append(parsed.field)
                return
            if tag not in _STRUCTURAL_TAGS:
                raise self._error(f"Unknown tag '{tag}' inside form", node)
        for child in node.children:
            self.parse_content(child, form_id)

    def close_groups(self, form_id: str) -> None:
        if not self.ungrouped:
            return
        existing = self._group(IMPLICIT_GROUP_ID)
        if existing is not None:
            existing.children.extend(self.ungrouped)
            return
        self.id_index[IMPLICIT_GROUP_ID] = IdIndexEntry("group", parent_id=form_id)
        self.groups.append(
            _GroupDraft(id=IMPLICIT_GROUP_ID, children=list(self.ungrouped), implicit=True)
        )

    def _group(self, group_id: str) -> _GroupDraft | None:
        return next((group for group in self.groups if group.id == group_id), None)

    # -- implicit checkboxes ----------------------------------------------

    def resolve_implicit_checkboxes(self, form: Node, form_id: str) -> None:
        items = list(_checkbox_items(form))
        if not items:
            return

        fields = [definition for group in self.groups for definition in group.children]
        if fields:
            if not any(definition.kind in CHOOSER_KINDS for definition in fields):
                raise self._error(
                    "Checkboxes found outside of field tags. Either wrap all checkboxes in "
                    "fields or remove all explicit fields for implicit checkboxes mode."
                )
            return

        options: list[Option] = []
        values: dict[str, CheckboxState] = {}
        for item, marker, label in items:
            item_id = item.attributes.get("id")
            if not isinstance(item_id, str) or not item_id:
                raise self._error(
                    f"Option in implicit field '{IMPLICIT_CHECKBOXES_ID}' missing ID "
                    "annotation. Use {% #option_id %}",
                    item,
                    IMPLICIT_CHECKBOXES_ID,
                )
            if item_id in values:
                raise self._error(
                    f"Duplicate option ID '{item_id}' in field '{IMPLICIT_CHECKBOXES_ID}'",
                    item,
                    IMPLICIT_CHECKBOXES_ID,
                )
            state = CHECKBOX_MARKERS[marker]
            try:
                check_marker_states(IMPLICIT_CHECKBOXES_ID, {item_id: state}, CheckboxMode.MULTI)
            except MarkformParseError as exc:
                raise exc.with_location(line=item.line, source=self._source) from exc
            options.append(Option(id=item_id, label=label))
            values[item_id] = state

        implicit_field = CheckboxesField(
            id=IMPLICIT_CHECKBOXES_ID,
            label="Checkboxes",
            priority=self._settings.default_priority,
            role=self._settings.default_role,
            options=tuple(options),
            implicit=True,
        )
        self._register(IMPLICIT_CHECKBOXES_ID, IdIndexEntry("field", parent_id=form_id), None)
        self.order_index.append(IMPLICIT_CHECKBOXES_ID)
        for option in options:
            self._register(
                f"{IMPLICIT_CHECKBOXES_ID}.{option.id}",
                IdIndexEntry("option", parent_id=form_id, field_id=IMPLICIT_CHECKBOXES_ID),
                None,
            )
        self.responses[IMPLICIT_CHECKBOXES_ID] = FieldResponse.answered(CheckboxesValue(values))

        group = self._group(IMPLICIT_GROUP_ID)
        if group is None:
            group = _GroupDraft(id=IMPLICIT_GROUP_ID, implicit=True)
            self.id_index[IMPLICIT_GROUP_ID] = IdIndexEntry("group", parent_id=form_id)
            self.groups.append(group)
        group.children.append(implicit_field)


def _field_nodes(children: tuple[Node, ...]) -> Iterator[Node]:
    for child in children:
        if is_field_tag(child):
            yield child
            continue
        yield from _field_nodes(child.children)


def _checkbox_items(root: Node) -> Iterator[tuple[Node, str, str]]:
    for node in root.walk():
        if node.type != NODE_ITEM:
            continue
        parsed = parse_option_text(collect_text(node).strip())
        if parsed is not None and parsed.marker in CHECKBOX_MARKERS:
            yield node, parsed.marker, parsed.label


def _block_text(node: Node) -> str:
    """Text of a block tag's body; paragraphs keep their line breaks."""

    parts: list[str] = []
    for child in node.children:
        if child.type in (NODE_PARAGRAPH, NODE_HEADING):
            parts.append(collect_text(child))
        elif child.type == NODE_LIST:
            parts.append("\n".join(f"- {collect_text(item)}" for item in child.children))
        else:
            text = collect_text(child)
            if text.strip():
                parts.append(text)
    return "\n\n".join(part.strip() for part in parts if part.strip())


def extract_notes(
    document: Node, id_index: Mapping[str, IdIndexEntry], *, source: str | None = None
) -> tuple[Note, ...]:
    notes: list[Note] = []
    seen: set[str] = set()
    for node in document.walk():
        if not is_tag_node(node, NOTE_TAG):
            continue
        note_id = get_string_attr(node, "id")
        ref = get_string_attr(node, "ref")
        role = get_string_attr(node, "role")
        if not note_id:
            raise MarkformParseError(
                "note missing required 'id' attribute", line=node.line, source=source
            )
        if not ref:
            raise MarkformParseError(
                f"note '{note_id}' missing required 'ref' attribute", line=node.line, source=source
            )
        if not role:
            raise MarkformParseError(
                f"note '{note_id}' missing required 'role' attribute", line=node.line, source=source
            )
        if get_string_attr(node, "state") is not None:
            raise MarkformParseError(
                f"note '{note_id}' has 'state' attribute. Notes do not link to response "
                "state; use the field response reason for skip/abort reasons.",
                line=node.line,
                source=source,
            )
        if ref not in id_index:
            raise MarkformParseError(
                f"note '{note_id}' references unknown ID '{ref}'", line=node.line, source=source
            )
        if note_id in seen:
            raise MarkformParseError(
                f"Duplicate note ID '{note_id}'", line=node.line, source=source
            )
        seen.add(note_id)
        text = "".join(collect_text(child) for child in node.children)
        notes.append(Note(id=note_id, ref=ref, role=role, text=text.strip()))
    return tuple(notes)


def extract_doc_blocks(
    document: Node, id_index: Mapping[str, IdIndexEntry], *, source: str | None = None
) -> tuple[DocumentationBlock, ...]:
    blocks: list[DocumentationBlock] = []
    seen: set[tuple[str, str]] = set()
    for node in document.walk():
        if not is_tag_node(node) or node.tag not in DOC_TAGS:
            continue
        tag = node.tag
        ref = get_string_attr(node, "ref")
        if not ref:
            raise MarkformParseError(
                f"{tag} block missing required 'ref' attribute", line=node.line, source=source
            )
        if ref not in id_index:
            raise MarkformParseError(
                f"{tag} block references unknown ID '{ref}'", line=node.line, source=source
            )
        if (ref, tag) in seen:
            raise MarkformParseError(
                f"Duplicate {tag} block for ref='{ref}'", line=node.line, source=source
            )
        seen.add((ref, tag))
        blocks.append(
            DocumentationBlock(
                tag=tag, ref=ref, body=_block_text(node), report=get_boolean_attr(node, "report")
            )
        )
    return tuple(blocks)


def parse_form(
    text: str,
    settings: ParseSettings | None = None,
    *,
    source: str | None = None,
    logger: Any | None = None,
) -> ParsedForm:
    """Parse markform document ``text``.

    Raises ``MarkformParseError`` for every malformed or contradictory
    declaration; the error carries the source line when one is known.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    active = settings if settings is not None else DEFAULT_SETTINGS

    document = build_tree(text, source=source)
    raw_frontmatter = document.attributes.get("frontmatter")
    frontmatter = parse_frontmatter(
        raw_frontmatter if isinstance(raw_frontmatter, str) else None, source=source
    )

    form_nodes = [node for node in document.walk() if is_tag_node(node, FORM_TAG)]
    if not form_nodes:
        raise MarkformParseError("No form tag found in document", source=source)
    if len(form_nodes) > 1:
        raise MarkformParseError(
            "Multiple form tags found - only one allowed",
            line=form_nodes[1].line,
            source=source,
        )
    form = form_nodes[0]

    form_id = get_string_attr(form, "id")
    if not form_id:
        raise MarkformParseError(
            "form missing required 'id' attribute", line=form.line, source=source
        )

    parser = _FormParser(active, source, log)
    parser.id_index[form_id] = IdIndexEntry("form")
    for child in form.children:
        parser.parse_content(child, form_id)
    parser.close_groups(form_id)
    parser.resolve_implicit_checkboxes(form, form_id)

    description = frontmatter.metadata.description if frontmatter.metadata else None
    schema = FormSchema(
        id=form_id,
        title=get_string_attr(form, "title"),
        description=description,
        groups=tuple(group.freeze() for group in parser.groups),
    )
    notes = extract_notes(document, parser.id_index, source=source)
    docs = extract_doc_blocks(document, parser.id_index, source=source)

    log.debug(
        "form_parsed",
        form_id=form_id,
        source=source,
        groups=len(schema.groups),
        fields=len(parser.order_index),
        notes=len(notes),
    )
    return ParsedForm(
        schema=schema,
        responses_by_field_id=parser.responses,
        notes=notes,
        docs=docs,
        order_index=tuple(parser.order_index),
        id_index=parser.id_index,
        metadata=frontmatter.metadata,
    )


__all__ = [
    "DOC_TAGS",
    "FORM_TAG",
    "GROUP_TAG",
    "NOTE_TAG",
    "Frontmatter",
    "extract_doc_blocks",
    "extract_notes",
    "parse_form",
    "parse_frontmatter",
]
