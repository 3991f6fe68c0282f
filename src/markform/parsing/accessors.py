"""
markform — attribute and content accessors.

File: src/markform/parsing/accessors.py

Purpose
- Typed getters over a tag node's attribute map, plus extraction of the
  fenced ``value`` block, ID-annotated option items, and embedded table text
  from a node's children.

Functional requirements
- Every getter returns ``None`` when the attribute is absent or has the wrong
  type; none of them raise.
- Booleans are never accepted where a number is requested.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from markform.domain.models import CheckboxState, ValidatorRef
from markform.markup.nodes import (
    NODE_FENCE,
    NODE_ITEM,
    NODE_PARAGRAPH,
    NODE_SOFTBREAK,
    NODE_TAG,
    NODE_TEXT,
    Node,
)

VALUE_FENCE_LANGUAGE: Final[str] = "value"

CHECKBOX_MARKERS: Final[Mapping[str, CheckboxState]] = {
    "[ ]": CheckboxState.TODO,
    "[x]": CheckboxState.DONE,
    "[X]": CheckboxState.DONE,
    "[/]": CheckboxState.INCOMPLETE,
    "[*]": CheckboxState.ACTIVE,
    "[-]": CheckboxState.NA,
    "[y]": CheckboxState.YES,
    "[Y]": CheckboxState.YES,
    "[n]": CheckboxState.NO,
    "[N]": CheckboxState.NO,
}

_OPTION_TEXT_RE: Final[re.Pattern[str]] = re.compile(r"^(\[[^\]]\])\s*(.*?)\s*$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class OptionItem:
    """A list item found under a chooser tag."""

    id: str | None
    text: str


@dataclass(frozen=True, slots=True)
class MarkerText:
    marker: str
    label: str


def is_tag_node(node: Node, name: str | None = None) -> bool:
    if node.type != NODE_TAG or not node.tag:
        return False
    return name is None or node.tag == name


def get_string_attr(node: Node, name: str) -> str | None:
    value = node.attributes.get(name)
    return value if isinstance(value, str) else None


def get_number_attr(node: Node, name: str) -> int | float | None:
    value = node.attributes.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def get_int_attr(node: Node, name: str) -> int | None:
    """Number attribute narrowed to an integer; fractional values are ignored."""

    value = get_number_attr(node, name)
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return value


def get_boolean_attr(node: Node, name: str) -> bool | None:
    value = node.attributes.get(name)
    return value if isinstance(value, bool) else None


def get_string_array_attr(node: Node, name: str) -> tuple[str, ...] | None:
    """A string or list-of-strings attribute; non-string list entries are dropped."""

    value = node.attributes.get(name)
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        strings = tuple(item for item in value if isinstance(item, str))
        return strings or None
    return None


def get_validate_attr(node: Node) -> tuple[ValidatorRef, ...] | None:
    value = node.attributes.get("validate")
    if value is None:
        return None
    if isinstance(value, list):
        return tuple(item for item in value if isinstance(item, (str, Mapping)))
    if isinstance(value, (str, Mapping)):
        return (value,)
    return None


def collect_text(node: Node) -> str:
    """Concatenate text content under ``node``; soft breaks become newlines."""

    if node.type == NODE_TEXT:
        content = node.attributes.get("content")
        return content if isinstance(content, str) else ""
    if node.type == NODE_SOFTBREAK:
        return "\n"
    return "".join(collect_text(child) for child in node.children)


def extract_fence_value(node: Node) -> str | None:
    """Raw text of the first ```value fence among ``node``'s descendants."""

    for child in node.children:
        for candidate in child.walk():
            if candidate.type != NODE_FENCE:
                continue
            if candidate.attributes.get("language") != VALUE_FENCE_LANGUAGE:
                continue
            content = candidate.attributes.get("content")
            return content if isinstance(content, str) else None
    return None


def extract_option_items(node: Node) -> list[OptionItem]:
    items: list[OptionItem] = []

    def _traverse(child: Node) -> None:
        if child.type == NODE_ITEM:
            text = collect_text(child).strip()
            item_id = child.attributes.get("id")
            if text:
                option_id = item_id if isinstance(item_id, str) else None
                items.append(OptionItem(id=option_id, text=text))
            return
        for grandchild in child.children:
            _traverse(grandchild)

    for child in node.children:
        _traverse(child)
    return items


def extract_table_content(node: Node, *, include_fence: bool = True) -> str | None:
    """Pipe-table text under ``node``, one table row per line.

    A ```value fence takes precedence over loose paragraph text unless
    ``include_fence`` is false.
    """

    fence = extract_fence_value(node) if include_fence else None
    if fence is not None and fence.strip():
        return fence.strip()

    lines: list[str] = []

    def _traverse(child: Node) -> None:
        if child.type == NODE_PARAGRAPH:
            for line in collect_text(child).splitlines():
                if line.strip():
                    lines.append(line.strip())
            return
        if child.type == NODE_TEXT:
            text = collect_text(child).strip()
            if text:
                lines.append(text)
            return
        if child.type == NODE_FENCE:
            return
        for grandchild in child.children:
            _traverse(grandchild)

    for child in node.children:
        _traverse(child)

    result = "\n".join(lines).strip()
    return result or None


def parse_option_text(text: str) -> MarkerText | None:
    """Split ``"[x] Label"`` into its marker and label."""

    match = _OPTION_TEXT_RE.match(text)
    if match is None:
        return None
    return MarkerText(marker=match.group(1), label=match.group(2).strip())


__all__ = [
    "CHECKBOX_MARKERS",
    "VALUE_FENCE_LANGUAGE",
    "MarkerText",
    "OptionItem",
    "collect_text",
    "extract_fence_value",
    "extract_option_items",
    "extract_table_content",
    "get_boolean_attr",
    "get_int_attr",
    "get_number_attr",
    "get_string_array_attr",
    "get_string_attr",
    "get_validate_attr",
    "is_tag_node",
    "parse_option_text",
]
