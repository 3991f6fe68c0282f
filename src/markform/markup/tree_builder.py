"""
markform — markup tree builder

File: src/markform/markup/tree_builder.py

Purpose
- Turn a Markdown document with embedded ``{% tag %}`` directives into the
  generic node tree consumed by the field parsers.

What should be included in this file
- YAML frontmatter extraction (raw text only; interpretation happens in the
  form parser).
- HTML-comment directive syntax (``<!-- f:tag -->``, ``<!-- #id -->``)
  rewritten to tag syntax before scanning.
- Fenced code blocks (backtick and tilde), list items with ID annotations,
  paragraphs with soft breaks, headings, and nested tags.

Functional requirements
- Tag attribute values keep their written types: quoted strings, numbers,
  booleans, null, and JSON arrays/objects.
- Unbalanced tags fail with a parse error carrying the source line.

Non-functional requirements
- Deterministic single pass over the input lines.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Final

from markform.errors import MarkformParseError
from markform.markup.nodes import (
    NODE_DOCUMENT,
    NODE_FENCE,
    NODE_HEADING,
    NODE_LIST,
    NODE_PARAGRAPH,
    NODE_SOFTBREAK,
    Node,
    item_node,
    tag_node,
    text_node,
)

_FRONTMATTER_DELIM_RE: Final[re.Pattern[str]] = re.compile(r"^---\s*$")
_FENCE_START_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<indent>[ ]{0,3})(?P<marker>`{3,}|~{3,})\s*(?P<info>[^`\s]*)[^`]*$"
)
_FENCE_CLOSE_RE: Final[re.Pattern[str]] = re.compile(r"^[ ]{0,3}(?P<marker>`{3,}|~{3,})\s*$")
_COMMENT_DIRECTIVE_RE: Final[re.Pattern[str]] = re.compile(
    r"<!--\s*(?P<body>(?:/f:|f:|[#.][A-Za-z_])(?:(?!-->).)*?)\s*-->"
)
_TAG_RE: Final[re.Pattern[str]] = re.compile(
    r"\{%\s*(?P<close>/)?(?P<name>[A-Za-z][\w-]*)(?P<attrs>(?:[^%]|%(?!\}))*?)\s*(?P<self>/)?%\}"
)
_ANNOTATION_RE: Final[re.Pattern[str]] = re.compile(
    r"\{%\s*(?P<kind>[#.])(?P<value>[A-Za-z_][\w-]*)\s*%\}"
)
_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^\s{0,3}#{1,6}\s+(?P<text>.*?)\s*#*\s*$")
_LIST_ITEM_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:[-*+]|\d+[.)])\s+(?P<text>.*)$"
)
_ATTR_NAME_RE: Final[re.Pattern[str]] = re.compile(r"(?P<name>[A-Za-z_][\w-]*)\s*=\s*")

_BARE_LITERALS: Final[dict[str, object]] = {"true": True, "false": False, "null": None}


@dataclass(slots=True)
class _OpenTag:
    name: str
    attributes: dict[str, object]
    line: int
    children: list[Node] = field(default_factory=list)


@dataclass(slots=True)
class _FenceState:
    marker_char: str
    marker_length: int
    language: str
    line: int
    lines: list[str] = field(default_factory=list)


class _TreeBuilder:
    """Line scanner that assembles blocks into the current open container."""

    def __init__(self, source: str | None) -> None:
        self._source = source
        self._root: list[Node] = []
        self._stack: list[_OpenTag] = []
        self._paragraph: list[tuple[int, str]] = []
        self._items: list[Node] = []
        self._items_line: int | None = None

    # -- containers -------------------------------------------------------

    def _container(self) -> list[Node]:
        return self._stack[-1].children if self._stack else self._root

    def _flush_paragraph(self) -> None:
        if not self._paragraph:
            return
        children: list[Node] = []
        for index, (line_no, text) in enumerate(self._paragraph):
            if index:
                children.append(Node(type=NODE_SOFTBREAK, line=line_no))
            children.append(text_node(text, line=line_no))
        self._container().append(
            Node(type=NODE_PARAGRAPH, children=tuple(children), line=self._paragraph[0][0])
        )
        self._paragraph = []

    def _flush_list(self) -> None:
        if not self._items:
            return
        self._container().append(
            Node(type=NODE_LIST, children=tuple(self._items), line=self._items_line)
        )
        self._items = []
        self._items_line = None

    def _flush(self) -> None:
        self._flush_paragraph()
        self._flush_list()

    # -- line handlers ----------------------------------------------------

    def add_fence(self, fence: _FenceState) -> None:
        self._flush()
        content = "\n".join(fence.lines) + "\n" if fence.lines else ""
        self._container().append(
            Node(
                type=NODE_FENCE,
                attributes={"content": content, "language": fence.language},
                line=fence.line,
            )
        )

    def add_line(self, line_no: int, text: str) -> None:
        if not text.strip():
            self._flush()
            return

        if _TAG_RE.search(text):
            self._add_tag_line(line_no, text)
            return

        item_match = _LIST_ITEM_RE.match(text)
        if item_match is not None:
            self._flush_paragraph()
            item_text, item_id = _split_annotation(item_match.group("text"))
            if self._items_line is None:
                self._items_line = line_no
            self._items.append(item_node(item_text, item_id=item_id, line=line_no))
            return

        heading_match = _HEADING_RE.match(text)
        if heading_match is not None:
            self._flush()
            heading_text, _ = _split_annotation(heading_match.group("text"))
            self._container().append(
                Node(
                    type=NODE_HEADING,
                    children=(text_node(heading_text, line=line_no),),
                    line=line_no,
                )
            )
            return

        self._flush_list()
        stripped, _ = _split_annotation(text.strip())
        self._paragraph.append((line_no, stripped))

    def _add_tag_line(self, line_no: int, text: str) -> None:
        self._flush()
        cursor = 0
        for match in _TAG_RE.finditer(text):
            self._add_inline_text(line_no, text[cursor : match.start()])
            cursor = match.end()
            name = match.group("name")
            if match.group("close"):
                self._close_tag(name, line_no)
                continue
            attributes = parse_attributes(match.group("attrs"), line=line_no, source=self._source)
            if match.group("self"):
                self._container().append(tag_node(name, attributes, line=line_no))
            else:
                self._stack.append(_OpenTag(name=name, attributes=attributes, line=line_no))
        self._add_inline_text(line_no, text[cursor:])

    def _add_inline_text(self, line_no: int, segment: str) -> None:
        stripped, _ = _split_annotation(segment.strip())
        if stripped:
            paragraph = Node(
                type=NODE_PARAGRAPH,
                children=(text_node(stripped, line=line_no),),
                line=line_no,
            )
            self._container().append(paragraph)

    def _close_tag(self, name: str, line_no: int) -> None:
        if not self._stack:
            raise MarkformParseError(
                f"Unexpected closing tag '{name}' with no open tag",
                line=line_no,
                source=self._source,
            )
        open_tag = self._stack.pop()
        if open_tag.name != name:
            raise MarkformParseError(
                f"Closing tag '{name}' does not match open tag '{open_tag.name}' "
                f"from line {open_tag.line}",
                line=line_no,
                source=self._source,
            )
        self._container().append(
            tag_node(
                open_tag.name,
                open_tag.attributes,
                tuple(open_tag.children),
                line=open_tag.line,
            )
        )

    def finish(self) -> tuple[Node, ...]:
        self._flush()
        if self._stack:
            open_tag = self._stack[-1]
            raise MarkformParseError(
                f"Tag '{open_tag.name}' is never closed",
                line=open_tag.line,
                source=self._source,
            )
        return tuple(self._root)


def build_tree(text: str, *, source: str | None = None) -> Node:
    """Build the document node tree for ``text``."""

    lines = text.splitlines()
    frontmatter, body_start = _split_frontmatter(lines)
    builder = _TreeBuilder(source)

    fence: _FenceState | None = None
    for index in range(body_start, len(lines)):
        line_no = index + 1
        raw_line = lines[index]

        if fence is not None:
            close_match = _FENCE_CLOSE_RE.match(raw_line)
            if (
                close_match is not None
                and close_match.group("marker")[0] == fence.marker_char
                and len(close_match.group("marker")) >= fence.marker_length
            ):
                builder.add_fence(fence)
                fence = None
            else:
                fence.lines.append(raw_line)
            continue

        start_match = _FENCE_START_RE.match(raw_line)
        if start_match is not None:
            marker = start_match.group("marker")
            fence = _FenceState(
                marker_char=marker[0],
                marker_length=len(marker),
                language=start_match.group("info"),
                line=line_no,
            )
            continue

        builder.add_line(line_no, rewrite_comment_directives(raw_line))

    # An unclosed fence extends to EOF.
    if fence is not None:
        builder.add_fence(fence)

    attributes: dict[str, object] = {}
    if frontmatter is not None:
        attributes["frontmatter"] = frontmatter
    return Node(type=NODE_DOCUMENT, attributes=attributes, children=builder.finish(), line=1)


def rewrite_comment_directives(line: str) -> str:
    """Rewrite ``<!-- f:tag -->`` style directives to ``{% tag %}`` syntax."""

    def _replace(match: re.Match[str]) -> str:
        body = match.group("body").strip()
        if body.startswith("/f:"):
            return "{% /" + body[3:].strip() + " %}"
        if body.startswith("f:"):
            inner = body[2:].strip()
            if inner.endswith("/"):
                return "{% " + inner[:-1].rstrip() + " /%}"
            return "{% " + inner + " %}"
        return "{% " + body + " %}"

    return _COMMENT_DIRECTIVE_RE.sub(_replace, line)


def parse_attributes(
    raw: str, *, line: int | None = None, source: str | None = None
) -> dict[str, object]:
    """Parse ``name=value`` pairs from a tag's attribute text."""

    attributes: dict[str, object] = {}
    text = raw.strip()
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue
        match = _ATTR_NAME_RE.match(text, pos)
        if match is None:
            raise MarkformParseError(
                f"Malformed tag attributes near {text[pos : pos + 24]!r}",
                line=line,
                source=source,
            )
        value, pos = _read_value(text, match.end(), line=line, source=source)
        attributes[match.group("name")] = value
    return attributes


def _read_value(
    text: str, start: int, *, line: int | None, source: str | None
) -> tuple[object, int]:
    if start >= len(text):
        raise MarkformParseError("Missing attribute value", line=line, source=source)

    opener = text[start]
    if opener in "\"'":
        end = _scan_quoted(text, start)
        if end < 0:
            raise MarkformParseError("Unterminated string attribute", line=line, source=source)
        literal = text[start : end + 1]
        if opener == '"':
            return _load_json(literal, line=line, source=source), end + 1
        return literal[1:-1].replace("\\'", "'"), end + 1

    if opener in "[{":
        end = _scan_balanced(text, start)
        if end < 0:
            raise MarkformParseError(
                "Unbalanced brackets in attribute value", line=line, source=source
            )
        return _load_json(text[start : end + 1], line=line, source=source), end + 1

    end = start
    while end < len(text) and not text[end].isspace():
        end += 1
    token = text[start:end]
    if token in _BARE_LITERALS:
        return _BARE_LITERALS[token], end
    try:
        return int(token), end
    except ValueError:
        pass
    try:
        number = float(token)
    except ValueError:
        return token, end
    # overlong digit runs overflow to inf; keep them as written
    return (number if math.isfinite(number) else token), end


def _scan_quoted(text: str, start: int) -> int:
    quote = text[start]
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index
        index += 1
    return -1


def _scan_balanced(text: str, start: int) -> int:
    depth = 0
    index = start
    while index < len(text):
        char = text[index]
        if char in "\"'":
            closing = _scan_quoted(text, index)
            if closing < 0:
                return -1
            index = closing + 1
            continue
        if char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def _load_json(literal: str, *, line: int | None, source: str | None) -> object:
    try:
        return json.loads(literal)
    except json.JSONDecodeError as exc:
        raise MarkformParseError(
            f"Invalid attribute value {literal!r}: {exc.msg}", line=line, source=source
        ) from exc
    except ValueError as exc:
        raise MarkformParseError(
            f"Invalid attribute value: {exc}", line=line, source=source
        ) from exc


def _split_annotation(text: str) -> tuple[str, str | None]:
    item_id: str | None = None
    for match in _ANNOTATION_RE.finditer(text):
        if match.group("kind") == "#" and item_id is None:
            item_id = match.group("value")
    return _ANNOTATION_RE.sub("", text).strip(), item_id


def _split_frontmatter(lines: list[str]) -> tuple[str | None, int]:
    if not lines or not _FRONTMATTER_DELIM_RE.match(lines[0]):
        return None, 0
    for index in range(1, len(lines)):
        if _FRONTMATTER_DELIM_RE.match(lines[index]):
            return "\n".join(lines[1:index]), index + 1
    return None, 0


__all__ = ["build_tree", "parse_attributes", "rewrite_comment_directives"]
