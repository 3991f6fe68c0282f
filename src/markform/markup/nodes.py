"""Read-only node shape produced by the markup tree builder."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Final

NODE_DOCUMENT: Final[str] = "document"
NODE_TAG: Final[str] = "tag"
NODE_TEXT: Final[str] = "text"
NODE_SOFTBREAK: Final[str] = "softbreak"
NODE_PARAGRAPH: Final[str] = "paragraph"
NODE_HEADING: Final[str] = "heading"
NODE_FENCE: Final[str] = "fence"
NODE_LIST: Final[str] = "list"
NODE_ITEM: Final[str] = "item"


@dataclass(frozen=True, slots=True)
class Node:
    """Generic markup node.

    ``attributes`` values are strings, numbers, booleans, lists, or objects
    exactly as written in the source. ``line`` is 1-based when known.
    """

    type: str
    attributes: Mapping[str, object] = field(default_factory=dict)
    children: tuple[Node, ...] = ()
    tag: str | None = None
    line: int | None = None

    def walk(self) -> Iterator[Node]:
        """Yield this node and every descendant, depth-first."""

        yield self
        for child in self.children:
            yield from child.walk()


def text_node(content: str, *, line: int | None = None) -> Node:
    return Node(type=NODE_TEXT, attributes={"content": content}, line=line)


def tag_node(
    name: str,
    attributes: Mapping[str, object] | None = None,
    children: tuple[Node, ...] = (),
    *,
    line: int | None = None,
) -> Node:
    return Node(
        type=NODE_TAG,
        attributes=dict(attributes or {}),
        children=children,
        tag=name,
        line=line,
    )


def fence_node(content: str, *, language: str = "value", line: int | None = None) -> Node:
    return Node(
        type=NODE_FENCE,
        attributes={"content": content, "language": language},
        line=line,
    )


def item_node(text: str, *, item_id: str | None = None, line: int | None = None) -> Node:
    attributes: dict[str, object] = {}
    if item_id is not None:
        attributes["id"] = item_id
    return Node(
        type=NODE_ITEM,
        attributes=attributes,
        children=(text_node(text, line=line),),
        line=line,
    )


__all__ = [
    "NODE_DOCUMENT",
    "NODE_FENCE",
    "NODE_HEADING",
    "NODE_ITEM",
    "NODE_LIST",
    "NODE_PARAGRAPH",
    "NODE_SOFTBREAK",
    "NODE_TAG",
    "NODE_TEXT",
    "Node",
    "fence_node",
    "item_node",
    "tag_node",
    "text_node",
]
