"""Markup node tree and the ``{% tag %}`` document tree builder."""

from markform.markup.nodes import Node
from markform.markup.tree_builder import build_tree, parse_attributes

__all__ = ["Node", "build_tree", "parse_attributes"]
