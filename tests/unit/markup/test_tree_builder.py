"""
markform — unit tests for the markup tree builder

File: tests/unit/markup/test_tree_builder.py

Purpose
- Pin the node tree shape the field parsers rely on.

What this test file should cover
- Frontmatter capture, nested tags, self-closing tags, fences, list-item IDs.
- Attribute value typing (JSON strings, arrays, numbers, booleans, bare words).
- HTML-comment directive rewriting.
- Unbalanced tags raising parse errors with source lines.
"""

from __future__ import annotations

import pytest

from markform.errors import MarkformParseError
from markform.markup.nodes import (
    NODE_DOCUMENT,
    NODE_FENCE,
    NODE_HEADING,
    NODE_ITEM,
    NODE_LIST,
    NODE_PARAGRAPH,
    NODE_TAG,
    Node,
)
from markform.markup.tree_builder import build_tree, parse_attributes, rewrite_comment_directives
from markform.parsing.accessors import collect_text


def _tags(root: Node, name: str) -> list[Node]:
    return [node for node in root.walk() if node.type == NODE_TAG and node.tag == name]


@pytest.mark.unit
def test_frontmatter_is_kept_as_raw_text() -> None:
    tree = build_tree("---\nmarkform:\n  spec: MF/0.1\n---\n# Title\n")
    assert tree.type == NODE_DOCUMENT
    assert tree.attributes["frontmatter"] == "markform:\n  spec: MF/0.1"
    assert tree.children[0].type == NODE_HEADING
    assert tree.children[0].line == 5


@pytest.mark.unit
def test_unterminated_frontmatter_is_body_text() -> None:
    tree = build_tree("---\ntitle: x\n")
    assert "frontmatter" not in tree.attributes


@pytest.mark.unit
def test_nested_tags_fences_and_items() -> None:
    text = "\n".join(
        [
            '{% form id="f" %}',
            '{% group id="g" title="Basics" %}',
            '{% string-field id="name" label="Name" required=true %}',
            "```value",
            "Ada",
            "```",
            "{% /string-field %}",
            '{% checkboxes id="tasks" label="Tasks" %}',
            "- [ ] Plan {% #plan %}",
            "- [x] Build {% #build %}",
            "{% /checkboxes %}",
            "{% /group %}",
            "{% /form %}",
        ]
    )
    tree = build_tree(text)

    (form,) = _tags(tree, "form")
    (group,) = _tags(form, "group")
    assert group.attributes == {"id": "g", "title": "Basics"}
    assert group.line == 2

    (field,) = _tags(group, "string-field")
    assert field.attributes["required"] is True
    (fence,) = [node for node in field.walk() if node.type == NODE_FENCE]
    assert fence.attributes == {"content": "Ada\n", "language": "value"}

    (checkboxes,) = _tags(group, "checkboxes")
    (options,) = [node for node in checkboxes.children if node.type == NODE_LIST]
    assert [item.type for item in options.children] == [NODE_ITEM, NODE_ITEM]
    assert [item.attributes.get("id") for item in options.children] == ["plan", "build"]
    assert [collect_text(item) for item in options.children] == ["[ ] Plan", "[x] Build"]


@pytest.mark.unit
def test_self_closing_tag_and_inline_text() -> None:
    tree = build_tree('Intro {% note id="n1" ref="f" role="agent" /%} trailing')
    (note,) = _tags(tree, "note")
    assert note.children == ()
    paragraphs = [collect_text(node) for node in tree.children if node.type == NODE_PARAGRAPH]
    assert paragraphs == ["Intro", "trailing"]


@pytest.mark.unit
def test_paragraph_lines_are_joined_with_soft_breaks() -> None:
    tree = build_tree("first line\nsecond line\n\nnext paragraph")
    texts = [collect_text(node) for node in tree.children]
    assert texts == ["first line\nsecond line", "next paragraph"]


@pytest.mark.unit
def test_tilde_fence_and_unclosed_fence() -> None:
    tree = build_tree("~~~value\n%SKIP%\n~~~\n```value\nopen to eof\n")
    fences = [node for node in tree.children if node.type == NODE_FENCE]
    assert [fence.attributes["content"] for fence in fences] == ["%SKIP%\n", "open to eof\n"]


@pytest.mark.unit
def test_tags_inside_fences_are_not_parsed() -> None:
    tree = build_tree("```value\n{% form %}\n```\n")
    assert _tags(tree, "form") == []


@pytest.mark.unit
def test_comment_directives_become_tags() -> None:
    assert rewrite_comment_directives('<!-- f:form id="x" -->') == '{% form id="x" %}'
    assert rewrite_comment_directives("<!-- /f:form -->") == "{% /form %}"
    assert rewrite_comment_directives('<!-- f:note id="n" /-->') == '{% note id="n" /%}'
    assert rewrite_comment_directives("- [ ] A <!-- #a -->") == "- [ ] A {% #a %}"
    assert rewrite_comment_directives("<!-- plain comment -->") == "<!-- plain comment -->"


@pytest.mark.unit
def test_comment_syntax_builds_the_same_tree() -> None:
    tree = build_tree(
        '<!-- f:form id="f" -->\n<!-- f:single-select id="c" label="C" -->\n'
        "- [x] Red <!-- #red -->\n<!-- /f:single-select -->\n<!-- /f:form -->\n"
    )
    (select,) = _tags(tree, "single-select")
    (options,) = [node for node in select.children if node.type == NODE_LIST]
    assert options.children[0].attributes == {"id": "red"}


@pytest.mark.unit
def test_parse_attributes_keeps_written_types() -> None:
    attributes = parse_attributes(
        'id="x" label=\'It\\\'s\' min=1 max=2.5 required=false placeholder=null '
        'options=["a", "b"] cfg={"k": [1, 2]} mode=simple'
    )
    assert attributes == {
        "id": "x",
        "label": "It's",
        "min": 1,
        "max": 2.5,
        "required": False,
        "placeholder": None,
        "options": ["a", "b"],
        "cfg": {"k": [1, 2]},
        "mode": "simple",
    }


@pytest.mark.unit
def test_bare_values_past_float_range_stay_text() -> None:
    digits = "9" * 5000
    attributes = parse_attributes(f"max={digits} min=1e999 step=inf")
    assert attributes == {"max": digits, "min": "1e999", "step": "inf"}


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ('id="x', "Unterminated string"),
        ("ids=[1, 2", "Unbalanced brackets"),
        ("id=", "Missing attribute value"),
        ("=x", "Malformed tag attributes"),
        ('cfg={"k": }', "Invalid attribute value"),
        pytest.param(f"ids=[{'1' * 5000}]", "Invalid attribute value", id="overlong-int"),
    ],
)
def test_parse_attributes_errors(raw: str, message: str) -> None:
    with pytest.raises(MarkformParseError, match=message):
        parse_attributes(raw, line=3)


@pytest.mark.unit
def test_unexpected_closing_tag() -> None:
    with pytest.raises(MarkformParseError, match="Unexpected closing tag 'form'") as exc_info:
        build_tree("text\n{% /form %}", source="doc.md")
    assert exc_info.value.line == 2
    assert str(exc_info.value).startswith("doc.md:2 ")


@pytest.mark.unit
def test_mismatched_closing_tag() -> None:
    with pytest.raises(MarkformParseError, match="does not match open tag 'group' from line 2"):
        build_tree('{% form id="f" %}\n{% group id="g" %}\n{% /form %}')


@pytest.mark.unit
def test_unclosed_tag_reports_opening_line() -> None:
    with pytest.raises(MarkformParseError, match="Tag 'form' is never closed") as exc_info:
        build_tree('\n\n{% form id="f" %}\ncontent')
    assert exc_info.value.line == 3
