"""
markform — unit tests for attribute accessors and text coercion

File: tests/unit/parsing/test_accessors.py

Purpose
- Keep the typed attribute getters and the shared coercion helpers honest.

What this test file should cover
- Getters return ``None`` on absent or mistyped attributes; booleans are not numbers.
- Fence, option-item, and table-content extraction from node children.
- Number, date, year, and URL coercion edge cases.
"""

from __future__ import annotations

from datetime import date

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from markform.domain.models import CheckboxState
from markform.markup.nodes import NODE_PARAGRAPH, Node, fence_node, item_node, tag_node, text_node
from markform.parsing.accessors import (
    CHECKBOX_MARKERS,
    MarkerText,
    OptionItem,
    collect_text,
    extract_fence_value,
    extract_option_items,
    extract_table_content,
    get_boolean_attr,
    get_int_attr,
    get_number_attr,
    get_string_array_attr,
    get_string_attr,
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


@pytest.mark.unit
def test_attribute_getters_are_type_strict() -> None:
    node = tag_node(
        "string-field",
        {"id": "name", "required": True, "min": 3, "ratio": 2.5, "whole": 4.0, "tags": ["a", 1]},
    )
    assert get_string_attr(node, "id") == "name"
    assert get_string_attr(node, "min") is None
    assert get_boolean_attr(node, "required") is True
    assert get_boolean_attr(node, "id") is None
    assert get_number_attr(node, "min") == 3
    assert get_number_attr(node, "required") is None
    assert get_int_attr(node, "whole") == 4
    assert get_int_attr(node, "ratio") is None
    assert get_string_array_attr(node, "tags") == ("a",)
    assert get_string_array_attr(node, "id") == ("name",)
    assert get_string_attr(node, "missing") is None


@pytest.mark.unit
def test_extract_fence_value_ignores_other_languages() -> None:
    node = tag_node(
        "string-field",
        children=(fence_node("print(1)\n", language="python"), fence_node("answer\n")),
    )
    assert extract_fence_value(node) == "answer\n"
    assert extract_fence_value(tag_node("string-field")) is None


@pytest.mark.unit
def test_extract_option_items_keeps_ids_and_skips_blank_items() -> None:
    list_node = Node(
        type="list",
        children=(
            item_node("[ ] Red", item_id="red"),
            item_node("   "),
            item_node("[x] Blue"),
        ),
    )
    node = tag_node("checkboxes", children=(list_node,))
    assert extract_option_items(node) == [
        OptionItem(id="red", text="[ ] Red"),
        OptionItem(id=None, text="[x] Blue"),
    ]


@pytest.mark.unit
def test_extract_table_content_prefers_fence_over_paragraphs() -> None:
    paragraph = Node(type=NODE_PARAGRAPH, children=(text_node("| a |\n|---|\n| 1 |"),))
    assert extract_table_content(tag_node("table-field", children=(paragraph,))) == (
        "| a |\n|---|\n| 1 |"
    )

    fenced = tag_node("table-field", children=(paragraph, fence_node("| b |\n|---|\n")))
    assert extract_table_content(fenced) == "| b |\n|---|"
    assert extract_table_content(fenced, include_fence=False) == "| a |\n|---|\n| 1 |"
    assert extract_table_content(tag_node("table-field")) is None


@pytest.mark.unit
def test_collect_text_joins_soft_breaks() -> None:
    node = Node(
        type=NODE_PARAGRAPH,
        children=(text_node("one"), Node(type="softbreak"), text_node("two")),
    )
    assert collect_text(node) == "one\ntwo"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("[ ] Plain", MarkerText("[ ]", "Plain")),
        ("[x]Tight", MarkerText("[x]", "Tight")),
        ("[*]   Spaced  ", MarkerText("[*]", "Spaced")),
        ("no marker", None),
    ],
)
def test_parse_option_text(text: str, expected: MarkerText | None) -> None:
    assert parse_option_text(text) == expected


@pytest.mark.unit
def test_checkbox_markers_cover_case_variants() -> None:
    assert CHECKBOX_MARKERS["[x]"] is CHECKBOX_MARKERS["[X]"] is CheckboxState.DONE
    assert CHECKBOX_MARKERS["[y]"] is CheckboxState.YES
    assert CHECKBOX_MARKERS["[N]"] is CheckboxState.NO
    assert CHECKBOX_MARKERS["[-]"] is CheckboxState.NA


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "expected"),
    [("42", 42), ("-7", -7), ("3.5", 3.5), (".5", 0.5), ("1e3", 1000.0), (" 12 ", 12)],
)
def test_parse_number_accepts_decimal_literals(text: str, expected: float) -> None:
    parsed = parse_number(text)
    assert parsed == expected
    assert type(parsed) is type(expected)


@pytest.mark.unit
@pytest.mark.parametrize("text", ["", "abc", "1,000", "0x10", "nan", "inf", "1e999", "--1"])
def test_parse_number_rejects_non_numbers(text: str) -> None:
    assert parse_number(text) is None


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(value=st.integers(min_value=-(10**12), max_value=10**12))
def test_parse_number_round_trips_integers(value: int) -> None:
    assert parse_number(str(value)) == value


@pytest.mark.unit
def test_parse_leading_int() -> None:
    assert parse_leading_int("2024 AD") == 2024
    assert parse_leading_int(" -12x") == -12
    assert parse_leading_int("AD 2024") is None


@pytest.mark.unit
def test_parse_decimal_accepts_plain_digits_only() -> None:
    assert parse_decimal("2024") == 2024
    assert parse_decimal(" 7 ") == 7
    assert parse_decimal("-1") is None
    assert parse_decimal("1.0") is None
    assert parse_decimal("") is None


@pytest.mark.unit
def test_overlong_digit_runs_are_rejected_without_raising() -> None:
    digits = "9" * 5000
    assert parse_number(digits) is None
    assert parse_number(f"-{digits}") is None
    assert parse_leading_int(f"{digits} AD") is None
    assert parse_decimal(digits) is None


@pytest.mark.unit
def test_parse_iso_date_requires_real_calendar_date() -> None:
    assert parse_iso_date("2024-02-29") == date(2024, 2, 29)
    assert parse_iso_date("2023-02-29") is None
    assert parse_iso_date("2024-2-9") is None
    assert parse_iso_date("20240229") is None


@pytest.mark.unit
def test_is_valid_year_bounds_and_types() -> None:
    assert is_valid_year(1000)
    assert is_valid_year(9999)
    assert not is_valid_year(999)
    assert not is_valid_year(10000)
    assert not is_valid_year(True)
    assert not is_valid_year(2024.0)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("https://example.com/x", True),
        ("http://localhost:8080", True),
        ("ftp://files.example.org", True),
        ("mailto:someone@example.com", True),
        ("file:///tmp/report.md", True),
        ("example.com", False),
        ("javascript:alert(1)", False),
        ("https://", False),
    ],
)
def test_is_valid_url(text: str, expected: bool) -> None:
    assert is_valid_url(text) is expected
