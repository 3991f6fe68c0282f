"""
markform — unit tests for the scope reference grammar

File: tests/unit/scope/test_scope_refs.py

Purpose
- Pin parsing and serialization of ``field``, ``field.option`` and
  ``field.column[row]`` references.

What this test file should cover
- Each accepted form and the provisional option reading of ``a.b``.
- Rejection of malformed identifiers, negative or non-numeric rows, and
  extra segments; parsing never raises.
- Round-tripping canonical references (property-based).
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from markform.scope.refs import (
    CellRef,
    ColumnRef,
    FieldRef,
    OptionRef,
    is_identifier,
    parse_scope_ref,
    serialize_scope_ref,
)

_IDENTIFIERS = st.from_regex(r"\A[a-z][a-z0-9_]{0,12}\Z")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("name", FieldRef("name")),
        ("  name  ", FieldRef("name")),
        ("colors.red", OptionRef("colors", "red")),
        ("people.full_name", OptionRef("people", "full_name")),
        ("people.age[0]", CellRef("people", "age", 0)),
        ("people.age[12]", CellRef("people", "age", 12)),
    ],
)
def test_parse_scope_ref_accepts_valid_forms(text: str, expected: object) -> None:
    result = parse_scope_ref(text)
    assert result.ok
    assert result.ref == expected
    assert result.error is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "text",
    [
        "Name",
        "1abc",
        "a-b",
        "a.b.c",
        "a.",
        ".b",
        "a.b[-1]",
        "a.b[x]",
        "a.b[]",
        "a[0]",
        "a.b [0]",
    ],
)
def test_parse_scope_ref_rejects_malformed_input(text: str) -> None:
    result = parse_scope_ref(text)
    assert not result.ok
    assert result.ref is None
    assert result.error == f"Invalid scope reference format: {text}"


@pytest.mark.unit
def test_parse_scope_ref_rejects_overlong_row_index() -> None:
    result = parse_scope_ref(f"people.name[{'1' * 5000}]")
    assert not result.ok
    assert result.ref is None
    assert result.error is not None
    assert result.error.startswith("Row index is too large in scope reference: people.name[")


@pytest.mark.unit
def test_parse_scope_ref_rejects_empty_input() -> None:
    assert parse_scope_ref("   ").error == "Empty scope reference"


@pytest.mark.unit
def test_scope_names() -> None:
    assert FieldRef("a").scope == "field"
    assert OptionRef("a", "b").scope == "option"
    assert ColumnRef("a", "b").scope == "column"
    assert CellRef("a", "b", 1).scope == "cell"


@pytest.mark.unit
def test_serialize_column_ref_matches_option_form() -> None:
    assert serialize_scope_ref(ColumnRef("people", "age")) == "people.age"
    assert serialize_scope_ref(CellRef("people", "age", 3)) == "people.age[3]"


@pytest.mark.unit
def test_is_identifier() -> None:
    assert is_identifier("abc_1")
    assert not is_identifier("_abc")
    assert not is_identifier("abc\n")


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(
    field_id=_IDENTIFIERS,
    child_id=_IDENTIFIERS,
    row=st.integers(min_value=0, max_value=10_000),
    shape=st.sampled_from(["field", "option", "cell"]),
)
def test_canonical_refs_round_trip(field_id: str, child_id: str, row: int, shape: str) -> None:
    if shape == "field":
        text = field_id
    elif shape == "option":
        text = f"{field_id}.{child_id}"
    else:
        text = f"{field_id}.{child_id}[{row}]"

    result = parse_scope_ref(text)
    assert result.ok
    assert result.ref is not None
    assert serialize_scope_ref(result.ref) == text


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(text=st.text(max_size=30))
def test_parse_scope_ref_never_raises(text: str) -> None:
    result = parse_scope_ref(text)
    assert result.ok is (result.ref is not None)
    assert result.ok is (result.error is None)
