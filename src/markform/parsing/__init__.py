"""Field, table, and document parsing."""

from markform.parsing.fields import FIELD_PARSERS, KIND_TAGS, ParsedField, parse_field
from markform.parsing.form import parse_form, parse_frontmatter
from markform.parsing.sentinels import ParsedSentinel, SentinelType, detect_sentinel, parse_sentinel
from markform.parsing.tables import ParsedTable, coerce_cell_value, parse_cell_value, slugify

__all__ = [
    "FIELD_PARSERS",
    "KIND_TAGS",
    "ParsedField",
    "ParsedSentinel",
    "ParsedTable",
    "SentinelType",
    "coerce_cell_value",
    "detect_sentinel",
    "parse_cell_value",
    "parse_field",
    "parse_form",
    "parse_frontmatter",
    "parse_sentinel",
    "slugify",
]
