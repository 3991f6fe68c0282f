"""
markform — package root

File: src/markform/__init__.py

Purpose
- Package root. Exposes the small public API for parsing, validating, and
  inspecting forms embedded in Markdown documents.

What should be included in this file
- Version export and the handful of entrypoints most callers need (parse,
  inspect, validate, apply patches, serialize).
- Import boundary rules: no config loading or logging setup at import time.

Functional requirements
- Must not have side effects at import time.
"""

from __future__ import annotations

from markform.config.schema import DEFAULT_SETTINGS, ParseSettings
from markform.errors import MarkformError, MarkformParseError
from markform.fill.patches import Patch, apply_patches
from markform.fill.serialize import serialize_form
from markform.parsing.fields import parse_field
from markform.parsing.form import parse_form
from markform.progress.inspect import inspect_form
from markform.scope.refs import parse_scope_ref, serialize_scope_ref
from markform.scope.validation import validate_scope_ref
from markform.validation.fields import validate_form

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_SETTINGS",
    "MarkformError",
    "MarkformParseError",
    "ParseSettings",
    "Patch",
    "__version__",
    "apply_patches",
    "inspect_form",
    "parse_field",
    "parse_form",
    "parse_scope_ref",
    "serialize_form",
    "serialize_scope_ref",
    "validate_form",
    "validate_scope_ref",
]
