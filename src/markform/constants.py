"""Stable constants shared across the markform engine."""

from __future__ import annotations

from typing import Final

# Schema version for the TOML config contract.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Frontmatter metadata.
DEFAULT_SPEC_VERSION: Final[str] = "MF/0.1"
DEFAULT_ROLES: Final[tuple[str, ...]] = ("user", "agent")

# Reserved ids for implicit structure.
IMPLICIT_GROUP_ID: Final[str] = "default"
IMPLICIT_CHECKBOXES_ID: Final[str] = "checkboxes"

# Table cells: a 4-digit year.
MIN_YEAR: Final[int] = 1000
MAX_YEAR: Final[int] = 9999

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ROLES",
    "DEFAULT_SPEC_VERSION",
    "IMPLICIT_CHECKBOXES_ID",
    "IMPLICIT_GROUP_ID",
    "MAX_YEAR",
    "MIN_YEAR",
]
