"""Filling forms: patch application and canonical serialization."""

from markform.fill.patches import (
    ApplyResult,
    ApplyStatus,
    Patch,
    PatchCoercion,
    PatchOp,
    PatchRejection,
    PatchWarning,
    apply_patches,
)
from markform.fill.serialize import serialize_field, serialize_form

__all__ = [
    "ApplyResult",
    "ApplyStatus",
    "Patch",
    "PatchCoercion",
    "PatchOp",
    "PatchRejection",
    "PatchWarning",
    "apply_patches",
    "serialize_field",
    "serialize_form",
]
