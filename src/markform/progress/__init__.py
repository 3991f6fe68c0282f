"""Progress summaries and form inspection."""

from markform.progress.inspect import (
    ALL_ROLES,
    InspectIssue,
    InspectResult,
    InspectSeverity,
    IssueReason,
    IssueScope,
    apply_skips,
    determine_scope,
    inspect_form,
)
from markform.progress.summaries import (
    AllSummaries,
    CheckboxProgress,
    FieldProgress,
    ProgressCounts,
    ProgressState,
    ProgressSummary,
    StructureSummary,
    compute_all_summaries,
    compute_field_progress,
    compute_form_state,
    compute_progress_summary,
    compute_structure_summary,
    is_field_submitted,
    is_form_complete,
)

__all__ = [
    "ALL_ROLES",
    "AllSummaries",
    "CheckboxProgress",
    "FieldProgress",
    "InspectIssue",
    "InspectResult",
    "InspectSeverity",
    "IssueReason",
    "IssueScope",
    "ProgressCounts",
    "ProgressState",
    "ProgressSummary",
    "StructureSummary",
    "apply_skips",
    "compute_all_summaries",
    "compute_field_progress",
    "compute_form_state",
    "compute_progress_summary",
    "compute_structure_summary",
    "determine_scope",
    "inspect_form",
    "is_field_submitted",
    "is_form_complete",
]
