"""Output rendering for the markform CLI.

File: src/markform/ui/render.py

Purpose
- Provide a thin plain-text rendering layer for CLI output.
- Format inspection results, validation issues, and progress counts.

Functional requirements
- Plain-text rendering must always work without external dependencies.
- Output is deterministic for identical inputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from markform.domain.models import ValidationIssue
    from markform.progress.inspect import InspectIssue, InspectResult
    from markform.progress.summaries import ProgressCounts


class CLIRenderer:
    """Thin CLI output renderer producing deterministic plain text."""

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    def heading(self, text: str) -> None:
        print(text)

    def kv(self, key: str, value: object) -> None:
        print(f"{key}: {value}")

    def text(self, line: str) -> None:
        print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        print(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        print(f"  {_pad(list(headers))}")
        print(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            print(f"  {_pad(list(row))}")

    def ok(self, label: str) -> None:
        print(f"  OK  {label}")

    def fail(self, label: str) -> None:
        print(f"  FAIL  {label}")

    # -- markform views -------------------------------------------------------

    def counts(self, counts: ProgressCounts) -> None:
        self.section("Progress:")
        self.items(
            [
                f"fields: {counts.total} ({counts.required} required)",
                f"complete: {counts.complete}, incomplete: {counts.incomplete}, "
                f"invalid: {counts.invalid}",
                f"empty: {counts.empty_required} required, {counts.empty_optional} optional",
                f"answered: {counts.answered}, skipped: {counts.skipped}, "
                f"aborted: {counts.aborted}, unanswered: {counts.unanswered}",
            ]
        )

    def inspect_issues(self, issues: Sequence[InspectIssue]) -> None:
        if not issues:
            self.section("Issues: none")
            return
        self.table(
            ("P", "SEVERITY", "REF", "REASON", "MESSAGE"),
            [
                (str(issue.priority), issue.severity, issue.ref, issue.reason, issue.message)
                for issue in issues
            ],
            title=f"Issues ({len(issues)}):",
        )

    def validation_issues(self, issues: Sequence[ValidationIssue]) -> None:
        for issue in issues:
            print(f"  {issue.severity}  {issue.ref}  [{issue.code}] {issue.message}")

    def inspection(self, form_id: str, result: InspectResult) -> None:
        self.heading(f"Form: {form_id}")
        self.kv("State", result.form_state)
        self.kv("Complete", "yes" if result.is_complete else "no")
        self.counts(result.progress.counts)
        if self.verbose:
            rows = [
                (field_id, progress.kind, progress.answer_state, progress.state)
                for field_id, progress in result.progress.fields.items()
            ]
            self.table(("FIELD", "KIND", "RESPONSE", "STATE"), rows, title="Fields:")
        self.inspect_issues(result.issues)


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
