"""
ux-autofix — CLI output rendering.

File: src/ux_autofix/ui/render.py
Last updated: 2026-10-18

Purpose
- Provide a thin plain-text rendering layer for CLI output.

What should be included in this file
- CLIRenderer with methods for common output patterns.
- Domain renderers for issues, validation results and pipeline results.

Functional requirements
- Output is deterministic so CLI tests can assert on it.

Non-functional requirements
- No dependencies beyond the standard library.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ux_autofix.control.pipeline import PipelineResult
    from ux_autofix.detection.pattern_detector import IssueSummary
    from ux_autofix.domain.models import Issue


class CLIRenderer:
    """Thin CLI output renderer writing plain text to ``stream``."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def _emit(self, line: str = "") -> None:
        print(line, file=self.stream)

    def heading(self, text: str) -> None:
        self._emit(text)

    def kv(self, key: str, value: object) -> None:
        self._emit(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._emit(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""
        self._emit(f"\n{title}")

    def warning(self, text: str) -> None:
        self._emit(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._emit(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table; nothing is printed for zero rows."""
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
        self._emit(f"  {_pad(list(headers))}")
        self._emit(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._emit(f"  {_pad(list(row))}")

    def next_steps(self, steps: Sequence[str]) -> None:
        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._emit(f"  $ {step}")

    def ok(self, label: str) -> None:
        self._emit(f"  OK  {label}")

    def fail(self, label: str) -> None:
        self._emit(f"  FAIL  {label}")

    # Domain views ------------------------------------------------------------

    def issues(self, issues: Sequence[Issue], *, title: str = "Issues:") -> None:
        if not issues:
            self.text("No issues.")
            return
        rows = [
            (
                issue.id,
                issue.severity.value,
                issue.status.value,
                issue.pattern_id,
                issue.element_key,
                str(issue.event_count),
            )
            for issue in issues
        ]
        self.table(("ID", "SEVERITY", "STATUS", "PATTERN", "KEY", "EVENTS"), rows, title=title)
        if self.verbose:
            for issue in issues:
                self.section(f"{issue.id} ({issue.component_path})")
                self.kv("  Problem", issue.problem_statement)
                self.kv("  Suggested fix", issue.suggested_fix)
                if issue.fix_diagnostic:
                    self.kv("  Diagnostic", issue.fix_diagnostic)

    def summary(self, summary: IssueSummary) -> None:
        self.kv("Total issues", summary.total)
        for severity, count in summary.by_severity.items():
            self.kv(f"  {severity}", count)
        if summary.top_components:
            self.section("Top components:")
            self.items([f"{path} ({count})" for path, count in summary.top_components])

    def pipeline_results(self, results: Sequence[PipelineResult]) -> None:
        for result in results:
            issue = result.issue
            if result.skipped:
                self.text(f"SKIP  {issue.id}: {result.skipped_reason}")
                continue
            label = "OK  " if result.applied else "FAIL"
            detail = f" [{result.error_code}]" if result.error_code else ""
            self.text(f"{label}  {issue.id} {issue.status.value}{detail}")
            if issue.fix_diagnostic and (self.verbose or not result.applied):
                for line in issue.fix_diagnostic.splitlines():
                    self.text(f"      {line}")


def create_renderer(*, verbose: bool = False, stream: TextIO | None = None) -> CLIRenderer:
    return CLIRenderer(verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
