from __future__ import annotations

import io
from datetime import UTC, datetime

from ux_autofix.control.pipeline import PipelineResult
from ux_autofix.detection.pattern_detector import IssueSummary
from ux_autofix.domain.models import Issue, IssueCategory, IssueSeverity, IssueStatus
from ux_autofix.ui.render import CLIRenderer, create_renderer

NOW = datetime(2026, 10, 1, 12, tzinfo=UTC)


def _issue(issue_id: str, *, status: IssueStatus = IssueStatus.DETECTED, diagnostic: str | None = None) -> Issue:
    return Issue(
        id=issue_id,
        status=status,
        severity=IssueSeverity.HIGH,
        category=IssueCategory.CONVERSION_BLOCKER,
        pattern_id="rage_click_hotspot",
        element_key="[data-add-to-cart]",
        component_path="components/store/ProductGrid.tsx",
        component_name="ProductGrid",
        evidence=(),
        event_count=21,
        unique_sessions=8,
        problem_statement="Shoppers hammer the button",
        user_intent="Add to cart",
        current_outcome="Nothing happens",
        suggested_fix="Show a spinner",
        created_at=NOW,
        last_occurrence=NOW,
        fix_diagnostic=diagnostic,
    )


def _render(verbose: bool = False) -> tuple[CLIRenderer, io.StringIO]:
    stream = io.StringIO()
    return create_renderer(verbose=verbose, stream=stream), stream


def test_table_pads_columns_and_skips_empty_rows() -> None:
    renderer, stream = _render()

    renderer.table(("ID", "NAME"), [])
    renderer.table(("ID", "NAME"), [("1", "alpha"), ("22", "b")])

    assert stream.getvalue().splitlines() == [
        "  ID  NAME",
        "  --  -----",
        "  1   alpha",
        "  22  b",
    ]


def test_issue_table_and_verbose_details() -> None:
    renderer, stream = _render(verbose=True)

    renderer.issues([_issue("issue-1", diagnostic="old_code not found")])

    output = stream.getvalue()
    assert "issue-1  high      detected  rage_click_hotspot  [data-add-to-cart]  21" in output
    assert "issue-1 (components/store/ProductGrid.tsx)" in output
    assert "  Diagnostic: old_code not found" in output


def test_empty_issue_list() -> None:
    renderer, stream = _render()

    renderer.issues([])

    assert stream.getvalue() == "No issues.\n"


def test_summary_lists_severities_and_components() -> None:
    renderer, stream = _render()

    renderer.summary(
        IssueSummary(
            total=3,
            by_severity={"high": 2, "low": 1},
            by_category={"frustration": 3},
            top_components=(("components/Cart.tsx", 2),),
        )
    )

    lines = stream.getvalue().splitlines()
    assert lines[:3] == ["Total issues: 3", "  high: 2", "  low: 1"]
    assert lines[-1] == "  - components/Cart.tsx (2)"


def test_pipeline_results_show_skip_ok_and_failure() -> None:
    renderer, stream = _render()

    renderer.pipeline_results(
        [
            PipelineResult(issue=_issue("issue-1"), skipped_reason="frustration fixes are cooling down for 60s"),
            PipelineResult(issue=_issue("issue-2", status=IssueStatus.FIX_APPLIED, diagnostic="1 patch")),
            PipelineResult(
                issue=_issue("issue-3", status=IssueStatus.FIX_FAILED, diagnostic="line one\nline two"),
                error_code="validation_rejected",
            ),
        ]
    )

    assert stream.getvalue().splitlines() == [
        "SKIP  issue-1: frustration fixes are cooling down for 60s",
        "OK    issue-2 fix_applied",
        "FAIL  issue-3 fix_failed [validation_rejected]",
        "      line one",
        "      line two",
    ]


def test_next_steps_and_status_lines() -> None:
    renderer, stream = _render()

    renderer.next_steps([])
    renderer.ok("guardrails")
    renderer.fail("syntax")
    renderer.next_steps(["ux-autofix run"])

    assert stream.getvalue().splitlines() == [
        "  OK  guardrails",
        "  FAIL  syntax",
        "",
        "Next steps:",
        "  $ ux-autofix run",
    ]
