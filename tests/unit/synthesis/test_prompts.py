from __future__ import annotations

from datetime import UTC, datetime

from ux_autofix.domain.events import ClickEvent, EventType
from ux_autofix.domain.models import FixType, Issue, IssueCategory, IssueSeverity, IssueStatus, Patch
from ux_autofix.guardrails.spec import DEFAULT_GUARDRAILS
from ux_autofix.synthesis.oracle import OracleContext, RepairRequest, SourceFile
from ux_autofix.synthesis.prompts import (
    excerpt_around,
    format_guardrails_for_prompt,
    render_generation_prompt,
    render_repair_prompt,
)

NOW = datetime(2026, 10, 1, 12, tzinfo=UTC)
CONTENT = "\n".join(f"line {index}" for index in range(1, 101)) + "\n"


def _issue() -> Issue:
    return Issue(
        id="issue-3",
        status=IssueStatus.DETECTED,
        severity=IssueSeverity.HIGH,
        category=IssueCategory.CONVERSION_BLOCKER,
        pattern_id="rage_click_hotspot",
        element_key="[data-add-to-cart]",
        component_path="components/store/ProductGrid.tsx",
        component_name="ProductGrid",
        evidence=(
            ClickEvent(
                id="evt-1",
                type=EventType.RAGE_CLICK,
                timestamp=NOW,
                session_id="s1",
                element_key="[data-add-to-cart]",
                element_text="Add to cart",
            ),
        ),
        event_count=21,
        unique_sessions=8,
        problem_statement="Shoppers hammer the add-to-cart button",
        user_intent="Add a product to the cart",
        current_outcome="No visible feedback",
        suggested_fix="Show a loading spinner",
        created_at=NOW,
        last_occurrence=NOW,
    )


def test_excerpt_is_centered_on_anchor() -> None:
    excerpt = excerpt_around(CONTENT, "line 50", radius_lines=3)

    assert excerpt.text.splitlines() == [f"line {index}" for index in range(47, 54)]
    assert excerpt.label == "lines 47-53"
    assert not excerpt.truncated


def test_missing_anchor_uses_file_head() -> None:
    excerpt = excerpt_around(CONTENT, "nowhere", radius_lines=3)

    assert excerpt.label == "lines 1-4"


def test_excerpt_respects_char_budget() -> None:
    excerpt = excerpt_around(CONTENT, "line 50", radius_lines=20, max_chars=40)

    assert excerpt.truncated
    assert len(excerpt.text) <= 40
    assert excerpt.label.endswith(", truncated")


def test_empty_content() -> None:
    excerpt = excerpt_around("", "x")

    assert (excerpt.text, excerpt.first_line, excerpt.last_line) == ("", 0, 0)


def test_guardrail_text_mentions_constraints() -> None:
    text = format_guardrails_for_prompt(DEFAULT_GUARDRAILS)

    assert "SHARP CORNERS ONLY" in text
    assert "Font weights: 500, 600 only" in text
    assert "(only in: hero-cta)" in text


def test_generation_prompt_is_deterministic_and_complete() -> None:
    context = OracleContext(
        issue=_issue(),
        fix_type=FixType.LOADING_STATE,
        guardrails=DEFAULT_GUARDRAILS,
        files=(
            SourceFile("components/store/ProductGrid.tsx", "export function ProductGrid() {}\n"),
            SourceFile("components/ui/Missing.tsx", None),
        ),
    )

    prompt = render_generation_prompt(context)

    assert prompt == render_generation_prompt(context)
    assert "Severity: HIGH (21 occurrences across 8 sessions)" in prompt
    assert "Category: conversion blocker" in prompt
    assert "Fix type: loading_state" in prompt
    assert "export function ProductGrid() {}" in prompt
    assert "(file could not be read)" in prompt
    assert '"text": "Add to cart"' in prompt


def test_repair_prompt_lists_reasons_and_excerpt() -> None:
    patch = Patch(file_path="components/store/ProductGrid.tsx", old_code="line 50", new_code="line fifty")
    request = RepairRequest(
        issue=_issue(),
        patch=patch,
        reasons=("old_code not found in components/store/ProductGrid.tsx",),
        excerpt=excerpt_around(CONTENT, "line 50", radius_lines=2),
        guardrails=DEFAULT_GUARDRAILS,
        round_number=2,
    )

    prompt = render_repair_prompt(request)

    assert "This is repair round 2." in prompt
    assert "- old_code not found in components/store/ProductGrid.tsx" in prompt
    assert "## Current file excerpt (lines 48-52)" in prompt
    assert "line fifty" in prompt
