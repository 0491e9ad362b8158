"""
ux-autofix — oracle prompt rendering

File: src/ux_autofix/synthesis/prompts.py
Last updated: 2026-10-18

Purpose
- Render the generation and repair prompts sent to the code-generation oracle.

What should be included in this file
- Guardrail constraints rendered as prompt text.
- Bounded source excerpts around a patch target.
- Strict jinja2 rendering of the bundled templates.

Functional requirements
- Rendering is deterministic for the same inputs; a missing variable is an error.
- Excerpts never exceed the configured line radius or character budget.

Non-functional requirements
- Templates ship as package data next to this module.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ux_autofix.constants import DEFAULT_EXCERPT_CHARS, DEFAULT_EXCERPT_LINES

if TYPE_CHECKING:
    from ux_autofix.guardrails.spec import GuardrailSpec
    from ux_autofix.synthesis.oracle import OracleContext, RepairRequest

SAMPLE_EVENTS_IN_PROMPT = 3
_TEMPLATE_DIR = Path(__file__).resolve().with_name("templates")


@dataclass(frozen=True, slots=True)
class Excerpt:
    text: str
    first_line: int
    last_line: int
    truncated: bool

    @property
    def label(self) -> str:
        suffix = ", truncated" if self.truncated else ""
        return f"lines {self.first_line}-{self.last_line}{suffix}"


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def format_guardrails_for_prompt(spec: GuardrailSpec) -> str:
    colors, typography, spacing = spec.colors, spec.typography, spec.spacing
    if spacing.border_radius_allowed == (0,):
        radius = "SHARP CORNERS ONLY (no rounded corners)"
    else:
        radius = "allowed values: " + ", ".join(f"{value}px" for value in spacing.border_radius_allowed)
    accents = ", ".join(colors.accents) or "none"
    contexts = ", ".join(colors.accent_contexts) or "nowhere"
    lines = [
        "## Site-specific design constraints",
        "",
        "### Color palette",
        f"- Allowed backgrounds: {', '.join(colors.backgrounds)}",
        f"- Allowed text colors: {', '.join(colors.text)}",
        f"- Allowed border colors: {', '.join(colors.borders)}",
        f"- Accent colors (use sparingly): {accents} (only in: {contexts})",
        "",
        "### Typography",
        f"- Font weights: {', '.join(str(weight) for weight in typography.allowed_weights)} only",
        f"- Button font size: {typography.button_font_size_range[0]}px to "
        f"{typography.button_font_size_range[1]}px",
        "- Buttons MUST use: "
        + ("uppercase text-transform" if typography.require_uppercase else "normal case"),
        f"- Letter spacing: {typography.letter_spacing}",
        "",
        "### Spacing and shape",
        f"- Border radius: {radius}",
        f"- Button padding: {spacing.padding_h[0]}-{spacing.padding_h[1]}px horizontal, "
        f"{spacing.padding_v[0]}-{spacing.padding_v[1]}px vertical",
        f"- Minimum tap target: {spacing.min_tap_target}px",
        "",
        "### Animations",
        f"- Max transition duration: {spec.animation.max_duration}",
        f"- Allowed easings: {', '.join(spec.animation.allowed_easings)}",
        "",
        "### Component patterns",
        f"- Button patterns: {', '.join(spec.components.button_patterns) or 'none'}",
        f"- Loading spinner size: {spec.components.loading_spinner_size}px",
        "",
        "**CRITICAL**: generated code that violates these constraints will be rejected.",
    ]
    return "\n".join(lines)


def excerpt_around(
    content: str,
    anchor: str,
    *,
    radius_lines: int = DEFAULT_EXCERPT_LINES,
    max_chars: int = DEFAULT_EXCERPT_CHARS,
) -> Excerpt:
    """Lines around the first occurrence of ``anchor`` (file head when absent)."""
    lines = content.splitlines()
    if not lines:
        return Excerpt(text="", first_line=0, last_line=0, truncated=False)

    offset = content.find(anchor) if anchor else -1
    if offset >= 0:
        anchor_start = content.count("\n", 0, offset)
        anchor_end = anchor_start + anchor.count("\n")
    else:
        anchor_start = anchor_end = 0

    first = max(0, anchor_start - radius_lines)
    last = min(len(lines) - 1, anchor_end + radius_lines)
    text = "\n".join(lines[first : last + 1])
    truncated = False
    if len(text) > max_chars:
        truncated = True
        # Keep the window centered on the anchor's position within the slice.
        focus = len("\n".join(lines[first:anchor_start]))
        start = max(0, min(focus - max_chars // 4, len(text) - max_chars))
        text = text[start : start + max_chars]
        first += _line_at(lines[first : last + 1], start)
        last = first + text.count("\n")
    return Excerpt(text=text, first_line=first + 1, last_line=last + 1, truncated=truncated)


def _line_at(lines: list[str], char_offset: int) -> int:
    """Index of the line containing ``char_offset`` in ``"\\n".join(lines)``."""
    consumed = 0
    for index, line in enumerate(lines):
        consumed += len(line) + 1
        if consumed > char_offset:
            return index
    return max(0, len(lines) - 1)


def render_generation_prompt(context: OracleContext) -> str:
    issue = context.issue
    samples = [
        {
            "type": str(event.type),
            "selector": event.element_key,
            "text": (event.element_text or "")[:50] or None,
        }
        for event in issue.evidence[:SAMPLE_EVENTS_IN_PROMPT]
    ]
    template = _environment().get_template("generate.md.j2")
    return template.render(
        issue=issue,
        fix_type=context.fix_type,
        sample_events=json.dumps(samples, indent=2),
        guardrails=format_guardrails_for_prompt(context.guardrails),
        files=context.files,
    )


def render_repair_prompt(request: RepairRequest) -> str:
    template = _environment().get_template("repair.md.j2")
    return template.render(
        issue=request.issue,
        round_number=request.round_number,
        reasons=request.reasons,
        patch=request.patch,
        excerpt=request.excerpt.text,
        excerpt_label=request.excerpt.label,
        guardrails=format_guardrails_for_prompt(request.guardrails),
    )


__all__ = [
    "Excerpt",
    "excerpt_around",
    "format_guardrails_for_prompt",
    "render_generation_prompt",
    "render_repair_prompt",
]
