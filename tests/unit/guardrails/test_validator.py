"""
ux-autofix — unit tests for the guardrail validator

File: tests/unit/guardrails/test_validator.py
Last updated: 2026-10-18

Purpose
- Validate that generated fragments are judged against the site style profile.

What this test file should cover
- Forbidden palette classes, font weights, rounded corners and slow transitions.
- Accent colors: rejected outside the hero context, accepted inside it.
- Warnings never block; summaries and per-patch locations.

Functional requirements
- Pure predicate checks over literal code strings.

Non-functional requirements
- Deterministic.
"""

from __future__ import annotations

import pytest

from ux_autofix.domain.models import FixType, Patch
from ux_autofix.guardrails.validator import (
    RoleHints,
    detect_fix_type,
    offending_rules,
    summarize_validation,
    validate,
    validate_patches,
    validate_spinner,
)


@pytest.mark.parametrize(
    ("code", "rule"),
    [
        ('<div className="bg-purple-500 px-4" />', "forbidden-color"),
        ("<p style={{ fontWeight: 700 }}>Sale</p>", "font-weight"),
        ('<p className="font-bold">Sale</p>', "font-weight"),
        ('<div className="rounded-lg" />', "no-border-radius"),
        ('<div style={{ transition: "all 1s ease" }} />', "transition-duration"),
        ('const tint = "#ff00aa";', "unknown-color"),
    ],
)
def test_each_check_reports_its_rule(code: str, rule: str) -> None:
    result = validate(code)

    assert not result.valid
    assert offending_rules(result.violations) == (rule,)


def test_clean_fragment_passes() -> None:
    code = (
        '<div className="bg-white text-gray-700 border border-gray-200" '
        'style={{ fontWeight: 500, transition: "opacity 0.2s ease" }} />'
    )

    result = validate(code)

    assert result.valid
    assert result.violations == ()
    assert summarize_validation(result) == "Fix validated successfully (type: unknown)"


def test_accent_color_rejected_outside_hero() -> None:
    code = '<a style={{ backgroundColor: "#3b82f6" }}>Shop</a>'

    outside = validate(code)
    inside = validate(code, RoleHints(is_hero_context=True))

    assert offending_rules(outside.violations) == ("accent-color",)
    assert inside.valid


def test_accent_palette_class_suppressed_in_hero_only() -> None:
    code = '<a className="bg-blue-500">Shop</a>'

    assert offending_rules(validate(code).violations) == ("forbidden-color",)
    assert validate(code, RoleHints(is_hero_context=True)).valid


def test_warnings_do_not_block() -> None:
    result = validate("<button style={{ fontWeight: 600 }}>Buy</button>", RoleHints(is_button=True))

    assert result.valid
    assert {item.rule for item in result.warnings} == {"button-uppercase", "button-letter-spacing"}
    assert result.errors == ()
    assert summarize_validation(result).splitlines()[:2] == [
        "Fix validation passed (type: unknown)",
        "  0 error(s), 2 warning(s)",
    ]


def test_circular_swatches_allowed_for_color_previews() -> None:
    code = '<span className="ColorSwatch rounded-full" />'

    assert not validate(code).valid
    assert validate(code, RoleHints(allows_circular_swatches=True)).valid


def test_validate_patches_tags_locations() -> None:
    patches = [
        Patch(file_path="components/store/ProductGrid.tsx", old_code="x", new_code='<i className="bg-purple-500" />'),
        Patch(file_path="components/store/Hero.tsx", old_code="y", new_code='<a className="bg-blue-500" />'),
    ]

    result = validate_patches(patches)

    assert not result.valid
    assert [(item.rule, item.location) for item in result.violations] == [
        ("forbidden-color", "components/store/ProductGrid.tsx")
    ]
    assert "File: components/store/ProductGrid.tsx" in summarize_validation(result)


def test_role_hints_from_patch_location() -> None:
    hints = RoleHints.for_patch("components/store/Hero.tsx", "<button>Go</button>")

    assert hints.is_button
    assert hints.is_hero_context
    assert not hints.allows_circular_swatches


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("<Spinner size={16} />", FixType.LOADING_STATE),
        ("openLightbox(index)", FixType.IMAGE_GALLERY),
        ('<input autocomplete="street-address" />', FixType.ADDRESS_AUTOCOMPLETE),
        ("<CompareTable />", FixType.PRODUCT_COMPARISON),
        ("<div>plain</div>", FixType.UNKNOWN),
    ],
)
def test_detect_fix_type(code: str, expected: FixType) -> None:
    assert detect_fix_type(code) is expected


def test_spinner_checks_are_warnings() -> None:
    violations = validate_spinner("<Spinner size={24} />")

    assert {item.rule for item in violations} == {"spinner-size", "spinner-animation"}
    assert not any(item.is_error for item in violations)
    assert validate_spinner('<Spinner size={16} className="animate-spin" />') == []
