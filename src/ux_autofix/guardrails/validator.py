"""
ux-autofix — guardrail validator

File: src/ux_autofix/guardrails/validator.py
Last updated: 2026-10-18

Purpose
- Decide whether a generated code fragment respects the site style profile.

What should be included in this file
- Independent, cumulative checks driven by ``GuardrailSpec`` tables: palette classes,
  inline/CSS colors, stray hex tokens, font weights, button sizing and affordance,
  corner radii, transitions.
- Role hints (button code, hero context, circular swatches) and context suppression.
- Patch-set validation, fix-type detection, spinner/gallery checks, text summaries.

Functional requirements
- A fragment is valid iff no ``error`` violation survives suppression.
- Accent colors pass only inside a whitelisted context.

Non-functional requirements
- Pure predicates: code is never rewritten.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Final

from ux_autofix.domain.models import FixType, Patch, ValidationResult, Violation, ViolationSeverity
from ux_autofix.guardrails.spec import (
    DEFAULT_GUARDRAILS,
    ColorRole,
    GuardrailSpec,
    normalize_color,
    parse_duration_ms,
)

HERO_CONTEXT: Final[str] = "hero-cta"

FORBIDDEN_HUES: Final[tuple[str, ...]] = (
    "yellow",
    "pink",
    "purple",
    "orange",
    "teal",
    "red",
    "green",
    "blue",
    "indigo",
    "violet",
    "rose",
    "amber",
    "lime",
    "emerald",
    "cyan",
    "sky",
    "fuchsia",
)

# Tailwind class name -> concrete value, shared with the theme extractor.
TAILWIND_FONT_WEIGHTS: Final[dict[str, int]] = {
    "thin": 100,
    "extralight": 200,
    "light": 300,
    "normal": 400,
    "medium": 500,
    "semibold": 600,
    "bold": 700,
    "extrabold": 800,
    "black": 900,
}
TAILWIND_RADII: Final[dict[str, int]] = {
    "none": 0,
    "sm": 2,
    "": 4,
    "md": 6,
    "lg": 8,
    "xl": 12,
    "2xl": 16,
    "3xl": 24,
    "full": 9999,
}
TAILWIND_COLORS: Final[dict[str, str]] = {
    "white": "#ffffff",
    "black": "#000000",
    "transparent": "transparent",
    "gray-50": "#f9fafb",
    "gray-100": "#f3f4f6",
    "gray-200": "#e5e7eb",
    "gray-300": "#d1d5db",
    "gray-400": "#9ca3af",
    "gray-500": "#6b7280",
    "gray-600": "#4b5563",
    "gray-700": "#374151",
    "gray-800": "#1f2937",
    "gray-900": "#111827",
    "blue-500": "#3b82f6",
    "blue-600": "#2563eb",
    "green-500": "#22c55e",
    "red-500": "#ef4444",
}
_CSS_WEIGHT_NAMES: Final[dict[str, int]] = {"normal": 400, "bold": 700, "lighter": 300, "bolder": 700}
_PASSTHROUGH_COLORS: Final[frozenset[str]] = frozenset({"inherit", "currentcolor", "initial", "unset"})
_NAMED_EASINGS: Final[frozenset[str]] = frozenset(
    {"ease", "ease-in", "ease-out", "ease-in-out", "linear", "step-start", "step-end"}
)
_ROLE_PREFIX: Final[dict[str, ColorRole]] = {"bg": "backgrounds", "text": "text", "border": "borders"}
_ROLE_RULE: Final[dict[ColorRole, str]] = {
    "backgrounds": "background-color",
    "text": "text-color",
    "borders": "border-color",
    "accents": "accent-color",
}

_PALETTE_CLASS = re.compile(
    r"(?<![\w-])(bg|text|border)-(" + "|".join(FORBIDDEN_HUES) + r")-(\d{2,3})(?![\w-])",
    re.IGNORECASE,
)
_ARBITRARY_COLOR_CLASS = re.compile(r"(?<![\w-])(bg|text|border)-\[(#[0-9a-fA-F]{3,8})\]")
_JS_COLOR = re.compile(
    r"(?<![\w-])(backgroundColor|background|borderColor|color)\s*:\s*['\"]([^'\"]+)['\"]"
)
_CSS_COLOR = re.compile(
    r"(?<![\w-])(background-color|background|border-color|color)\s*:\s*([^;'\"}\n]+)",
    re.IGNORECASE,
)
_HEX_TOKEN = re.compile(
    r"(?<![\w&#])#(?:[0-9a-fA-F]{8}|[0-9a-fA-F]{6}|[0-9a-fA-F]{4}|[0-9a-fA-F]{3})(?![\w-])"
)
_CSS_FONT_WEIGHT = re.compile(r"font-weight:\s*(\d+|bold|normal|light|lighter|bolder)", re.IGNORECASE)
_JS_FONT_WEIGHT = re.compile(r"fontWeight\s*:\s*['\"]?(\d+|bold|normal|lighter|bolder)['\"]?")
_TW_FONT_WEIGHT = re.compile(
    r"(?<![\w-])font-(" + "|".join(TAILWIND_FONT_WEIGHTS) + r")(?![\w-])"
)
_CSS_FONT_SIZE = re.compile(r"font-size:\s*(\d+(?:\.\d+)?)px", re.IGNORECASE)
_JS_FONT_SIZE = re.compile(r"fontSize\s*:\s*['\"]?(\d+(?:\.\d+)?)(?:px)?['\"]?")
_CSS_RADIUS = re.compile(r"border-radius:\s*(\d+(?:\.\d+)?)(px|rem|em|%)?", re.IGNORECASE)
_JS_RADIUS = re.compile(r"borderRadius\s*:\s*['\"]?(\d+(?:\.\d+)?)(px|rem|em|%)?['\"]?")
_TW_ROUNDED = re.compile(
    r"(?<![\w-])rounded-(?:[trblse]{1,2}-)?(none|sm|md|lg|xl|2xl|3xl|full)(?![\w-])"
)
_CSS_TRANSITION = re.compile(
    r"(?<![\w-])(transition(?:-duration)?)\s*:\s*([^;'\"}\n]+)", re.IGNORECASE
)
_JS_TRANSITION = re.compile(r"(?<![\w-])(transition(?:Duration)?)\s*:\s*['\"]([^'\"]+)['\"]")
_TW_DURATION = re.compile(r"(?<![\w-])duration-(\d+)(?![\w-])")
_DURATION_TOKEN = re.compile(r"(?<![\w.])(\d*\.?\d+)(ms|s)(?![\w])", re.IGNORECASE)
_EASING_TOKEN = re.compile(r"(?<![\w-])(ease(?:-in-out|-in|-out)?|linear|step-start|step-end)(?![\w-])")
_SPINNER_SIZE = re.compile(r"(?<![\w-])(?:width|height|size)\s*[:=]\s*['\"{]?\s*(\d+)(?:px)?", re.IGNORECASE)

_UPPERCASE_MARKERS: Final[tuple[str, ...]] = ("textTransform", "text-transform", "uppercase")
_LETTER_SPACING_MARKERS: Final[tuple[str, ...]] = ("letterSpacing", "letter-spacing", "tracking-")

# Ordered: the first matching keyword group decides the fix type.
_FIX_TYPE_KEYWORDS: Final[tuple[tuple[FixType, tuple[str, ...]], ...]] = (
    (FixType.LOADING_STATE, ("Spinner", "loading", "isLoading")),
    (FixType.IMAGE_GALLERY, ("Gallery", "lightbox", "Lightbox")),
    (FixType.ADDRESS_AUTOCOMPLETE, ("autocomplete", "Autocomplete", "address")),
    (FixType.PRODUCT_COMPARISON, ("compare", "Compare", "comparison")),
    (FixType.COLOR_PREVIEW, ("swatch", "Swatch", "ColorSwatch")),
)


@dataclass(frozen=True, slots=True)
class RoleHints:
    """Where a fragment will live, used to relax or tighten checks."""

    is_button: bool = False
    is_hero_context: bool = False
    allows_circular_swatches: bool = False

    @property
    def context(self) -> str | None:
        return HERO_CONTEXT if self.is_hero_context else None

    @classmethod
    def for_patch(cls, file_path: str, new_code: str) -> RoleHints:
        return cls(
            is_button="<button" in new_code or "Button" in new_code or "Button" in file_path,
            is_hero_context="Hero" in file_path,
            allows_circular_swatches="Swatch" in file_path or "Color" in file_path,
        )


def detect_fix_type(code: str) -> FixType:
    for fix_type, keywords in _FIX_TYPE_KEYWORDS:
        if any(keyword in code for keyword in keywords):
            return fix_type
    return FixType.UNKNOWN


def validate(
    code: str,
    hints: RoleHints | None = None,
    spec: GuardrailSpec = DEFAULT_GUARDRAILS,
) -> ValidationResult:
    """Run every check over ``code`` and return the surviving violations."""
    resolved_hints = hints or RoleHints()
    fix_type = detect_fix_type(code)

    violations: list[Violation] = []
    reported_colors: set[str] = set()
    violations.extend(_check_palette_classes(code, spec, resolved_hints, reported_colors))
    violations.extend(_check_declared_colors(code, spec, resolved_hints, reported_colors))
    violations.extend(_check_stray_hex(code, spec, resolved_hints, reported_colors))
    if not (resolved_hints.allows_circular_swatches and fix_type is FixType.COLOR_PREVIEW):
        violations.extend(_check_border_radius(code, spec))
    violations.extend(_check_font_weight(code, spec))
    if resolved_hints.is_button:
        violations.extend(_check_button_font_size(code, spec))
        violations.extend(_check_button_affordance(code, spec))
    violations.extend(_check_transitions(code, spec))
    if fix_type is FixType.LOADING_STATE:
        violations.extend(validate_spinner(code, spec))
    elif fix_type is FixType.IMAGE_GALLERY:
        violations.extend(validate_gallery(code))

    if resolved_hints.is_hero_context and HERO_CONTEXT in spec.colors.accent_contexts:
        accents = spec.colors.allowed("accents")
        violations = [item for item in violations if not _mentions_any(item.found, accents)]

    valid = not any(item.is_error for item in violations)
    return ValidationResult(valid=valid, violations=tuple(violations), fix_type=fix_type)


def validate_patches(
    patches: Iterable[Patch],
    spec: GuardrailSpec = DEFAULT_GUARDRAILS,
) -> ValidationResult:
    """Validate each patch's new code with hints derived from its path; tag locations."""
    all_violations: list[Violation] = []
    fix_type = FixType.UNKNOWN
    for patch in patches:
        result = validate(patch.new_code, RoleHints.for_patch(patch.file_path, patch.new_code), spec)
        all_violations.extend(replace(item, location=patch.file_path) for item in result.violations)
        if result.fix_type is not FixType.UNKNOWN:
            fix_type = result.fix_type
    valid = not any(item.is_error for item in all_violations)
    return ValidationResult(valid=valid, violations=tuple(all_violations), fix_type=fix_type)


def validate_spinner(code: str, spec: GuardrailSpec = DEFAULT_GUARDRAILS) -> list[Violation]:
    expected = spec.components.loading_spinner_size
    tolerated = {expected - 2, expected, expected + 2}
    violations: list[Violation] = []
    for match in _SPINNER_SIZE.finditer(code):
        size = int(match.group(1))
        if size not in tolerated:
            violations.append(
                _warning(
                    "spinner-size",
                    f"Spinner size should be {expected}px, found {size}px",
                    found=f"{size}px",
                    expected=f"{expected}px",
                )
            )
    if "spin" not in code and "rotate" not in code:
        violations.append(
            _warning(
                "spinner-animation",
                "Spinner should have spin animation",
                expected="animation: spin 1s linear infinite",
            )
        )
    return violations


def validate_gallery(code: str) -> list[Violation]:
    if "overlay" not in code and "Overlay" not in code:
        return []
    dark_markers = ("rgba(0, 0, 0", "rgba(17, 17, 17", "#111")
    if any(marker in code for marker in dark_markers):
        return []
    return [
        _warning(
            "gallery-overlay",
            "Gallery overlay should use dark color",
            expected="rgba(0, 0, 0, 0.9) or #111 with opacity",
        )
    ]


def summarize_validation(result: ValidationResult) -> str:
    if result.valid and not result.warnings:
        return f"Fix validated successfully (type: {result.fix_type.value})"
    errors, warnings = result.errors, result.warnings
    head = "passed" if result.valid else "failed"
    lines = [
        f"Fix validation {head} (type: {result.fix_type.value})",
        f"  {len(errors)} error(s), {len(warnings)} warning(s)",
    ]
    for label, items in (("Error", errors), ("Warning", warnings)):
        for index, item in enumerate(items, start=1):
            lines.append(f"  {label} {index} [{item.rule}]: {item.message}")
            if item.found:
                lines.append(f"    Found: {item.found}")
            if item.expected:
                lines.append(f"    Expected: {item.expected}")
            if item.location:
                lines.append(f"    File: {item.location}")
    return "\n".join(lines)


def offending_rules(violations: Sequence[Violation]) -> tuple[str, ...]:
    return tuple(sorted({item.rule for item in violations if item.is_error}))


# --- colors -----------------------------------------------------------------


def _check_palette_classes(
    code: str, spec: GuardrailSpec, hints: RoleHints, reported: set[str]
) -> list[Violation]:
    violations: list[Violation] = []
    for match in _PALETTE_CLASS.finditer(code):
        prefix, hue, shade = match.group(1).lower(), match.group(2).lower(), match.group(3)
        resolved = TAILWIND_COLORS.get(f"{hue}-{shade}")
        if resolved is not None and _color_permitted(resolved, _ROLE_PREFIX[prefix], spec, hints):
            continue
        if resolved is not None:
            reported.add(normalize_color(resolved))
        violations.append(
            _error(
                "forbidden-color",
                f"Forbidden Tailwind color class: {match.group(0)}",
                found=match.group(0),
                expected=_allowed_list(spec, _ROLE_PREFIX[prefix]),
            )
        )
    for match in _ARBITRARY_COLOR_CLASS.finditer(code):
        violation = _color_violation(match.group(2), _ROLE_PREFIX[match.group(1)], spec, hints)
        if violation is not None:
            reported.add(normalize_color(match.group(2)))
            violations.append(violation)
    return violations


def _check_declared_colors(
    code: str, spec: GuardrailSpec, hints: RoleHints, reported: set[str]
) -> list[Violation]:
    violations: list[Violation] = []
    declarations: list[tuple[str, str]] = [
        (match.group(1), match.group(2)) for match in _JS_COLOR.finditer(code)
    ]
    declarations.extend((match.group(1), match.group(2)) for match in _CSS_COLOR.finditer(code))

    for prop, raw_value in declarations:
        role = _role_for_property(prop)
        for value in _color_tokens(raw_value):
            violation = _color_violation(value, role, spec, hints)
            if violation is None:
                continue
            key = normalize_color(value)
            reported.add(key)
            violations.append(violation)
    return violations


def _check_stray_hex(
    code: str, spec: GuardrailSpec, hints: RoleHints, reported: set[str]
) -> list[Violation]:
    """Any hex token outside every allowed set fails, wherever it appears."""
    permitted = (
        spec.colors.allowed("backgrounds")
        | spec.colors.allowed("text")
        | spec.colors.allowed("borders")
    )
    if hints.context is not None and hints.context in spec.colors.accent_contexts:
        permitted |= spec.colors.allowed("accents")

    violations: list[Violation] = []
    for match in _HEX_TOKEN.finditer(code):
        token = match.group(0)
        key = normalize_color(token)
        if key in permitted or key in reported:
            continue
        reported.add(key)
        violations.append(
            _error(
                "unknown-color",
                f"Color {token} is not in the site palette",
                found=token,
                expected=", ".join(sorted(permitted)),
            )
        )
    return violations


def _color_violation(
    value: str, role: ColorRole, spec: GuardrailSpec, hints: RoleHints
) -> Violation | None:
    if _color_permitted(value, role, spec, hints):
        return None
    normalized = normalize_color(value)
    if normalized in spec.colors.allowed("accents"):
        contexts = ", ".join(spec.colors.accent_contexts) or "none"
        return _error(
            _ROLE_RULE["accents"],
            f"Accent color {value} is only allowed in: {contexts}",
            found=value,
            expected=_allowed_list(spec, role),
        )
    return _error(
        _ROLE_RULE[role],
        f"Invalid {_ROLE_RULE[role].replace('-', ' ')}: {value}",
        found=value,
        expected=_allowed_list(spec, role),
    )


def _color_permitted(value: str, role: ColorRole, spec: GuardrailSpec, hints: RoleHints) -> bool:
    normalized = normalize_color(value)
    if normalized in _PASSTHROUGH_COLORS or normalized in spec.colors.allowed(role):
        return True
    if normalized in spec.colors.allowed("accents"):
        context = hints.context
        return context is not None and context in spec.colors.accent_contexts
    return False


def _color_tokens(raw_value: str) -> list[str]:
    """Checkable color tokens in a declaration value; functional values are skipped."""
    value = raw_value.strip()
    if not value or "(" in value or value.startswith("var"):
        return [match.group(0) for match in _HEX_TOKEN.finditer(value)]
    parts = value.split()
    if len(parts) == 1:
        token = parts[0].rstrip(",")
        if token.startswith("#") or token.isalpha():
            return [token]
        return []
    return [match.group(0) for match in _HEX_TOKEN.finditer(value)]


def _role_for_property(prop: str) -> ColorRole:
    lowered = prop.lower()
    if lowered.startswith("background"):
        return "backgrounds"
    if lowered.startswith("border"):
        return "borders"
    return "text"


def _allowed_list(spec: GuardrailSpec, role: ColorRole) -> str:
    values: tuple[str, ...] = getattr(spec.colors, role)
    return ", ".join(values)


# --- typography -------------------------------------------------------------


def _check_font_weight(code: str, spec: GuardrailSpec) -> list[Violation]:
    allowed = set(spec.typography.allowed_weights)
    expected = " or ".join(str(weight) for weight in spec.typography.allowed_weights)
    violations: list[Violation] = []

    for pattern in (_CSS_FONT_WEIGHT, _JS_FONT_WEIGHT):
        for match in pattern.finditer(code):
            raw = match.group(1).lower()
            weight = int(raw) if raw.isdigit() else _CSS_WEIGHT_NAMES.get(raw)
            if weight is None or weight in allowed:
                continue
            violations.append(
                _error("font-weight", f"Invalid font weight: {raw}", found=raw, expected=expected)
            )

    for match in _TW_FONT_WEIGHT.finditer(code):
        if TAILWIND_FONT_WEIGHTS[match.group(1)] in allowed:
            continue
        violations.append(
            _error(
                "font-weight",
                f"Forbidden font weight class: {match.group(0)}",
                found=match.group(0),
                expected=expected,
            )
        )
    return violations


def _check_button_font_size(code: str, spec: GuardrailSpec) -> list[Violation]:
    low, high = spec.typography.button_font_size_range
    violations: list[Violation] = []
    for pattern in (_CSS_FONT_SIZE, _JS_FONT_SIZE):
        for match in pattern.finditer(code):
            size = float(match.group(1))
            if low <= size <= high:
                continue
            shown = f"{size:g}px"
            violations.append(
                _warning(
                    "button-font-size",
                    f"Button font size out of range: {shown}",
                    found=shown,
                    expected=f"{low}px - {high}px",
                )
            )
    return violations


def _check_button_affordance(code: str, spec: GuardrailSpec) -> list[Violation]:
    if "<button" not in code and "Button" not in code:
        return []
    violations: list[Violation] = []
    patterns = spec.components.button_patterns
    if (spec.typography.require_uppercase or "uppercase" in patterns) and not any(
        marker in code for marker in _UPPERCASE_MARKERS
    ):
        violations.append(
            _warning(
                "button-uppercase",
                "Button missing required uppercase text transform",
                expected=f'textTransform: "uppercase" and letterSpacing: "{spec.typography.letter_spacing}"',
            )
        )
    if "letter-spacing" in patterns and not any(marker in code for marker in _LETTER_SPACING_MARKERS):
        violations.append(
            _warning(
                "button-letter-spacing",
                "Button missing required letter spacing",
                expected=f'letterSpacing: "{spec.typography.letter_spacing}"',
            )
        )
    return violations


# --- shape and motion -------------------------------------------------------


def _check_border_radius(code: str, spec: GuardrailSpec) -> list[Violation]:
    allowed = set(spec.spacing.border_radius_allowed)
    expected = _radius_expectation(spec)
    violations: list[Violation] = []

    for pattern in (_CSS_RADIUS, _JS_RADIUS):
        for match in pattern.finditer(code):
            px = _to_px(float(match.group(1)), match.group(2))
            if px is not None and px in allowed:
                continue
            violations.append(
                _error(
                    "no-border-radius",
                    f"Border radius not allowed: {match.group(0)}",
                    found=match.group(0),
                    expected=expected,
                )
            )

    for match in _TW_ROUNDED.finditer(code):
        size = match.group(1)
        if TAILWIND_RADII[size] in allowed:
            continue
        violations.append(
            _error(
                "no-border-radius",
                f"Rounded Tailwind class not allowed: {match.group(0)}",
                found=match.group(0),
                expected=expected,
            )
        )
    return violations


def _check_transitions(code: str, spec: GuardrailSpec) -> list[Violation]:
    ceiling_ms = spec.animation.max_duration_ms
    allowed_easings = set(spec.animation.allowed_easings)
    violations: list[Violation] = []

    declarations = [match.group(2) for match in _CSS_TRANSITION.finditer(code)]
    declarations.extend(match.group(2) for match in _JS_TRANSITION.finditer(code))
    for value in declarations:
        for duration in _DURATION_TOKEN.finditer(value):
            ms = parse_duration_ms(duration.group(0))
            if ms > ceiling_ms:
                violations.append(
                    _error(
                        "transition-duration",
                        f"Transition duration {duration.group(0)} exceeds {spec.animation.max_duration}",
                        found=duration.group(0),
                        expected=f"<= {spec.animation.max_duration}",
                    )
                )
        for easing in _EASING_TOKEN.finditer(value):
            name = easing.group(1)
            if name in _NAMED_EASINGS and name not in allowed_easings:
                violations.append(
                    _warning(
                        "transition-easing",
                        f"Easing {name} is not in the allowed set",
                        found=name,
                        expected=", ".join(spec.animation.allowed_easings),
                    )
                )

    for match in _TW_DURATION.finditer(code):
        ms = float(match.group(1))
        if ms > ceiling_ms:
            violations.append(
                _error(
                    "transition-duration",
                    f"Transition class {match.group(0)} exceeds {spec.animation.max_duration}",
                    found=match.group(0),
                    expected=f"<= {spec.animation.max_duration}",
                )
            )
    return violations


def _radius_expectation(spec: GuardrailSpec) -> str:
    if spec.spacing.border_radius_allowed == (0,):
        return "border-radius: 0 or rounded-none (sharp corners only)"
    return "allowed radii: " + ", ".join(f"{value}px" for value in spec.spacing.border_radius_allowed)


def _to_px(value: float, unit: str | None) -> float | None:
    if unit is None or unit == "px":
        return value
    if unit in {"rem", "em"}:
        return value * 16.0
    # Percentages cannot be compared to pixel allow-lists; only 0% is sharp.
    return 0.0 if value == 0 else None


# --- helpers ----------------------------------------------------------------


def _mentions_any(found: str | None, colors: frozenset[str]) -> bool:
    if not found:
        return False
    lowered = found.lower()
    if normalize_color(found) in colors:
        return True
    return any(color in lowered for color in colors)


def _error(rule: str, message: str, *, found: str | None = None, expected: str | None = None) -> Violation:
    return Violation(
        rule=rule, message=message, severity=ViolationSeverity.ERROR, found=found, expected=expected
    )


def _warning(
    rule: str, message: str, *, found: str | None = None, expected: str | None = None
) -> Violation:
    return Violation(
        rule=rule, message=message, severity=ViolationSeverity.WARNING, found=found, expected=expected
    )


__all__ = [
    "FORBIDDEN_HUES",
    "HERO_CONTEXT",
    "RoleHints",
    "TAILWIND_COLORS",
    "TAILWIND_FONT_WEIGHTS",
    "TAILWIND_RADII",
    "detect_fix_type",
    "offending_rules",
    "summarize_validation",
    "validate",
    "validate_gallery",
    "validate_patches",
    "validate_spinner",
]
