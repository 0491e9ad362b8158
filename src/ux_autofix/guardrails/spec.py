"""
ux-autofix — guardrail specification

File: src/ux_autofix/guardrails/spec.py
Last updated: 2026-10-18

Purpose
- Declarative site style profile that generated code must satisfy.

What should be included in this file
- Frozen section dataclasses (colors, typography, spacing, animation, components).
- Static defaults for the reference storefront.
- Camel-case (de)serialization compatible with ``site-guardrails.json``.
- Section-wise deep merge and small predicate helpers shared by validator and prompts.

Functional requirements
- Unknown provenance labels from older files map onto static/extracted/hybrid.
- Merging a partial never drops keys the partial does not mention.

Non-functional requirements
- No IO; persistence lives in ``guardrails.store``.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final, Literal, NoReturn

from ux_autofix.constants import GUARDRAIL_SPEC_SCHEMA_VERSION

ColorRole = Literal["backgrounds", "text", "borders", "accents"]

_HEX_SHORT = re.compile(r"^#([0-9a-f])([0-9a-f])([0-9a-f])([0-9a-f])?$")
_DURATION = re.compile(r"^\s*(-?\d*\.?\d+)\s*(ms|s)?\s*$", re.IGNORECASE)
_COLOR_ALIASES: Final[dict[str, str]] = {"white": "#ffffff", "black": "#000000"}

SECTION_KEYS: Final[tuple[str, ...]] = (
    "colors",
    "typography",
    "spacing",
    "animations",
    "components",
)

_PROVENANCE_ALIASES: Final[dict[str, str]] = {
    "manual": "static",
    "auto-extracted": "extracted",
}


class Provenance(StrEnum):
    STATIC = "static"
    EXTRACTED = "extracted"
    HYBRID = "hybrid"


@dataclass(frozen=True, slots=True)
class ColorPalette:
    backgrounds: tuple[str, ...]
    text: tuple[str, ...]
    borders: tuple[str, ...]
    accents: tuple[str, ...] = ()
    accent_contexts: tuple[str, ...] = ()

    def allowed(self, role: ColorRole) -> frozenset[str]:
        values: tuple[str, ...] = getattr(self, role)
        return frozenset(normalize_color(item) for item in values)


@dataclass(frozen=True, slots=True)
class Typography:
    allowed_weights: tuple[int, ...]
    button_font_size_range: tuple[int, int]
    require_uppercase: bool = True
    letter_spacing: str = "0.5px"


@dataclass(frozen=True, slots=True)
class Spacing:
    border_radius_allowed: tuple[int, ...]
    padding_h: tuple[int, int] = (12, 32)
    padding_v: tuple[int, int] = (12, 14)
    min_tap_target: int = 44


@dataclass(frozen=True, slots=True)
class Animation:
    max_duration: str = "0.4s"
    allowed_easings: tuple[str, ...] = ("ease", "ease-in-out", "linear")

    @property
    def max_duration_ms(self) -> float:
        return parse_duration_ms(self.max_duration)


@dataclass(frozen=True, slots=True)
class ComponentPatterns:
    button_patterns: tuple[str, ...] = ("uppercase", "letter-spacing")
    loading_spinner_size: int = 16


@dataclass(frozen=True, slots=True)
class GuardrailSpec:
    """Site-specific (or default) style constraints."""

    site_id: str
    provenance: Provenance
    colors: ColorPalette
    typography: Typography
    spacing: Spacing
    animation: Animation = field(default_factory=Animation)
    components: ComponentPatterns = field(default_factory=ComponentPatterns)
    version: int = 1
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "provenance", _as_provenance(self.provenance))
        low, high = self.typography.button_font_size_range
        if low > high:
            _fail("typography.buttonFontSizeRange", "min must be <= max")
        if self.version < 1:
            _fail("version", "must be >= 1")

    def with_provenance(self, provenance: Provenance) -> GuardrailSpec:
        return replace(self, provenance=provenance)

    def to_dict(self) -> dict[str, object]:
        return {
            "schemaVersion": GUARDRAIL_SPEC_SCHEMA_VERSION,
            "siteId": self.site_id,
            "source": self.provenance.value,
            "version": self.version,
            "extractedAt": None if self.updated_at is None else _iso(self.updated_at),
            "colors": {
                "backgrounds": list(self.colors.backgrounds),
                "text": list(self.colors.text),
                "borders": list(self.colors.borders),
                "accents": list(self.colors.accents),
                "accentContexts": list(self.colors.accent_contexts),
            },
            "typography": {
                "allowedFontWeights": list(self.typography.allowed_weights),
                "buttonFontSizeRange": list(self.typography.button_font_size_range),
                "requireUppercaseButtons": self.typography.require_uppercase,
                "letterSpacing": self.typography.letter_spacing,
            },
            "spacing": {
                "borderRadiusAllowed": list(self.spacing.border_radius_allowed),
                "buttonPaddingH": list(self.spacing.padding_h),
                "buttonPaddingV": list(self.spacing.padding_v),
                "minTapTarget": self.spacing.min_tap_target,
            },
            "animations": {
                "maxTransitionDuration": self.animation.max_duration,
                "allowedEasings": list(self.animation.allowed_easings),
            },
            "components": {
                "buttonPatterns": list(self.components.button_patterns),
                "loadingSpinnerSize": self.components.loading_spinner_size,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> GuardrailSpec:
        colors = _section(data, "colors")
        typography = _section(data, "typography")
        spacing = _section(data, "spacing")
        animations = _section(data, "animations", required=False)
        components = _section(data, "components", required=False)
        defaults_animation = Animation()
        defaults_components = ComponentPatterns()

        return cls(
            site_id=str(data.get("siteId", "default")),
            provenance=_as_provenance(data.get("source", Provenance.STATIC.value)),
            version=_as_int(data.get("version", 1), "version"),
            updated_at=_as_optional_datetime(data.get("extractedAt")),
            colors=ColorPalette(
                backgrounds=_str_tuple(colors.get("backgrounds"), "colors.backgrounds"),
                text=_str_tuple(colors.get("text"), "colors.text"),
                borders=_str_tuple(colors.get("borders"), "colors.borders"),
                accents=_str_tuple(colors.get("accents", []), "colors.accents"),
                accent_contexts=_str_tuple(
                    colors.get("accentContexts", []), "colors.accentContexts"
                ),
            ),
            typography=Typography(
                allowed_weights=_int_tuple(
                    typography.get("allowedFontWeights"), "typography.allowedFontWeights"
                ),
                button_font_size_range=_int_pair(
                    typography.get("buttonFontSizeRange"), "typography.buttonFontSizeRange"
                ),
                require_uppercase=bool(typography.get("requireUppercaseButtons", True)),
                letter_spacing=str(typography.get("letterSpacing", "0.5px")),
            ),
            spacing=Spacing(
                border_radius_allowed=_int_tuple(
                    spacing.get("borderRadiusAllowed"), "spacing.borderRadiusAllowed"
                ),
                padding_h=_int_pair(spacing.get("buttonPaddingH", [12, 32]), "spacing.buttonPaddingH"),
                padding_v=_int_pair(spacing.get("buttonPaddingV", [12, 14]), "spacing.buttonPaddingV"),
                min_tap_target=_as_int(spacing.get("minTapTarget", 44), "spacing.minTapTarget"),
            ),
            animation=Animation(
                max_duration=str(
                    animations.get("maxTransitionDuration", defaults_animation.max_duration)
                ),
                allowed_easings=_str_tuple(
                    animations.get("allowedEasings", list(defaults_animation.allowed_easings)),
                    "animations.allowedEasings",
                ),
            ),
            components=ComponentPatterns(
                button_patterns=_str_tuple(
                    components.get("buttonPatterns", list(defaults_components.button_patterns)),
                    "components.buttonPatterns",
                ),
                loading_spinner_size=_as_int(
                    components.get("loadingSpinnerSize", defaults_components.loading_spinner_size),
                    "components.loadingSpinnerSize",
                ),
            ),
        )


def merge_guardrails(existing: GuardrailSpec, partial: Mapping[str, object]) -> GuardrailSpec:
    """Deep-merge a camel-case partial onto ``existing``; the result is ``hybrid``.

    Nested sections merge key-by-key; top-level scalars in ``partial`` replace.
    """
    merged = copy.deepcopy(existing.to_dict())
    for key, value in partial.items():
        if key in SECTION_KEYS:
            if not isinstance(value, Mapping):
                _fail(key, f"expected object, got {type(value).__name__}")
            section = merged.get(key)
            base = dict(section) if isinstance(section, Mapping) else {}
            base.update(value)
            merged[key] = base
        else:
            merged[key] = value
    merged["source"] = Provenance.HYBRID.value
    return GuardrailSpec.from_dict(merged)


def normalize_color(value: str) -> str:
    """Lowercase, expand shorthand hex and resolve ``white``/``black``."""
    normalized = value.strip().lower()
    normalized = _COLOR_ALIASES.get(normalized, normalized)
    match = _HEX_SHORT.match(normalized)
    if match is not None:
        normalized = "#" + "".join(part * 2 for part in match.groups() if part is not None)
    return normalized


def is_color_allowed(
    color: str,
    role: ColorRole,
    spec: GuardrailSpec,
    *,
    context: str | None = None,
) -> bool:
    if role == "accents" and context is not None and context not in spec.colors.accent_contexts:
        return False
    return normalize_color(color) in spec.colors.allowed(role)


def is_font_weight_allowed(weight: int, spec: GuardrailSpec) -> bool:
    return weight in spec.typography.allowed_weights


def is_button_font_size_allowed(size_px: float, spec: GuardrailSpec) -> bool:
    low, high = spec.typography.button_font_size_range
    return low <= size_px <= high


def is_border_radius_allowed(radius_px: float, spec: GuardrailSpec) -> bool:
    return radius_px in spec.spacing.border_radius_allowed


def is_padding_allowed(horizontal: float, vertical: float, spec: GuardrailSpec) -> bool:
    min_h, max_h = spec.spacing.padding_h
    min_v, max_v = spec.spacing.padding_v
    return min_h <= horizontal <= max_h and min_v <= vertical <= max_v


def is_transition_duration_allowed(duration: str, spec: GuardrailSpec) -> bool:
    return parse_duration_ms(duration) <= spec.animation.max_duration_ms


def parse_duration_ms(duration: str) -> float:
    """Parse ``0.3s`` / ``300ms`` / bare numbers (milliseconds) into milliseconds."""
    match = _DURATION.match(duration)
    if match is None:
        raise ValueError(f"invalid CSS duration: {duration!r}")
    value = float(match.group(1))
    unit = (match.group(2) or "ms").lower()
    return value * 1000.0 if unit == "s" else value


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"GuardrailSpec.{path}: {message}")


def _section(data: Mapping[str, object], key: str, *, required: bool = True) -> Mapping[str, object]:
    value = data.get(key)
    if value is None and not required:
        return {}
    if not isinstance(value, Mapping):
        _fail(key, "expected object")
    return value


def _as_provenance(value: object) -> Provenance:
    if isinstance(value, Provenance):
        return value
    text = str(value).strip().lower()
    text = _PROVENANCE_ALIASES.get(text, text)
    try:
        return Provenance(text)
    except ValueError:
        _fail("source", f"unknown provenance {value!r}")


def _as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        _fail(path, f"expected integer, got {value!r}")
    return int(value)


def _int_tuple(value: object, path: str) -> tuple[int, ...]:
    if not isinstance(value, (list, tuple)):
        _fail(path, "expected list of integers")
    return tuple(_as_int(item, path) for item in value)


def _int_pair(value: object, path: str) -> tuple[int, int]:
    items = _int_tuple(value, path)
    if len(items) != 2:
        _fail(path, "expected [min, max]")
    return (items[0], items[1])


def _str_tuple(value: object, path: str) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        _fail(path, "expected list of strings")
    return tuple(_unique(str(item).strip() for item in value if str(item).strip()))


def _unique(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def _as_optional_datetime(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        _fail("extractedAt", f"invalid timestamp {value!r}")
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


DEFAULT_GUARDRAILS: Final[GuardrailSpec] = GuardrailSpec(
    site_id="default",
    provenance=Provenance.STATIC,
    colors=ColorPalette(
        backgrounds=("#111", "#fff", "#ffffff", "#fafafa", "#f5f5f5", "white", "transparent"),
        text=("#111", "#374151", "#6b7280", "#fff", "#ffffff", "white"),
        borders=("#e5e7eb", "#111", "transparent"),
        accents=("#3b82f6",),
        accent_contexts=("hero-cta",),
    ),
    typography=Typography(
        allowed_weights=(500, 600),
        button_font_size_range=(12, 14),
        require_uppercase=True,
        letter_spacing="0.5px",
    ),
    spacing=Spacing(border_radius_allowed=(0,), padding_h=(12, 32), padding_v=(12, 14)),
    animation=Animation(max_duration="0.4s", allowed_easings=("ease", "ease-in-out", "linear")),
    components=ComponentPatterns(button_patterns=("uppercase", "letter-spacing"), loading_spinner_size=16),
)


__all__ = [
    "Animation",
    "ColorPalette",
    "ColorRole",
    "ComponentPatterns",
    "DEFAULT_GUARDRAILS",
    "GuardrailSpec",
    "Provenance",
    "Spacing",
    "Typography",
    "is_border_radius_allowed",
    "is_button_font_size_allowed",
    "is_color_allowed",
    "is_font_weight_allowed",
    "is_padding_allowed",
    "is_transition_duration_allowed",
    "merge_guardrails",
    "normalize_color",
    "parse_duration_ms",
]
