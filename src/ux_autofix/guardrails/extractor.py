"""Derive a guardrail profile from the storefront's own component sources."""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, TypeVar

from ux_autofix.guardrails.spec import (
    DEFAULT_GUARDRAILS,
    Animation,
    ColorPalette,
    ComponentPatterns,
    GuardrailSpec,
    Provenance,
    Spacing,
    Typography,
    normalize_color,
)
from ux_autofix.guardrails.validator import TAILWIND_COLORS, TAILWIND_FONT_WEIGHTS, TAILWIND_RADII

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

SCANNED_SUFFIXES: Final[frozenset[str]] = frozenset({".tsx", ".jsx", ".css"})
DEFAULT_SCAN_DIRS: Final[tuple[str, ...]] = ("components", "app")

TOP_BACKGROUNDS: Final[int] = 10
TOP_TEXT: Final[int] = 8
TOP_BORDERS: Final[int] = 5
TOP_WEIGHTS: Final[int] = 4
TOP_RADII: Final[int] = 5

_TW_HUES = (
    "gray|slate|zinc|neutral|stone|red|orange|amber|yellow|lime|green|emerald|teal|cyan|sky|"
    "blue|indigo|violet|purple|fuchsia|pink|rose"
)
_INLINE_COLOR = re.compile(
    r"(backgroundColor|borderColor|background|color)\s*:\s*['\"]?"
    r"(#[0-9a-fA-F]{3,6}|white|black|transparent|rgba?\([^)]+\))['\"]?"
)
_TW_COLOR = re.compile(
    rf"(?<![\w-])(bg|text|border)-((?:{_TW_HUES})-\d{{2,3}}|white|black|transparent)(?![\w-])"
)
_FONT_WEIGHT = re.compile(
    r"fontWeight\s*:\s*['\"]?(\d+)|(?<![\w-])font-(" + "|".join(TAILWIND_FONT_WEIGHTS) + r")(?![\w-])"
)
_BORDER_RADIUS = re.compile(
    r"borderRadius\s*:\s*['\"]?(\d+)(?:px)?['\"]?"
    r"|(?<![\w-])rounded-(none|sm|md|lg|xl|2xl|3xl|full)(?![\w-])"
)
_TRANSITION = re.compile(r"transition\s*:\s*[^;,}]+|(?<![\w-])duration-\d+")
_TEXT_TRANSFORM = re.compile(
    r"textTransform\s*:\s*['\"]?(uppercase|lowercase|capitalize)['\"]?"
    r"|(?<![\w-])(uppercase|lowercase|capitalize)(?![\w-])"
)


@dataclass(slots=True)
class ExtractionReport:
    files_scanned: list[str] = field(default_factory=list)
    backgrounds: Counter[str] = field(default_factory=Counter)
    text_colors: Counter[str] = field(default_factory=Counter)
    border_colors: Counter[str] = field(default_factory=Counter)
    font_weights: Counter[int] = field(default_factory=Counter)
    border_radii: Counter[int] = field(default_factory=Counter)
    animations: Counter[str] = field(default_factory=Counter)
    uppercase: int = 0
    lowercase: int = 0
    conflicts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "filesScanned": list(self.files_scanned),
            "colorsFound": dict(self.backgrounds + self.text_colors),
            "fontWeightsFound": {str(key): value for key, value in self.font_weights.items()},
            "borderRadiiFound": {str(key): value for key, value in self.border_radii.items()},
            "animationsFound": dict(self.animations),
            "conflicts": list(self.conflicts),
        }


def iter_component_files(root: Path, scan_dirs: Iterable[str] = DEFAULT_SCAN_DIRS) -> list[Path]:
    files: list[Path] = []
    for name in scan_dirs:
        directory = root / name
        if not directory.is_dir():
            logger.info("skipping missing scan directory %s", directory)
            continue
        files.extend(
            path
            for path in sorted(directory.rglob("*"))
            if path.is_file() and path.suffix in SCANNED_SUFFIXES
        )
    return files


def scan_source(content: str, report: ExtractionReport) -> None:
    """Accumulate style usage counts from one file into ``report``."""
    for match in _INLINE_COLOR.finditer(content):
        prop, color = match.group(1), normalize_color(match.group(2))
        if prop in {"backgroundColor", "background"}:
            report.backgrounds[color] += 1
        elif prop == "borderColor":
            report.border_colors[color] += 1
        else:
            report.text_colors[color] += 1

    for match in _TW_COLOR.finditer(content):
        prefix, name = match.group(1), match.group(2)
        color = normalize_color(TAILWIND_COLORS.get(name, f"{prefix}-{name}"))
        if prefix == "bg":
            report.backgrounds[color] += 1
        elif prefix == "text":
            report.text_colors[color] += 1
        else:
            report.border_colors[color] += 1

    for match in _FONT_WEIGHT.finditer(content):
        weight = int(match.group(1)) if match.group(1) else TAILWIND_FONT_WEIGHTS[match.group(2)]
        report.font_weights[weight] += 1

    for match in _BORDER_RADIUS.finditer(content):
        radius = int(match.group(1)) if match.group(1) else TAILWIND_RADII[match.group(2)]
        report.border_radii[radius] += 1

    for match in _TRANSITION.finditer(content):
        report.animations[match.group(0).strip()] += 1

    for match in _TEXT_TRANSFORM.finditer(content):
        value = (match.group(1) or match.group(2)).lower()
        if value == "uppercase":
            report.uppercase += 1
        elif value == "lowercase":
            report.lowercase += 1


def find_conflicts(spec: GuardrailSpec) -> list[str]:
    """House conventions an extracted profile contradicts (sharp corners, 500/600 weights)."""
    conflicts: list[str] = []
    if 0 not in spec.spacing.border_radius_allowed:
        conflicts.append(
            "extracted border-radius values include rounded corners, but the house style requires sharp corners"
        )
    weights = set(spec.typography.allowed_weights)
    if 500 not in weights and 600 not in weights:
        conflicts.append("extracted font weights include neither 500 nor 600, required for buttons")
    return conflicts


def extract_guardrails(
    workspace_root: str | Path,
    *,
    scan_dirs: Sequence[str] = DEFAULT_SCAN_DIRS,
    site_id: str = "extracted-site",
    existing: GuardrailSpec | None = None,
) -> tuple[GuardrailSpec, ExtractionReport]:
    """Scan sources and build an ``extracted`` profile.

    When ``existing`` is given its accents are kept and the result is ``hybrid``.
    Values the sources cannot reveal (font-size range, padding, motion) keep defaults.
    """
    root = Path(workspace_root)
    report = ExtractionReport()
    for path in iter_component_files(root, scan_dirs):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("unable to read %s during extraction: %s", path, exc)
            continue
        report.files_scanned.append(path.relative_to(root).as_posix())
        scan_source(content, report)

    defaults = DEFAULT_GUARDRAILS
    uppercase_wins = report.uppercase > report.lowercase
    spec = GuardrailSpec(
        site_id=site_id,
        provenance=Provenance.EXTRACTED,
        colors=ColorPalette(
            backgrounds=_top(report.backgrounds, TOP_BACKGROUNDS),
            text=_top(report.text_colors, TOP_TEXT),
            borders=_top(report.border_colors, TOP_BORDERS),
            accents=() if existing is None else existing.colors.accents,
            accent_contexts=() if existing is None else existing.colors.accent_contexts,
        ),
        typography=Typography(
            allowed_weights=_top(report.font_weights, TOP_WEIGHTS),
            button_font_size_range=defaults.typography.button_font_size_range,
            require_uppercase=uppercase_wins,
            letter_spacing=defaults.typography.letter_spacing,
        ),
        spacing=Spacing(
            border_radius_allowed=_top(report.border_radii, TOP_RADII),
            padding_h=defaults.spacing.padding_h,
            padding_v=defaults.spacing.padding_v,
            min_tap_target=defaults.spacing.min_tap_target,
        ),
        animation=Animation(
            max_duration=defaults.animation.max_duration,
            allowed_easings=defaults.animation.allowed_easings,
        ),
        components=ComponentPatterns(
            button_patterns=("uppercase", "letter-spacing") if report.uppercase > 0 else (),
            loading_spinner_size=defaults.components.loading_spinner_size,
        ),
    )
    if existing is not None:
        spec = spec.with_provenance(Provenance.HYBRID)

    report.conflicts.extend(find_conflicts(spec))
    logger.info(
        "extracted guardrails from %d file(s): %d background(s), %d text color(s), weights=%s",
        len(report.files_scanned),
        len(report.backgrounds),
        len(report.text_colors),
        ",".join(str(weight) for weight in spec.typography.allowed_weights) or "none",
    )
    return spec, report


def _top(counts: Counter[_T], limit: int) -> tuple[_T, ...]:
    return tuple(value for value, _ in counts.most_common(limit))


__all__ = [
    "DEFAULT_SCAN_DIRS",
    "ExtractionReport",
    "extract_guardrails",
    "find_conflicts",
    "iter_component_files",
    "scan_source",
]
