"""Guardrails: the site style profile, its persistence, extraction and code validation."""

from ux_autofix.guardrails.extractor import ExtractionReport, extract_guardrails
from ux_autofix.guardrails.spec import (
    DEFAULT_GUARDRAILS,
    GuardrailSpec,
    Provenance,
    is_border_radius_allowed,
    is_button_font_size_allowed,
    is_color_allowed,
    is_font_weight_allowed,
    is_padding_allowed,
    is_transition_duration_allowed,
    merge_guardrails,
)
from ux_autofix.guardrails.store import GuardrailStore
from ux_autofix.guardrails.validator import (
    RoleHints,
    detect_fix_type,
    summarize_validation,
    validate,
    validate_patches,
)

__all__ = [
    "DEFAULT_GUARDRAILS",
    "ExtractionReport",
    "GuardrailSpec",
    "GuardrailStore",
    "Provenance",
    "RoleHints",
    "detect_fix_type",
    "extract_guardrails",
    "is_border_radius_allowed",
    "is_button_font_size_allowed",
    "is_color_allowed",
    "is_font_weight_allowed",
    "is_padding_allowed",
    "is_transition_duration_allowed",
    "merge_guardrails",
    "summarize_validation",
    "validate",
    "validate_patches",
]
