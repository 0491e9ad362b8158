"""Pre-apply structural checks for patches."""

from ux_autofix.verification.syntax_validator import (
    brace_balance,
    validate_patch,
    validate_patch_set,
)

__all__ = ["brace_balance", "validate_patch", "validate_patch_set"]
