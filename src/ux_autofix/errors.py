"""
ux-autofix — remediation error taxonomy

File: src/ux_autofix/errors.py
Last updated: 2026-10-18

Purpose
- Normalized error types raised across the detect → generate → validate → apply pipeline.

Functional requirements
- Every error carries a stable machine-readable ``code`` and a retryability flag.
- Oracle failures are recoverable at the pipeline boundary; nothing is written before apply.

Non-functional requirements
- Error messages must be deterministic and single-line for structured logs.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ux_autofix.domain.models import Violation


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


class RemediationError(RuntimeError):
    """Base error with deterministic machine-readable fields."""

    code: str = "remediation"

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        super().__init__(
            f"code={self.code} retryable={str(self.retryable).lower()} detail={self.detail}"
        )


class OracleUnavailable(RemediationError):
    """The code-generation oracle could not be reached or timed out.

    Retryable by the caller; the core never retries a whole generation on its own.
    """

    code = "oracle_unavailable"

    def __init__(self, detail: str, *, provider: str = "oracle") -> None:
        self.provider = provider
        super().__init__(detail, retryable=True)


class OracleMalformedResponse(RemediationError):
    """The oracle answered, but not with the ``{explanation, newFiles, patches}`` shape."""

    code = "oracle_malformed_response"

    def __init__(self, detail: str, *, raw_excerpt: str | None = None) -> None:
        self.raw_excerpt = raw_excerpt[:500] if raw_excerpt else None
        super().__init__(detail, retryable=False)


class GuardrailViolation(RemediationError):
    """Generated code broke at least one blocking style guardrail."""

    code = "guardrail_violation"

    def __init__(self, violations: Sequence[Violation], *, location: str | None = None) -> None:
        self.violations = tuple(violations)
        self.location = location
        rules = sorted({item.rule for item in self.violations})
        where = f" in {location}" if location else ""
        super().__init__(f"{len(self.violations)} guardrail violation(s){where}: {', '.join(rules)}")


class SyntaxInvalid(RemediationError):
    """A single patch would leave its file structurally broken."""

    code = "syntax_invalid"

    def __init__(self, file_path: str, reasons: Sequence[str]) -> None:
        self.file_path = file_path
        self.reasons = tuple(reasons)
        super().__init__(f"{file_path}: {'; '.join(self.reasons) or 'invalid patch'}")


class PatchTargetNotFound(RemediationError):
    """``old_code`` is not a verbatim substring of the file at apply time."""

    code = "patch_target_not_found"

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        super().__init__(
            f"could not find the code to replace in {file_path}; the file may have been modified"
        )


class PatchAlreadyApplied(PatchTargetNotFound):
    """``new_code`` is already present where ``old_code`` would be replaced."""

    code = "patch_already_applied"

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        RemediationError.__init__(
            self, f"{file_path} already contains the new code; the patch may have been applied"
        )


class PartialApplyFailure(RemediationError):
    """Some files of a batch were written, others failed."""

    code = "partial_apply_failure"

    def __init__(self, applied_files: Sequence[str], failed_files: Sequence[str]) -> None:
        self.applied_files = tuple(applied_files)
        self.failed_files = tuple(failed_files)
        super().__init__(
            f"applied {len(self.applied_files)} file(s), failed {len(self.failed_files)}: "
            + ", ".join(self.failed_files)
        )


__all__ = [
    "GuardrailViolation",
    "OracleMalformedResponse",
    "OracleUnavailable",
    "PartialApplyFailure",
    "PatchAlreadyApplied",
    "PatchTargetNotFound",
    "RemediationError",
    "SyntaxInvalid",
]
