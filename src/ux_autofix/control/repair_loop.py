"""
ux-autofix — bounded patch repair loop

File: src/ux_autofix/control/repair_loop.py
Last updated: 2026-10-18

Purpose
- Turn a generated patch set into the largest applicable subset, asking the oracle to
  correct invalid patches one at a time.

What should be included in this file
- ``GuardedPatchChecker``: syntax validation plus guardrail errors as extra reasons.
- ``RepairLoop``: draft -> validating -> {all_valid, partially_valid, all_invalid}.

Functional requirements
- At most ``max_rounds`` oracle repair calls across the whole attempt.
- Patches that validated are never discarded; still-invalid patches are dropped when
  the ceiling is reached.
- A failed oracle call (unavailable, malformed, timed out) consumes its round.

Non-functional requirements
- Decisions are logged as structlog key/value events; the logger is injectable.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from ux_autofix.constants import (
    DEFAULT_EXCERPT_CHARS,
    DEFAULT_EXCERPT_LINES,
    DEFAULT_MAX_REPAIR_ROUNDS,
)
from ux_autofix.domain.models import FixOutcome, Issue, Patch, PatchSetValidation
from ux_autofix.errors import RemediationError
from ux_autofix.guardrails.spec import DEFAULT_GUARDRAILS, GuardrailSpec
from ux_autofix.guardrails.validator import RoleHints, validate
from ux_autofix.synthesis.oracle import Oracle, RepairRequest
from ux_autofix.synthesis.prompts import excerpt_around
from ux_autofix.utils.concurrency import run_with_timeout
from ux_autofix.verification.syntax_validator import AppliedCheck, ReadContent, validate_patch_set


class GuardedPatchChecker:
    """Validate patch sets for syntax and guardrail errors in one sequential pass.

    Guardrail warnings never block a patch; they are logged and counted.
    """

    def __init__(
        self,
        read_content: ReadContent,
        guardrails: GuardrailSpec = DEFAULT_GUARDRAILS,
        *,
        already_applied: AppliedCheck | None = None,
        logger: Any | None = None,
    ) -> None:
        self._read_content = read_content
        self._already_applied = already_applied
        self.guardrails = guardrails
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def guardrail_reasons(self, patch: Patch) -> list[str]:
        result = validate(
            patch.new_code,
            RoleHints.for_patch(patch.file_path, patch.new_code),
            self.guardrails,
        )
        for warning in result.warnings:
            self._logger.warning(
                "guardrail_warning",
                file_path=patch.file_path,
                rule=warning.rule,
                found=warning.found,
                expected=warning.expected,
            )
        reasons: list[str] = []
        for error in result.errors:
            found = f" (found {error.found})" if error.found else ""
            reasons.append(f"guardrail {error.rule}: {error.message}{found}")
        return reasons

    def check(self, patches: Sequence[Patch]) -> PatchSetValidation:
        return validate_patch_set(
            patches,
            self._read_content,
            extra_check=self.guardrail_reasons,
            already_applied=self._already_applied,
        )

    def __call__(self, patches: Sequence[Patch]) -> PatchSetValidation:
        return self.check(patches)

    def read(self, file_path: str) -> str | None:
        return self._read_content(file_path)


@dataclass(frozen=True, slots=True)
class RepairOutcome:
    outcome: FixOutcome
    valid_patches: tuple[Patch, ...]
    dropped_patches: tuple[Patch, ...]
    rounds_used: int
    reasons: tuple[str, ...] = ()

    @property
    def applicable(self) -> bool:
        return bool(self.valid_patches)

    def summary(self) -> str:
        head = (
            f"{self.outcome.value}: {len(self.valid_patches)} valid, "
            f"{len(self.dropped_patches)} dropped, {self.rounds_used} repair round(s)"
        )
        if not self.reasons:
            return head
        return "\n".join([head, *(f"- {reason}" for reason in self.reasons)])


class RepairLoop:
    """Validate, then repair invalid patches one at a time under a global round ceiling."""

    def __init__(
        self,
        oracle: Oracle,
        checker: GuardedPatchChecker,
        *,
        max_rounds: int = DEFAULT_MAX_REPAIR_ROUNDS,
        excerpt_lines: int = DEFAULT_EXCERPT_LINES,
        excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
        round_timeout_seconds: float | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_rounds < 0:
            raise ValueError("max_rounds must be >= 0")
        if excerpt_lines < 0 or excerpt_chars <= 0:
            raise ValueError("excerpt bounds must be positive")
        if round_timeout_seconds is not None and round_timeout_seconds <= 0:
            raise ValueError("round_timeout_seconds must be > 0")
        self._oracle = oracle
        self._checker = checker
        self._max_rounds = max_rounds
        self._excerpt_lines = excerpt_lines
        self._excerpt_chars = excerpt_chars
        self._round_timeout_seconds = round_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    async def run(self, issue: Issue, patches: Sequence[Patch]) -> RepairOutcome:
        self._logger.info(
            "repair_loop_state", issue_id=issue.id, state=FixOutcome.VALIDATING.value, patches=len(patches)
        )
        initial = self._checker.check(patches)
        valid: list[Patch] = [item.patch for item in initial.results if item.valid]
        dropped: list[Patch] = []
        reasons: list[str] = []
        rounds = 0

        for failure in initial.invalid:
            patch, failure_reasons = failure.patch, failure.reasons
            repaired = False
            while rounds < self._max_rounds:
                rounds += 1
                candidate = await self._request_repair(issue, patch, failure_reasons, rounds)
                if candidate is None:
                    continue
                verdict = self._checker.check([*valid, candidate]).results[-1]
                if verdict.valid:
                    valid.append(candidate)
                    repaired = True
                    self._logger.info(
                        "repair_round_succeeded",
                        issue_id=issue.id,
                        round_number=rounds,
                        file_path=candidate.file_path,
                    )
                    break
                self._logger.info(
                    "repair_round_rejected",
                    issue_id=issue.id,
                    round_number=rounds,
                    file_path=candidate.file_path,
                    reasons=list(verdict.reasons),
                )
                patch, failure_reasons = candidate, verdict.reasons
            if not repaired:
                dropped.append(failure.patch)
                reasons.extend(f"{failure.patch.file_path}: {reason}" for reason in failure_reasons)

        outcome = _outcome_for(valid=len(valid), dropped=len(dropped))
        self._logger.info(
            "repair_loop_state",
            issue_id=issue.id,
            state=outcome.value,
            valid=len(valid),
            dropped=len(dropped),
            rounds_used=rounds,
        )
        return RepairOutcome(
            outcome=outcome,
            valid_patches=tuple(valid),
            dropped_patches=tuple(dropped),
            rounds_used=rounds,
            reasons=tuple(reasons),
        )

    async def _request_repair(
        self, issue: Issue, patch: Patch, reasons: Sequence[str], round_number: int
    ) -> Patch | None:
        content = self._checker.read(patch.file_path) or ""
        request = RepairRequest(
            issue=issue,
            patch=patch,
            reasons=tuple(reasons),
            excerpt=excerpt_around(
                content,
                patch.old_code,
                radius_lines=self._excerpt_lines,
                max_chars=self._excerpt_chars,
            ),
            guardrails=self._checker.guardrails,
            round_number=round_number,
        )
        try:
            if self._round_timeout_seconds is None:
                return await self._oracle.repair(request)
            return await run_with_timeout(self._oracle.repair(request), self._round_timeout_seconds)
        except (RemediationError, TimeoutError) as exc:
            self._logger.warning(
                "repair_round_oracle_failed",
                issue_id=issue.id,
                round_number=round_number,
                file_path=patch.file_path,
                error=type(exc).__name__,
                detail=str(exc),
            )
            return None


def _outcome_for(*, valid: int, dropped: int) -> FixOutcome:
    if valid == 0:
        return FixOutcome.ALL_INVALID
    if dropped:
        return FixOutcome.PARTIALLY_VALID
    return FixOutcome.ALL_VALID


__all__ = ["GuardedPatchChecker", "RepairLoop", "RepairOutcome"]
