"""
ux-autofix — remediation pipeline

File: src/ux_autofix/control/pipeline.py
Last updated: 2026-10-18

Purpose
- Drive one issue from detection to an applied (or explicitly failed) fix.

What should be included in this file
- Cooldown gate with anomaly bypass, oracle generation under a timeout, template
  fallback for malformed replies, validation and repair, application, status update.
- Bounded concurrency across issues; issues on the same component run one at a time.

Functional requirements
- Every processed issue ends ``fix_applied`` or ``fix_failed`` with a diagnostic, and
  its ``FixAttempt`` is persisted whatever the outcome.
- Nothing is written to the workspace before the apply stage; cancellation and oracle
  failures leave files untouched.

Non-functional requirements
- Control decisions are structlog key/value events; the logger is injectable.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import partial
from typing import Any

import structlog

from ux_autofix.constants import (
    DEFAULT_EXCERPT_CHARS,
    DEFAULT_EXCERPT_LINES,
    DEFAULT_MAX_REPAIR_ROUNDS,
    DEFAULT_ORACLE_TIMEOUT_SECONDS,
)
from ux_autofix.control.context import SessionContext
from ux_autofix.control.repair_loop import GuardedPatchChecker, RepairLoop, RepairOutcome
from ux_autofix.domain.ids import generate_fix_attempt_id
from ux_autofix.domain.models import (
    FixAttempt,
    FixOutcome,
    FixSource,
    Issue,
    IssueStatus,
    NewFile,
)
from ux_autofix.errors import OracleMalformedResponse, RemediationError
from ux_autofix.guardrails.spec import DEFAULT_GUARDRAILS, GuardrailSpec
from ux_autofix.guardrails.validator import RoleHints, validate
from ux_autofix.integration.patch_applier import ApplyReport, PatchApplier
from ux_autofix.observability.logging import correlation_scope
from ux_autofix.persistence.issue_store import IssueStore
from ux_autofix.synthesis.fallbacks import fallback_for, fix_type_for_issue, materialize
from ux_autofix.synthesis.oracle import Oracle, OracleContext, OracleResult, SourceFile
from ux_autofix.utils.concurrency import CancellationToken, gather_bounded, run_with_timeout

DEFAULT_MAX_CONCURRENCY = 2


@dataclass(frozen=True, slots=True)
class PipelineResult:
    issue: Issue
    attempt: FixAttempt | None = None
    apply_report: ApplyReport | None = None
    skipped_reason: str | None = None
    error_code: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def applied(self) -> bool:
        return self.issue.status is IssueStatus.FIX_APPLIED


@dataclass(frozen=True, slots=True)
class _Generated:
    result: OracleResult
    source: FixSource
    notes: tuple[str, ...] = ()


class RemediationPipeline:
    """Detect-to-apply driver for a batch of issues sharing one ``SessionContext``."""

    def __init__(
        self,
        *,
        oracle: Oracle,
        store: IssueStore,
        context: SessionContext,
        applier: PatchApplier,
        guardrails: GuardrailSpec = DEFAULT_GUARDRAILS,
        max_rounds: int = DEFAULT_MAX_REPAIR_ROUNDS,
        excerpt_lines: int = DEFAULT_EXCERPT_LINES,
        excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
        oracle_timeout_seconds: float = DEFAULT_ORACLE_TIMEOUT_SECONDS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        cancel_token: CancellationToken | None = None,
        attempt_id_factory: Callable[[], str] = generate_fix_attempt_id,
        logger: Any | None = None,
    ) -> None:
        if oracle_timeout_seconds <= 0:
            raise ValueError("oracle_timeout_seconds must be > 0")
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._oracle = oracle
        self._store = store
        self._context = context
        self._applier = applier
        self._guardrails = guardrails
        self._oracle_timeout_seconds = oracle_timeout_seconds
        self._max_concurrency = max_concurrency
        self._cancel_token = cancel_token or CancellationToken()
        self._attempt_id_factory = attempt_id_factory
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._checker = GuardedPatchChecker(
            applier.read, guardrails, already_applied=applier.was_applied, logger=self._logger
        )
        self._repair_loop = RepairLoop(
            oracle,
            self._checker,
            max_rounds=max_rounds,
            excerpt_lines=excerpt_lines,
            excerpt_chars=excerpt_chars,
            round_timeout_seconds=oracle_timeout_seconds,
            logger=self._logger,
        )

    @property
    def cancel_token(self) -> CancellationToken:
        return self._cancel_token

    async def process_issues(
        self, issues: Sequence[Issue], *, bypass_cooldown: bool = False
    ) -> list[PipelineResult]:
        """Process ``issues`` concurrently; results keep input order."""
        factories = [
            partial(self.process_issue, issue, bypass_cooldown=bypass_cooldown) for issue in issues
        ]
        return await gather_bounded(factories, self._max_concurrency, self._cancel_token)

    async def process_issue(self, issue: Issue, *, bypass_cooldown: bool = False) -> PipelineResult:
        category = issue.category
        if not bypass_cooldown and self._context.in_cooldown(category):
            remaining = self._context.cooldown_remaining(category)
            self._logger.info(
                "pipeline_issue_skipped",
                issue_id=issue.id,
                category=category.value,
                cooldown_remaining_seconds=round(remaining, 1),
            )
            return PipelineResult(
                issue=issue,
                skipped_reason=f"{category.value} fixes are cooling down for {remaining:.0f}s",
            )
        self._context.mark_attempted(category)

        async with self._context.component_locks.hold([self._applier.lock_key(issue.component_path)]):
            return await self._remediate(issue)

    async def _remediate(self, issue: Issue) -> PipelineResult:
        self._cancel_token.raise_if_cancelled()
        issue = self._store.upsert(issue)
        attempt_id = self._attempt_id_factory()
        attempt_number = self._store.next_attempt_number(issue.id)
        fix_type = fix_type_for_issue(issue)

        with correlation_scope(issue_id=issue.id, fix_attempt_id=attempt_id):
            oracle_context = OracleContext(
                issue=issue,
                fix_type=fix_type,
                guardrails=self._guardrails,
                files=(SourceFile(issue.component_path, self._applier.read(issue.component_path)),),
            )
            try:
                generated = await self._generate(oracle_context)
            except TimeoutError:
                detail = f"oracle timed out after {self._oracle_timeout_seconds:g}s"
                return self._fail_before_apply(issue, attempt_id, attempt_number, detail, "oracle_timeout")
            except RemediationError as exc:
                return self._fail_before_apply(issue, attempt_id, attempt_number, exc.detail, exc.code)

            issue = self._store.upsert(issue.with_status(IssueStatus.FIX_GENERATED))
            self._logger.info(
                "pipeline_fix_generated",
                issue_id=issue.id,
                source=generated.source.value,
                fix_type=fix_type.value,
                patches=len(generated.result.patches),
                new_files=len(generated.result.new_files),
            )

            new_files, rejected_files = self._screen_new_files(generated.result.new_files)
            repair = await self._repair(issue, generated, new_files)

            notes = [*generated.notes, *rejected_files]
            if repair.outcome is FixOutcome.ALL_INVALID or not (repair.valid_patches or new_files):
                summary = _summary(repair, notes, report=None)
                return self._finish(
                    issue, attempt_id, attempt_number, generated, (), repair, summary, report=None
                )

            self._cancel_token.raise_if_cancelled()
            report = await self._applier.apply_fix(new_files, repair.valid_patches)
            summary = _summary(repair, notes, report=report)
            return self._finish(
                issue, attempt_id, attempt_number, generated, new_files, repair, summary, report=report
            )

    async def _generate(self, context: OracleContext) -> _Generated:
        try:
            result = await run_with_timeout(
                self._oracle.generate(context), self._oracle_timeout_seconds, self._cancel_token
            )
        except OracleMalformedResponse as exc:
            fallback = fallback_for(context.fix_type)
            if fallback is None:
                raise
            materialized = materialize(fallback, self._applier.read)
            if not materialized.patches:
                raise OracleMalformedResponse(
                    f"{exc.detail}; {context.fix_type.value} template matched nothing"
                ) from exc
            self._logger.warning(
                "pipeline_fallback_used",
                issue_id=context.issue.id,
                fix_type=context.fix_type.value,
                reason=exc.detail,
                missing=list(materialized.missing),
            )
            return _Generated(
                result=OracleResult(explanation=fallback.explanation, patches=materialized.patches),
                source=FixSource.FALLBACK,
                notes=tuple(f"template anchor missing: {item}" for item in materialized.missing),
            )
        return _Generated(result=result, source=FixSource.ORACLE)

    async def _repair(
        self, issue: Issue, generated: _Generated, new_files: tuple[NewFile, ...]
    ) -> RepairOutcome:
        if generated.result.patches:
            return await self._repair_loop.run(issue, generated.result.patches)
        outcome = FixOutcome.ALL_VALID if new_files else FixOutcome.ALL_INVALID
        return RepairOutcome(outcome=outcome, valid_patches=(), dropped_patches=(), rounds_used=0)

    def _screen_new_files(
        self, new_files: Sequence[NewFile]
    ) -> tuple[tuple[NewFile, ...], tuple[str, ...]]:
        kept: list[NewFile] = []
        rejected: list[str] = []
        for new_file in new_files:
            result = validate(
                new_file.content, RoleHints.for_patch(new_file.path, new_file.content), self._guardrails
            )
            if result.valid:
                kept.append(new_file)
                continue
            rules = ", ".join(sorted({item.rule for item in result.errors}))
            rejected.append(f"new file {new_file.path} dropped: guardrail {rules}")
            self._logger.warning("pipeline_new_file_rejected", file_path=new_file.path, rules=rules)
        return tuple(kept), tuple(rejected)

    def _fail_before_apply(
        self, issue: Issue, attempt_id: str, attempt_number: int, detail: str, code: str
    ) -> PipelineResult:
        summary = f"no fix generated ({code}): {detail}"
        attempt = FixAttempt(
            id=attempt_id,
            issue_id=issue.id,
            patches=(),
            new_files=(),
            explanation="",
            attempt_number=attempt_number,
            outcome=FixOutcome.ALL_INVALID,
            summary=summary,
        )
        self._store.record_fix_attempt(attempt)
        failed = self._store.upsert(issue.with_status(IssueStatus.FIX_FAILED, diagnostic=summary))
        self._logger.warning("pipeline_generation_failed", issue_id=issue.id, error_code=code, detail=detail)
        return PipelineResult(issue=failed, attempt=attempt, error_code=code)

    def _finish(
        self,
        issue: Issue,
        attempt_id: str,
        attempt_number: int,
        generated: _Generated,
        new_files: tuple[NewFile, ...],
        repair: RepairOutcome,
        summary: str,
        *,
        report: ApplyReport | None,
    ) -> PipelineResult:
        attempt = FixAttempt(
            id=attempt_id,
            issue_id=issue.id,
            patches=repair.valid_patches,
            new_files=new_files,
            explanation=generated.result.explanation,
            attempt_number=attempt_number,
            outcome=repair.outcome,
            dropped_patches=repair.dropped_patches,
            rounds_used=repair.rounds_used,
            summary=summary,
            source=generated.source,
            applied_files=report.applied_files if report is not None else (),
            failed_files=report.failed_files if report is not None else (),
        )
        self._store.record_fix_attempt(attempt)

        applied = (
            report is not None and report.all_applied and repair.outcome is not FixOutcome.ALL_INVALID
        )
        status = IssueStatus.FIX_APPLIED if applied else IssueStatus.FIX_FAILED
        updated = self._store.upsert(issue.with_status(status, diagnostic=summary))
        self._logger.info(
            "pipeline_issue_finished",
            issue_id=issue.id,
            status=status.value,
            outcome=repair.outcome.value,
            rounds_used=repair.rounds_used,
            applied_files=list(attempt.applied_files),
            failed_files=list(attempt.failed_files),
        )
        error_code = None
        if report is not None and report.partial:
            error_code = "partial_apply_failure"
        elif not applied:
            error_code = "validation_rejected"
        return PipelineResult(issue=updated, attempt=attempt, apply_report=report, error_code=error_code)


def _summary(repair: RepairOutcome, notes: Sequence[str], *, report: ApplyReport | None) -> str:
    lines = [repair.summary()]
    lines.extend(f"- {note}" for note in notes)
    if report is None:
        lines.append("nothing applied")
    else:
        lines.append(f"applied: {', '.join(report.applied_files) or 'none'}")
        lines.extend(f"- {error}" for error in report.errors())
    return "\n".join(lines)


__all__ = ["DEFAULT_MAX_CONCURRENCY", "PipelineResult", "RemediationPipeline"]
