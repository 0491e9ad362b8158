"""
ux-autofix — patch applier

File: src/ux_autofix/integration/patch_applier.py
Last updated: 2026-10-18

Purpose
- Write validated fixes into the workspace: new files first, then exact-match
  literal replacements, with first-touch backups so a session can be reverted.

Functional requirements
- ``old_code`` must be a verbatim substring of the file at apply time; otherwise the
  patch fails with ``PatchTargetNotFound`` and the file is left untouched.
- Only the first occurrence is replaced. Patches to one file apply in order, each
  against the content the previous one left behind.
- Every write is atomic; every path is confined to the workspace root.
- Partial success is reported explicitly, never hidden behind a single boolean.

Non-functional requirements
- Reads and writes for one file are serialized through the session's file locks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ux_autofix.domain.models import NewFile, Patch
from ux_autofix.errors import PartialApplyFailure, PatchAlreadyApplied, PatchTargetNotFound
from ux_autofix.utils.fs import atomic_write, remove_within, resolve_within, workspace_key

if TYPE_CHECKING:
    from ux_autofix.control.context import SessionContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileResult:
    """Outcome of one patch or new-file write."""

    file_path: str
    applied: bool
    error: str | None = None
    error_code: str | None = None
    created: bool = False


@dataclass(frozen=True, slots=True)
class ApplyReport:
    results: tuple[FileResult, ...]

    @property
    def applied_files(self) -> tuple[str, ...]:
        return _unique(item.file_path for item in self.results if item.applied)

    @property
    def failed_files(self) -> tuple[str, ...]:
        return _unique(item.file_path for item in self.results if not item.applied)

    @property
    def all_applied(self) -> bool:
        return all(item.applied for item in self.results)

    @property
    def partial(self) -> bool:
        return bool(self.applied_files) and bool(self.failed_files)

    def raise_for_partial(self) -> None:
        if self.partial:
            raise PartialApplyFailure(self.applied_files, self.failed_files)

    def errors(self) -> list[str]:
        return [f"{item.file_path}: {item.error}" for item in self.results if item.error]


@dataclass(frozen=True, slots=True)
class RevertReport:
    reverted_files: tuple[str, ...] = ()
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class PatchApplier:
    """Applies fixes under ``workspace_root`` and records backups in ``context``.

    Backups, locks and the applied-patch ledger are keyed by the canonical
    workspace-relative path, so ``a/../B.tsx`` and ``B.tsx`` are one file.
    """

    def __init__(self, workspace_root: str | Path, context: SessionContext) -> None:
        self._root = Path(workspace_root).resolve()
        self._context = context

    @property
    def workspace_root(self) -> Path:
        return self._root

    def key_for(self, relative: str) -> str:
        """Canonical key for ``relative``; ``ValueError`` if it escapes the root."""
        return workspace_key(self._root, relative)

    def lock_key(self, relative: str) -> str:
        """Like :meth:`key_for`, but unresolvable paths lock under their raw text."""
        try:
            return self.key_for(relative)
        except ValueError:
            return relative

    def read(self, relative: str) -> str | None:
        """Current content of a workspace file, or ``None`` if it cannot be read."""
        try:
            return resolve_within(self._root, relative).read_text(encoding="utf-8")
        except (OSError, ValueError, UnicodeDecodeError):
            return None

    def was_applied(self, patch: Patch) -> bool:
        """Whether this exact patch already reached disk in this session."""
        try:
            key = self.key_for(patch.file_path)
        except ValueError:
            return False
        return self._context.was_applied(key, patch.old_code, patch.new_code)

    async def write_new_files(self, new_files: Sequence[NewFile]) -> list[FileResult]:
        results: list[FileResult] = []
        for new_file in new_files:
            try:
                key = self.key_for(new_file.path)
            except ValueError as exc:
                logger.error("refusing new file %s: %s", new_file.path, exc)
                results.append(_outside(new_file.path, exc))
                continue
            async with self._context.locks.hold([key]):
                results.append(self._write_new_file(key, new_file))
        return results

    async def apply(self, patches: Sequence[Patch]) -> list[FileResult]:
        results: list[FileResult] = []
        for patch in patches:
            try:
                key = self.key_for(patch.file_path)
            except ValueError as exc:
                logger.error("refusing patch for %s: %s", patch.file_path, exc)
                results.append(_outside(patch.file_path, exc))
                continue
            async with self._context.locks.hold([key]):
                results.append(self._apply_one(key, patch))
        return results

    async def apply_fix(self, new_files: Sequence[NewFile], patches: Sequence[Patch]) -> ApplyReport:
        """Write ``new_files`` then apply ``patches``; report per-entry outcomes."""
        results = await self.write_new_files(new_files)
        results.extend(await self.apply(patches))
        report = ApplyReport(results=tuple(results))
        if report.partial:
            logger.warning(
                "partial apply: %d file(s) written, %d failed (%s)",
                len(report.applied_files),
                len(report.failed_files),
                ", ".join(report.failed_files),
            )
        return report

    async def revert_all(self) -> RevertReport:
        """Restore every backed-up file; created files are removed.

        The backup table is cleared only if every restore succeeded.
        """
        backups = dict(self._context.backups)
        reverted: list[str] = []
        errors: dict[str, str] = {}
        async with self._context.locks.hold(backups):
            for relative, original in sorted(backups.items()):
                try:
                    if original is None:
                        remove_within(self._root, relative)
                    else:
                        atomic_write(resolve_within(self._root, relative), original)
                except (OSError, ValueError) as exc:
                    logger.error("failed to revert %s: %s", relative, exc)
                    errors[relative] = str(exc)
                    continue
                reverted.append(relative)

        if not errors:
            self._context.forget_backups()
        logger.info("reverted %d file(s), %d error(s)", len(reverted), len(errors))
        return RevertReport(reverted_files=tuple(reverted), errors=errors)

    def _write_new_file(self, key: str, new_file: NewFile) -> FileResult:
        target = self._root / key
        try:
            existing = target.read_text(encoding="utf-8") if target.is_file() else None
            atomic_write(target, new_file.content, create_parents=True)
            self._context.record_backup(key, existing)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("failed to write new file %s: %s", key, exc)
            return FileResult(key, applied=False, error=str(exc), error_code="io_error")

        logger.info("wrote new file %s (%d chars)", key, len(new_file.content))
        return FileResult(key, applied=True, created=existing is None)

    def _apply_one(self, key: str, patch: Patch) -> FileResult:
        target = self._root / key
        try:
            if self._context.was_applied(key, patch.old_code, patch.new_code):
                raise PatchAlreadyApplied(key)
            content = self._read_target(target, key)
            updated = _replace_first(content, key, patch)
            self._context.record_backup(key, content)
            atomic_write(target, updated)
        except PatchTargetNotFound as exc:
            logger.warning("patch rejected for %s: %s", key, exc.detail)
            return FileResult(key, applied=False, error=exc.detail, error_code=exc.code)
        except UnicodeDecodeError as exc:
            logger.error("cannot patch non-UTF-8 file %s: %s", key, exc)
            return FileResult(key, applied=False, error=str(exc), error_code="io_error")
        except OSError as exc:
            logger.error("failed to write %s: %s", key, exc)
            return FileResult(key, applied=False, error=str(exc), error_code="io_error")

        self._context.record_applied(key, patch.old_code, patch.new_code)
        logger.info("applied patch to %s: %s", key, patch.description or "(no description)")
        return FileResult(key, applied=True)

    @staticmethod
    def _read_target(target: Path, key: str) -> str:
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise PatchTargetNotFound(key) from None


def _replace_first(content: str, key: str, patch: Patch) -> str:
    if patch.old_code in patch.new_code and patch.new_code in content:
        raise PatchAlreadyApplied(key)
    if patch.old_code not in content:
        raise PatchTargetNotFound(key)
    return content.replace(patch.old_code, patch.new_code, 1)


def _outside(path: str, exc: ValueError) -> FileResult:
    return FileResult(path, applied=False, error=str(exc), error_code="path_outside_workspace")


def _unique(paths: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for path in paths:
        seen.setdefault(path, None)
    return tuple(seen)


__all__ = ["ApplyReport", "FileResult", "PatchApplier", "RevertReport"]
