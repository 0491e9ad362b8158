"""Process-scoped remediation state: backups, category cooldowns and file locks."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType

from ux_autofix.constants import DEFAULT_COOLDOWN_SECONDS
from ux_autofix.domain.models import IssueCategory
from ux_autofix.utils.concurrency import KeyedLocks

Clock = Callable[[], float]


class SessionContext:
    """Mutable state shared by every issue processed in one run.

    - ``backups`` maps a canonical workspace-relative path to its content before the
      first write of this session (``None`` when the file did not exist yet).
    - Applied ``(path, old_code, new_code)`` triples make re-applying a patch a no-op.
    - Cooldowns gate repeated fixes per issue category.
    - ``locks`` serializes reads and writes per file across concurrent issues.
    - ``component_locks`` serializes whole issue pipelines that target the same
      component file, from context building through apply.

    One instance is created per CLI run (or test) and passed explicitly.
    """

    def __init__(
        self,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")
        self._cooldown_seconds = float(cooldown_seconds)
        self._clock = clock
        self._backups: dict[str, str | None] = {}
        self._applied: set[tuple[str, str, str]] = set()
        self._last_fix: dict[str, float] = {}
        self.locks = KeyedLocks()
        self.component_locks = KeyedLocks()

    # Backups -----------------------------------------------------------------

    @property
    def backups(self) -> Mapping[str, str | None]:
        return MappingProxyType(self._backups)

    def record_backup(self, path: str, content: str | None) -> bool:
        """Remember ``content`` for ``path`` unless a backup already exists."""
        if path in self._backups:
            return False
        self._backups[path] = content
        return True

    def has_backup(self, path: str) -> bool:
        return path in self._backups

    def forget_backups(self, paths: Iterable[str] | None = None) -> None:
        """Drop backups (all, or for ``paths``) along with their applied-patch records."""
        if paths is None:
            self._backups.clear()
            self._applied.clear()
            return
        dropped = set(paths)
        for path in dropped:
            self._backups.pop(path, None)
        self._applied = {entry for entry in self._applied if entry[0] not in dropped}

    def record_applied(self, path: str, old_code: str, new_code: str) -> None:
        self._applied.add((path, old_code, new_code))

    def was_applied(self, path: str, old_code: str, new_code: str) -> bool:
        return (path, old_code, new_code) in self._applied

    # Cooldowns ---------------------------------------------------------------

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    def cooldown_remaining(self, category: IssueCategory | str) -> float:
        last = self._last_fix.get(str(category))
        if last is None:
            return 0.0
        return max(0.0, self._cooldown_seconds - (self._clock() - last))

    def in_cooldown(self, category: IssueCategory | str) -> bool:
        return self.cooldown_remaining(category) > 0.0

    def mark_attempted(self, category: IssueCategory | str) -> None:
        self._last_fix[str(category)] = self._clock()

    def reset_cooldowns(self) -> None:
        self._last_fix.clear()


__all__ = ["Clock", "SessionContext"]
