from __future__ import annotations

import pytest

from ux_autofix.control.context import SessionContext
from ux_autofix.domain.models import IssueCategory


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_cooldown_is_per_category() -> None:
    clock = FakeClock()
    context = SessionContext(cooldown_seconds=300, clock=clock)

    context.mark_attempted(IssueCategory.FRUSTRATION)
    clock.now += 120

    assert context.cooldown_remaining(IssueCategory.FRUSTRATION) == 180
    assert context.in_cooldown("frustration")
    assert not context.in_cooldown(IssueCategory.CONVERSION_BLOCKER)

    clock.now += 180
    assert not context.in_cooldown(IssueCategory.FRUSTRATION)


def test_reset_cooldowns() -> None:
    context = SessionContext(cooldown_seconds=60, clock=FakeClock())
    context.mark_attempted(IssueCategory.FRUSTRATION)

    context.reset_cooldowns()

    assert context.cooldown_remaining(IssueCategory.FRUSTRATION) == 0.0


def test_negative_cooldown_rejected() -> None:
    with pytest.raises(ValueError, match="cooldown_seconds"):
        SessionContext(cooldown_seconds=-1)


def test_first_backup_wins() -> None:
    context = SessionContext()

    assert context.record_backup("a.tsx", "original")
    assert not context.record_backup("a.tsx", "patched once")
    assert context.record_backup("new.tsx", None)
    assert dict(context.backups) == {"a.tsx": "original", "new.tsx": None}

    context.forget_backups(["a.tsx"])

    assert not context.has_backup("a.tsx")
    assert context.has_backup("new.tsx")


def test_applied_patches_are_forgotten_with_their_backups() -> None:
    context = SessionContext()
    context.record_backup("a.tsx", "original")
    context.record_backup("b.tsx", "other")
    context.record_applied("a.tsx", "x;", "log(x);")
    context.record_applied("b.tsx", "y;", "log(y);")

    assert context.was_applied("a.tsx", "x;", "log(x);")
    assert not context.was_applied("a.tsx", "x;", "warn(x);")

    context.forget_backups(["a.tsx"])

    assert not context.was_applied("a.tsx", "x;", "log(x);")
    assert context.was_applied("b.tsx", "y;", "log(y);")

    context.forget_backups()

    assert not context.was_applied("b.tsx", "y;", "log(y);")
