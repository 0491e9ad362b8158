"""
ux-autofix — unit tests for the issue store

File: tests/unit/persistence/test_issue_store.py
Last updated: 2026-10-18

Purpose
- Validate issue identity, status persistence and fix-attempt history on SQLite.

What this test file should cover
- One open issue per (pattern_id, element_key); a resolved key can reopen.
- Fix attempts are numbered per issue and round-trip losslessly.
- Archival by last occurrence; nothing is ever deleted.

Functional requirements
- Each test owns a temporary database file.

Non-functional requirements
- Deterministic timestamps.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ux_autofix.domain.models import (
    FixAttempt,
    FixOutcome,
    Issue,
    IssueCategory,
    IssueSeverity,
    IssueStatus,
    Patch,
)
from ux_autofix.persistence.issue_store import IssueStore

NOW = datetime(2026, 10, 1, 12, tzinfo=UTC)


def make_issue(issue_id: str, *, element_key: str = "[data-add-to-cart]", **overrides: object) -> Issue:
    values: dict[str, object] = {
        "id": issue_id,
        "status": IssueStatus.DETECTED,
        "severity": IssueSeverity.MEDIUM,
        "category": IssueCategory.FRUSTRATION,
        "pattern_id": "rage_click_hotspot",
        "element_key": element_key,
        "component_path": "components/store/ProductGrid.tsx",
        "component_name": "ProductGrid",
        "evidence": (),
        "event_count": 12,
        "unique_sessions": 5,
        "problem_statement": "p",
        "user_intent": "i",
        "current_outcome": "o",
        "suggested_fix": "f",
        "created_at": NOW,
        "last_occurrence": NOW,
    }
    values.update(overrides)
    return Issue(**values)  # type: ignore[arg-type]


def make_attempt(issue_id: str, number: int, *, outcome: FixOutcome = FixOutcome.ALL_VALID) -> FixAttempt:
    return FixAttempt(
        id=f"fix-{issue_id}-{number}",
        issue_id=issue_id,
        patches=(Patch(file_path="a.tsx", old_code="x", new_code="y"),),
        new_files=(),
        explanation="e",
        attempt_number=number,
        outcome=outcome,
        created_at=NOW + timedelta(minutes=number),
    )


@pytest.fixture
def store(tmp_path: Path) -> IssueStore:
    return IssueStore(tmp_path / ".autofix" / "state.sqlite3")


def test_upsert_and_get_round_trip(store: IssueStore) -> None:
    issue = make_issue("issue-1", fix_diagnostic="note")

    store.upsert(issue)

    assert store.get("issue-1") == issue
    assert store.get("missing") is None


def test_open_key_is_refreshed_not_duplicated(store: IssueStore) -> None:
    store.upsert(make_issue("issue-1"))
    store.update_status("issue-1", IssueStatus.FIX_GENERATED)

    stored = store.upsert(make_issue("issue-2", event_count=30, last_occurrence=NOW + timedelta(hours=1)))

    assert stored.id == "issue-1"
    assert stored.status is IssueStatus.FIX_GENERATED
    assert stored.event_count == 30
    assert [issue.id for issue in store.all_issues()] == ["issue-1"]


def test_resolved_key_can_reopen_as_new_issue(store: IssueStore) -> None:
    store.upsert(make_issue("issue-1"))
    store.update_status("issue-1", IssueStatus.FIX_APPLIED)

    stored = store.upsert(make_issue("issue-2", created_at=NOW + timedelta(days=1)))

    assert stored.id == "issue-2"
    assert store.find_open("rage_click_hotspot", "[data-add-to-cart]") == stored
    assert [issue.id for issue in store.list_by_status(IssueStatus.FIX_APPLIED)] == ["issue-1"]
    assert [issue.id for issue in store.open_issues()] == ["issue-2"]


def test_update_status_sets_diagnostic(store: IssueStore) -> None:
    store.upsert(make_issue("issue-1"))

    updated = store.update_status("issue-1", IssueStatus.FIX_FAILED, diagnostic="old_code not found")

    assert store.get("issue-1") == updated
    assert updated.fix_diagnostic == "old_code not found"
    with pytest.raises(KeyError, match="unknown issue"):
        store.update_status("nope", IssueStatus.ARCHIVED)


def test_fix_attempt_history(store: IssueStore) -> None:
    store.upsert(make_issue("issue-1"))

    assert store.next_attempt_number("issue-1") == 1
    store.record_fix_attempt(make_attempt("issue-1", 1, outcome=FixOutcome.ALL_INVALID))
    store.record_fix_attempt(make_attempt("issue-1", 2, outcome=FixOutcome.PARTIALLY_VALID))

    attempts = store.list_fix_attempts("issue-1")

    assert [attempt.attempt_number for attempt in attempts] == [1, 2]
    assert attempts[1] == make_attempt("issue-1", 2, outcome=FixOutcome.PARTIALLY_VALID)
    assert store.next_attempt_number("issue-1") == 3


def test_fix_attempt_for_unknown_issue_is_rejected(store: IssueStore) -> None:
    with pytest.raises(KeyError, match="unknown issue"):
        store.record_fix_attempt(make_attempt("ghost", 1))


def test_archive_older_than(store: IssueStore) -> None:
    store.upsert(make_issue("old", element_key="#hero", last_occurrence=NOW - timedelta(days=10)))
    store.upsert(make_issue("fresh"))

    archived = store.archive_older_than(NOW - timedelta(days=7))

    assert archived == ["old"]
    assert store.get("old").status is IssueStatus.ARCHIVED  # type: ignore[union-attr]
    assert store.archive_older_than(NOW - timedelta(days=7)) == []
    assert len(store.all_issues()) == 2
