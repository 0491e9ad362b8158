"""Issue and fix-attempt repository on top of ``StateDB``.

Issues are identified by ``(pattern_id, element_key)`` while open; they are never
deleted, only moved to ``archived``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from ux_autofix.domain.models import RESOLVED_STATUSES, FixAttempt, Issue, IssueStatus
from ux_autofix.persistence.state_db import StateDB, canonical_json, utc_now_iso

logger = logging.getLogger(__name__)

_OPEN_STATUS_VALUES: tuple[str, ...] = tuple(
    sorted(item.value for item in IssueStatus if item not in RESOLVED_STATUSES)
)
_OPEN_PLACEHOLDERS = ",".join("?" for _ in _OPEN_STATUS_VALUES)


class IssueStore:
    """Repository for ``Issue`` rows and their ``FixAttempt`` history."""

    def __init__(self, db: StateDB | str | Path) -> None:
        self._db = db if isinstance(db, StateDB) else StateDB(db)
        self._db.migrate()

    @property
    def db(self) -> StateDB:
        return self._db

    def upsert(self, issue: Issue) -> Issue:
        """Insert or update ``issue``; a new id for an already-open key refreshes that issue.

        Returns the stored issue, which keeps the original id, status and ``created_at``
        when the key was already open.
        """
        with self._db.transaction() as conn:
            existing = self._find_open(issue.pattern_id, issue.element_key, conn=conn)
            stored = issue
            if existing is not None and existing.id != issue.id:
                stored = replace(
                    issue,
                    id=existing.id,
                    status=existing.status,
                    created_at=existing.created_at,
                    fix_diagnostic=existing.fix_diagnostic,
                )
                logger.info("refreshing open issue %s for key %s", existing.id, issue.key)
            self._write_issue(stored, conn=conn)
        return stored

    def get(self, issue_id: str) -> Issue | None:
        row = self._db.query_one("SELECT payload_json FROM issues WHERE id = ?", (issue_id,))
        return _issue_from_row(row) if row is not None else None

    def find_open(self, pattern_id: str, element_key: str) -> Issue | None:
        return self._find_open(pattern_id, element_key)

    def list_by_status(self, status: IssueStatus | str) -> list[Issue]:
        value = IssueStatus(status).value
        rows = self._db.query_all(
            "SELECT payload_json FROM issues WHERE status = ? ORDER BY created_at ASC, id ASC",
            (value,),
        )
        return [_issue_from_row(row) for row in rows]

    def open_issues(self) -> list[Issue]:
        rows = self._db.query_all(
            f"SELECT payload_json FROM issues WHERE status IN ({_OPEN_PLACEHOLDERS}) "
            "ORDER BY created_at ASC, id ASC",
            _OPEN_STATUS_VALUES,
        )
        return [_issue_from_row(row) for row in rows]

    def all_issues(self) -> list[Issue]:
        rows = self._db.query_all("SELECT payload_json FROM issues ORDER BY created_at ASC, id ASC")
        return [_issue_from_row(row) for row in rows]

    def update_status(
        self, issue_id: str, status: IssueStatus, *, diagnostic: str | None = None
    ) -> Issue:
        issue = self.get(issue_id)
        if issue is None:
            raise KeyError(f"unknown issue: {issue_id}")
        updated = issue.with_status(status, diagnostic=diagnostic)
        with self._db.transaction() as conn:
            self._write_issue(updated, conn=conn)
        return updated

    def record_fix_attempt(self, attempt: FixAttempt) -> None:
        if self.get(attempt.issue_id) is None:
            raise KeyError(f"fix attempt {attempt.id} references unknown issue {attempt.issue_id}")
        with self._db.transaction() as conn:
            self._db.execute(
                """
                INSERT INTO fix_attempts (id, issue_id, attempt_number, outcome, created_at, payload_json)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    outcome = excluded.outcome,
                    payload_json = excluded.payload_json
                """,
                (
                    attempt.id,
                    attempt.issue_id,
                    attempt.attempt_number,
                    attempt.outcome.value,
                    _sortable(attempt.created_at),
                    canonical_json(attempt.to_dict()),
                ),
                conn=conn,
                operation="record fix attempt",
            )

    def list_fix_attempts(self, issue_id: str) -> list[FixAttempt]:
        rows = self._db.query_all(
            "SELECT payload_json FROM fix_attempts WHERE issue_id = ? "
            "ORDER BY attempt_number ASC, created_at ASC",
            (issue_id,),
        )
        return [FixAttempt.from_dict(json.loads(str(row["payload_json"]))) for row in rows]

    def next_attempt_number(self, issue_id: str) -> int:
        row = self._db.query_one(
            "SELECT COALESCE(MAX(attempt_number), 0) AS latest FROM fix_attempts WHERE issue_id = ?",
            (issue_id,),
        )
        latest = row["latest"] if row is not None else 0
        return int(latest) + 1

    def archive_older_than(self, cutoff: datetime) -> list[str]:
        """Move issues whose last occurrence precedes ``cutoff`` to ``archived``."""
        archived: list[str] = []
        with self._db.transaction() as conn:
            rows = self._db.query_all(
                "SELECT payload_json FROM issues WHERE last_occurrence < ? AND status <> ?",
                (_sortable(cutoff), IssueStatus.ARCHIVED.value),
                conn=conn,
            )
            for row in rows:
                issue = _issue_from_row(row)
                self._write_issue(
                    issue.with_status(IssueStatus.ARCHIVED, diagnostic=issue.fix_diagnostic),
                    conn=conn,
                )
                archived.append(issue.id)
        if archived:
            logger.info("archived %d issue(s) older than %s", len(archived), cutoff.isoformat())
        return archived

    def _find_open(
        self, pattern_id: str, element_key: str, *, conn: sqlite3.Connection | None = None
    ) -> Issue | None:
        row = self._db.query_one(
            f"SELECT payload_json FROM issues WHERE pattern_id = ? AND element_key = ? "
            f"AND status IN ({_OPEN_PLACEHOLDERS}) ORDER BY created_at ASC LIMIT 1",
            (pattern_id, element_key, *_OPEN_STATUS_VALUES),
            conn=conn,
        )
        return _issue_from_row(row) if row is not None else None

    def _write_issue(self, issue: Issue, *, conn: sqlite3.Connection) -> None:
        self._db.execute(
            """
            INSERT INTO issues (
                id, pattern_id, element_key, status, severity, category,
                created_at, last_occurrence, updated_at, payload_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                severity = excluded.severity,
                last_occurrence = excluded.last_occurrence,
                updated_at = excluded.updated_at,
                payload_json = excluded.payload_json
            """,
            (
                issue.id,
                issue.pattern_id,
                issue.element_key,
                issue.status.value,
                issue.severity.value,
                issue.category.value,
                _sortable(issue.created_at),
                _sortable(issue.last_occurrence),
                utc_now_iso(),
                canonical_json(issue.to_dict()),
            ),
            conn=conn,
            operation="write issue",
        )


def _issue_from_row(row: sqlite3.Row) -> Issue:
    return Issue.from_dict(json.loads(str(row["payload_json"])))


def _sortable(value: datetime) -> str:
    # Fixed-width so lexicographic order matches chronological order.
    aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return aware.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


__all__ = ["IssueStore"]
