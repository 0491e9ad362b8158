"""State DB migration and pragma tests."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from ux_autofix.constants import ISSUE_STORE_SCHEMA_VERSION
from ux_autofix.persistence.state_db import (
    StateDB,
    StateDBCorruptionError,
    StateDBMigrationError,
    canonical_json,
)


def test_migration_is_idempotent_and_creates_tables(tmp_path: Path) -> None:
    db = StateDB(tmp_path / "state" / "state.sqlite3", busy_timeout_ms=4_321)

    assert db.migrate() == ISSUE_STORE_SCHEMA_VERSION
    assert db.migrate() == ISSUE_STORE_SCHEMA_VERSION

    with db.connection() as conn:
        tables = {
            str(row[0])
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        busy_timeout = conn.execute("PRAGMA busy_timeout").fetchone()[0]
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        foreign_keys = conn.execute("PRAGMA foreign_keys").fetchone()[0]

    assert {"schema_versions", "issues", "fix_attempts"} <= tables
    assert busy_timeout == 4_321
    assert str(journal_mode).lower() == "wal"
    assert foreign_keys == 1


def test_newer_database_is_refused(tmp_path: Path) -> None:
    db = StateDB(tmp_path / "state.sqlite3")
    db.migrate()
    db.execute(
        "INSERT INTO schema_versions (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
        (ISSUE_STORE_SCHEMA_VERSION + 1, "future", "f" * 64, "2026-10-01T00:00:00Z"),
    )

    with pytest.raises(StateDBMigrationError, match="newer than supported"):
        db.migrate()


def test_checksum_mismatch_is_refused(tmp_path: Path) -> None:
    db = StateDB(tmp_path / "state.sqlite3")
    db.migrate()
    db.execute("UPDATE schema_versions SET checksum = ? WHERE version = 1", ("0" * 64,))

    with pytest.raises(StateDBMigrationError, match="checksum mismatch"):
        db.migrate()


def test_transaction_rolls_back_on_error(tmp_path: Path) -> None:
    db = StateDB(tmp_path / "state.sqlite3")
    db.migrate()

    with pytest.raises(RuntimeError), db.transaction() as conn:
        db.execute(
            "INSERT INTO schema_versions (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
            (99, "temp", "a" * 64, "2026-10-01T00:00:00Z"),
            conn=conn,
        )
        raise RuntimeError("abort")

    assert db.query_one("SELECT version FROM schema_versions WHERE version = 99") is None


def test_integrity_errors_propagate(tmp_path: Path) -> None:
    db = StateDB(tmp_path / "state.sqlite3")
    db.migrate()

    with pytest.raises(sqlite3.IntegrityError):
        db.execute(
            "INSERT INTO fix_attempts (id, issue_id, attempt_number, outcome, created_at, payload_json) "
            "VALUES ('f', 'missing', 1, 'all_valid', 'x', '{}')"
        )


def test_garbage_file_is_reported_as_corruption(tmp_path: Path) -> None:
    path = tmp_path / "state.sqlite3"
    path.write_bytes(b"this is not a sqlite database" * 64)

    with pytest.raises(StateDBCorruptionError):
        StateDB(path).migrate()


def test_canonical_json_is_sorted_and_compact() -> None:
    assert canonical_json({"b": 1, "a": [1, "é"]}) == '{"a":[1,"é"],"b":1}'


def test_negative_settings_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="busy_timeout_ms"):
        StateDB(tmp_path / "x.sqlite3", busy_timeout_ms=-1)
