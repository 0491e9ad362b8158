"""
ux-autofix — SQLite state database

File: src/ux_autofix/persistence/state_db.py
Last updated: 2026-10-18

Purpose
- SQLite schema management, migrations, and connection lifecycle for issue state.

What should be included in this file
- Schema version table and an idempotent, checksummed migration runner.
- Busy timeout plus bounded busy retries; corruption surfaced as an actionable error.

Functional requirements
- Migrations are applied once; a checksum mismatch or a newer database is refused.

Non-functional requirements
- Connections are short-lived so CLI status commands never block behind a run.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from ux_autofix.constants import ISSUE_STORE_SCHEMA_VERSION
from ux_autofix.domain.models import FixOutcome, IssueStatus

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25


def _sql_enum(values: Sequence[str]) -> str:
    return ",".join(f"'{value}'" for value in values)


_ISSUE_STATUS_VALUES: Final[tuple[str, ...]] = tuple(sorted(item.value for item in IssueStatus))
_FIX_OUTCOME_VALUES: Final[tuple[str, ...]] = tuple(sorted(item.value for item in FixOutcome))

_SCHEMA_VERSIONS_TABLE_SQL: Final[str] = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY CHECK (version > 0),
    name TEXT NOT NULL,
    checksum TEXT NOT NULL CHECK (length(checksum) = 64),
    applied_at TEXT NOT NULL
)
"""

_MIGRATION_0001_STATEMENTS: Final[tuple[str, ...]] = (
    _SCHEMA_VERSIONS_TABLE_SQL,
    f"""
    CREATE TABLE IF NOT EXISTS issues (
        id TEXT PRIMARY KEY,
        pattern_id TEXT NOT NULL,
        element_key TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ({_sql_enum(_ISSUE_STATUS_VALUES)})),
        severity TEXT NOT NULL,
        category TEXT NOT NULL,
        created_at TEXT NOT NULL,
        last_occurrence TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        payload_json TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_issues_identity ON issues(pattern_id, element_key)",
    "CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status)",
    f"""
    CREATE TABLE IF NOT EXISTS fix_attempts (
        id TEXT PRIMARY KEY,
        issue_id TEXT NOT NULL,
        attempt_number INTEGER NOT NULL CHECK (attempt_number >= 1),
        outcome TEXT NOT NULL CHECK (outcome IN ({_sql_enum(_FIX_OUTCOME_VALUES)})),
        created_at TEXT NOT NULL,
        payload_json TEXT NOT NULL,
        FOREIGN KEY(issue_id) REFERENCES issues(id) ON DELETE RESTRICT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_fix_attempts_issue ON fix_attempts(issue_id, attempt_number)",
)


@dataclass(frozen=True, slots=True)
class MigrationRecord:
    version: int
    name: str
    checksum: str
    applied_at: str


@dataclass(frozen=True, slots=True)
class _Migration:
    version: int
    name: str
    statements: tuple[str, ...]
    checksum: str


def _migration_checksum(version: int, name: str, statements: Sequence[str]) -> str:
    digest = hashlib.sha256()
    digest.update(f"{version}:{name}\n".encode())
    for statement in statements:
        normalized = "\n".join(line.rstrip() for line in statement.strip().splitlines())
        digest.update(normalized.encode("utf-8"))
        digest.update(b"\n--\n")
    return digest.hexdigest()


_MIGRATIONS: Final[tuple[_Migration, ...]] = (
    _Migration(
        version=1,
        name="issues_and_fix_attempts",
        statements=_MIGRATION_0001_STATEMENTS,
        checksum=_migration_checksum(1, "issues_and_fix_attempts", _MIGRATION_0001_STATEMENTS),
    ),
)

_BUSY_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
)

_CORRUPTION_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database disk image is malformed",
    "malformed database",
    "file is not a database",
)


class StateDBError(RuntimeError):
    """Base class for persistence DB errors."""


class StateDBBusyError(StateDBError):
    """Raised when bounded busy retries are exhausted."""


class StateDBMigrationError(StateDBError):
    """Raised when migrations cannot be applied safely."""


class StateDBCorruptionError(StateDBError):
    """Raised when SQLite reports possible corruption."""


class StateDB:
    """SQLite state DB manager with deterministic migrations and safe helpers."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if busy_retry_limit < 0:
            raise ValueError("busy_retry_limit must be >= 0")
        if busy_retry_backoff_ms < 0:
            raise ValueError("busy_retry_backoff_ms must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            for pragma in (
                "PRAGMA foreign_keys=ON",
                f"PRAGMA busy_timeout={self._busy_timeout_ms}",
                "PRAGMA journal_mode=WAL",
            ):
                self._execute_with_retry(conn, pragma, (), operation="configure connection")
        except BaseException:
            conn.close()
            raise
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, *, conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Run statements inside one ``BEGIN IMMEDIATE`` transaction."""
        if conn is None:
            with self.connection() as owned_conn, self.transaction(conn=owned_conn) as txn_conn:
                yield txn_conn
            return

        self.execute("BEGIN IMMEDIATE", conn=conn, operation="begin transaction")
        try:
            yield conn
        except Exception:
            self.execute("ROLLBACK", conn=conn, operation="rollback transaction")
            raise
        else:
            self.execute("COMMIT", conn=conn, operation="commit transaction")

    def migrate(self) -> int:
        """Apply migrations idempotently and return current schema version."""
        with self.connection() as conn:
            self.execute(_SCHEMA_VERSIONS_TABLE_SQL, conn=conn, operation="create schema_versions")
            applied = self._load_applied_migrations(conn)
            current_version = max(applied, default=0)
            if current_version > ISSUE_STORE_SCHEMA_VERSION:
                raise StateDBMigrationError(
                    "database schema is newer than supported by this version "
                    f"(db={current_version}, code={ISSUE_STORE_SCHEMA_VERSION})"
                )

            for migration in _MIGRATIONS:
                if migration.version > ISSUE_STORE_SCHEMA_VERSION:
                    continue
                record = applied.get(migration.version)
                if record is not None:
                    if record.checksum != migration.checksum:
                        raise StateDBMigrationError(
                            "migration checksum mismatch for version "
                            f"{migration.version}: db={record.checksum} code={migration.checksum}"
                        )
                    continue

                with self.transaction(conn=conn) as tx:
                    for statement in migration.statements:
                        self.execute(statement, conn=tx, operation=f"apply migration {migration.version}")
                    self.execute(
                        """
                        INSERT INTO schema_versions (version, name, checksum, applied_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (migration.version, migration.name, migration.checksum, utc_now_iso()),
                        conn=tx,
                        operation=f"record migration {migration.version}",
                    )
            return self.schema_version(conn=conn)

    def schema_version(self, *, conn: sqlite3.Connection | None = None) -> int:
        row = self.query_one("SELECT COALESCE(MAX(version), 0) AS version FROM schema_versions", conn=conn)
        if row is None:
            return 0
        value = row["version"]
        if not isinstance(value, int):
            raise StateDBMigrationError("schema_versions.version must be an integer")
        return value

    def execute(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
        operation: str = "execute",
    ) -> sqlite3.Cursor:
        if conn is None:
            with self.connection() as owned:
                return self._execute_with_retry(owned, sql, params, operation=operation)
        return self._execute_with_retry(conn, sql, params, operation=operation)

    def query_all(
        self, sql: str, params: SQLParams = (), *, conn: sqlite3.Connection | None = None
    ) -> list[sqlite3.Row]:
        if conn is None:
            with self.connection() as owned:
                return list(self._execute_with_retry(owned, sql, params, operation="query").fetchall())
        return list(self._execute_with_retry(conn, sql, params, operation="query").fetchall())

    def query_one(
        self, sql: str, params: SQLParams = (), *, conn: sqlite3.Connection | None = None
    ) -> sqlite3.Row | None:
        rows = self.query_all(sql, params, conn=conn)
        return rows[0] if rows else None

    def _load_applied_migrations(self, conn: sqlite3.Connection) -> dict[int, MigrationRecord]:
        cursor = self.execute(
            "SELECT version, name, checksum, applied_at FROM schema_versions ORDER BY version ASC",
            conn=conn,
            operation="load schema_versions",
        )
        out: dict[int, MigrationRecord] = {}
        for row in cursor.fetchall():
            if not isinstance(row["version"], int):
                raise StateDBMigrationError("schema_versions.version must be integer")
            out[row["version"]] = MigrationRecord(
                version=row["version"],
                name=str(row["name"]),
                checksum=str(row["checksum"]),
                applied_at=str(row["applied_at"]),
            )
        return out

    def _execute_with_retry(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: SQLParams,
        *,
        operation: str,
    ) -> sqlite3.Cursor:
        for attempt in range(self._busy_retry_limit + 1):
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                if _is_busy_error(exc) and attempt < self._busy_retry_limit:
                    time.sleep((self._busy_retry_backoff_ms / 1000.0) * float(2**attempt))
                    continue
                self._raise_actionable_error(exc, operation=operation)
        raise StateDBBusyError(f"{operation} exhausted retries unexpectedly")

    def _raise_actionable_error(self, exc: sqlite3.Error, *, operation: str) -> None:
        message = str(exc).lower()
        if any(fragment in message for fragment in _CORRUPTION_SUBSTRINGS):
            raise StateDBCorruptionError(f"{operation} failed for {self._path}: {exc}") from exc
        if _is_busy_error(exc):
            raise StateDBBusyError(
                f"{operation} hit SQLITE_BUSY for {self._path} after "
                f"{self._busy_retry_limit + 1} attempt(s): {exc}"
            ) from exc
        raise StateDBError(f"{operation} failed for {self._path}: {exc}") from exc


def _is_busy_error(exc: sqlite3.Error) -> bool:
    message = str(exc).lower()
    return any(fragment in message for fragment in _BUSY_SUBSTRINGS)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def canonical_json(value: object) -> str:
    """Deterministic JSON for persistence payloads."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "MigrationRecord",
    "SQLParams",
    "SQLValue",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
    "canonical_json",
    "utc_now_iso",
]
