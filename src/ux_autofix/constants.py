"""Stable constants shared across detection, validation and remediation."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
ISSUE_STORE_SCHEMA_VERSION: Final[int] = 1
GUARDRAIL_SPEC_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to the workspace root unless overridden by config).
STATE_DIR: Final[PurePosixPath] = PurePosixPath(".autofix")
EVENTS_FILE: Final[PurePosixPath] = PurePosixPath("data/events.jsonl")
GUARDRAILS_FILE: Final[PurePosixPath] = PurePosixPath("data/site-guardrails.json")
STATE_DB_FILE: Final[PurePosixPath] = PurePosixPath(".autofix/state.sqlite3")
LOG_DIR: Final[PurePosixPath] = PurePosixPath(".autofix/logs")

# Severity tiers and weights for deterministic ordering.
SEVERITY_TIERS: Final[tuple[str, ...]] = ("low", "medium", "high", "critical")
SEVERITY_WEIGHT: Final[dict[str, int]] = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}

# Remediation limits.
DEFAULT_MAX_REPAIR_ROUNDS: Final[int] = 3
DEFAULT_EXCERPT_LINES: Final[int] = 40
DEFAULT_EXCERPT_CHARS: Final[int] = 4_000
DEFAULT_COOLDOWN_SECONDS: Final[float] = 300.0
DEFAULT_ORACLE_TIMEOUT_SECONDS: Final[float] = 120.0
DEFAULT_TIME_WINDOW_HOURS: Final[float] = 24.0
MAX_EVIDENCE_SAMPLES: Final[int] = 5

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_COOLDOWN_SECONDS",
    "DEFAULT_EXCERPT_CHARS",
    "DEFAULT_EXCERPT_LINES",
    "DEFAULT_MAX_REPAIR_ROUNDS",
    "DEFAULT_ORACLE_TIMEOUT_SECONDS",
    "DEFAULT_TIME_WINDOW_HOURS",
    "EVENTS_FILE",
    "GUARDRAILS_FILE",
    "GUARDRAIL_SPEC_SCHEMA_VERSION",
    "ISSUE_STORE_SCHEMA_VERSION",
    "LOG_DIR",
    "MAX_EVIDENCE_SAMPLES",
    "SEVERITY_TIERS",
    "SEVERITY_WEIGHT",
    "STATE_DB_FILE",
    "STATE_DIR",
]
