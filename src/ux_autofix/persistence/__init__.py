"""
ux-autofix — persistence package

File: src/ux_autofix/persistence/__init__.py
Last updated: 2026-10-18

Purpose
- Persistence layer: state DB access, migrations, the issue/fix-attempt repository.

Functional requirements
- Issues are never deleted; concurrent CLI readers must not block a run.

Non-functional requirements
- SQLite-first; avoid heavy DB dependencies.
"""

from ux_autofix.persistence.issue_store import IssueStore
from ux_autofix.persistence.state_db import StateDB, StateDBError

__all__ = ["IssueStore", "StateDB", "StateDBError"]
