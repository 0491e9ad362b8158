"""
ux-autofix — domain layer

File: src/ux_autofix/domain/__init__.py
Last updated: 2026-10-18

Purpose
- Domain types shared across stages: events, pattern rules, issues, patches, fix attempts.

What should be included in this file
- Re-export of core domain entities for convenience.
- Keep domain layer free of IO side effects.

Functional requirements
- Domain objects must be serializable.

Non-functional requirements
- Domain layer should have minimal dependencies.
"""

from ux_autofix.domain.events import (
    ClickEvent,
    CommerceEvent,
    Event,
    EventKind,
    EventType,
    FormEvent,
    NavigationEvent,
    ScrollEvent,
    event_from_dict,
)
from ux_autofix.domain.models import (
    FixAttempt,
    FixOutcome,
    FixSource,
    FixType,
    GroupBy,
    Issue,
    IssueCategory,
    IssueSeverity,
    IssueStatus,
    NewFile,
    Patch,
    PatchSetValidation,
    PatchValidation,
    PatternRule,
    SeverityThresholds,
    ValidationResult,
    Violation,
    ViolationSeverity,
)

__all__ = [
    "ClickEvent",
    "CommerceEvent",
    "Event",
    "EventKind",
    "EventType",
    "FixAttempt",
    "FixOutcome",
    "FixSource",
    "FixType",
    "FormEvent",
    "GroupBy",
    "Issue",
    "IssueCategory",
    "IssueSeverity",
    "IssueStatus",
    "NavigationEvent",
    "NewFile",
    "Patch",
    "PatchSetValidation",
    "PatchValidation",
    "PatternRule",
    "ScrollEvent",
    "SeverityThresholds",
    "ValidationResult",
    "Violation",
    "ViolationSeverity",
    "event_from_dict",
]
