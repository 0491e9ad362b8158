"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar

from ux_autofix.constants import SEVERITY_TIERS, SEVERITY_WEIGHT
from ux_autofix.domain.events import Event, EventType, JSONValue, event_from_dict

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)


class IssueStatus(StrEnum):
    DETECTED = "detected"
    FIX_GENERATED = "fix_generated"
    FIX_APPLIED = "fix_applied"
    FIX_FAILED = "fix_failed"
    APPROVED = "approved"
    REJECTED = "rejected"
    IGNORED = "ignored"
    ARCHIVED = "archived"


# Statuses that close an issue for deduplication purposes.
RESOLVED_STATUSES: frozenset[IssueStatus] = frozenset(
    {IssueStatus.FIX_APPLIED, IssueStatus.APPROVED, IssueStatus.ARCHIVED}
)


class IssueSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHT[self.value]


class IssueCategory(StrEnum):
    FRUSTRATION = "frustration"
    MISSING_FEATURE = "missing_feature"
    CONVERSION_BLOCKER = "conversion_blocker"


class GroupBy(StrEnum):
    ELEMENT = "element"
    SECTION = "section"
    COMPONENT = "component"


class ViolationSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class FixType(StrEnum):
    LOADING_STATE = "loading_state"
    IMAGE_GALLERY = "image_gallery"
    ADDRESS_AUTOCOMPLETE = "address_autocomplete"
    PRODUCT_COMPARISON = "product_comparison"
    COLOR_PREVIEW = "color_preview"
    UNKNOWN = "unknown"


class FixOutcome(StrEnum):
    DRAFT = "draft"
    VALIDATING = "validating"
    ALL_VALID = "all_valid"
    PARTIALLY_VALID = "partially_valid"
    ALL_INVALID = "all_invalid"


class FixSource(StrEnum):
    ORACLE = "oracle"
    FALLBACK = "fallback"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        raise NotImplementedError

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


@dataclass(frozen=True, slots=True)
class SeverityThresholds(CanonicalModel):
    """Evidence-count thresholds for each severity band."""

    low: int
    medium: int
    high: int
    critical: int

    def __post_init__(self) -> None:
        values = (self.low, self.medium, self.high, self.critical)
        for name, value in zip(SEVERITY_TIERS, values, strict=True):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                _fail(f"SeverityThresholds.{name}", "expected integer >= 1")
        if any(later < earlier for earlier, later in zip(values, values[1:], strict=False)):
            _fail("SeverityThresholds", "thresholds must be non-decreasing low<=medium<=high<=critical")

    def band_for(self, count: int) -> IssueSeverity:
        """Highest band whose threshold does not exceed ``count``."""
        if count >= self.critical:
            return IssueSeverity.CRITICAL
        if count >= self.high:
            return IssueSeverity.HIGH
        if count >= self.medium:
            return IssueSeverity.MEDIUM
        return IssueSeverity.LOW

    def to_dict(self) -> dict[str, JSONValue]:
        return {"low": self.low, "medium": self.medium, "high": self.high, "critical": self.critical}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> SeverityThresholds:
        return cls(
            low=_as_int(data.get("low"), "severity_thresholds.low"),
            medium=_as_int(data.get("medium"), "severity_thresholds.medium"),
            high=_as_int(data.get("high"), "severity_thresholds.high"),
            critical=_as_int(data.get("critical"), "severity_thresholds.critical"),
        )


@dataclass(frozen=True, slots=True)
class PatternRule(CanonicalModel):
    """Static detection rule: which events, how grouped, and how much is too much."""

    id: str
    name: str
    category: IssueCategory
    trigger_event_types: frozenset[EventType]
    group_by: GroupBy
    time_window_hours: float
    min_occurrences: int
    min_unique_sessions: int
    severity_thresholds: SeverityThresholds
    problem_template: str
    intent_template: str
    outcome_template: str
    fix_template: str

    def __post_init__(self) -> None:
        path = f"PatternRule[{self.id}]"
        object.__setattr__(self, "id", _as_str(self.id, f"{path}.id"))
        object.__setattr__(self, "category", _as_enum(self.category, IssueCategory, f"{path}.category"))
        object.__setattr__(self, "group_by", _as_enum(self.group_by, GroupBy, f"{path}.group_by"))
        triggers = frozenset(
            _as_enum(item, EventType, f"{path}.trigger_event_types") for item in self.trigger_event_types
        )
        if not triggers:
            _fail(f"{path}.trigger_event_types", "must not be empty")
        object.__setattr__(self, "trigger_event_types", triggers)
        if self.time_window_hours <= 0:
            _fail(f"{path}.time_window_hours", "must be > 0")
        if self.min_occurrences < 1:
            _fail(f"{path}.min_occurrences", "must be >= 1")
        if self.min_unique_sessions < 1:
            _fail(f"{path}.min_unique_sessions", "must be >= 1")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "trigger_event_types": sorted(item.value for item in self.trigger_event_types),
            "group_by": self.group_by.value,
            "time_window_hours": self.time_window_hours,
            "min_occurrences": self.min_occurrences,
            "min_unique_sessions": self.min_unique_sessions,
            "severity_thresholds": self.severity_thresholds.to_dict(),
            "problem_template": self.problem_template,
            "intent_template": self.intent_template,
            "outcome_template": self.outcome_template,
            "fix_template": self.fix_template,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PatternRule:
        rule_id = _as_str(data.get("id"), "PatternRule.id")
        path = f"PatternRule[{rule_id}]"
        triggers = data.get("trigger_event_types")
        if not isinstance(triggers, (list, tuple)):
            _fail(f"{path}.trigger_event_types", "expected a list of event types")
        thresholds = data.get("severity_thresholds")
        if not isinstance(thresholds, Mapping):
            _fail(f"{path}.severity_thresholds", "expected a mapping")
        return cls(
            id=rule_id,
            name=_as_str(data.get("name"), f"{path}.name"),
            category=_as_enum(data.get("category"), IssueCategory, f"{path}.category"),
            trigger_event_types=frozenset(
                _as_enum(item, EventType, f"{path}.trigger_event_types") for item in triggers
            ),
            group_by=_as_enum(data.get("group_by"), GroupBy, f"{path}.group_by"),
            time_window_hours=_as_float(data.get("time_window_hours"), f"{path}.time_window_hours"),
            min_occurrences=_as_int(data.get("min_occurrences"), f"{path}.min_occurrences"),
            min_unique_sessions=_as_int(
                data.get("min_unique_sessions"), f"{path}.min_unique_sessions"
            ),
            severity_thresholds=SeverityThresholds.from_dict(thresholds),
            problem_template=_as_str(data.get("problem_template"), f"{path}.problem_template"),
            intent_template=_as_str(data.get("intent_template"), f"{path}.intent_template"),
            outcome_template=_as_str(data.get("outcome_template"), f"{path}.outcome_template"),
            fix_template=_as_str(data.get("fix_template"), f"{path}.fix_template"),
        )


@dataclass(frozen=True, slots=True)
class Issue(CanonicalModel):
    """Evidence-backed recurring interaction failure, identified by (pattern_id, element_key)."""

    id: str
    status: IssueStatus
    severity: IssueSeverity
    category: IssueCategory
    pattern_id: str
    element_key: str
    component_path: str
    component_name: str
    evidence: tuple[Event, ...]
    event_count: int
    unique_sessions: int
    problem_statement: str
    user_intent: str
    current_outcome: str
    suggested_fix: str
    created_at: datetime
    last_occurrence: datetime
    fix_diagnostic: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", _as_enum(self.status, IssueStatus, "Issue.status"))
        object.__setattr__(self, "severity", _as_enum(self.severity, IssueSeverity, "Issue.severity"))
        object.__setattr__(self, "category", _as_enum(self.category, IssueCategory, "Issue.category"))
        object.__setattr__(self, "evidence", tuple(self.evidence))
        if self.event_count < 0 or self.unique_sessions < 0:
            _fail("Issue", "event_count and unique_sessions must be >= 0")

    @property
    def key(self) -> tuple[str, str]:
        return (self.pattern_id, self.element_key)

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_STATUSES

    def with_status(self, status: IssueStatus, *, diagnostic: str | None = None) -> Issue:
        return replace(self, status=status, fix_diagnostic=diagnostic)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "status": self.status.value,
            "severity": self.severity.value,
            "category": self.category.value,
            "pattern_id": self.pattern_id,
            "element_key": self.element_key,
            "component_path": self.component_path,
            "component_name": self.component_name,
            "evidence": [event.to_dict() for event in self.evidence],
            "event_count": self.event_count,
            "unique_sessions": self.unique_sessions,
            "problem_statement": self.problem_statement,
            "user_intent": self.user_intent,
            "current_outcome": self.current_outcome,
            "suggested_fix": self.suggested_fix,
            "created_at": _datetime_to_iso(self.created_at),
            "last_occurrence": _datetime_to_iso(self.last_occurrence),
            "fix_diagnostic": self.fix_diagnostic,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Issue:
        evidence_raw = data.get("evidence") or []
        if not isinstance(evidence_raw, list):
            _fail("Issue.evidence", "expected a list")
        return cls(
            id=_as_str(data.get("id"), "Issue.id"),
            status=_as_enum(data.get("status"), IssueStatus, "Issue.status"),
            severity=_as_enum(data.get("severity"), IssueSeverity, "Issue.severity"),
            category=_as_enum(data.get("category"), IssueCategory, "Issue.category"),
            pattern_id=_as_str(data.get("pattern_id"), "Issue.pattern_id"),
            element_key=_as_str(data.get("element_key"), "Issue.element_key"),
            component_path=_as_str(data.get("component_path"), "Issue.component_path"),
            component_name=_as_str(data.get("component_name"), "Issue.component_name"),
            evidence=tuple(event_from_dict(item) for item in evidence_raw),
            event_count=_as_int(data.get("event_count"), "Issue.event_count"),
            unique_sessions=_as_int(data.get("unique_sessions"), "Issue.unique_sessions"),
            problem_statement=_as_str(data.get("problem_statement"), "Issue.problem_statement"),
            user_intent=_as_str(data.get("user_intent"), "Issue.user_intent"),
            current_outcome=_as_str(data.get("current_outcome"), "Issue.current_outcome"),
            suggested_fix=_as_str(data.get("suggested_fix"), "Issue.suggested_fix"),
            created_at=_as_datetime(data.get("created_at"), "Issue.created_at"),
            last_occurrence=_as_datetime(data.get("last_occurrence"), "Issue.last_occurrence"),
            fix_diagnostic=_as_optional_str(data.get("fix_diagnostic")),
        )


@dataclass(frozen=True, slots=True)
class Patch(CanonicalModel):
    """Exact-match substitution ``old_code -> new_code`` scoped to one file."""

    file_path: str
    old_code: str
    new_code: str
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "file_path", _as_str(self.file_path, "Patch.file_path"))
        if not isinstance(self.old_code, str) or not self.old_code:
            _fail("Patch.old_code", "must be a non-empty string")
        if not isinstance(self.new_code, str):
            _fail("Patch.new_code", "must be a string")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "filePath": self.file_path,
            "oldCode": self.old_code,
            "newCode": self.new_code,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Patch:
        return cls(
            file_path=_as_str(data.get("filePath", data.get("file_path")), "Patch.filePath"),
            old_code=_as_raw_str(data.get("oldCode", data.get("old_code")), "Patch.oldCode"),
            new_code=_as_raw_str(data.get("newCode", data.get("new_code")), "Patch.newCode"),
            description=_as_optional_str(data.get("description")) or "",
        )


@dataclass(frozen=True, slots=True)
class NewFile(CanonicalModel):
    """A file the oracle wants created before modification patches run."""

    path: str
    content: str
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _as_str(self.path, "NewFile.path"))
        if not isinstance(self.content, str):
            _fail("NewFile.content", "must be a string")

    def to_dict(self) -> dict[str, JSONValue]:
        return {"path": self.path, "content": self.content, "description": self.description}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> NewFile:
        return cls(
            path=_as_str(data.get("path"), "NewFile.path"),
            content=_as_raw_str(data.get("content"), "NewFile.content"),
            description=_as_optional_str(data.get("description")) or "",
        )


@dataclass(frozen=True, slots=True)
class Violation(CanonicalModel):
    rule: str
    message: str
    severity: ViolationSeverity
    found: str | None = None
    expected: str | None = None
    location: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is ViolationSeverity.ERROR

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "rule": self.rule,
            "message": self.message,
            "severity": self.severity.value,
            "found": self.found,
            "expected": self.expected,
            "location": self.location,
        }


@dataclass(frozen=True, slots=True)
class ValidationResult(CanonicalModel):
    """Guardrail verdict: valid iff no error-severity violation survived suppression."""

    valid: bool
    violations: tuple[Violation, ...]
    fix_type: FixType = FixType.UNKNOWN

    @property
    def errors(self) -> tuple[Violation, ...]:
        return tuple(item for item in self.violations if item.is_error)

    @property
    def warnings(self) -> tuple[Violation, ...]:
        return tuple(item for item in self.violations if not item.is_error)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "valid": self.valid,
            "violations": [item.to_dict() for item in self.violations],
            "fix_type": self.fix_type.value,
        }


@dataclass(frozen=True, slots=True)
class PatchValidation:
    patch: Patch
    valid: bool
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PatchSetValidation:
    valid: bool
    results: tuple[PatchValidation, ...]

    @property
    def invalid(self) -> tuple[PatchValidation, ...]:
        return tuple(item for item in self.results if not item.valid)

    def summary(self) -> str:
        if self.valid:
            return f"all {len(self.results)} patch(es) passed syntax validation"
        lines = [f"{len(self.invalid)} of {len(self.results)} patch(es) failed syntax validation"]
        for item in self.invalid:
            lines.append(f"- {item.patch.file_path}: {'; '.join(item.reasons)}")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class FixAttempt(CanonicalModel):
    """One end-to-end remediation cycle for an issue, including every repair round."""

    id: str
    issue_id: str
    patches: tuple[Patch, ...]
    new_files: tuple[NewFile, ...]
    explanation: str
    attempt_number: int
    outcome: FixOutcome
    dropped_patches: tuple[Patch, ...] = ()
    rounds_used: int = 0
    summary: str = ""
    source: FixSource = FixSource.ORACLE
    applied_files: tuple[str, ...] = ()
    failed_files: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def __post_init__(self) -> None:
        object.__setattr__(self, "outcome", _as_enum(self.outcome, FixOutcome, "FixAttempt.outcome"))
        object.__setattr__(self, "source", _as_enum(self.source, FixSource, "FixAttempt.source"))
        object.__setattr__(self, "patches", tuple(self.patches))
        object.__setattr__(self, "new_files", tuple(self.new_files))
        object.__setattr__(self, "dropped_patches", tuple(self.dropped_patches))
        if self.attempt_number < 1:
            _fail("FixAttempt.attempt_number", "must be >= 1")
        if self.rounds_used < 0:
            _fail("FixAttempt.rounds_used", "must be >= 0")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "patches": [item.to_dict() for item in self.patches],
            "new_files": [item.to_dict() for item in self.new_files],
            "explanation": self.explanation,
            "attempt_number": self.attempt_number,
            "outcome": self.outcome.value,
            "dropped_patches": [item.to_dict() for item in self.dropped_patches],
            "rounds_used": self.rounds_used,
            "summary": self.summary,
            "source": self.source.value,
            "applied_files": list(self.applied_files),
            "failed_files": list(self.failed_files),
            "created_at": _datetime_to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FixAttempt:
        return cls(
            id=_as_str(data.get("id"), "FixAttempt.id"),
            issue_id=_as_str(data.get("issue_id"), "FixAttempt.issue_id"),
            patches=tuple(Patch.from_dict(item) for item in _as_mappings(data.get("patches"))),
            new_files=tuple(NewFile.from_dict(item) for item in _as_mappings(data.get("new_files"))),
            explanation=_as_optional_str(data.get("explanation")) or "",
            attempt_number=_as_int(data.get("attempt_number"), "FixAttempt.attempt_number"),
            outcome=_as_enum(data.get("outcome"), FixOutcome, "FixAttempt.outcome"),
            dropped_patches=tuple(
                Patch.from_dict(item) for item in _as_mappings(data.get("dropped_patches"))
            ),
            rounds_used=_as_int(data.get("rounds_used", 0), "FixAttempt.rounds_used"),
            summary=_as_optional_str(data.get("summary")) or "",
            source=_as_enum(data.get("source", "oracle"), FixSource, "FixAttempt.source"),
            applied_files=tuple(str(item) for item in _as_list(data.get("applied_files"))),
            failed_files=tuple(str(item) for item in _as_list(data.get("failed_files"))),
            created_at=_as_datetime(data.get("created_at"), "FixAttempt.created_at"),
        )


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    return normalized


def _as_raw_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    return value


def _as_optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    return value


def _as_float(value: object, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    return float(value)


def _as_enum(value: object, enum_type: type[TEnum], path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(str(item.value) for item in enum_type)
        _fail(path, f"expected one of [{allowed}], got {value!r}")


def _as_list(value: object) -> list[object]:
    if value is None:
        return []
    if not isinstance(value, list):
        _fail("list", f"expected list, got {type(value).__name__}")
    return value


def _as_mappings(value: object) -> list[Mapping[str, object]]:
    items = _as_list(value)
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            _fail(f"[{index}]", "expected object")
    return items  # type: ignore[return-value]


def _as_datetime(value: object, path: str) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if not isinstance(value, str):
        _fail(path, "expected ISO-8601 string")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        _fail(path, f"invalid ISO-8601 timestamp {value!r}")
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _datetime_to_iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def coerce_patches(items: Sequence[Mapping[str, object]]) -> tuple[Patch, ...]:
    """Build patches from oracle-shaped mappings (``filePath``/``oldCode``/``newCode``)."""
    return tuple(Patch.from_dict(item) for item in items)


__all__ = [
    "CanonicalModel",
    "FixAttempt",
    "FixOutcome",
    "FixSource",
    "FixType",
    "GroupBy",
    "Issue",
    "IssueCategory",
    "IssueSeverity",
    "IssueStatus",
    "NewFile",
    "Patch",
    "PatchSetValidation",
    "PatchValidation",
    "PatternRule",
    "RESOLVED_STATUSES",
    "SeverityThresholds",
    "ValidationResult",
    "Violation",
    "ViolationSeverity",
    "coerce_patches",
]
