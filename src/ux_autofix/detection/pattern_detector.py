"""
ux-autofix — pattern detector

File: src/ux_autofix/detection/pattern_detector.py
Last updated: 2026-10-18

Purpose
- Turn a time-windowed slice of telemetry into evidence-backed Issues.

What should be included in this file
- Rule evaluation: trigger filter, grouping, occurrence and session thresholds.
- Severity banding, deduplication against known issues, deterministic ordering.
- Issue summaries and anomaly spikes used to bypass the remediation cooldown.

Functional requirements
- Exactly one open Issue per (pattern_id, element_key).
- Ordering: severity descending, then event count descending.

Non-functional requirements
- Pure: no persistence and no clock reads when ``now`` is supplied.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Final

from ux_autofix.constants import MAX_EVIDENCE_SAMPLES
from ux_autofix.detection.component_registry import (
    UNKNOWN_COMPONENT_NAME,
    UNKNOWN_COMPONENT_PATH,
    ComponentRegistry,
)
from ux_autofix.detection.rules import accepts_key, load_pattern_rules
from ux_autofix.domain.events import Event, EventType
from ux_autofix.domain.ids import generate_issue_id
from ux_autofix.domain.models import (
    GroupBy,
    Issue,
    IssueCategory,
    IssueSeverity,
    IssueStatus,
    PatternRule,
    SeverityThresholds,
)

IssueIdFactory = Callable[[datetime], str]

ANOMALY_WINDOW_EVENTS: Final[int] = 20


@dataclass(frozen=True, slots=True)
class Anomaly:
    anomaly_type: str
    severity: IssueSeverity
    count: int


# (event type, minimum count in the recent window, anomaly name, severity)
_ANOMALY_RULES: Final[tuple[tuple[EventType, int, str, IssueSeverity], ...]] = (
    (EventType.RAGE_CLICK, 5, "rage_click_spike", IssueSeverity.CRITICAL),
    (EventType.BOUNCE, 3, "bounce_spike", IssueSeverity.HIGH),
    (EventType.FORM_ERROR, 4, "form_error_spike", IssueSeverity.HIGH),
)


@dataclass(frozen=True, slots=True)
class IssueSummary:
    total: int
    by_severity: dict[str, int]
    by_category: dict[str, int]
    top_components: tuple[tuple[str, int], ...]


def calculate_severity(count: int, thresholds: SeverityThresholds) -> IssueSeverity:
    """Highest band whose threshold is <= ``count``; anything below ``low`` is still ``low``."""
    return thresholds.band_for(count)


def _default_issue_id(now: datetime) -> str:
    return generate_issue_id(timestamp_ms=int(now.timestamp() * 1000))


class PatternDetector:
    """Evaluate pattern rules over an event slice."""

    def __init__(
        self,
        rules: Sequence[PatternRule] | None = None,
        *,
        registry: ComponentRegistry | None = None,
        id_factory: IssueIdFactory | None = None,
    ) -> None:
        self._rules = tuple(load_pattern_rules() if rules is None else rules)
        self._registry = registry or ComponentRegistry()
        self._id_factory = id_factory or _default_issue_id

    @property
    def rules(self) -> tuple[PatternRule, ...]:
        return self._rules

    def detect(
        self,
        events: Iterable[Event],
        *,
        now: datetime | None = None,
        known_issues: Iterable[Issue] = (),
    ) -> list[Issue]:
        current = datetime.now(tz=UTC) if now is None else now
        event_list = list(events)
        open_keys = {issue.key for issue in known_issues if not issue.is_resolved}

        detected: list[Issue] = []
        for rule in self._rules:
            cutoff = current - timedelta(hours=rule.time_window_hours)
            matching = [
                event
                for event in event_list
                if event.type in rule.trigger_event_types and event.timestamp >= cutoff
            ]
            if not matching:
                continue

            for key, group in self._group(matching, rule.group_by).items():
                if len(group) < rule.min_occurrences:
                    continue
                sessions = len({event.session_id for event in group})
                if sessions < rule.min_unique_sessions:
                    continue
                if not accepts_key(rule, key):
                    continue
                if (rule.id, key) in open_keys:
                    continue
                open_keys.add((rule.id, key))
                detected.append(self._build_issue(rule, key, group, sessions, current))

        detected.sort(key=lambda issue: (-issue.severity.weight, -issue.event_count))
        return detected

    def _group(self, events: Sequence[Event], group_by: GroupBy) -> dict[str, list[Event]]:
        groups: dict[str, list[Event]] = {}
        for event in events:
            key: str | None
            if group_by is GroupBy.ELEMENT:
                key = event.element_key
            elif group_by is GroupBy.SECTION:
                key = event.section_id
            else:
                mapping = self._registry.resolve(event.element_key or "", event.element_text)
                key = None if mapping is None else mapping.component_path
            if key:
                groups.setdefault(key, []).append(event)
        return groups

    def _build_issue(
        self,
        rule: PatternRule,
        key: str,
        group: Sequence[Event],
        sessions: int,
        now: datetime,
    ) -> Issue:
        sample = group[0]
        mapping = self._registry.resolve(key, sample.element_text)
        problem = rule.problem_template.replace("{count}", str(len(group))).replace(
            "{selector}", key
        )
        return Issue(
            id=self._id_factory(now),
            status=IssueStatus.DETECTED,
            severity=calculate_severity(len(group), rule.severity_thresholds),
            category=rule.category,
            pattern_id=rule.id,
            element_key=key,
            component_path=UNKNOWN_COMPONENT_PATH if mapping is None else mapping.component_path,
            component_name=UNKNOWN_COMPONENT_NAME if mapping is None else mapping.component_name,
            evidence=tuple(group[:MAX_EVIDENCE_SAMPLES]),
            event_count=len(group),
            unique_sessions=sessions,
            problem_statement=problem,
            user_intent=rule.intent_template,
            current_outcome=rule.outcome_template,
            suggested_fix=rule.fix_template,
            created_at=now,
            last_occurrence=max(event.timestamp for event in group),
        )


def summarize_issues(issues: Iterable[Issue]) -> IssueSummary:
    by_severity = {severity.value: 0 for severity in IssueSeverity}
    by_category = {category.value: 0 for category in IssueCategory}
    components: Counter[str] = Counter()
    total = 0
    for issue in issues:
        total += 1
        by_severity[issue.severity.value] += 1
        by_category[issue.category.value] += 1
        components[issue.component_path] += 1
    top = tuple(sorted(components.items(), key=lambda item: -item[1])[:5])
    return IssueSummary(
        total=total, by_severity=by_severity, by_category=by_category, top_components=top
    )


def detect_anomalies(events: Sequence[Event]) -> Anomaly | None:
    """Spike check over the most recent events; an anomaly bypasses the cooldown."""
    recent = events[-ANOMALY_WINDOW_EVENTS:]
    counts = Counter(event.type for event in recent)
    for event_type, minimum, name, severity in _ANOMALY_RULES:
        if counts[event_type] >= minimum:
            return Anomaly(anomaly_type=name, severity=severity, count=counts[event_type])
    return None


__all__ = [
    "ANOMALY_WINDOW_EVENTS",
    "Anomaly",
    "IssueSummary",
    "PatternDetector",
    "calculate_severity",
    "detect_anomalies",
    "summarize_issues",
]
