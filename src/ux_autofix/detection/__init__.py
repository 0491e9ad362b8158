"""Detection: event store, pattern rules, component registry and the pattern detector."""

from ux_autofix.detection.component_registry import ComponentMapping, ComponentRegistry
from ux_autofix.detection.event_store import EventStore
from ux_autofix.detection.pattern_detector import (
    Anomaly,
    IssueSummary,
    PatternDetector,
    calculate_severity,
    detect_anomalies,
    summarize_issues,
)
from ux_autofix.detection.rules import load_pattern_rules

__all__ = [
    "Anomaly",
    "ComponentMapping",
    "ComponentRegistry",
    "EventStore",
    "IssueSummary",
    "PatternDetector",
    "calculate_severity",
    "detect_anomalies",
    "load_pattern_rules",
    "summarize_issues",
]
