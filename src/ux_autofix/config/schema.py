"""
ux-autofix — configuration schema and validation.

File: src/ux_autofix/config/schema.py
Last updated: 2026-10-18

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge and redaction helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secrets; API keys are referenced by env var name only.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from ux_autofix.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_EXCERPT_CHARS,
    DEFAULT_EXCERPT_LINES,
    DEFAULT_MAX_REPAIR_ROUNDS,
    DEFAULT_ORACLE_TIMEOUT_SECONDS,
    DEFAULT_TIME_WINDOW_HOURS,
    EVENTS_FILE,
    GUARDRAILS_FILE,
    LOG_DIR,
    STATE_DB_FILE,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

ORACLE_PROVIDERS: Final[tuple[str, ...]] = ("anthropic", "openai")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "apikey", "credential", "credentials"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = ("api_key", "private_key", "access_key")

PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "workspace_root"),
    ("paths", "events_file"),
    ("paths", "guardrails_file"),
    ("paths", "state_db"),
    ("paths", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    workspace_root: str
    events_file: str
    guardrails_file: str
    state_db: str
    log_dir: str


class DetectionConfig(TypedDict):
    time_window_hours: float
    cooldown_seconds: float


class RepairConfig(TypedDict):
    max_rounds: int
    excerpt_lines: int
    excerpt_chars: int


class OracleConfig(TypedDict):
    provider: Literal["anthropic", "openai"]
    model: str
    timeout_seconds: float
    max_tokens: int
    api_key_env: str


class PipelineConfig(TypedDict):
    max_concurrency: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    redact_secrets: bool


class AutofixConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    detection: DetectionConfig
    repair: RepairConfig
    oracle: OracleConfig
    pipeline: PipelineConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[AutofixConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "paths": {
        "workspace_root": ".",
        "events_file": str(EVENTS_FILE),
        "guardrails_file": str(GUARDRAILS_FILE),
        "state_db": str(STATE_DB_FILE),
        "log_dir": str(LOG_DIR),
    },
    "detection": {
        "time_window_hours": DEFAULT_TIME_WINDOW_HOURS,
        "cooldown_seconds": DEFAULT_COOLDOWN_SECONDS,
    },
    "repair": {
        "max_rounds": DEFAULT_MAX_REPAIR_ROUNDS,
        "excerpt_lines": DEFAULT_EXCERPT_LINES,
        "excerpt_chars": DEFAULT_EXCERPT_CHARS,
    },
    "oracle": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-20250514",
        "timeout_seconds": DEFAULT_ORACLE_TIMEOUT_SECONDS,
        "max_tokens": 4096,
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    "pipeline": {"max_concurrency": 2},
    "observability": {"log_level": "INFO", "redact_secrets": True},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> AutofixConfig:
    """Return a deep copy of deterministic built-in defaults."""
    return copy.deepcopy(DEFAULT_CONFIG)


def _migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade autofix.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade ux-autofix"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""
    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""
    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "meta": _validate_meta,
        "paths": _validate_paths,
        "detection": _validate_detection,
        "repair": _validate_repair,
        "oracle": _validate_oracle,
        "pipeline": _validate_pipeline,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(root, set(validators), "", issues)
    _require_keys(root, set(validators), "", issues)

    normalized: dict[str, Any] = {}
    for key in sorted(validators):
        raw = root.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is not None:
            normalized[key] = validators[key](section, key, issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs."""
    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def _validate_meta(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), _migration_guidance(parsed))
    return out


def _validate_paths(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"workspace_root", "events_file", "guardrails_file", "state_db", "log_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_detection(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"time_window_hours", "cooldown_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "time_window_hours" in payload:
        hours = _as_float(payload["time_window_hours"], _join(path, "time_window_hours"), issues)
        if hours is not None:
            if hours <= 0:
                issues.add(_join(path, "time_window_hours"), "must be > 0")
            else:
                out["time_window_hours"] = hours
    if "cooldown_seconds" in payload:
        cooldown = _as_float(
            payload["cooldown_seconds"], _join(path, "cooldown_seconds"), issues, minimum=0.0
        )
        if cooldown is not None:
            out["cooldown_seconds"] = cooldown
    return out


def _validate_repair(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    minimums = {"max_rounds": 0, "excerpt_lines": 0, "excerpt_chars": 1}
    _reject_unknown_keys(payload, set(minimums), path, issues)
    _require_keys(payload, set(minimums), path, issues)
    out: dict[str, Any] = {}
    for key in sorted(minimums):
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=minimums[key])
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_oracle(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"provider", "model", "timeout_seconds", "max_tokens", "api_key_env"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "provider" in payload:
        provider = _as_enum(
            payload["provider"], _join(path, "provider"), issues, allowed_values=ORACLE_PROVIDERS
        )
        if provider is not None:
            out["provider"] = provider
    if "model" in payload:
        model = _as_str(payload["model"], _join(path, "model"), issues)
        if model is not None:
            out["model"] = model
    if "timeout_seconds" in payload:
        timeout = _as_float(payload["timeout_seconds"], _join(path, "timeout_seconds"), issues)
        if timeout is not None:
            if timeout <= 0:
                issues.add(_join(path, "timeout_seconds"), "must be > 0")
            else:
                out["timeout_seconds"] = timeout
    if "max_tokens" in payload:
        max_tokens = _as_int(payload["max_tokens"], _join(path, "max_tokens"), issues, minimum=1)
        if max_tokens is not None:
            out["max_tokens"] = max_tokens
    if "api_key_env" in payload:
        env_name = _as_env_name(payload["api_key_env"], _join(path, "api_key_env"), issues)
        if env_name is not None:
            out["api_key_env"] = env_name
    return out


def _validate_pipeline(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"max_concurrency"}, path, issues)
    _require_keys(payload, {"max_concurrency"}, path, issues)
    out: dict[str, Any] = {}
    if "max_concurrency" in payload:
        parsed = _as_int(payload["max_concurrency"], _join(path, "max_concurrency"), issues, minimum=1)
        if parsed is not None:
            out["max_concurrency"] = parsed
    return out


def _validate_observability(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "log_level" in payload:
        level = _as_enum(payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
        if level is not None:
            out["log_level"] = level
    if "redact_secrets" in payload:
        redact = _as_bool(payload["redact_secrets"], _join(path, "redact_secrets"), issues)
        if redact is not None:
            out["redact_secrets"] = redact
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: ANTHROPIC_API_KEY)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(value: object, path: str, issues: _IssueCollector, *, minimum: int | None = None) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object, path: str, issues: _IssueCollector, *, minimum: float | None = None
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object, path: str, issues: _IssueCollector, *, allowed_values: tuple[str, ...]
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object], allowed: set[str], path: str, issues: _IssueCollector
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(key_path, "embedded secret values are forbidden; use api_key_env")
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object], required: set[str], path: str, issues: _IssueCollector
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower().replace("-", "_")
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_") if token)


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = existing if isinstance(existing, dict) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>" if _looks_sensitive_key(key) else _redact_value(value[key], key)
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "ORACLE_PROVIDERS",
    "PATH_FIELDS",
    "AutofixConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "redact_config",
    "validate_config",
]
