"""Run-scoped JSON-lines logging for remediation runs.

Each ``fix`` run writes ``<log_dir>/<run_id>/autofix.jsonl``. Producers only enqueue;
a listener thread owns the file. Lines are rendered by structlog's
``ProcessorFormatter`` so stdlib records and structlog events share one shape::

    {"fields": {...}, "fix_attempt_id": "...", "issue_id": "...", "level": "INFO",
     "logger": "...", "message": "...", "run_id": "...", "timestamp": "...Z"}

Issue and fix-attempt ids travel in a contextvar and are captured on the producing
thread, since the listener thread never sees the caller's context.
"""

from __future__ import annotations

import atexit
import contextvars
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

JSONValue = str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]

RUN_LOG_FILENAME: Final[str] = "autofix.jsonl"
ROOT_LOGGER: Final[str] = "ux_autofix"
REDACTED: Final[str] = "***REDACTED***"
CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "issue_id", "fix_attempt_id")

_SECRET_KEY = re.compile(r"(?i)secret|token|password|api_?key|authorization|credential|cookie")
_INLINE_SECRETS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b(\s*[:=]\s*)[^\s,;]+"),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"\bsk-ant-[A-Za-z0-9_-]{12,}\b"), REDACTED),
    (re.compile(r"\bsk-[A-Za-z0-9]{12,}\b"), REDACTED),
)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(vars(logging.makeLogRecord({}))) | {
    "asctime",
    "correlation",
    "message",
    "taskName",
}

_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "ux_autofix_correlation", default={}
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_registered = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one run logs. Validated on construction."""

    run_id: str
    base_log_dir: Path | str = Path(".autofix/logs")
    logger_name: str = ROOT_LOGGER
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = RUN_LOG_FILENAME
    log_to_stderr: bool = False
    redact_secrets: bool = True

    def __post_init__(self) -> None:
        for name in ("run_id", "logger_name", "log_filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
            object.__setattr__(self, name, value.strip())
        if Path(self.log_filename).name != self.log_filename:
            raise ValueError("log_filename must not include path separators")
        if self.queue_size <= 0:
            raise ValueError("queue_size must be > 0")

    @property
    def log_path(self) -> Path:
        return Path(self.base_log_dir) / self.run_id / self.log_filename


class _LossyQueueHandler(logging.handlers.QueueHandler):
    """Never blocks the producer: a full queue drops the record and counts it."""

    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self._dropped_lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> Any:
        context = get_correlation_context()
        if context:
            record.correlation = context
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self.dropped += 1


@dataclass(slots=True, eq=False)
class StructuredLoggingHandle:
    """The live pieces of one run's logging; ``shutdown`` drains and closes them."""

    logger: logging.Logger
    run_id: str
    log_path: Path
    queue_handler: _LossyQueueHandler
    listener: logging.handlers.QueueListener
    sinks: tuple[logging.Handler, ...]
    previous_propagate: bool
    _closed: bool = field(default=False, init=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    @property
    def dropped_records(self) -> int:
        return self.queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            # stop() drains every queued record before the listener thread exits.
            self.listener.stop()
            self.logger.removeHandler(self.queue_handler)
            self.logger.propagate = self.previous_propagate
            self.queue_handler.close()
            for sink in self.sinks:
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start JSON-lines logging for ``config.run_id``; any previous run's logging is shut down."""
    global _active
    shutdown_logging()

    level = _level(config.level)
    log_path = config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            _record_to_line(config.run_id),
            _redact_line if config.redact_secrets else _keep_line,
            structlog.processors.JSONRenderer(sort_keys=True, separators=(",", ":"), ensure_ascii=False),
        ],
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    previous_propagate = logger.propagate
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _LossyQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)
    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=config.run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
        previous_propagate=previous_propagate,
    )
    with _active_lock:
        _active = handle
    _register_atexit()
    return handle


def configure_structlog() -> None:
    """Send structlog key/value events through stdlib logging as ``extra`` fields."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle`` (default: the active one); safe to call repeatedly."""
    global _active
    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown()
    with _active_lock:
        if _active is target:
            _active = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[Mapping[str, str]]:
    """Bind correlation ids; ``None`` or blank unbinds. Returns a reset token."""
    unknown = sorted(set(fields) - set(CORRELATION_KEYS))
    if unknown:
        raise ValueError(f"unknown correlation key {unknown[0]!r}; expected one of {CORRELATION_KEYS}")
    state = get_correlation_context()
    for key, value in fields.items():
        if value is None or not value.strip():
            state.pop(key, None)
        else:
            state[key] = value.strip()
    return _correlation.set(state)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        _correlation.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under secret-looking keys and inline credentials in strings."""
    return _redact(value, key=None)


def _record_to_line(run_id: str) -> Callable[[Any, str, MutableMapping[str, Any]], dict[str, Any]]:
    def processor(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> dict[str, Any]:
        record: logging.LogRecord = event_dict["_record"]
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": str(event_dict.get("event", "")),
            "run_id": run_id,
        }
        line.update(getattr(record, "correlation", None) or {})
        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if fields:
            line["fields"] = _jsonable(fields)
        return line

    return processor


def _redact_line(_logger: Any, _method: str, line: dict[str, Any]) -> dict[str, Any]:
    line["message"] = _redact_text(line["message"])
    if "fields" in line:
        line["fields"] = default_log_redactor(line["fields"])
    return line


def _keep_line(_logger: Any, _method: str, line: dict[str, Any]) -> dict[str, Any]:
    return line


def _redact(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and _SECRET_KEY.search(key):
        return REDACTED
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, list):
        return [_redact(item, key=None) for item in value]
    if isinstance(value, dict):
        return {name: _redact(item, key=name) for name, item in value.items()}
    return value


def _redact_text(text: str) -> str:
    for pattern, replacement in _INLINE_SECRETS:
        text = pattern.sub(replacement, text)
    return text


def _jsonable(value: object) -> JSONValue:
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return [_jsonable(item) for item in sorted(value, key=repr)]
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    try:
        return logging.getLevelNamesMapping()[value.strip().upper()]
    except KeyError:
        raise ValueError(f"unsupported logging level {value!r}") from None


def _register_atexit() -> None:
    global _atexit_registered
    if not _atexit_registered:
        atexit.register(shutdown_logging)
        _atexit_registered = True


__all__ = [
    "CORRELATION_KEYS",
    "JSONValue",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "set_correlation_fields",
    "setup_structured_logging",
    "shutdown_logging",
]
