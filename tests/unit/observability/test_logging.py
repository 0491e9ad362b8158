"""
ux-autofix — unit tests for observability logging

File: tests/unit/observability/test_logging.py
Last updated: 2026-10-18

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed reliability.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation for runs, issues and fix attempts.
- structlog events routed into the same sink.
- Multi-threaded logging stability and queue drain on shutdown.

Functional requirements
- Offline operation.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from ux_autofix.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    set_correlation_fields,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"ux_autofix.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_preserves_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-logging-redaction", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(issue_id="issue-123", fix_attempt_id="fix-1"):
        logger.info(
            "payload token=tok-FAKE and api_key=sk-FAKE123456789012345",
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-logging-redaction" / "autofix.jsonl"
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["run_id"] == "run-logging-redaction"
    assert first["issue_id"] == "issue-123"
    assert first["fix_attempt_id"] == "fix-1"
    assert first["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}

    line = handle.log_path.read_text(encoding="utf-8")
    assert "tok-FAKE" not in line
    assert "sk-FAKE" not in line
    assert "hunter2" not in line


def test_structlog_events_land_in_the_run_log(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-structlog", base_log_dir=tmp_path, logger_name=logger_name)
    )

    structlog.get_logger(logger_name).info("repair_round_started", round=2, token="abc123")
    shutdown_logging(handle)

    (record,) = _read_json_lines(handle.log_path)
    assert record["message"] == "repair_round_started"
    fields = record["fields"]
    assert isinstance(fields, dict)
    assert fields["round"] == 2
    assert fields["token"] == "***REDACTED***"


def test_correlation_scope_is_restored_on_exit() -> None:
    assert get_correlation_context() == {}

    with correlation_scope(issue_id="issue-1"):
        with correlation_scope(fix_attempt_id="fix-9", issue_id=None):
            assert get_correlation_context() == {"fix_attempt_id": "fix-9"}
        assert get_correlation_context() == {"issue_id": "issue-1"}

    assert get_correlation_context() == {}


def test_unknown_correlation_keys_are_rejected() -> None:
    with pytest.raises(ValueError, match="unknown correlation key"):
        set_correlation_fields(work_item_id="wi-1")


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-threaded",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=4096,
        )
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info(
                f"thread={thread_idx} index={i} token=tok-secret-{thread_idx}-{i}",
                extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
            )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        parsed = json.loads(line)
        assert isinstance(parsed, dict)
        assert "message" in parsed
        assert "tok-secret" not in line
        assert "sk-FAKE" not in line


def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-flush",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=10_000,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == expected
    assert handle.is_shutdown
    assert get_active_logging_handle() is None


def test_shutdown_restores_propagation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    logger = logging.getLogger(logger_name)
    assert logger.propagate

    handle = setup_structured_logging(
        LoggingConfig(run_id="run-propagate", base_log_dir=tmp_path, logger_name=logger_name)
    )
    assert not logger.propagate

    shutdown_logging(handle)

    assert logger.propagate
    assert not [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]


def test_invalid_configuration_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="run_id"):
        setup_structured_logging(LoggingConfig(run_id="  ", base_log_dir=tmp_path))
    with pytest.raises(ValueError, match="path separators"):
        setup_structured_logging(
            LoggingConfig(run_id="r", base_log_dir=tmp_path, log_filename="nested/autofix.jsonl")
        )
    with pytest.raises(ValueError, match="queue_size"):
        setup_structured_logging(LoggingConfig(run_id="r", base_log_dir=tmp_path, queue_size=0))


def test_default_redactor_handles_bearer_and_provider_keys() -> None:
    redacted = default_log_redactor(
        {
            "headers": ["sent Bearer abc.def", "x"],
            "note": "key sk-ant-abcdefghijklmnop used",
            "count": 3,
        }
    )

    assert redacted == {
        "headers": ["sent Bearer ***REDACTED***", "x"],
        "note": "key ***REDACTED*** used",
        "count": 3,
    }
