"""
ux-autofix — unit tests for the oracle boundary

File: tests/unit/synthesis/test_oracle.py
Last updated: 2026-10-18

Purpose
- Validate reply parsing, the completion-oracle flow and bounded retries.

What this test file should cover
- Fenced and prose-wrapped JSON replies; malformed shapes raise OracleMalformedResponse.
- Repair replies as a bare patch or a one-element patch list.
- Transient classification and exponential backoff without real sleeping.

Functional requirements
- No network; providers are replaced by in-memory fakes.

Non-functional requirements
- Deterministic (jitter disabled or seeded).
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from ux_autofix.domain.models import FixType, Issue, IssueCategory, IssueSeverity, IssueStatus, Patch
from ux_autofix.errors import OracleMalformedResponse, OracleUnavailable
from ux_autofix.guardrails.spec import DEFAULT_GUARDRAILS
from ux_autofix.synthesis.oracle import (
    BackoffConfig,
    CompletionOracle,
    OracleContext,
    describe_exception,
    extract_json_object,
    is_transient_error,
    parse_oracle_payload,
    parse_repair_payload,
    read_status_code,
    run_with_retries,
)

NOW = datetime(2026, 10, 1, 12, tzinfo=UTC)
PAYLOAD = {
    "explanation": "Add a spinner",
    "newFiles": [{"path": "components/ui/Spinner.tsx", "content": "export {}\n"}],
    "patches": [{"filePath": "a.tsx", "oldCode": "x", "newCode": "y"}],
}


class StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"http {status_code}")
        self.status_code = status_code


class RateLimitError(Exception):
    pass


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _issue() -> Issue:
    return Issue(
        id="issue-7",
        status=IssueStatus.DETECTED,
        severity=IssueSeverity.MEDIUM,
        category=IssueCategory.FRUSTRATION,
        pattern_id="rage_click_hotspot",
        element_key="[data-add-to-cart]",
        component_path="a.tsx",
        component_name="A",
        evidence=(),
        event_count=6,
        unique_sessions=3,
        problem_statement="Rage clicks on add to cart",
        user_intent="Add to cart",
        current_outcome="Nothing visible",
        suggested_fix="Show a spinner",
        created_at=NOW,
        last_occurrence=NOW,
    )


def test_fenced_json_is_unwrapped() -> None:
    text = "Here is the fix:\n```json\n" + json.dumps(PAYLOAD) + "\n```\nThanks."

    result = parse_oracle_payload(text)

    assert result.explanation == "Add a spinner"
    assert result.patches == (Patch(file_path="a.tsx", old_code="x", new_code="y"),)
    assert result.new_files[0].path == "components/ui/Spinner.tsx"


def test_raw_json_after_prose_is_found() -> None:
    assert extract_json_object("Sure {not json} then " + json.dumps({"a": 1})) == {"a": 1}


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("", "empty response"),
        ("no braces here", "no JSON object found"),
        (json.dumps({"patches": []}), "'explanation' must be a string"),
        (json.dumps({"explanation": "x", "patches": {}}), "must be arrays"),
        (json.dumps({"explanation": "x", "patches": [], "newFiles": []}), "proposed no changes"),
        (json.dumps({"explanation": "x", "patches": [{"filePath": "a.tsx", "newCode": "y"}]}), "invalid change record"),
    ],
)
def test_malformed_payloads(text: str, message: str) -> None:
    with pytest.raises(OracleMalformedResponse, match=message):
        parse_oracle_payload(text)


def test_repair_payload_shapes() -> None:
    original = Patch(file_path="a.tsx", old_code="x", new_code="y")

    bare = parse_repair_payload('{"oldCode": "x", "newCode": "z"}', original)
    listed = parse_repair_payload('{"patches": [{"filePath": "b.tsx", "oldCode": "p", "newCode": "q"}]}', original)

    assert bare == Patch(file_path="a.tsx", old_code="x", new_code="z")
    assert listed.file_path == "b.tsx"
    with pytest.raises(OracleMalformedResponse, match="exactly one patch"):
        parse_repair_payload('{"patches": [{"oldCode": "a"}, {"oldCode": "b"}]}', original)


class EchoOracle(CompletionOracle):
    name = "echo"

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


async def test_completion_oracle_renders_and_parses() -> None:
    oracle = EchoOracle(json.dumps(PAYLOAD))
    context = OracleContext(issue=_issue(), fix_type=FixType.LOADING_STATE, guardrails=DEFAULT_GUARDRAILS)

    result = await oracle.generate(context)

    assert result.explanation == "Add a spinner"
    assert "issue-7" in oracle.prompts[0]
    assert "Rage clicks on add to cart" in oracle.prompts[0]


async def test_retries_transient_failures_with_backoff() -> None:
    sleep = SleepRecorder()
    calls = {"count": 0}

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise StatusError(503)
        return "ok"

    result = await run_with_retries(
        flaky,
        provider="test",
        is_retryable=is_transient_error,
        backoff=BackoffConfig(jitter_ratio=0.0),
        sleep=sleep,
    )

    assert result == "ok"
    assert sleep.delays == [0.5, 1.0]


async def test_exhausted_retries_become_unavailable() -> None:
    sleep = SleepRecorder()

    async def down() -> str:
        raise ConnectionError("reset by peer")

    with pytest.raises(OracleUnavailable) as excinfo:
        await run_with_retries(
            down,
            provider="test",
            is_retryable=is_transient_error,
            backoff=BackoffConfig(max_retries=2, jitter_ratio=0.0),
            sleep=sleep,
        )

    assert excinfo.value.detail == "ConnectionError: reset by peer"
    assert excinfo.value.provider == "test"
    assert excinfo.value.retryable
    assert len(sleep.delays) == 2


async def test_non_retryable_failure_is_not_retried() -> None:
    sleep = SleepRecorder()

    async def bad_request() -> str:
        raise StatusError(400)

    with pytest.raises(OracleUnavailable, match="StatusError: http 400"):
        await run_with_retries(
            bad_request, provider="test", is_retryable=is_transient_error, backoff=BackoffConfig(), sleep=sleep
        )
    assert sleep.delays == []


async def test_oracle_errors_pass_through_unwrapped() -> None:
    async def malformed() -> str:
        raise OracleMalformedResponse("bad shape")

    with pytest.raises(OracleMalformedResponse):
        await run_with_retries(
            malformed, provider="test", is_retryable=lambda exc: True, backoff=BackoffConfig()
        )


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (StatusError(429), True),
        (StatusError(503), True),
        (StatusError(400), False),
        (TimeoutError(), True),
        (RateLimitError("slow down"), True),
        (ValueError("nope"), False),
    ],
)
def test_transient_classification(exc: Exception, expected: bool) -> None:
    assert is_transient_error(exc) is expected


def test_status_code_read_from_nested_response() -> None:
    class Response:
        status_code = 502

    exc = Exception("bad gateway")
    exc.response = Response()  # type: ignore[attr-defined]

    assert read_status_code(exc) == 502
    assert describe_exception(RuntimeError("  spaced   out ")) == "RuntimeError: spaced out"


def test_backoff_is_capped_and_validated() -> None:
    config = BackoffConfig(initial_delay_seconds=1.0, multiplier=10.0, max_delay_seconds=5.0, jitter_ratio=0.0)

    assert config.delay_for(1) == 1.0
    assert config.delay_for(3) == 5.0
    assert 0.9 <= BackoffConfig(initial_delay_seconds=1.0).delay_for(1, lambda: 0.0) <= 1.1
    with pytest.raises(ValueError, match="multiplier"):
        BackoffConfig(multiplier=0.5)
    with pytest.raises(ValueError, match="retry_number"):
        config.delay_for(0)
