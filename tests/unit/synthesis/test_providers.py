from __future__ import annotations

from types import SimpleNamespace

import pytest

from ux_autofix.errors import OracleMalformedResponse, OracleUnavailable
from ux_autofix.synthesis.anthropic_oracle import AnthropicOracle
from ux_autofix.synthesis.openai_oracle import OpenAIOracle
from ux_autofix.synthesis.oracle import BackoffConfig


class OverloadedError(Exception):
    def __init__(self) -> None:
        super().__init__("overloaded")
        self.status_code = 529


class FakeCreate:
    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    async def create(self, **kwargs: object) -> object:
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def _no_sleep(_delay: float) -> None:
    return None


def _anthropic(responses: list[object], **kwargs: object) -> tuple[AnthropicOracle, FakeCreate]:
    messages = FakeCreate(responses)
    oracle = AnthropicOracle(
        client=SimpleNamespace(messages=messages),  # type: ignore[arg-type]
        backoff=BackoffConfig(jitter_ratio=0.0),
        sleep=_no_sleep,
        **kwargs,  # type: ignore[arg-type]
    )
    return oracle, messages


def _openai(responses: list[object]) -> tuple[OpenAIOracle, FakeCreate]:
    completions = FakeCreate(responses)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    oracle = OpenAIOracle(client=client, backoff=BackoffConfig(jitter_ratio=0.0), sleep=_no_sleep)  # type: ignore[arg-type]
    return oracle, completions


async def test_anthropic_joins_text_blocks() -> None:
    reply = {"content": [{"type": "text", "text": "{\"a\": "}, {"type": "tool_use"}, {"type": "text", "text": "1}"}]}
    oracle, messages = _anthropic([reply], model="claude-test", max_tokens=512)

    text = await oracle.complete("prompt")

    assert text == '{"a": 1}'
    assert messages.calls == [
        {"model": "claude-test", "max_tokens": 512, "messages": [{"role": "user", "content": "prompt"}]}
    ]


async def test_anthropic_retries_overloaded_then_succeeds() -> None:
    reply = SimpleNamespace(content=[SimpleNamespace(type="text", text="done")])
    oracle, messages = _anthropic([OverloadedError(), reply])

    assert await oracle.complete("p") == "done"
    assert len(messages.calls) == 2


async def test_anthropic_without_text_is_malformed() -> None:
    oracle, _ = _anthropic([{"content": []}])

    with pytest.raises(OracleMalformedResponse, match="no text content"):
        await oracle.complete("p")


async def test_anthropic_exhausted_retries_are_unavailable() -> None:
    oracle, messages = _anthropic([OverloadedError(), OverloadedError(), OverloadedError()])

    with pytest.raises(OracleUnavailable, match="OverloadedError"):
        await oracle.complete("p")
    assert len(messages.calls) == 3


def test_anthropic_api_key_resolution(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("UXFIX_TEST_KEY", raising=False)
    oracle = AnthropicOracle(api_key_env="UXFIX_TEST_KEY")

    with pytest.raises(OracleUnavailable, match="UXFIX_TEST_KEY"):
        oracle._resolve_api_key()

    monkeypatch.setenv("UXFIX_TEST_KEY", "sk-test")
    assert oracle._resolve_api_key() == "sk-test"


def test_constructor_validation() -> None:
    with pytest.raises(ValueError, match="model"):
        AnthropicOracle(model="  ")
    with pytest.raises(ValueError, match="max_tokens"):
        OpenAIOracle(max_tokens=0)


async def test_openai_reads_first_choice() -> None:
    reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="hello"))])
    oracle, completions = _openai([reply])

    assert await oracle.complete("p") == "hello"
    assert completions.calls[0]["model"] == "gpt-4o"


async def test_openai_empty_choice_is_malformed() -> None:
    oracle, _ = _openai([{"choices": []}])

    with pytest.raises(OracleMalformedResponse, match="no message content"):
        await oracle.complete("p")


def test_openai_missing_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(OracleUnavailable, match="OPENAI_API_KEY"):
        OpenAIOracle()._resolve_api_key()
