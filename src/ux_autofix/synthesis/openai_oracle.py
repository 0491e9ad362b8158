"""OpenAI chat-completions oracle; same contract as the Anthropic adapter."""

from __future__ import annotations

import asyncio
import importlib
import os
import random as random_module
from collections.abc import Mapping, Sequence
from typing import Protocol, cast

from ux_autofix.errors import OracleMalformedResponse, OracleUnavailable
from ux_autofix.synthesis.oracle import (
    BackoffConfig,
    CompletionOracle,
    RandomFn,
    SleepFn,
    is_transient_error,
    run_with_retries,
)

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_MAX_TOKENS = 4096


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


class OpenAIOracle(CompletionOracle):
    name = "openai"

    def __init__(
        self,
        *,
        model: str = DEFAULT_OPENAI_MODEL,
        api_key: str | None = None,
        api_key_env: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
        backoff: BackoffConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
    ) -> None:
        if not model.strip():
            raise ValueError("model cannot be empty")
        if max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.model = model.strip()
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._backoff = backoff if backoff is not None else BackoffConfig()
        self._sleep = sleep
        self._random_fn = random_fn

    async def complete(self, prompt: str) -> str:
        async def operation() -> object:
            client = self._ensure_client()
            return await client.chat.completions.create(
                model=self.model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )

        raw = await run_with_retries(
            operation,
            provider=self.name,
            is_retryable=is_transient_error,
            backoff=self._backoff,
            sleep=self._sleep,
            random_fn=self._random_fn,
        )
        return _extract_text(raw)

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise OracleUnavailable(
                "openai SDK is not installed; install the 'providers' extra",
                provider=self.name,
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise OracleUnavailable("openai SDK does not expose AsyncOpenAI", provider=self.name)

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None and self._api_key.strip():
            return self._api_key
        env_name = self._api_key_env or "OPENAI_API_KEY"
        configured = os.getenv(env_name)
        if configured is None or not configured.strip():
            raise OracleUnavailable(f"missing OpenAI API key; set {env_name}", provider=self.name)
        return configured


def _extract_text(raw_response: object) -> str:
    choices = _read(raw_response, "choices")
    if isinstance(choices, Sequence) and not isinstance(choices, (str, bytes)) and choices:
        message = _read(choices[0], "message")
        content = _read(message, "content") if message is not None else None
        if isinstance(content, str) and content.strip():
            return content
    raise OracleMalformedResponse("openai response contained no message content")


def _read(value: object, key: str) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key))
    return cast("object | None", getattr(value, key, None))


__all__ = ["DEFAULT_OPENAI_MODEL", "OpenAIOracle"]
