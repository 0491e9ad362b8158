"""
ux-autofix — Anthropic oracle adapter

File: src/ux_autofix/synthesis/anthropic_oracle.py
Last updated: 2026-10-18

Purpose
- Text completions from the Anthropic Messages API for fix generation and repair.

What should be included in this file
- Lazy SDK import (``providers`` extra), API key resolution, retries/backoff.

Functional requirements
- SDK, network and timeout failures map to ``OracleUnavailable``.
- A reply without text content raises ``OracleMalformedResponse``.

Non-functional requirements
- No secrets in logs or error messages.
"""

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

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096


class _AnthropicMessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _AnthropicClient(Protocol):
    messages: _AnthropicMessagesAPI


class AnthropicOracle(CompletionOracle):
    """Anthropic-backed oracle with an optional injected client (tests use a fake)."""

    name = "anthropic"

    def __init__(
        self,
        *,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        api_key: str | None = None,
        api_key_env: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout_seconds: float | None = None,
        client: _AnthropicClient | None = None,
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
            return await client.messages.create(
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

    def _ensure_client(self) -> _AnthropicClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _AnthropicClient:
        try:
            anthropic_module = importlib.import_module("anthropic")
        except ImportError as exc:
            raise OracleUnavailable(
                "anthropic SDK is not installed; install the 'providers' extra",
                provider=self.name,
            ) from exc

        async_anthropic = getattr(anthropic_module, "AsyncAnthropic", None)
        if async_anthropic is None:
            raise OracleUnavailable("anthropic SDK does not expose AsyncAnthropic", provider=self.name)

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_AnthropicClient", async_anthropic(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None and self._api_key.strip():
            return self._api_key
        if self._api_key_env is not None:
            configured = os.getenv(self._api_key_env)
            if configured is None or not configured.strip():
                raise OracleUnavailable(
                    f"missing Anthropic API key in configured env var {self._api_key_env}",
                    provider=self.name,
                )
            return configured
        fallback = os.getenv("ANTHROPIC_API_KEY")
        if fallback is None or not fallback.strip():
            raise OracleUnavailable("missing Anthropic API key; set ANTHROPIC_API_KEY", provider=self.name)
        return fallback


def _extract_text(raw_response: object) -> str:
    content = _read(raw_response, "content")
    chunks: list[str] = []
    if isinstance(content, Sequence) and not isinstance(content, (str, bytes)):
        for block in content:
            if _read(block, "type") == "text":
                text = _read(block, "text")
                if isinstance(text, str) and text:
                    chunks.append(text)
    if not chunks:
        raise OracleMalformedResponse("anthropic response contained no text content")
    return "".join(chunks)


def _read(value: object, key: str) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key))
    return cast("object | None", getattr(value, key, None))


__all__ = ["DEFAULT_ANTHROPIC_MODEL", "AnthropicOracle"]
