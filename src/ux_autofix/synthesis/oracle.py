"""
ux-autofix — code-generation oracle interface

File: src/ux_autofix/synthesis/oracle.py
Last updated: 2026-10-18

Purpose
- The boundary between the remediation pipeline and whatever produces code changes.

What should be included in this file
- ``Oracle`` protocol, its request/response records, and payload parsing.
- ``CompletionOracle``: shared prompt/parse flow for text-completion providers.
- Bounded exponential backoff used by provider adapters.

Functional requirements
- A reply that is not ``{explanation, newFiles[], patches[]}`` raises
  ``OracleMalformedResponse``; fenced code blocks around the JSON are tolerated.
- Transport failures surface as ``OracleUnavailable`` after bounded retries.

Non-functional requirements
- No provider SDK is imported here; adapters import theirs lazily.
"""

from __future__ import annotations

import asyncio
import json
import random as random_module
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Protocol, TypeVar, runtime_checkable

from ux_autofix.domain.models import FixType, Issue, NewFile, Patch
from ux_autofix.errors import OracleMalformedResponse, OracleUnavailable
from ux_autofix.guardrails.spec import GuardrailSpec
from ux_autofix.synthesis.prompts import Excerpt, render_generation_prompt, render_repair_prompt

SleepFn = Callable[[float], Awaitable[None]]
RandomFn = Callable[[], float]
_ResultT = TypeVar("_ResultT")

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


@dataclass(frozen=True, slots=True)
class SourceFile:
    path: str
    content: str | None


@dataclass(frozen=True, slots=True)
class OracleContext:
    """Everything the oracle sees when asked for a fix."""

    issue: Issue
    fix_type: FixType
    guardrails: GuardrailSpec
    files: tuple[SourceFile, ...] = ()


@dataclass(frozen=True, slots=True)
class OracleResult:
    explanation: str
    patches: tuple[Patch, ...]
    new_files: tuple[NewFile, ...] = ()


@dataclass(frozen=True, slots=True)
class RepairRequest:
    """One corrective request for a single rejected patch."""

    issue: Issue
    patch: Patch
    reasons: tuple[str, ...]
    excerpt: Excerpt
    guardrails: GuardrailSpec
    round_number: int


@runtime_checkable
class Oracle(Protocol):
    name: str

    async def generate(self, context: OracleContext) -> OracleResult: ...

    async def repair(self, request: RepairRequest) -> Patch: ...


def extract_json_object(text: str) -> dict[str, object]:
    """Decode the first JSON object in ``text``; fenced blocks are unwrapped first."""
    if not isinstance(text, str) or not text.strip():
        raise OracleMalformedResponse("oracle returned an empty response")

    candidates: list[str] = [match.group(1) for match in _FENCED_JSON.finditer(text)]
    candidates.append(text)
    decoder = json.JSONDecoder()
    for candidate in candidates:
        start = candidate.find("{")
        while start != -1:
            try:
                parsed, _ = decoder.raw_decode(candidate, start)
            except json.JSONDecodeError:
                start = candidate.find("{", start + 1)
                continue
            if isinstance(parsed, dict):
                return parsed
            start = candidate.find("{", start + 1)
    raise OracleMalformedResponse("no JSON object found in oracle response", raw_excerpt=text)


def parse_oracle_payload(text: str) -> OracleResult:
    payload = extract_json_object(text)
    explanation = payload.get("explanation")
    if not isinstance(explanation, str):
        raise OracleMalformedResponse("'explanation' must be a string", raw_excerpt=text)
    raw_patches = payload.get("patches", [])
    raw_new_files = payload.get("newFiles", payload.get("new_files", []))
    if not isinstance(raw_patches, list) or not isinstance(raw_new_files, list):
        raise OracleMalformedResponse("'patches' and 'newFiles' must be arrays", raw_excerpt=text)
    if not raw_patches and not raw_new_files:
        raise OracleMalformedResponse("oracle proposed no changes", raw_excerpt=text)

    try:
        patches = tuple(Patch.from_dict(_as_mapping(item, "patches")) for item in raw_patches)
        new_files = tuple(NewFile.from_dict(_as_mapping(item, "newFiles")) for item in raw_new_files)
    except ValueError as exc:
        raise OracleMalformedResponse(f"invalid change record: {exc}", raw_excerpt=text) from exc
    return OracleResult(explanation=explanation.strip(), patches=patches, new_files=new_files)


def parse_repair_payload(text: str, original: Patch) -> Patch:
    """A repair reply is one patch object, or ``{"patches": [one]}``."""
    payload = extract_json_object(text)
    candidate: object = payload
    patches = payload.get("patches")
    if isinstance(patches, list):
        if len(patches) != 1:
            raise OracleMalformedResponse("repair must return exactly one patch", raw_excerpt=text)
        candidate = patches[0]
    data = dict(_as_mapping(candidate, "patch"))
    if "filePath" not in data and "file_path" not in data:
        data["filePath"] = original.file_path
    try:
        return Patch.from_dict(data)
    except ValueError as exc:
        raise OracleMalformedResponse(f"invalid repaired patch: {exc}", raw_excerpt=text) from exc


class CompletionOracle(ABC):
    """Oracle backed by a single prompt-in, text-out completion call."""

    name = "completion"

    async def generate(self, context: OracleContext) -> OracleResult:
        text = await self.complete(render_generation_prompt(context))
        return parse_oracle_payload(text)

    async def repair(self, request: RepairRequest) -> Patch:
        text = await self.complete(render_repair_prompt(request))
        return parse_repair_payload(text, request.patch)

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the raw completion text or raise ``OracleUnavailable``."""


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Bounded exponential backoff policy."""

    max_retries: int = 2
    initial_delay_seconds: float = 0.5
    multiplier: float = 2.0
    max_delay_seconds: float = 8.0
    jitter_ratio: float = 0.1

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

    def delay_for(self, retry_number: int, random_fn: RandomFn = random_module.random) -> float:
        """Delay before retry N (1-based)."""
        if retry_number <= 0:
            raise ValueError("retry_number must be > 0")
        base = min(
            self.initial_delay_seconds * (self.multiplier ** (retry_number - 1)),
            self.max_delay_seconds,
        )
        if self.jitter_ratio == 0.0:
            return base
        jitter = ((random_fn() * 2.0) - 1.0) * base * self.jitter_ratio
        return max(0.0, min(self.max_delay_seconds, base + jitter))


async def run_with_retries(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    provider: str,
    is_retryable: Callable[[Exception], bool],
    backoff: BackoffConfig,
    sleep: SleepFn = asyncio.sleep,
    random_fn: RandomFn = random_module.random,
) -> _ResultT:
    """Retry retryable failures; anything else (or exhaustion) becomes ``OracleUnavailable``."""
    retry_count = 0
    while True:
        try:
            return await operation()
        except (OracleUnavailable, OracleMalformedResponse):
            raise
        except Exception as exc:  # noqa: BLE001
            if not is_retryable(exc) or retry_count >= backoff.max_retries:
                raise OracleUnavailable(describe_exception(exc), provider=provider) from exc
            retry_count += 1
            await sleep(backoff.delay_for(retry_count, random_fn))


def describe_exception(exc: BaseException) -> str:
    text = " ".join(str(exc).split())
    name = exc.__class__.__name__
    return f"{name}: {text}" if text else name


def read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    nested = getattr(response, "status_code", None) if response is not None else None
    return nested if isinstance(nested, int) else None


def is_transient_error(exc: Exception) -> bool:
    """Rate limits, 5xx, timeouts and connection drops are worth retrying."""
    status = read_status_code(exc)
    if status is not None:
        return status == 429 or status >= 500
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    class_name = exc.__class__.__name__.lower()
    return any(token in class_name for token in ("timeout", "connection", "overloaded", "ratelimit"))


def _as_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise OracleMalformedResponse(f"{path}: expected object, got {type(value).__name__}")
    return value


__all__ = [
    "BackoffConfig",
    "CompletionOracle",
    "Oracle",
    "OracleContext",
    "OracleResult",
    "RepairRequest",
    "SourceFile",
    "describe_exception",
    "extract_json_object",
    "is_transient_error",
    "parse_oracle_payload",
    "parse_repair_payload",
    "read_status_code",
    "run_with_retries",
]
