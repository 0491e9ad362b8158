"""JSON-file persistence for the site guardrail profile."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from ux_autofix.guardrails.spec import DEFAULT_GUARDRAILS, GuardrailSpec, merge_guardrails
from ux_autofix.utils.fs import atomic_write

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class GuardrailStore:
    """Load/save/merge a ``GuardrailSpec`` at a fixed path.

    A missing file means "use defaults". An unreadable or invalid file also
    falls back to defaults, logged at ERROR so the operator notices.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        defaults: GuardrailSpec = DEFAULT_GUARDRAILS,
        clock: Clock = _utc_now,
    ) -> None:
        self._path = Path(path)
        self._defaults = defaults
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> GuardrailSpec:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("no guardrail profile at %s; using defaults", self._path)
            return self._defaults
        except OSError as exc:
            logger.error("unable to read guardrail profile %s: %s", self._path, exc)
            return self._defaults

        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                raise ValueError("guardrail profile root must be an object")
            spec = GuardrailSpec.from_dict(parsed)
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error("invalid guardrail profile %s: %s", self._path, exc)
            return self._defaults

        logger.info("loaded guardrail profile for site %s (v%d)", spec.site_id, spec.version)
        return spec

    def save(self, spec: GuardrailSpec) -> GuardrailSpec:
        """Persist ``spec`` with a bumped version; return what was written."""
        previous_version = self._current_version()
        stamped = replace(
            spec,
            version=max(spec.version, previous_version) + 1 if previous_version else spec.version,
            updated_at=self._clock(),
        )
        payload = json.dumps(stamped.to_dict(), indent=2, ensure_ascii=False) + "\n"
        atomic_write(self._path, payload, create_parents=True)
        logger.info("saved guardrail profile for site %s (v%d)", stamped.site_id, stamped.version)
        return stamped

    def merge(self, partial: Mapping[str, object]) -> GuardrailSpec:
        """Deep-merge ``partial`` into the stored profile, save, and return it."""
        merged = merge_guardrails(self.load(), partial)
        return self.save(merged)

    def delete(self) -> bool:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        logger.info("deleted guardrail profile %s", self._path)
        return True

    def _current_version(self) -> int:
        if not self.exists():
            return 0
        return self.load().version


__all__ = ["GuardrailStore"]
