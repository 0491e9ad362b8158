"""Pattern rule loading and per-rule group-key filters."""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from ux_autofix.domain.models import PatternRule

_IMAGE_KEY_MARKERS: Final[tuple[str, ...]] = ("img", "image", "photo")

KeyFilter = Callable[[str], bool]


def is_image_key(key: str) -> bool:
    """Return ``True`` when a selector points at image-like content."""
    lowered = key.lower()
    return any(marker in lowered for marker in _IMAGE_KEY_MARKERS)


def _not_image_key(key: str) -> bool:
    return not is_image_key(key)


# Image dead clicks get their own rule; the general rule must not double-report them.
KEY_FILTERS: Final[dict[str, KeyFilter]] = {
    "dead_click_image": is_image_key,
    "dead_click_general": _not_image_key,
}


def accepts_key(rule: PatternRule, key: str) -> bool:
    key_filter = KEY_FILTERS.get(rule.id)
    return True if key_filter is None else key_filter(key)


def _bundled_rules_path() -> Path:
    return Path(__file__).resolve().with_name("pattern_rules.yaml")


def parse_pattern_rules(loaded: object, *, source: str) -> tuple[PatternRule, ...]:
    if not isinstance(loaded, list):
        raise ValueError(f"{source}: expected top-level YAML sequence, got {type(loaded).__name__}")

    rules: list[PatternRule] = []
    seen: set[str] = set()
    for index, item in enumerate(loaded):
        if not isinstance(item, dict):
            raise ValueError(f"{source}[{index}]: expected mapping, got {type(item).__name__}")
        rule = PatternRule.from_dict(item)
        if rule.id in seen:
            raise ValueError(f"{source}[{index}]: duplicate rule id {rule.id!r}")
        seen.add(rule.id)
        rules.append(rule)
    return tuple(rules)


@lru_cache(maxsize=8)
def load_pattern_rules(path: str | Path | None = None) -> tuple[PatternRule, ...]:
    """Load pattern rules from YAML; the bundled defaults when ``path`` is ``None``."""
    resolved = _bundled_rules_path() if path is None else Path(path).expanduser().resolve()
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{resolved}: invalid YAML ({exc})") from exc
    except OSError as exc:
        raise ValueError(f"{resolved}: unable to read rules file ({exc})") from exc
    return parse_pattern_rules(loaded, source=resolved.name)


__all__ = [
    "KEY_FILTERS",
    "accepts_key",
    "is_image_key",
    "load_pattern_rules",
    "parse_pattern_rules",
]
