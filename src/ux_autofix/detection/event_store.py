"""Read-only view over the storefront telemetry file.

The capture endpoint appends records; this module never writes. Both JSON-lines
files and a single top-level JSON array are accepted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

from ux_autofix.domain.events import Event, EventType, event_from_dict

logger = logging.getLogger(__name__)


class EventStore:
    """Ordered, append-only event collection backed by a file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read_events(self, *, since: datetime | None = None) -> tuple[Event, ...]:
        """Return events in file order; malformed records are skipped and logged."""
        cutoff = _as_utc(since) if since is not None else None
        events = tuple(self._iter_events())
        if cutoff is None:
            return events
        return tuple(event for event in events if event.timestamp >= cutoff)

    def events_for_session(self, session_id: str) -> tuple[Event, ...]:
        return tuple(event for event in self._iter_events() if event.session_id == session_id)

    def events_by_type(self, event_type: EventType | str) -> tuple[Event, ...]:
        wanted = EventType(event_type)
        return tuple(event for event in self._iter_events() if event.type is wanted)

    def events_in_range(self, start: datetime, end: datetime) -> tuple[Event, ...]:
        lower, upper = _as_utc(start), _as_utc(end)
        return tuple(event for event in self._iter_events() if lower <= event.timestamp <= upper)

    def unique_sessions(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for event in self._iter_events():
            seen.setdefault(event.session_id, None)
        return tuple(seen)

    def _iter_events(self) -> Iterator[Event]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        stripped = text.lstrip()
        if stripped.startswith("["):
            yield from self._iter_json_array(stripped)
            return
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
                yield event_from_dict(record)
            except (json.JSONDecodeError, ValueError) as exc:
                logger.warning("skipping malformed event at %s:%d: %s", self._path, line_number, exc)

    def _iter_json_array(self, text: str) -> Iterator[Event]:
        try:
            records = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("event file %s is not valid JSON: %s", self._path, exc)
            return
        for index, record in enumerate(records):
            try:
                yield event_from_dict(record)
            except ValueError as exc:
                logger.warning("skipping malformed event at %s[%d]: %s", self._path, index, exc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


__all__ = ["EventStore"]
