"""
ux-autofix — telemetry event model

File: src/ux_autofix/domain/events.py
Last updated: 2026-10-18

Purpose
- Typed, immutable storefront telemetry records read from the event store.

What should be included in this file
- ``EventType`` enumeration of every captured interaction.
- One frozen dataclass per event family sharing a common envelope.
- ``event_from_dict`` dispatching on ``type`` and ``to_dict`` serialization.

Functional requirements
- Unknown event types are rejected, never coerced.
- Timestamps are normalized to timezone-aware UTC datetimes.

Non-functional requirements
- No IO; the event store owns reading.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import ClassVar, TypeAlias

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

UNKNOWN_SECTION = "unknown"


class EventType(StrEnum):
    """Interaction events emitted by the storefront capture script."""

    CLICK = "click"
    RAGE_CLICK = "rage_click"
    DEAD_CLICK = "dead_click"
    DOUBLE_CLICK = "double_click"
    CTA_CLICK = "cta_click"
    IMAGE_CLICK = "image_click"
    RIGHT_CLICK = "right_click"

    SCROLL_DEPTH = "scroll_depth"
    SCROLL_REVERSAL = "scroll_reversal"
    RAPID_SCROLL = "rapid_scroll"

    FORM_FOCUS = "form_focus"
    FORM_BLUR = "form_blur"
    FORM_ERROR = "form_error"
    SLOW_FORM_FILL = "slow_form_fill"

    PRODUCT_VIEW = "product_view"
    PRODUCT_COMPARE = "product_compare"
    PRICE_CHECK = "price_check"
    ADD_TO_CART = "add_to_cart"
    CART_REMOVE = "cart_remove"
    CART_REVIEW = "cart_review"
    CHECKOUT_START = "checkout_start"
    CHECKOUT_ABANDON = "checkout_abandon"
    PURCHASE = "purchase"

    PAGE_VIEW = "page_view"
    SECTION_VIEW = "section_view"
    BOUNCE = "bounce"
    EXIT_INTENT = "exit_intent"
    HOVER_INTENT = "hover_intent"
    TEXT_SELECTION = "text_selection"
    TEXT_COPY = "text_copy"
    TAB_HIDDEN = "tab_hidden"
    TAB_VISIBLE = "tab_visible"
    SEARCH_INTENT = "search_intent"
    NAVIGATION_BROWSE = "navigation_browse"
    LINK_HOVER = "link_hover"
    KEYBOARD_SHORTCUT = "keyboard_shortcut"
    SESSION_START = "session_start"
    SESSION_END = "session_end"


class EventKind(StrEnum):
    """Event families; each maps to one concrete record class."""

    CLICK = "click"
    SCROLL = "scroll"
    FORM = "form"
    COMMERCE = "commerce"
    NAVIGATION = "navigation"


@dataclass(frozen=True, slots=True)
class _EventEnvelope:
    """Fields shared by every telemetry record."""

    KIND: ClassVar[EventKind]
    TYPES: ClassVar[frozenset[EventType]]

    id: str
    type: EventType
    timestamp: datetime
    session_id: str
    element_key: str | None = None
    page_url: str | None = None
    element_text: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_non_empty_str(self.id, "id"))
        event_type = _as_event_type(self.type)
        if event_type not in self.TYPES:
            raise ValueError(
                f"{type(self).__name__} does not accept event type {event_type.value!r}"
            )
        object.__setattr__(self, "type", event_type)
        object.__setattr__(self, "timestamp", _as_utc_datetime(self.timestamp, "timestamp"))
        object.__setattr__(self, "session_id", _as_non_empty_str(self.session_id, "session_id"))
        object.__setattr__(self, "element_key", _as_optional_str(self.element_key))
        object.__setattr__(self, "page_url", _as_optional_str(self.page_url))
        object.__setattr__(self, "element_text", _as_optional_str(self.element_text))

    @property
    def kind(self) -> EventKind:
        return self.KIND

    @property
    def section_id(self) -> str:
        """Container the event happened in; the page is the coarsest section."""
        return self.page_url or UNKNOWN_SECTION

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "sessionId": self.session_id,
        }
        if self.element_key is not None:
            payload["elementSelector"] = self.element_key
        if self.page_url is not None:
            payload["pageUrl"] = self.page_url
        if self.element_text is not None:
            payload["elementText"] = self.element_text
        payload.update(self._variant_fields())
        return payload

    def _variant_fields(self) -> dict[str, JSONValue]:
        return {}


@dataclass(frozen=True, slots=True)
class ClickEvent(_EventEnvelope):
    KIND: ClassVar[EventKind] = EventKind.CLICK
    TYPES: ClassVar[frozenset[EventType]] = frozenset(
        {
            EventType.CLICK,
            EventType.RAGE_CLICK,
            EventType.DEAD_CLICK,
            EventType.DOUBLE_CLICK,
            EventType.CTA_CLICK,
            EventType.IMAGE_CLICK,
            EventType.RIGHT_CLICK,
        }
    )

    x: float | None = None
    y: float | None = None
    click_count: int | None = None

    def _variant_fields(self) -> dict[str, JSONValue]:
        return _drop_none({"x": self.x, "y": self.y, "clickCount": self.click_count})


@dataclass(frozen=True, slots=True)
class ScrollEvent(_EventEnvelope):
    KIND: ClassVar[EventKind] = EventKind.SCROLL
    TYPES: ClassVar[frozenset[EventType]] = frozenset(
        {EventType.SCROLL_DEPTH, EventType.SCROLL_REVERSAL, EventType.RAPID_SCROLL}
    )

    scroll_depth: float | None = None

    def _variant_fields(self) -> dict[str, JSONValue]:
        return _drop_none({"scrollDepth": self.scroll_depth})


@dataclass(frozen=True, slots=True)
class FormEvent(_EventEnvelope):
    KIND: ClassVar[EventKind] = EventKind.FORM
    TYPES: ClassVar[frozenset[EventType]] = frozenset(
        {
            EventType.FORM_FOCUS,
            EventType.FORM_BLUR,
            EventType.FORM_ERROR,
            EventType.SLOW_FORM_FILL,
        }
    )

    field_name: str | None = None

    def _variant_fields(self) -> dict[str, JSONValue]:
        return _drop_none({"fieldName": self.field_name})


@dataclass(frozen=True, slots=True)
class CommerceEvent(_EventEnvelope):
    KIND: ClassVar[EventKind] = EventKind.COMMERCE
    TYPES: ClassVar[frozenset[EventType]] = frozenset(
        {
            EventType.PRODUCT_VIEW,
            EventType.PRODUCT_COMPARE,
            EventType.PRICE_CHECK,
            EventType.ADD_TO_CART,
            EventType.CART_REMOVE,
            EventType.CART_REVIEW,
            EventType.CHECKOUT_START,
            EventType.CHECKOUT_ABANDON,
            EventType.PURCHASE,
        }
    )

    product_id: str | None = None
    product_price: float | None = None

    def _variant_fields(self) -> dict[str, JSONValue]:
        return _drop_none({"productId": self.product_id, "productPrice": self.product_price})


@dataclass(frozen=True, slots=True)
class NavigationEvent(_EventEnvelope):
    KIND: ClassVar[EventKind] = EventKind.NAVIGATION
    TYPES: ClassVar[frozenset[EventType]] = frozenset(
        {
            EventType.PAGE_VIEW,
            EventType.SECTION_VIEW,
            EventType.BOUNCE,
            EventType.EXIT_INTENT,
            EventType.HOVER_INTENT,
            EventType.TEXT_SELECTION,
            EventType.TEXT_COPY,
            EventType.TAB_HIDDEN,
            EventType.TAB_VISIBLE,
            EventType.SEARCH_INTENT,
            EventType.NAVIGATION_BROWSE,
            EventType.LINK_HOVER,
            EventType.KEYBOARD_SHORTCUT,
            EventType.SESSION_START,
            EventType.SESSION_END,
        }
    )


Event: TypeAlias = ClickEvent | ScrollEvent | FormEvent | CommerceEvent | NavigationEvent

_VARIANTS: tuple[type[_EventEnvelope], ...] = (
    ClickEvent,
    ScrollEvent,
    FormEvent,
    CommerceEvent,
    NavigationEvent,
)
_CLASS_BY_TYPE: dict[EventType, type[_EventEnvelope]] = {
    event_type: variant for variant in _VARIANTS for event_type in variant.TYPES
}


def event_class_for(event_type: EventType | str) -> type[_EventEnvelope]:
    """Return the record class that carries ``event_type``."""
    return _CLASS_BY_TYPE[_as_event_type(event_type)]


def event_from_dict(data: dict[str, object]) -> Event:
    """Build the matching event variant from a captured JSON record."""
    if not isinstance(data, dict):
        raise ValueError(f"event must be an object, got {type(data).__name__}")
    event_type = _as_event_type(data.get("type"))
    common: dict[str, object] = {
        "id": data.get("id"),
        "type": event_type,
        "timestamp": data.get("timestamp"),
        "session_id": data.get("sessionId", data.get("session_id")),
        "element_key": data.get("elementSelector", data.get("element_key")),
        "page_url": data.get("pageUrl", data.get("page_url")),
        "element_text": data.get("elementText", data.get("element_text")),
    }
    variant = _CLASS_BY_TYPE[event_type]
    if variant is ClickEvent:
        return ClickEvent(
            **common,  # type: ignore[arg-type]
            x=_as_optional_float(data.get("x"), "x"),
            y=_as_optional_float(data.get("y"), "y"),
            click_count=_as_optional_int(data.get("clickCount"), "clickCount"),
        )
    if variant is ScrollEvent:
        return ScrollEvent(
            **common,  # type: ignore[arg-type]
            scroll_depth=_as_optional_float(data.get("scrollDepth"), "scrollDepth"),
        )
    if variant is FormEvent:
        return FormEvent(
            **common,  # type: ignore[arg-type]
            field_name=_as_optional_str(data.get("fieldName")),
        )
    if variant is CommerceEvent:
        return CommerceEvent(
            **common,  # type: ignore[arg-type]
            product_id=_as_optional_str(data.get("productId")),
            product_price=_as_optional_float(data.get("productPrice"), "productPrice"),
        )
    return NavigationEvent(**common)  # type: ignore[arg-type]


def _as_event_type(value: object) -> EventType:
    if isinstance(value, EventType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"event type must be a string, got {type(value).__name__}")
    try:
        return EventType(value.strip())
    except ValueError as exc:
        raise ValueError(f"unknown event type {value!r}") from exc


def _as_non_empty_str(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


def _as_optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return str(value)
    normalized = value.strip()
    return normalized or None


def _as_optional_float(value: object, field_name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    if not math.isfinite(value):
        raise ValueError(f"{field_name} must be finite")
    return float(value)


def _as_optional_int(value: object, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    return value


def _as_utc_datetime(value: object, field_name: str) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a datetime, epoch milliseconds or ISO-8601")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value) / 1000.0, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"{field_name} is not a valid ISO-8601 timestamp") from exc
        return _as_utc_datetime(parsed, field_name)
    raise ValueError(f"{field_name} must be a datetime, epoch milliseconds or ISO-8601")


def _drop_none(values: dict[str, JSONValue]) -> dict[str, JSONValue]:
    return {key: value for key, value in values.items() if value is not None}


__all__ = [
    "ClickEvent",
    "CommerceEvent",
    "Event",
    "EventKind",
    "EventType",
    "FormEvent",
    "NavigationEvent",
    "ScrollEvent",
    "UNKNOWN_SECTION",
    "event_class_for",
    "event_from_dict",
]
