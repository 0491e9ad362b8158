"""Static mapping from captured CSS selectors to storefront component source files.

Order matters: more specific selectors come first and the first match wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"#([a-z0-9_-]+)", re.IGNORECASE)
_CLASS_PATTERN: Final[re.Pattern[str]] = re.compile(r"\.([a-z0-9_-]+)", re.IGNORECASE)

UNKNOWN_COMPONENT_PATH: Final[str] = "unknown"
UNKNOWN_COMPONENT_NAME: Final[str] = "Unknown"


@dataclass(frozen=True, slots=True)
class ComponentMapping:
    selector: str
    component_path: str
    component_name: str
    data_attributes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ComponentSource:
    path: str
    name: str
    code: str | None

    @property
    def line_count(self) -> int:
        return 0 if self.code is None else len(self.code.split("\n"))


_PRODUCT_GRID: Final[str] = "components/store/ProductGrid.tsx"
_HERO: Final[str] = "components/store/Hero.tsx"
_HEADER: Final[str] = "components/store/Header.tsx"
_CART_DRAWER: Final[str] = "components/store/CartDrawer.tsx"
_TESTIMONIALS: Final[str] = "components/store/Testimonials.tsx"
_FOOTER: Final[str] = "components/store/Footer.tsx"

DEFAULT_COMPONENTS: Final[tuple[ComponentMapping, ...]] = (
    ComponentMapping("[data-product-id] img", _PRODUCT_GRID, "ProductGrid", ("data-product-id",)),
    ComponentMapping(
        "[data-add-to-cart]",
        _PRODUCT_GRID,
        "ProductGrid",
        ("data-add-to-cart", "data-cta", "data-product-id"),
    ),
    ComponentMapping("[data-product-id]", _PRODUCT_GRID, "ProductGrid", ("data-product-id",)),
    ComponentMapping(
        "#products", _PRODUCT_GRID, "ProductGrid", ("data-product-id", "data-add-to-cart")
    ),
    ComponentMapping(".hero-cta", _HERO, "Hero", ("data-cta",)),
    ComponentMapping("#hero [data-cta]", _HERO, "Hero", ("data-cta",)),
    ComponentMapping("#hero", _HERO, "Hero", ("data-cta",)),
    ComponentMapping("header nav", _HEADER, "Header"),
    ComponentMapping("header", _HEADER, "Header"),
    ComponentMapping("[data-cart]", _CART_DRAWER, "CartDrawer", ("data-cart",)),
    ComponentMapping("#testimonials", _TESTIMONIALS, "Testimonials", ("data-section",)),
    ComponentMapping("#footer", _FOOTER, "Footer", ("data-section",)),
    ComponentMapping("footer", _FOOTER, "Footer"),
)

# (text fragments, component name) checked in order against the clicked element's text.
_TEXT_HINTS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("add to cart", "$"), "ProductGrid"),
    (("shop", "browse"), "Hero"),
    (("cart", "checkout"), "CartDrawer"),
)


class ComponentRegistry:
    """Resolve selectors to component mappings and read their sources."""

    def __init__(
        self,
        mappings: tuple[ComponentMapping, ...] = DEFAULT_COMPONENTS,
        *,
        workspace_root: str | Path | None = None,
    ) -> None:
        self._mappings = tuple(mappings)
        self._root = Path.cwd() if workspace_root is None else Path(workspace_root)

    @property
    def mappings(self) -> tuple[ComponentMapping, ...]:
        return self._mappings

    def resolve(self, selector: str, element_text: str | None = None) -> ComponentMapping | None:
        normalized = selector.lower().strip()

        for mapping in self._mappings:
            if mapping.selector.lower() in normalized:
                return mapping

        for mapping in self._mappings:
            for attr in mapping.data_attributes:
                if attr.lower() in normalized:
                    return mapping

        id_match = _ID_PATTERN.search(normalized)
        if id_match is not None:
            needle = f"#{id_match.group(1)}"
            for mapping in self._mappings:
                if needle in mapping.selector:
                    return mapping

        class_match = _CLASS_PATTERN.search(normalized)
        if class_match is not None:
            needle = f".{class_match.group(1)}"
            for mapping in self._mappings:
                if needle in mapping.selector:
                    return mapping

        if element_text:
            text = element_text.lower()
            for fragments, component_name in _TEXT_HINTS:
                if any(fragment in text for fragment in fragments):
                    return self._by_name(component_name)

        return None

    def read_source(self, mapping: ComponentMapping) -> ComponentSource:
        """Read a component file; a missing or unreadable file yields ``code=None``."""
        path = self._root / mapping.component_path
        try:
            code: str | None = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("component source unavailable: %s (%s)", mapping.component_path, exc)
            code = None
        return ComponentSource(path=mapping.component_path, name=mapping.component_name, code=code)

    def _by_name(self, component_name: str) -> ComponentMapping | None:
        for mapping in self._mappings:
            if mapping.component_name == component_name:
                return mapping
        return None


__all__ = [
    "ComponentMapping",
    "ComponentRegistry",
    "ComponentSource",
    "DEFAULT_COMPONENTS",
    "UNKNOWN_COMPONENT_NAME",
    "UNKNOWN_COMPONENT_PATH",
]
