from __future__ import annotations

from pathlib import Path

import pytest

from ux_autofix.detection.component_registry import ComponentMapping, ComponentRegistry


@pytest.mark.parametrize(
    ("selector", "text", "expected"),
    [
        ("[data-product-id='p1'] img", None, "ProductGrid"),
        ("#hero > a.hero-cta", None, "Hero"),
        ("header nav a", None, "Header"),
        ("div[data-cart] button", None, "CartDrawer"),
        ("#testimonials blockquote", None, "Testimonials"),
        ("div.random", "Add to cart", "ProductGrid"),
        ("span", "Shop now", "Hero"),
    ],
)
def test_resolve_known_selectors(selector: str, text: str | None, expected: str) -> None:
    mapping = ComponentRegistry().resolve(selector, text)

    assert mapping is not None
    assert mapping.component_name == expected


def test_unknown_selector_resolves_to_none() -> None:
    assert ComponentRegistry().resolve("div.random > span", "Lorem ipsum") is None


def test_more_specific_selector_wins() -> None:
    registry = ComponentRegistry(
        (
            ComponentMapping("#hero [data-cta]", "components/Cta.tsx", "Cta"),
            ComponentMapping("#hero", "components/Hero.tsx", "Hero"),
        )
    )

    mapping = registry.resolve("#hero [data-cta]")

    assert mapping is not None and mapping.component_name == "Cta"


def test_read_source_handles_missing_file(tmp_path: Path) -> None:
    (tmp_path / "components" / "store").mkdir(parents=True)
    (tmp_path / "components" / "store" / "Hero.tsx").write_text("a\nb\n", encoding="utf-8")
    registry = ComponentRegistry(workspace_root=tmp_path)

    hero = registry.read_source(ComponentMapping("#hero", "components/store/Hero.tsx", "Hero"))
    missing = registry.read_source(ComponentMapping("footer", "components/store/Footer.tsx", "Footer"))

    assert hero.code == "a\nb\n"
    assert hero.line_count == 3
    assert missing.code is None
    assert missing.line_count == 0
