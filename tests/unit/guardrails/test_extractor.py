from __future__ import annotations

from pathlib import Path

from ux_autofix.guardrails.extractor import ExtractionReport, extract_guardrails, scan_source
from ux_autofix.guardrails.spec import DEFAULT_GUARDRAILS, Provenance

BUTTON = """
export function Button() {
  return (
    <button
      className="bg-white text-gray-900 font-semibold rounded-lg uppercase"
      style={{ borderColor: "#E5E7EB" }}
    >
      Buy
    </button>
  );
}
"""

GLOBALS = ".card { transition: opacity 0.2s ease; }\n"


def _workspace(root: Path) -> Path:
    (root / "components").mkdir()
    (root / "app").mkdir()
    (root / "components" / "Button.tsx").write_text(BUTTON, encoding="utf-8")
    (root / "components" / "README.md").write_text("rounded-full bg-pink-500", encoding="utf-8")
    (root / "app" / "globals.css").write_text(GLOBALS, encoding="utf-8")
    return root


def test_scan_source_counts_usage() -> None:
    report = ExtractionReport()

    scan_source(BUTTON, report)

    assert report.backgrounds == {"#ffffff": 1}
    assert report.text_colors == {"#111827": 1}
    assert report.border_colors == {"#e5e7eb": 1}
    assert report.font_weights == {600: 1}
    assert report.border_radii == {8: 1}
    assert report.uppercase == 1


def test_extract_builds_profile_and_flags_rounded_corners(tmp_path: Path) -> None:
    spec, report = extract_guardrails(_workspace(tmp_path), site_id="shop")

    assert report.files_scanned == ["components/Button.tsx", "app/globals.css"]
    assert spec.site_id == "shop"
    assert spec.provenance is Provenance.EXTRACTED
    assert spec.colors.backgrounds == ("#ffffff",)
    assert spec.colors.borders == ("#e5e7eb",)
    assert spec.colors.accents == ()
    assert spec.typography.allowed_weights == (600,)
    assert spec.typography.require_uppercase
    assert spec.components.button_patterns == ("uppercase", "letter-spacing")
    assert spec.spacing.border_radius_allowed == (8,)
    assert spec.animation == DEFAULT_GUARDRAILS.animation
    assert len(report.conflicts) == 1
    assert "sharp corners" in report.conflicts[0]
    assert report.to_dict()["animationsFound"] == {"transition: opacity 0.2s ease": 1}


def test_extract_with_existing_profile_is_hybrid(tmp_path: Path) -> None:
    spec, _ = extract_guardrails(_workspace(tmp_path), existing=DEFAULT_GUARDRAILS)

    assert spec.provenance is Provenance.HYBRID
    assert spec.colors.accents == ("#3b82f6",)
    assert spec.colors.accent_contexts == ("hero-cta",)


def test_extract_from_empty_workspace_reports_both_conflicts(tmp_path: Path) -> None:
    spec, report = extract_guardrails(tmp_path)

    assert report.files_scanned == []
    assert spec.colors.backgrounds == ()
    assert not spec.typography.require_uppercase
    assert len(report.conflicts) == 2
