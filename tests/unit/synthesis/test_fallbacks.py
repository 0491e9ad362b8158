from __future__ import annotations

from datetime import UTC, datetime

from ux_autofix.domain.models import FixType, Issue, IssueCategory, IssueSeverity, IssueStatus
from ux_autofix.synthesis.fallbacks import (
    COLOR_PREVIEW,
    LOADING_STATE,
    fallback_for,
    fix_type_for_issue,
    materialize,
)
from ux_autofix.verification.syntax_validator import validate_patch_set

GRID_PATH = "components/store/ProductGrid.tsx"
GRID = """import { useState } from 'react';
import { useCart } from '@/context/CartContext';

export function ProductGrid({ products }) {
  const [addingId, setAddingId] = useState(null);
  const { addItem } = useCart();
  return products.map((product) => (
    <button onClick={() => handleAddToCart(product)}>Add</button>
  ));
}
"""
NOW = datetime(2026, 10, 1, 12, tzinfo=UTC)


def _issue(pattern_id: str, suggested_fix: str = "") -> Issue:
    return Issue(
        id="issue-1",
        status=IssueStatus.DETECTED,
        severity=IssueSeverity.LOW,
        category=IssueCategory.FRUSTRATION,
        pattern_id=pattern_id,
        element_key="img",
        component_path=GRID_PATH,
        component_name="ProductGrid",
        evidence=(),
        event_count=3,
        unique_sessions=2,
        problem_statement="",
        user_intent="",
        current_outcome="",
        suggested_fix=suggested_fix,
        created_at=NOW,
        last_occurrence=NOW,
    )


def test_loading_state_materializes_with_import() -> None:
    materialized = materialize(LOADING_STATE, {GRID_PATH: GRID}.get)

    assert materialized.complete
    main, imports = materialized.patches
    assert main.old_code == "onClick={() => handleAddToCart(product)}"
    assert imports.old_code == "import { useCart } from '@/context/CartContext';"
    assert imports.new_code.endswith("import { LoadingSpinner } from '@/components/ui/LoadingSpinner';")
    assert validate_patch_set(materialized.patches, {GRID_PATH: GRID}.get).valid


def test_existing_import_is_not_duplicated() -> None:
    content = "import { LoadingSpinner } from '@/components/ui/LoadingSpinner';\n" + GRID

    materialized = materialize(LOADING_STATE, {GRID_PATH: content}.get)

    assert len(materialized.patches) == 1


def test_unmatched_template_is_reported_missing() -> None:
    materialized = materialize(COLOR_PREVIEW, {GRID_PATH: GRID}.get)

    assert not materialized.complete
    assert materialized.patches == ()
    assert materialized.missing[0].startswith(f"{GRID_PATH}: pattern not found:")


def test_unreadable_file_is_reported_missing() -> None:
    materialized = materialize(LOADING_STATE, lambda _path: None)

    assert not materialized.complete
    assert materialized.patches == ()


def test_fix_type_mapping() -> None:
    assert fix_type_for_issue(_issue("rage_click_hotspot")) is FixType.LOADING_STATE
    assert fix_type_for_issue(_issue("dead_click_image")) is FixType.IMAGE_GALLERY
    assert fix_type_for_issue(_issue("custom", "Open a lightbox")) is FixType.IMAGE_GALLERY
    assert fix_type_for_issue(_issue("custom", "Tidy spacing")) is FixType.UNKNOWN
    assert fallback_for(FixType.UNKNOWN) is None
    assert fallback_for(FixType.LOADING_STATE) is LOADING_STATE
