"""
ux-autofix — integration tests for the remediation pipeline

File: tests/integration/test_pipeline_flow.py
Last updated: 2026-10-18

Purpose
- Drive real issues through generate, validate, repair and apply against a temporary
  workspace and SQLite store, with an in-memory oracle standing in for the provider.

What this test file should cover
- A valid oracle fix is applied and the attempt is persisted.
- A malformed oracle reply falls back to the matching template.
- An unreachable oracle leaves the workspace untouched and fails the issue.
- The category cooldown skips a second fix unless an anomaly bypasses it.
- Zero valid patches after repair writes nothing, new files included.
- Partial application is reported and persisted per file.
- Concurrent issues on different components share one file without lost writes.

Functional requirements
- No network; no provider SDKs.

Non-functional requirements
- Deterministic ids and clock.
"""

from __future__ import annotations

import asyncio
import itertools
from datetime import UTC, datetime
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from ux_autofix.control.context import SessionContext
from ux_autofix.control.pipeline import RemediationPipeline
from ux_autofix.domain.models import (
    FixOutcome,
    FixSource,
    Issue,
    IssueCategory,
    IssueSeverity,
    IssueStatus,
    NewFile,
    Patch,
)
from ux_autofix.errors import OracleMalformedResponse, OracleUnavailable
from ux_autofix.integration.patch_applier import PatchApplier
from ux_autofix.persistence.issue_store import IssueStore
from ux_autofix.synthesis.oracle import OracleContext, OracleResult, RepairRequest

NOW = datetime(2026, 10, 1, 12, tzinfo=UTC)
GRID_PATH = "components/store/ProductGrid.tsx"
HELPER = "export const Helper = () => null;\n"
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


class StubOracle:
    name = "stub"

    def __init__(self, outcome: OracleResult | Exception) -> None:
        self._outcome = outcome
        self.generate_calls = 0
        self.repair_calls = 0

    async def generate(self, context: OracleContext) -> OracleResult:
        self.generate_calls += 1
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome

    async def repair(self, request: RepairRequest) -> Patch:
        self.repair_calls += 1
        return request.patch


def make_issue(element_key: str = "[data-add-to-cart]", *, component_path: str = GRID_PATH) -> Issue:
    return Issue(
        id=f"issue-{element_key.strip('[]#')}",
        status=IssueStatus.DETECTED,
        severity=IssueSeverity.HIGH,
        category=IssueCategory.FRUSTRATION,
        pattern_id="rage_click_hotspot",
        element_key=element_key,
        component_path=component_path,
        component_name=Path(component_path).stem,
        evidence=(),
        event_count=21,
        unique_sessions=8,
        problem_statement="Shoppers hammer the add-to-cart button",
        user_intent="Add a product to the cart",
        current_outcome="No visible feedback",
        suggested_fix="Show a loading spinner",
        created_at=NOW,
        last_occurrence=NOW,
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "shop"
    target = root / GRID_PATH
    target.parent.mkdir(parents=True)
    target.write_text(GRID, encoding="utf-8")
    return root


def build_pipeline(
    workspace: Path,
    oracle: StubOracle,
    *,
    context: SessionContext | None = None,
) -> tuple[RemediationPipeline, IssueStore]:
    context = context or SessionContext(cooldown_seconds=0)
    store = IssueStore(workspace / ".autofix" / "state.sqlite3")
    counter = itertools.count(1)
    pipeline = RemediationPipeline(
        oracle=oracle,
        store=store,
        context=context,
        applier=PatchApplier(workspace, context),
        max_rounds=2,
        oracle_timeout_seconds=5.0,
        attempt_id_factory=lambda: f"fix-{next(counter)}",
    )
    return pipeline, store


async def test_valid_oracle_fix_is_applied_and_recorded(workspace: Path) -> None:
    oracle = StubOracle(
        OracleResult(
            explanation="Reset the loading marker explicitly",
            patches=(
                Patch(
                    file_path=GRID_PATH,
                    old_code="useState(null);",
                    new_code="useState(undefined);",
                ),
            ),
        )
    )
    pipeline, store = build_pipeline(workspace, oracle)

    result = await pipeline.process_issue(make_issue())

    assert result.applied
    assert result.error_code is None
    assert "useState(undefined);" in (workspace / GRID_PATH).read_text(encoding="utf-8")
    assert oracle.repair_calls == 0

    stored = store.get(result.issue.id)
    assert stored is not None
    assert stored.status is IssueStatus.FIX_APPLIED
    (attempt,) = store.list_fix_attempts(result.issue.id)
    assert attempt.id == "fix-1"
    assert attempt.outcome is FixOutcome.ALL_VALID
    assert attempt.source is FixSource.ORACLE
    assert attempt.applied_files == (GRID_PATH,)


async def test_malformed_reply_falls_back_to_template(workspace: Path) -> None:
    oracle = StubOracle(OracleMalformedResponse("no JSON object in reply"))
    pipeline, store = build_pipeline(workspace, oracle)

    with capture_logs() as logs:
        result = await pipeline.process_issue(make_issue())

    assert result.applied
    content = (workspace / GRID_PATH).read_text(encoding="utf-8")
    assert "import { LoadingSpinner } from '@/components/ui/LoadingSpinner';" in content
    assert "await handleAddToCart(product);" in content
    assert result.attempt is not None
    assert result.attempt.source is FixSource.FALLBACK
    assert any(entry["event"] == "pipeline_fallback_used" for entry in logs)


async def test_unreachable_oracle_writes_nothing(workspace: Path) -> None:
    oracle = StubOracle(OracleUnavailable("HTTP 503 from provider"))
    pipeline, store = build_pipeline(workspace, oracle)

    result = await pipeline.process_issue(make_issue())

    assert not result.applied
    assert result.error_code == "oracle_unavailable"
    assert result.issue.status is IssueStatus.FIX_FAILED
    assert result.issue.fix_diagnostic == "no fix generated (oracle_unavailable): HTTP 503 from provider"
    assert (workspace / GRID_PATH).read_text(encoding="utf-8") == GRID
    (attempt,) = store.list_fix_attempts(result.issue.id)
    assert attempt.outcome is FixOutcome.ALL_INVALID
    assert attempt.patches == ()


async def test_rejected_fix_is_not_applied(workspace: Path) -> None:
    oracle = StubOracle(
        OracleResult(
            explanation="e",
            patches=(Patch(file_path=GRID_PATH, old_code="not in the file", new_code="x"),),
        )
    )
    pipeline, _store = build_pipeline(workspace, oracle)

    result = await pipeline.process_issue(make_issue())

    assert not result.applied
    assert result.error_code == "validation_rejected"
    assert oracle.repair_calls == 2
    assert result.attempt is not None
    assert result.attempt.outcome is FixOutcome.ALL_INVALID
    assert (workspace / GRID_PATH).read_text(encoding="utf-8") == GRID


async def test_cooldown_skips_then_anomaly_bypasses(workspace: Path) -> None:
    ticks = [100.0]
    context = SessionContext(cooldown_seconds=300, clock=lambda: ticks[0])
    oracle = StubOracle(OracleUnavailable("down"))
    pipeline, _store = build_pipeline(workspace, oracle, context=context)

    first = await pipeline.process_issue(make_issue())
    second = await pipeline.process_issue(make_issue("#hero-cta"))

    assert not first.skipped
    assert second.skipped
    assert second.skipped_reason == "frustration fixes are cooling down for 300s"
    assert oracle.generate_calls == 1

    bypassed = await pipeline.process_issue(make_issue("#hero-cta"), bypass_cooldown=True)

    assert not bypassed.skipped
    assert oracle.generate_calls == 2

    ticks[0] += 301
    after = await pipeline.process_issue(make_issue("#footer"))
    assert not after.skipped


async def test_batch_results_keep_input_order(workspace: Path) -> None:
    oracle = StubOracle(OracleUnavailable("down"))
    pipeline, _store = build_pipeline(workspace, oracle)

    results = await pipeline.process_issues([make_issue("#a"), make_issue("#b"), make_issue("#c")])

    assert [result.issue.element_key for result in results] == ["#a", "#b", "#c"]
    assert all(result.error_code == "oracle_unavailable" for result in results)


async def test_zero_valid_patches_skips_new_files_too(workspace: Path) -> None:
    oracle = StubOracle(
        OracleResult(
            explanation="Extract a helper and wire it in",
            patches=(Patch(file_path=GRID_PATH, old_code="not in the file", new_code="<Helper />"),),
            new_files=(NewFile(path="components/ui/Helper.tsx", content=HELPER),),
        )
    )
    pipeline, store = build_pipeline(workspace, oracle)

    result = await pipeline.process_issue(make_issue())

    assert not result.applied
    assert result.error_code == "validation_rejected"
    assert result.issue.status is IssueStatus.FIX_FAILED
    assert result.apply_report is None
    assert not (workspace / "components" / "ui" / "Helper.tsx").exists()
    assert (workspace / GRID_PATH).read_text(encoding="utf-8") == GRID
    (attempt,) = store.list_fix_attempts(result.issue.id)
    assert attempt.outcome is FixOutcome.ALL_INVALID
    assert attempt.new_files == ()
    assert attempt.applied_files == ()


async def test_partial_apply_is_recorded_per_file(workspace: Path) -> None:
    oracle = StubOracle(
        OracleResult(
            explanation="Add a helper next to the grid",
            patches=(
                Patch(file_path=GRID_PATH, old_code="useState(null);", new_code="useState(undefined);"),
            ),
            new_files=(NewFile(path="../outside/Helper.tsx", content=HELPER),),
        )
    )
    pipeline, store = build_pipeline(workspace, oracle)

    result = await pipeline.process_issue(make_issue())

    assert not result.applied
    assert result.error_code == "partial_apply_failure"
    assert result.issue.status is IssueStatus.FIX_FAILED
    assert result.apply_report is not None and result.apply_report.partial
    assert "useState(undefined);" in (workspace / GRID_PATH).read_text(encoding="utf-8")
    assert not (workspace.parent / "outside" / "Helper.tsx").exists()

    (attempt,) = store.list_fix_attempts(result.issue.id)
    assert attempt.outcome is FixOutcome.ALL_VALID
    assert attempt.applied_files == (GRID_PATH,)
    assert attempt.failed_files == ("../outside/Helper.tsx",)
    assert "applied: components/store/ProductGrid.tsx" in (result.issue.fix_diagnostic or "")


class SharedFileOracle(StubOracle):
    """Answers per component, yielding so concurrent issues interleave."""

    def __init__(self, by_component: dict[str, OracleResult]) -> None:
        super().__init__(OracleResult(explanation="", patches=()))
        self._by_component = by_component
        self.active = 0
        self.peak = 0

    async def generate(self, context: OracleContext) -> OracleResult:
        self.generate_calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            for _ in range(3):
                await asyncio.sleep(0)
        finally:
            self.active -= 1
        return self._by_component[context.issue.component_path]


async def test_concurrent_issues_share_one_file_without_lost_writes(workspace: Path) -> None:
    cart = "export const add = (id) => api.post(id);\nexport const remove = (id) => api.delete(id);\n"
    (workspace / "lib").mkdir()
    (workspace / "lib" / "cart.ts").write_text(cart, encoding="utf-8")
    drawer_path = "components/store/CartDrawer.tsx"
    drawer = "export function CartDrawer() {\n  return null;\n}\n"
    (workspace / drawer_path).write_text(drawer, encoding="utf-8")
    oracle = SharedFileOracle(
        {
            GRID_PATH: OracleResult(
                explanation="Retry adds",
                patches=(
                    Patch(
                        file_path="lib/cart.ts",
                        old_code="api.post(id)",
                        new_code="api.post(id, { retry: true })",
                    ),
                ),
            ),
            drawer_path: OracleResult(
                explanation="Retry removals",
                patches=(
                    Patch(
                        file_path="lib/../lib/cart.ts",
                        old_code="api.delete(id)",
                        new_code="api.delete(id, { retry: true })",
                    ),
                ),
            ),
        }
    )
    context = SessionContext(cooldown_seconds=0)
    pipeline, _store = build_pipeline(workspace, oracle, context=context)

    results = await pipeline.process_issues(
        [make_issue("#grid-add"), make_issue("#drawer-remove", component_path=drawer_path)]
    )

    assert oracle.peak == 2
    assert [result.applied for result in results] == [True, True]
    assert (workspace / "lib" / "cart.ts").read_text(encoding="utf-8") == (
        "export const add = (id) => api.post(id, { retry: true });\n"
        "export const remove = (id) => api.delete(id, { retry: true });\n"
    )
    assert dict(context.backups) == {"lib/cart.ts": cart}
