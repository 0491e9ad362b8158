"""
ux-autofix — unit tests for the patch applier

File: tests/unit/integration/test_patch_applier.py
Last updated: 2026-10-18

Purpose
- Validate how fixes reach disk: exact-match replacement, backups and revert.

What this test file should cover
- Exact substring match; a missing target leaves the file byte-identical.
- Only the first occurrence is replaced; re-applying reports "already applied".
- Aliased spellings of one path share a backup, a lock and the applied ledger.
- New files outside the workspace root are refused.
- Partial success is visible in the report; revert restores and removes files.

Functional requirements
- Uses tmp_path workspaces only.

Non-functional requirements
- Deterministic.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ux_autofix.control.context import SessionContext
from ux_autofix.domain.models import NewFile, Patch
from ux_autofix.errors import PartialApplyFailure
from ux_autofix.integration.patch_applier import PatchApplier

GRID = "export function Grid() {\n  return <button>Add</button>;\n}\n"
GRID_PATH = "components/store/ProductGrid.tsx"


def _workspace(tmp_path: Path) -> tuple[PatchApplier, SessionContext]:
    (tmp_path / "components" / "store").mkdir(parents=True)
    (tmp_path / GRID_PATH).write_text(GRID, encoding="utf-8")
    context = SessionContext()
    return PatchApplier(tmp_path, context), context


async def test_exact_match_is_replaced_and_backed_up(tmp_path: Path) -> None:
    applier, context = _workspace(tmp_path)
    patch = Patch(file_path=GRID_PATH, old_code="<button>Add</button>", new_code="<button>Add to cart</button>")

    report = await applier.apply_fix([], [patch])

    assert report.all_applied
    assert report.applied_files == (GRID_PATH,)
    assert "Add to cart" in (tmp_path / GRID_PATH).read_text(encoding="utf-8")
    assert context.backups[GRID_PATH] == GRID


async def test_missing_target_leaves_file_untouched(tmp_path: Path) -> None:
    applier, context = _workspace(tmp_path)
    before = (tmp_path / GRID_PATH).read_bytes()
    patch = Patch(file_path=GRID_PATH, old_code="<button>Buy</button>", new_code="<button>Buy now</button>")

    report = await applier.apply_fix([], [patch])

    assert not report.all_applied
    assert report.results[0].error_code == "patch_target_not_found"
    assert (tmp_path / GRID_PATH).read_bytes() == before
    assert not context.has_backup(GRID_PATH)


async def test_first_occurrence_only_and_reapply_is_detected(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)
    (tmp_path / "a.ts").write_text("x;\nx;\n", encoding="utf-8")
    patch = Patch(file_path="a.ts", old_code="x;", new_code="log(x);")

    first = await applier.apply([patch])
    second = await applier.apply([patch])

    assert first[0].applied
    assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "log(x);\nx;\n"
    assert not second[0].applied
    assert second[0].error_code == "patch_already_applied"


async def test_aliased_paths_share_backup_and_revert_cleanly(tmp_path: Path) -> None:
    applier, context = _workspace(tmp_path)
    patches = [
        Patch(file_path=GRID_PATH, old_code="<button>Add</button>", new_code="<button>Add</button><Spinner />"),
        Patch(
            file_path="components/x/../store/ProductGrid.tsx",
            old_code="<Spinner />",
            new_code="<Spinner size={16} />",
        ),
    ]

    report = await applier.apply_fix([], patches)

    assert report.all_applied
    assert report.applied_files == (GRID_PATH,)
    assert dict(context.backups) == {GRID_PATH: GRID}

    revert = await applier.revert_all()

    assert revert.ok
    assert (tmp_path / GRID_PATH).read_text(encoding="utf-8") == GRID


async def test_reapply_through_an_alias_is_detected(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)
    (tmp_path / "a.ts").write_text("x;\nx;\n", encoding="utf-8")

    await applier.apply([Patch(file_path="a.ts", old_code="x;", new_code="log(x);")])
    second = await applier.apply([Patch(file_path="./lib/../a.ts", old_code="x;", new_code="log(x);")])

    assert second[0].error_code == "patch_already_applied"
    assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "log(x);\nx;\n"
    assert applier.was_applied(Patch(file_path="a.ts", old_code="x;", new_code="log(x);"))


async def test_revert_forgets_applied_patches(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)
    patch = Patch(file_path=GRID_PATH, old_code="<button>Add</button>", new_code="<button>Add to cart</button>")
    await applier.apply([patch])

    await applier.revert_all()
    again = await applier.apply([patch])

    assert again[0].applied


def test_key_for_canonicalizes_and_confines(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)

    assert applier.key_for("components/x/../store/ProductGrid.tsx") == GRID_PATH
    assert applier.key_for("./components/store/ProductGrid.tsx") == GRID_PATH
    with pytest.raises(ValueError, match="outside workspace root"):
        applier.key_for("../escape.tsx")
    assert applier.lock_key("../escape.tsx") == "../escape.tsx"


async def test_patches_to_one_file_apply_in_order(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)
    patches = [
        Patch(file_path=GRID_PATH, old_code="<button>Add</button>", new_code="<button>Add</button><Spinner />"),
        Patch(file_path=GRID_PATH, old_code="<Spinner />", new_code="<Spinner size={16} />"),
    ]

    report = await applier.apply_fix([], patches)

    assert report.all_applied
    assert "<button>Add</button><Spinner size={16} />" in (tmp_path / GRID_PATH).read_text(encoding="utf-8")


@pytest.mark.parametrize("path", ["../escape.tsx", "/tmp/absolute.tsx"])
async def test_new_files_outside_root_are_refused(tmp_path: Path, path: str) -> None:
    applier, _ = _workspace(tmp_path)

    report = await applier.apply_fix([NewFile(path=path, content="x")], [])

    assert report.results[0].error_code == "path_outside_workspace"
    assert not (tmp_path.parent / "escape.tsx").exists()


async def test_partial_apply_is_reported(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)
    new_file = NewFile(path="components/ui/Spinner.tsx", content="export const Spinner = () => null;\n")
    patches = [
        Patch(file_path=GRID_PATH, old_code="<button>Add</button>", new_code="<button>Add</button><Spinner />"),
        Patch(file_path="components/store/Missing.tsx", old_code="a", new_code="b"),
    ]

    report = await applier.apply_fix([new_file], patches)

    assert report.partial
    assert report.applied_files == ("components/ui/Spinner.tsx", GRID_PATH)
    assert report.failed_files == ("components/store/Missing.tsx",)
    assert report.results[0].created
    assert report.errors() == [
        "components/store/Missing.tsx: could not find the code to replace in "
        "components/store/Missing.tsx; the file may have been modified"
    ]
    with pytest.raises(PartialApplyFailure):
        report.raise_for_partial()


async def test_revert_all_restores_and_removes_created_files(tmp_path: Path) -> None:
    applier, context = _workspace(tmp_path)
    new_file = NewFile(path="components/ui/Spinner.tsx", content="export const Spinner = () => null;\n")
    patches = [
        Patch(file_path=GRID_PATH, old_code="<button>Add</button>", new_code="<button>Add</button><Spinner />"),
        Patch(file_path=GRID_PATH, old_code="<Spinner />", new_code="<Spinner size={16} />"),
    ]
    await applier.apply_fix([new_file], patches)

    revert = await applier.revert_all()

    assert revert.ok
    assert revert.reverted_files == ("components/store/ProductGrid.tsx", "components/ui/Spinner.tsx")
    assert (tmp_path / GRID_PATH).read_text(encoding="utf-8") == GRID
    assert not (tmp_path / "components" / "ui" / "Spinner.tsx").exists()
    assert dict(context.backups) == {}


def test_read_confines_paths(tmp_path: Path) -> None:
    applier, _ = _workspace(tmp_path)

    assert applier.read(GRID_PATH) == GRID
    assert applier.read("missing.tsx") is None
    assert applier.read("../outside.tsx") is None
