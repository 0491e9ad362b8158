"""
ux-autofix — filesystem utilities

File: src/ux_autofix/utils/fs.py
Last updated: 2026-10-18

Purpose
- Atomic writes and workspace-confined path resolution for patched source files.

Functional requirements
- Atomic writes use a temp file in the destination directory and replace in one step.
- Paths supplied by generated fixes never escape the workspace root.

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "remove_within",
    "resolve_within",
    "workspace_key",
]


def atomic_write(
    path: PathLike,
    data: str,
    *,
    encoding: str = "utf-8",
    create_parents: bool = False,
) -> None:
    """Atomically replace ``path`` with ``data`` (temp file, fsync, ``os.replace``)."""
    target = Path(path)
    if create_parents:
        target.parent.mkdir(parents=True, exist_ok=True)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def resolve_within(workspace_root: PathLike, relative: PathLike) -> Path:
    """Resolve ``relative`` under ``workspace_root``; raise ``ValueError`` if it escapes."""
    root = Path(workspace_root).resolve()
    candidate = Path(relative)
    if candidate.is_absolute():
        raise ValueError(f"refusing absolute path from generated fix: {candidate!s}")
    resolved = (root / candidate).resolve()
    try:
        resolved.relative_to(root)
    except ValueError:
        raise ValueError(f"refusing path outside workspace root: {candidate!s}") from None
    return resolved


def remove_within(workspace_root: PathLike, relative: PathLike) -> bool:
    """Unlink a workspace file; return ``False`` when it was already gone."""
    target = resolve_within(workspace_root, relative)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    return True


def workspace_key(workspace_root: PathLike, relative: PathLike) -> str:
    """Canonical POSIX form of ``relative`` under the root; aliases of one file share a key."""
    root = Path(workspace_root).resolve()
    return resolve_within(root, relative).relative_to(root).as_posix()
