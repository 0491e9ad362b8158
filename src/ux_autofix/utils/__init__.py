"""Shared filesystem and asyncio helpers."""

from ux_autofix.utils.concurrency import CancellationToken, KeyedLocks, gather_bounded, run_with_timeout
from ux_autofix.utils.fs import atomic_write, remove_within, resolve_within

__all__ = [
    "CancellationToken",
    "KeyedLocks",
    "atomic_write",
    "gather_bounded",
    "remove_within",
    "resolve_within",
    "run_with_timeout",
]
