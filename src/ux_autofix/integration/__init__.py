"""Workspace integration: applying fixes and reverting them."""

from ux_autofix.integration.patch_applier import ApplyReport, FileResult, PatchApplier, RevertReport

__all__ = ["ApplyReport", "FileResult", "PatchApplier", "RevertReport"]
