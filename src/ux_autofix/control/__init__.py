"""Control: session context, repair loop and the remediation pipeline."""

from ux_autofix.control.context import SessionContext
from ux_autofix.control.pipeline import PipelineResult, RemediationPipeline
from ux_autofix.control.repair_loop import GuardedPatchChecker, RepairLoop, RepairOutcome

__all__ = [
    "GuardedPatchChecker",
    "PipelineResult",
    "RemediationPipeline",
    "RepairLoop",
    "RepairOutcome",
    "SessionContext",
]
