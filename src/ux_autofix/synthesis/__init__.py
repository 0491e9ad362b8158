"""Synthesis: the oracle contract, provider adapters, prompts and fallback templates."""

from ux_autofix.synthesis.fallbacks import fallback_for, fix_type_for_issue, materialize
from ux_autofix.synthesis.oracle import (
    CompletionOracle,
    Oracle,
    OracleContext,
    OracleResult,
    RepairRequest,
    SourceFile,
    parse_oracle_payload,
)

__all__ = [
    "CompletionOracle",
    "Oracle",
    "OracleContext",
    "OracleResult",
    "RepairRequest",
    "SourceFile",
    "fallback_for",
    "fix_type_for_issue",
    "materialize",
    "parse_oracle_payload",
]
