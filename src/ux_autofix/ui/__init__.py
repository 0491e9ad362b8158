"""UI package exports for the CLI and its plain-text renderer."""

from ux_autofix.ui.cli import CLIError, build_oracle, build_parser, run_cli
from ux_autofix.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_oracle",
    "build_parser",
    "create_renderer",
    "run_cli",
]
