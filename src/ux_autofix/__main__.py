"""Module entrypoint for ``python -m ux_autofix``."""

from __future__ import annotations

from ux_autofix.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
