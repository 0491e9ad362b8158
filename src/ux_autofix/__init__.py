"""
ux-autofix — package root

File: src/ux_autofix/__init__.py
Last updated: 2026-10-18

Purpose
- Turn recurring storefront interaction failures into validated, applied source patches.

What should be included in this file
- Package metadata and a minimal public surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
