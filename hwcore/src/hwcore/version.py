"""
hwscan release version.

``pyproject.toml`` reads ``__version__`` from here at build time, and
``hw-scan --version`` prints it.
"""

from __future__ import annotations

__version__ = "0.4.0"


def get_version_banner() -> str:
    """One-line identification printed by the CLI and logged at scan start."""
    return f"hw-scan {__version__}"
