"""
hwcore - Shared foundation for the hardware account scanner.

Provides settings, logging setup and data directory handling.
"""

from hwcore.version import __version__

__all__ = ["__version__"]
