"""
Common CLI components for hwscan.

Resolution and setup helpers shared by command-line entry points. The typer
parameter definitions stay in each CLI module; this module has no typer
dependency.

Usage:
    from hwcore.cli_common import setup_cli

    @app.command()
    def my_command(
        log_level: Annotated[str | None, typer.Option("--log-level")] = None,
    ):
        settings = setup_cli(log_level)
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from hwcore.settings import HwScanSettings, get_settings, reset_settings


def setup_logging(level: str = "INFO") -> None:
    """
    Configure loguru logging with consistent format.

    Args:
        level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=level.upper(),
        colorize=True,
    )


def setup_cli(log_level: str | None = None) -> HwScanSettings:
    """
    Common CLI setup: reset settings cache, configure logging, return settings.

    Log level priority: CLI argument > settings (env/config) > default "INFO"

    Args:
        log_level: Log level override from CLI (None means use settings)

    Returns:
        HwScanSettings instance with all sources loaded
    """
    reset_settings()
    settings = get_settings()

    effective_log_level = log_level if log_level is not None else settings.logging.level
    setup_logging(effective_log_level)

    return settings


def resolve_simulation_file(
    settings: HwScanSettings, simulation_file: Path | None = None
) -> Path | None:
    """
    Resolve the simulator profile path: CLI > settings > None.

    Relative paths from the config file are taken relative to the data directory.
    """
    if simulation_file is not None:
        return simulation_file
    if settings.device.simulation_file is None:
        return None
    path = Path(settings.device.simulation_file).expanduser()
    if not path.is_absolute():
        path = settings.get_data_dir() / path
    return path


def log_resolved_settings(settings: HwScanSettings) -> None:
    """Log the effective settings at debug level."""
    logger.debug(f"Transport module: {settings.device.transport}")
    if settings.scan.gap_limits:
        logger.debug(f"Gap limit overrides: {settings.scan.gap_limits}")
    if settings.scan.operations_page_size is not None:
        logger.debug(f"Operations page size: {settings.scan.operations_page_size}")
