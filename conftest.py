"""
Root pytest configuration for all hwscan tests.

Adds ``--fail-on-skip`` so CI notices tests that silently stop running, and
keeps log output of one test from leaking into the next.
"""

from __future__ import annotations

import sys
from collections.abc import Generator

import pytest
from loguru import logger
from pytest import StashKey

_fail_on_skip_key: StashKey[bool] = StashKey[bool]()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--fail-on-skip",
        action="store_true",
        default=False,
        help="Treat skipped tests as failures (for CI to catch missing setup)",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.stash[_fail_on_skip_key] = config.getoption("--fail-on-skip", default=False)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None, None, None]:
    """Turn skips into failures when --fail-on-skip is set."""
    outcome = yield
    report = outcome.get_result()  # type: ignore[attr-defined]
    if not (report.skipped and item.config.stash.get(_fail_on_skip_key, False)):
        return

    if isinstance(report.longrepr, tuple) and len(report.longrepr) >= 3:
        reason = report.longrepr[2]
    else:
        reason = str(report.longrepr or "unknown reason")
    report.outcome = "failed"
    report.longrepr = f"Test was skipped but --fail-on-skip is enabled: {reason}"


@pytest.fixture(autouse=True)
def reset_log_sink() -> Generator[None, None, None]:
    """CLI tests replace the loguru sink; restore a plain stderr sink afterwards."""
    yield
    logger.remove()
    logger.add(lambda message: sys.stderr.write(message), level="DEBUG")
