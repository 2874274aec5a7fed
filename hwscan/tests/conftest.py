"""
Pytest configuration and fixtures for hwscan tests.
"""

from collections.abc import Generator

import pytest

from hwcore.settings import reset_settings
from hwscan.device.access import get_transport_modules, unregister_transport_module


@pytest.fixture(autouse=True)
def clean_transport_modules() -> Generator[None, None, None]:
    """Drop transport modules registered by a test."""
    before = {m.id for m in get_transport_modules()}
    yield
    for module in get_transport_modules():
        if module.id not in before:
            unregister_transport_module(module.id)


@pytest.fixture(autouse=True)
def reset_settings_fixture() -> Generator[None, None, None]:
    """Reset settings before and after each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Isolated data directory with no config file."""
    data_dir = tmp_path / ".hwscan"
    data_dir.mkdir(parents=True)
    monkeypatch.setenv("HWSCAN_DATA_DIR", str(data_dir))
    monkeypatch.delenv("HWSCAN_CONFIG_FILE", raising=False)
    return data_dir
