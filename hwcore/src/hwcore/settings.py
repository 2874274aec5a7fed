"""
hwscan settings.

One ``HwScanSettings`` object gathers the ``[logging]``, ``[scan]`` and
``[device]`` sections from, strongest first:

1. keyword arguments (CLI options)
2. environment variables, ``SECTION__FIELD`` (``SCAN__GAP_LIMITS``, ``DEVICE__TRANSPORT``)
3. config.toml in the data directory, or ``$HWSCAN_CONFIG_FILE``
4. field defaults

Usage:
    from hwcore.settings import get_settings

    settings = get_settings()
    gap_limits = settings.scan.gap_limits
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from hwcore.paths import get_config_file_path, get_default_data_dir

_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Log level: TRACE, DEBUG, INFO, WARNING, ERROR",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level


class ScanSettings(BaseModel):
    """Account discovery tuning."""

    gap_limits: dict[str, int] = Field(
        default_factory=dict,
        description=(
            "Per-scheme gap limit overrides, keyed by scheme name "
            "(legacy, segwit, native_segwit, ethM, ...)"
        ),
    )
    operations_page_size: int | None = Field(
        default=None,
        ge=1,
        description="Operations fetched per account page during sync (engine default if unset)",
    )

    @field_validator("gap_limits")
    @classmethod
    def validate_gap_limits(cls, v: dict[str, int]) -> dict[str, int]:
        for name, limit in v.items():
            if limit < 0:
                raise ValueError(f"Gap limit for {name} must be >= 0")
        return v


class DeviceSettings(BaseModel):
    """Hardware device access."""

    transport: str = Field(
        default="simulator",
        description="Transport module used to open devices",
    )
    simulation_file: str | None = Field(
        default=None,
        description="JSON simulation profile used by the simulator transport",
    )


class ConfigFileError(Exception):
    """The TOML config file exists but cannot be loaded."""

    pass


def _read_toml(config_path: Path) -> dict[str, Any]:
    """Parse the config file; a missing file is an empty config."""
    import tomllib

    if not config_path.is_file():
        logger.debug(f"No config file at {config_path}")
        return {}

    try:
        config = tomllib.loads(config_path.read_text())
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Config file {config_path} is not valid TOML: {e}")
        raise ConfigFileError(f"Invalid TOML in {config_path}: {e}") from e
    except OSError as e:
        logger.error(f"Cannot read config file {config_path}: {e}")
        raise ConfigFileError(f"Cannot read {config_path}: {e}") from e

    logger.debug(f"Using config file {config_path} (sections: {sorted(config)})")
    return config


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source backed by config.toml.

    Sections map one to one onto the nested settings models: ``[scan]`` feeds
    ``HwScanSettings.scan`` and so on.
    """

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._config = _read_toml(get_config_file_path())

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        value = self._config.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return dict(self._config)


class HwScanSettings(BaseSettings):
    """
    All hwscan settings.

    Sources, strongest first: constructor keyword arguments (what the CLI
    passes), environment variables, config.toml, field defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Data directory (defaults to ~/.hwscan)",
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    device: DeviceSettings = Field(default_factory=DeviceSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # No .env or secrets directory support
        return init_settings, env_settings, TomlConfigSettingsSource(settings_cls)

    def get_data_dir(self) -> Path:
        return self.data_dir if self.data_dir is not None else get_default_data_dir()


def get_config_path() -> Path:
    """Config file the TOML source reads."""
    return get_config_file_path()


# (section name, heading, model)
_TEMPLATE_SECTIONS: tuple[tuple[str, str, type[BaseModel]], ...] = (
    ("logging", "Logging", LoggingSettings),
    ("scan", "Account scan", ScanSettings),
    ("device", "Device access", DeviceSettings),
)

# Fields whose default renders poorly get an example value instead
_TEMPLATE_EXAMPLES: dict[str, str] = {
    "gap_limits": "{ segwit = 2, native_segwit = 2 }",
}

_TEMPLATE_HEADER = """\
# hwscan Configuration
#
# Every setting below is commented out and shows its default.
# Uncomment a line to change it.
#
# Priority (highest to lowest):
#   1. CLI arguments
#   2. Environment variables, SECTION__FIELD (e.g. LOGGING__LEVEL=DEBUG,
#      SCAN__GAP_LIMITS='{"legacy": 3}')
#   3. This config file
#   4. Built-in defaults

# Data directory, defaults to ~/.hwscan or $HWSCAN_DATA_DIR
# data_dir = ""
"""


def _render_default(name: str, field_info: Any) -> str:
    if name in _TEMPLATE_EXAMPLES:
        return _TEMPLATE_EXAMPLES[name]
    if field_info.default_factory is not None:
        default = field_info.default_factory()
    else:
        default = field_info.default
    if default is None:
        return ""
    if isinstance(default, bool):
        return "true" if default else "false"
    if isinstance(default, str):
        return f'"{default}"'
    return str(default)


def generate_config_template() -> str:
    """
    Build the commented config.toml written by ``config-init``.

    Section headers stay active so the file parses; every value is commented.
    """
    parts = [_TEMPLATE_HEADER]
    for section, heading, model_cls in _TEMPLATE_SECTIONS:
        parts.append(f"\n# --- {heading} ---\n[{section}]\n")
        for name, field_info in model_cls.model_fields.items():
            if field_info.description:
                parts.append(f"# {field_info.description}\n")
            parts.append(f"# {name} = {_render_default(name, field_info)}\n".rstrip() + "\n")
    return "".join(parts)


def ensure_config_file(data_dir: Path | None = None) -> Path:
    """
    Write the config template unless a config file is already there.

    Without a data directory the template goes where the settings loader
    looks: get_config_path(), which honours $HWSCAN_CONFIG_FILE.

    Returns:
        Path of the (possibly pre-existing) config file
    """
    config_path = data_dir / "config.toml" if data_dir is not None else get_config_path()
    if config_path.exists():
        logger.debug(f"Keeping existing config file {config_path}")
        return config_path

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(generate_config_template())
    logger.info(f"Wrote config template to {config_path}")
    return config_path


_settings: HwScanSettings | None = None


def get_settings(**overrides: Any) -> HwScanSettings:
    """
    Cached settings; built on first use or whenever overrides are given.

    Keyword overrides take precedence over every other source.
    """
    global _settings
    if _settings is None or overrides:
        _settings = HwScanSettings(**overrides)
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads all sources."""
    global _settings
    _settings = None


__all__ = [
    "HwScanSettings",
    "LoggingSettings",
    "ScanSettings",
    "DeviceSettings",
    "ConfigFileError",
    "get_settings",
    "reset_settings",
    "get_config_path",
    "generate_config_template",
    "ensure_config_file",
]
