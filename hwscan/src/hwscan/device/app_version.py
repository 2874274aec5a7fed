"""
Signing app version checks.

Some schemes need a minimum app version; older apps may answer such requests
with garbage rather than an error, so the version is checked before any
address is requested for a gated scheme.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from loguru import logger

from hwscan.derivation import DerivationMode
from hwscan.device.transport import Transport
from hwscan.models import AppAndVersion, CryptoCurrency

# Minimum app version supporting bech32 addresses, by app name
NATIVE_SEGWIT_APP_VERSIONS: dict[str, str] = {
    "Bitcoin": "1.3.0",
    "Bitcoin Test": "1.3.0",
    "Digibyte": "1.3.8",
    "Litecoin": "1.3.0",
    "Vertcoin": "1.3.8",
}

GATED_DERIVATION_MODES: dict[DerivationMode, dict[str, str]] = {
    DerivationMode.NATIVE_SEGWIT: NATIVE_SEGWIT_APP_VERSIONS,
}

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?(?:\+.*)?$")


def parse_version(version: str) -> tuple[int, int, int, tuple[tuple[int, int | str], ...] | None]:
    """
    Parse a semantic version into a comparable key.

    The last element is the pre-release part (None for releases), so
    '1.3.0-rc1' sorts before '1.3.0'.

    Raises:
        ValueError: If the string is not a version
    """
    match = _VERSION_RE.match(version.strip())
    if not match:
        raise ValueError(f"Invalid version: {version!r}")
    major, minor, patch, pre = match.groups()
    prerelease = None
    if pre:
        prerelease = tuple(
            (0, int(part)) if part.isdigit() else (1, part) for part in pre.split(".")
        )
    return (int(major), int(minor or 0), int(patch or 0), prerelease)


def version_gte(version: str, minimum: str) -> bool:
    """Semantic-version 'greater than or equal'."""
    v_major, v_minor, v_patch, v_pre = parse_version(version)
    m_major, m_minor, m_patch, m_pre = parse_version(minimum)
    if (v_major, v_minor, v_patch) != (m_major, m_minor, m_patch):
        return (v_major, v_minor, v_patch) > (m_major, m_minor, m_patch)
    if v_pre is None:
        return True
    if m_pre is None:
        return False
    return v_pre >= m_pre


async def get_app_and_version(transport: Transport) -> AppAndVersion:
    """Name and version of the app currently open on the device."""
    result = await transport.get_app_and_version()
    logger.debug(f"Device app: {result.name} {result.version}")
    return result


def get_minimum_app_version(
    currency: CryptoCurrency,
    derivation_mode: DerivationMode,
    gates: Mapping[DerivationMode, Mapping[str, str]] = GATED_DERIVATION_MODES,
) -> str | None:
    """Minimum app version this scheme needs for the currency's app, if gated."""
    return gates.get(derivation_mode, {}).get(currency.manager_app_name)


async def is_derivation_mode_supported(
    transport: Transport,
    currency: CryptoCurrency,
    derivation_mode: DerivationMode,
    gates: Mapping[DerivationMode, Mapping[str, str]] = GATED_DERIVATION_MODES,
) -> bool:
    """
    Check the open app is recent enough for the scheme.

    Schemes that are not gated for the currency's app are supported without
    asking the device.
    """
    minimum = get_minimum_app_version(currency, derivation_mode, gates)
    if minimum is None:
        return True

    app = await get_app_and_version(transport)
    if version_gte(app.version, minimum):
        return True

    logger.info(
        f"Skipping {derivation_mode.display_name} for {currency.id}: "
        f"{app.name} {app.version} < {minimum}"
    )
    return False
