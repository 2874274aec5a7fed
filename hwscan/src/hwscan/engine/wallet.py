"""
Wallet resolution in the ledger engine.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.engine.types import Core, CoreWallet
from hwscan.errors import is_non_existing_wallet_error
from hwscan.models import CryptoCurrency

KEYCHAIN_ENGINE = "KEYCHAIN_ENGINE"
KEYCHAIN_DERIVATION_SCHEME = "KEYCHAIN_DERIVATION_SCHEME"

KEYCHAIN_BIP32_P2PKH = "BIP32_P2PKH"
KEYCHAIN_BIP49_P2SH = "BIP49_P2SH"
KEYCHAIN_BIP173_P2WPKH = "BIP173_P2WPKH"

# One lock per wallet name so concurrent scans of a seed create its wallet once
_wallet_locks: dict[str, asyncio.Lock] = {}
_wallet_users: dict[str, int] = {}


def get_keychain_engine(
    derivation_mode: DerivationMode, policy: DerivationPolicy = DEFAULT_POLICY
) -> str:
    if policy.is_native_segwit_derivation_mode(derivation_mode):
        return KEYCHAIN_BIP173_P2WPKH
    if policy.is_segwit_derivation_mode(derivation_mode):
        return KEYCHAIN_BIP49_P2SH
    return KEYCHAIN_BIP32_P2PKH


def get_wallet_config(
    currency: CryptoCurrency,
    derivation_mode: DerivationMode,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> dict[str, str]:
    """Engine configuration for a new wallet of this scheme."""
    return {
        KEYCHAIN_ENGINE: get_keychain_engine(derivation_mode, policy),
        KEYCHAIN_DERIVATION_SCHEME: policy.get_derivation_scheme(currency, derivation_mode),
    }


async def get_or_create_wallet(
    core: Core,
    wallet_name: str,
    currency: CryptoCurrency,
    derivation_mode: DerivationMode,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> CoreWallet:
    """
    Return the named wallet, creating it on first use.

    Raises:
        EngineError: Any engine failure other than "wallet not found"
    """
    _wallet_users[wallet_name] = _wallet_users.get(wallet_name, 0) + 1
    lock = _wallet_locks.setdefault(wallet_name, asyncio.Lock())
    try:
        async with lock:
            try:
                return await core.get_wallet(wallet_name)
            except Exception as e:
                if not is_non_existing_wallet_error(e):
                    raise

            config = get_wallet_config(currency, derivation_mode, policy)
            logger.info(
                f"Creating wallet {wallet_name} ({config[KEYCHAIN_ENGINE]}, "
                f"{config[KEYCHAIN_DERIVATION_SCHEME]})"
            )
            return await core.create_wallet(wallet_name, currency.id, config)
    finally:
        _wallet_users[wallet_name] -= 1
        if _wallet_users[wallet_name] == 0:
            del _wallet_users[wallet_name]
            _wallet_locks.pop(wallet_name, None)
