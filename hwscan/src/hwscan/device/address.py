"""
Address resolution on the device.

Each currency family talks to its own signing app: bitcoin-family apps take an
address format derived from the scheme, other apps take their app name.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.device.transport import Transport, WalletPublicKey
from hwscan.errors import TransportStatusError, UserRefusedAddress
from hwscan.models import AddressRecord, CryptoCurrency

FamilyResolver = Callable[..., Awaitable[WalletPublicKey]]


async def _bitcoin_resolver(
    transport: Transport,
    currency: CryptoCurrency,
    path: str,
    derivation_mode: DerivationMode,
    *,
    verify: bool,
    ask_chain_code: bool,
    policy: DerivationPolicy,
) -> WalletPublicKey:
    return await transport.get_wallet_public_key(
        path,
        address_format=policy.get_address_format(derivation_mode),
        verify=verify,
        ask_chain_code=ask_chain_code,
    )


async def _app_resolver(
    transport: Transport,
    currency: CryptoCurrency,
    path: str,
    derivation_mode: DerivationMode,
    *,
    verify: bool,
    ask_chain_code: bool,
    policy: DerivationPolicy,
) -> WalletPublicKey:
    return await transport.get_account_address(
        currency.manager_app_name,
        path,
        verify=verify,
        ask_chain_code=ask_chain_code,
    )


_FAMILY_RESOLVERS: dict[str, FamilyResolver] = {
    "bitcoin": _bitcoin_resolver,
}


async def get_address(
    transport: Transport,
    currency: CryptoCurrency,
    path: str,
    derivation_mode: DerivationMode,
    *,
    verify: bool = False,
    ask_chain_code: bool = False,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> AddressRecord:
    """
    Ask the device for the address and public key at a path.

    Raises:
        TransportStatusError: The app rejected the command or path
        UserRefusedAddress: The user declined the address on the device
    """
    resolver = _FAMILY_RESOLVERS.get(currency.family, _app_resolver)
    result = await resolver(
        transport,
        currency,
        path,
        derivation_mode,
        verify=verify,
        ask_chain_code=ask_chain_code,
        policy=policy,
    )
    return AddressRecord(
        address=result.address,
        public_key=result.public_key,
        path=path,
        chain_code=result.chain_code,
    )


async def resolve_address(
    transport: Transport,
    currency: CryptoCurrency,
    path: str,
    derivation_mode: DerivationMode,
    *,
    verify: bool = False,
    ask_chain_code: bool = False,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> AddressRecord | None:
    """
    Like get_address, but expected device refusals yield None.

    A status rejection (old apps answer that way for schemes they lack) and a
    user refusal both mean the scheme is not usable on this device. Any other
    error propagates.
    """
    try:
        return await get_address(
            transport,
            currency,
            path,
            derivation_mode,
            verify=verify,
            ask_chain_code=ask_chain_code,
            policy=policy,
        )
    except (TransportStatusError, UserRefusedAddress) as e:
        logger.info(
            f"Ignoring derivation mode {derivation_mode.display_name!r} "
            f"for {currency.id}: {type(e).__name__}: {e}"
        )
        return None
