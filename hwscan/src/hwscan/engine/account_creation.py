"""
Account creation from keys held by the device.
"""

from __future__ import annotations

from loguru import logger

from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.device.address import get_address
from hwscan.device.transport import Transport
from hwscan.engine.types import CoreAccount, CoreWallet
from hwscan.models import AccountCreationInfo, AddressRecord, CryptoCurrency
from hwscan.stream import CancellationToken


class DerivationsCache:
    """
    Device answers for derivation paths, kept for one scan.

    The same path is asked for again when an account is recreated or when
    schemes share a parent path; the cache avoids repeating device round trips.
    One cache serves every scheme of the scan, so a cached record's ``address``
    may be in another scheme's address format. Only ``public_key`` and
    ``chain_code`` are read back.
    """

    def __init__(self) -> None:
        self._entries: dict[str, AddressRecord] = {}
        self.hits = 0

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str) -> AddressRecord | None:
        record = self._entries.get(path)
        if record is not None:
            self.hits += 1
        return record

    def put(self, path: str, record: AddressRecord) -> None:
        self._entries[path] = record


async def create_account_from_device(
    wallet: CoreWallet,
    transport: Transport,
    currency: CryptoCurrency,
    index: int,
    derivation_mode: DerivationMode,
    cancellation: CancellationToken,
    derivations_cache: DerivationsCache,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> CoreAccount | None:
    """
    Register account ``index`` in the wallet using public keys from the device.

    Returns None if the scan was cancelled before the account was registered.

    Raises:
        TransportStatusError, UserRefusedAddress: The device would not give a key
        EngineError: The engine rejected the creation
    """
    creation_info = await wallet.get_account_creation_info(index)
    if cancellation.cancelled:
        return None

    public_keys: list[str] = []
    chain_codes: list[str] = []
    for derivation in creation_info.derivations:
        if cancellation.cancelled:
            return None
        record = derivations_cache.get(derivation)
        if record is None:
            record = await get_address(
                transport,
                currency,
                derivation,
                derivation_mode,
                ask_chain_code=True,
                policy=policy,
            )
            derivations_cache.put(derivation, record)
        public_keys.append(record.public_key)
        chain_codes.append(record.chain_code or "")

    if cancellation.cancelled:
        return None

    info = AccountCreationInfo(
        index=index,
        owners=list(creation_info.owners),
        derivations=list(creation_info.derivations),
        public_keys=public_keys,
        chain_codes=chain_codes,
    )
    logger.debug(
        f"Creating {currency.id} {derivation_mode.display_name} account {index} "
        f"from {len(info.derivations)} derivation(s)"
    )
    return await wallet.new_account_with_info(info)
