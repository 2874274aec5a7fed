"""
Account discovery entry point.

``scan_accounts`` walks every derivation scheme of a currency, one after the
other, on a single exclusively held device link:

1. skip schemes the open app is too old for
2. ask the device for the seed-identifying public key (skip the scheme if
   the device refuses)
3. resolve or create the engine wallet for (seed, currency, scheme)
4. run the account scanner from index 0, forwarding discovered accounts

Address refusals only skip a scheme. Engine failures end the whole scan; they
are normalized and delivered as the stream's terminal error.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable

from loguru import logger

from hwscan.account import get_wallet_name
from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.device.access import with_device
from hwscan.device.address import resolve_address
from hwscan.device.app_version import is_derivation_mode_supported
from hwscan.engine.account_creation import DerivationsCache
from hwscan.engine.types import Core
from hwscan.engine.wallet import get_or_create_wallet
from hwscan.errors import remap_engine_errors
from hwscan.models import Account, CryptoCurrency, ScanAccountEvent, SyncConfig
from hwscan.scanner import AccountScanner
from hwscan.stream import CancellationToken, ScanStream


def new_scan_id() -> str:
    """Correlation id shared by every log line of one scan."""
    return uuid.uuid4().hex[:8]


async def _discover_accounts(
    emit: Callable[[ScanAccountEvent], None],
    cancellation: CancellationToken,
    *,
    core: Core,
    currency: CryptoCurrency,
    device_id: str,
    scheme: DerivationMode | None,
    sync_config: SyncConfig,
    policy: DerivationPolicy,
    scan_id: str,
) -> None:
    log = logger.bind(scan_id=scan_id)

    derivation_modes = policy.get_derivation_modes_for_currency(currency)
    if scheme is not None:
        derivation_modes = [mode for mode in derivation_modes if mode == scheme]

    log.info(
        f"scan({scan_id}) {currency.id} on device {device_id!r}: schemes "
        f"{[m.display_name for m in derivation_modes]}"
    )
    if cancellation.cancelled:
        return

    derivations_cache = DerivationsCache()

    def on_account_scanned(account: Account) -> None:
        emit(ScanAccountEvent(account=account))

    async with with_device(device_id) as transport:
        for derivation_mode in derivation_modes:
            if cancellation.cancelled:
                return

            if not await is_derivation_mode_supported(transport, currency, derivation_mode):
                continue
            if cancellation.cancelled:
                return

            path = policy.get_seed_identifier_derivation(currency, derivation_mode)
            result = await resolve_address(
                transport, currency, path, derivation_mode, policy=policy
            )
            if result is None:
                continue
            if cancellation.cancelled:
                return

            seed_identifier = result.public_key
            wallet_name = get_wallet_name(seed_identifier, currency, derivation_mode)
            wallet = await get_or_create_wallet(
                core, wallet_name, currency, derivation_mode, policy
            )
            if cancellation.cancelled:
                return

            scanner = AccountScanner(
                wallet=wallet,
                transport=transport,
                currency=currency,
                derivation_mode=derivation_mode,
                seed_identifier=seed_identifier,
                show_new_account=policy.should_show_new_account(currency, derivation_mode),
                cancellation=cancellation,
                sync_config=sync_config,
                derivations_cache=derivations_cache,
                on_account_scanned=on_account_scanned,
                policy=policy,
                scan_id=scan_id,
            )
            await scanner.run()

    log.info(f"scan({scan_id}) {currency.id} complete")


def scan_accounts(
    core: Core,
    currency: CryptoCurrency,
    device_id: str,
    scheme: DerivationMode | None = None,
    sync_config: SyncConfig | None = None,
    *,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> ScanStream[ScanAccountEvent]:
    """
    Discover the accounts a device controls for a currency.

    Args:
        core: Ledger engine
        currency: Currency to scan
        device_id: Device to open through the registered transport modules
        scheme: Only scan this derivation scheme
        sync_config: Passed untouched to the engine's account sync
        policy: Derivation policy (gap limits, start indices, scheme order)

    Returns:
        A cold stream of ``discovered`` events; iterate it to run the scan
    """
    scan_id = new_scan_id()
    config = sync_config if sync_config is not None else SyncConfig()

    async def producer(
        emit: Callable[[ScanAccountEvent], None], cancellation: CancellationToken
    ) -> None:
        try:
            await _discover_accounts(
                emit,
                cancellation,
                core=core,
                currency=currency,
                device_id=device_id,
                scheme=scheme,
                sync_config=config,
                policy=policy,
                scan_id=scan_id,
            )
        except Exception as e:
            error = remap_engine_errors(e)
            if not cancellation.cancelled:
                logger.bind(scan_id=scan_id).error(
                    f"scan({scan_id}) {currency.id} failed: {type(error).__name__}: {error}"
                )
            if error is e:
                raise
            raise error from e

    return ScanStream(producer, name=f"scan({scan_id})")
