"""
Account synchronization through the ledger engine.
"""

from __future__ import annotations

import itertools
import time
from datetime import datetime, timezone

from loguru import logger

from hwscan.account import encode_account_id, get_account_placeholder_name
from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.engine.types import CoreAccount
from hwscan.models import Account, CryptoCurrency, SyncConfig

_sync_log_ids = itertools.count(1)


def new_sync_log_id() -> int:
    """Correlation id for the log lines of one sync step."""
    return next(_sync_log_ids)


async def build_account(
    core_account: CoreAccount,
    currency: CryptoCurrency,
    account_index: int,
    derivation_mode: DerivationMode,
    seed_identifier: str,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> Account:
    """Snapshot a synced engine account."""
    balance = await core_account.get_balance()
    operations_count = await core_account.get_operations_count()
    fresh_addresses = await core_account.get_fresh_public_addresses()
    if not fresh_addresses:
        raise ValueError(f"Engine returned no fresh address for account {account_index}")
    fresh = fresh_addresses[0]
    xpub = await core_account.get_xpub()
    block_height = await core_account.get_last_block_height()

    return Account(
        id=encode_account_id(currency, xpub or fresh.address, derivation_mode),
        name=get_account_placeholder_name(currency, account_index, derivation_mode, policy),
        seed_identifier=seed_identifier,
        derivation_mode=derivation_mode.value,
        index=account_index,
        currency_id=currency.id,
        xpub=xpub,
        fresh_address=fresh.address,
        fresh_address_path=fresh.derivation_path,
        balance=balance,
        operations_count=operations_count,
        block_height=block_height,
        last_sync_date=datetime.now(timezone.utc),
    )


async def sync_core_account(
    core_account: CoreAccount,
    currency: CryptoCurrency,
    account_index: int,
    derivation_mode: DerivationMode,
    seed_identifier: str,
    log_id: int,
    sync_config: SyncConfig,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> Account:
    """
    Pull history and balance for an engine account and snapshot it.

    Raises:
        EngineError: The engine failed to synchronize
    """
    start = time.monotonic()
    await core_account.synchronize(sync_config)
    logger.debug(f"sync({log_id}) DONE engine sync in {(time.monotonic() - start) * 1000:.0f}ms")

    account = await build_account(
        core_account, currency, account_index, derivation_mode, seed_identifier, policy
    )
    logger.debug(f"sync({log_id}) DONE build account in {(time.monotonic() - start) * 1000:.0f}ms")
    return account
