"""
Sequential account scanner for one derivation scheme.

Accounts are probed at indices 0, 1, 2, ... Each candidate is fetched from the
wallet (or created from device keys when the engine does not know it yet),
synced, and classified. The scan goes on past an empty account only while the
run of consecutive empties stays below the scheme's gap limit, and past a
used account only if the scheme is iterable.

State is the pair (account_index, empty_count), starting at (0, 0). Every
empty step consumes one unit of the gap budget, so the loop always ends.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from hwscan.account import is_account_empty
from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.device.transport import Transport
from hwscan.engine.account_creation import DerivationsCache, create_account_from_device
from hwscan.engine.sync import new_sync_log_id, sync_core_account
from hwscan.engine.types import CoreAccount, CoreWallet
from hwscan.errors import is_non_existing_account_error
from hwscan.models import Account, CryptoCurrency, SyncConfig
from hwscan.stream import CancellationToken


@dataclass(frozen=True)
class ScanState:
    account_index: int = 0
    empty_count: int = 0


class AccountScanner:
    """
    Scans one wallet (seed + currency + scheme) index by index.

    ``on_account_scanned`` is called for each account worth reporting, in
    ascending index order.
    """

    def __init__(
        self,
        *,
        wallet: CoreWallet,
        transport: Transport,
        currency: CryptoCurrency,
        derivation_mode: DerivationMode,
        seed_identifier: str,
        show_new_account: bool,
        cancellation: CancellationToken,
        sync_config: SyncConfig,
        derivations_cache: DerivationsCache,
        on_account_scanned: Callable[[Account], None],
        policy: DerivationPolicy = DEFAULT_POLICY,
        scan_id: str = "-",
    ):
        self.wallet = wallet
        self.transport = transport
        self.currency = currency
        self.derivation_mode = derivation_mode
        self.seed_identifier = seed_identifier
        self.show_new_account = show_new_account
        self.cancellation = cancellation
        self.sync_config = sync_config
        self.derivations_cache = derivations_cache
        self.on_account_scanned = on_account_scanned
        self.policy = policy
        self.scan_id = scan_id
        self.synced_indices: list[int] = []
        self.emitted_indices: list[int] = []
        self._log = logger.bind(scan_id=scan_id)

    @property
    def _label(self) -> str:
        return f"{self.currency.id}|{self.derivation_mode.display_name}"

    async def _get_or_create_account(self, account_index: int) -> CoreAccount | None:
        try:
            return await self.wallet.get_account(account_index)
        except Exception as e:
            if not is_non_existing_account_error(e):
                raise

        if self.cancellation.cancelled:
            return None
        return await create_account_from_device(
            self.wallet,
            self.transport,
            self.currency,
            account_index,
            self.derivation_mode,
            self.cancellation,
            self.derivations_cache,
            self.policy,
        )

    def _should_skip(self, account_index: int, is_empty: bool) -> bool:
        return (
            account_index < self.policy.get_derivation_mode_starts_at(self.derivation_mode)
            or (is_empty and not self.show_new_account)
            or not self.policy.derivation_mode_supports_index(self.derivation_mode, account_index)
        )

    def _next_state(self, state: ScanState, is_empty: bool) -> ScanState | None:
        if not self.policy.is_iterable_derivation_mode(self.derivation_mode):
            return None
        if is_empty:
            gap_limit = self.policy.get_mandatory_empty_account_skip(self.derivation_mode)
            if state.empty_count < gap_limit:
                return ScanState(state.account_index + 1, state.empty_count + 1)
            return None
        return ScanState(state.account_index + 1, 0)

    async def step(self, state: ScanState) -> ScanState | None:
        """
        Scan the account at ``state.account_index``.

        Returns:
            The next state, or None when this scheme's scan is over
        """
        if self.cancellation.cancelled:
            return None

        account_index = state.account_index
        log_id = new_sync_log_id()
        self._log.debug(
            f"scan({self.scan_id}) sync({log_id}) scanning {self._label}|{account_index}"
        )

        core_account = await self._get_or_create_account(account_index)
        if self.cancellation.cancelled or core_account is None:
            return None

        account = await sync_core_account(
            core_account,
            self.currency,
            account_index,
            self.derivation_mode,
            self.seed_identifier,
            log_id,
            self.sync_config,
            self.policy,
        )
        self.synced_indices.append(account_index)
        if self.cancellation.cancelled:
            return None

        is_empty = is_account_empty(account)
        should_skip = self._should_skip(account_index, is_empty)

        if should_skip:
            outcome = "no account"
        else:
            outcome = (
                f"account with {account.operations_count} ops "
                f"(xpub {account.xpub}, fresh {account.fresh_address_path} "
                f"{account.fresh_address})"
            )
        self._log.info(
            f"scan({self.scan_id}) {self._label}@{account_index}: {outcome}"
            f"{' [empty]' if is_empty else ''}"
        )

        if not should_skip:
            self.emitted_indices.append(account_index)
            self.on_account_scanned(account)

        return self._next_state(state, is_empty)

    async def run(self, state: ScanState | None = None) -> None:
        """Scan from ``state`` (default index 0, no empties) until the scheme is exhausted."""
        current: ScanState | None = state or ScanState()
        while current is not None:
            current = await self.step(current)
        self._log.debug(
            f"scan({self.scan_id}) {self._label} done: synced {len(self.synced_indices)}, "
            f"reported {len(self.emitted_indices)}"
        )
