"""
Tests for the per-scheme account scanner (gap limit state machine).
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from _hwscan_test_helpers import (
    BITCOIN,
    EMPTY,
    ETHEREUM,
    TEST_DEVICE_ID,
    TEST_SEED,
    TEZOS,
    used,
)

from hwscan.account import get_wallet_name
from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.engine.account_creation import DerivationsCache
from hwscan.engine.wallet import get_or_create_wallet
from hwscan.errors import EngineError, EngineErrorCode
from hwscan.models import Account, CryptoCurrency, SyncConfig
from hwscan.scanner import AccountScanner, ScanState
from hwscan.simulator import AccountState, InMemoryEngine, SimulatedChain, SimulatedDevice
from hwscan.stream import CancellationToken


@dataclass
class ScannerRun:
    scanner: AccountScanner
    engine: InMemoryEngine
    device: SimulatedDevice
    token: CancellationToken
    emitted: list[Account] = field(default_factory=list)

    @property
    def emitted_indices(self) -> list[int]:
        return [a.index for a in self.emitted]


async def make_scanner(
    accounts: dict[int, AccountState],
    *,
    mode: DerivationMode = DerivationMode.LEGACY,
    gap_limit: int | None = None,
    show_new_account: bool = False,
    currency: CryptoCurrency = BITCOIN,
    engine: InMemoryEngine | None = None,
    cache: DerivationsCache | None = None,
) -> ScannerRun:
    policy: DerivationPolicy = DEFAULT_POLICY
    if gap_limit is not None:
        policy = policy.with_gap_limits({mode.display_name: gap_limit})
    if engine is None:
        engine = InMemoryEngine(SimulatedChain.from_accounts(currency, {mode: accounts}, policy))
    device = SimulatedDevice(
        device_id=TEST_DEVICE_ID, seed=TEST_SEED, app_name=currency.manager_app_name
    )
    seed_identifier = device.public_key_for("44'")
    wallet = await get_or_create_wallet(
        engine, get_wallet_name(seed_identifier, currency, mode), currency, mode, policy
    )
    token = CancellationToken()
    emitted: list[Account] = []
    scanner = AccountScanner(
        wallet=wallet,
        transport=device,
        currency=currency,
        derivation_mode=mode,
        seed_identifier=seed_identifier,
        show_new_account=show_new_account,
        cancellation=token,
        sync_config=SyncConfig(),
        derivations_cache=cache if cache is not None else DerivationsCache(),
        on_account_scanned=emitted.append,
        policy=policy,
    )
    return ScannerRun(scanner, engine, device, token, emitted)


class TestGapLimit:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("gap_limit,k", [(1, 0), (1, 1), (3, 2), (3, 3), (5, 0)])
    async def test_single_used_account_after_empties(self, gap_limit: int, k: int) -> None:
        """Empties at [0, k), a used account at k <= G: only k is reported."""
        run = await make_scanner({k: used()}, gap_limit=gap_limit)

        await run.scanner.run()

        assert run.emitted_indices == [k]
        # Indices up to k, then empties until the run exceeds the gap limit
        assert run.scanner.synced_indices == list(range(k + gap_limit + 2))
        assert run.emitted[0].operations_count == 3

    @pytest.mark.asyncio
    async def test_zero_gap_limit_stops_at_first_empty(self) -> None:
        run = await make_scanner({0: used(), 1: used(), 3: used()}, gap_limit=0)

        await run.scanner.run()

        assert run.emitted_indices == [0, 1]
        assert run.scanner.synced_indices == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_used_account_resets_empty_run(self) -> None:
        run = await make_scanner({1: used(), 3: used()}, gap_limit=1)

        await run.scanner.run()

        # 0 empty (run 1), 1 used (reset), 2 empty (run 1), 3 used, 4-5 empty
        assert run.emitted_indices == [1, 3]
        assert run.scanner.synced_indices == [0, 1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_gap_one_stops_before_index_two(self) -> None:
        run = await make_scanner({2: used()}, gap_limit=1)

        await run.scanner.run()

        assert run.emitted_indices == []
        assert run.scanner.synced_indices == [0, 1]

    @pytest.mark.asyncio
    async def test_used_account_beyond_gap_is_not_reached(self) -> None:
        run = await make_scanner({4: used()}, gap_limit=2)

        await run.scanner.run()

        assert run.emitted_indices == []
        assert run.scanner.synced_indices == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_balance_only_account_is_not_empty(self) -> None:
        run = await make_scanner({0: AccountState(operations=0, balance=1)}, gap_limit=0)

        await run.scanner.run()

        assert run.emitted_indices == [0]
        assert run.scanner.synced_indices == [0, 1]

    @pytest.mark.asyncio
    async def test_show_new_account_reports_empties(self) -> None:
        run = await make_scanner({0: used()}, gap_limit=0, show_new_account=True)

        await run.scanner.run()

        assert run.emitted_indices == [0, 1]
        assert run.emitted[1].operations_count == 0

    @pytest.mark.asyncio
    async def test_empty_scheme_reports_nothing(self) -> None:
        """An empty first account with no new-account offer yields no events."""
        run = await make_scanner({}, gap_limit=2)

        await run.scanner.run()

        assert run.emitted_indices == []
        assert run.scanner.synced_indices == [0, 1, 2]


class TestStep:
    @pytest.mark.asyncio
    async def test_step_transitions(self) -> None:
        run = await make_scanner({1: used()}, gap_limit=1)

        assert await run.scanner.step(ScanState(0, 0)) == ScanState(1, 1)
        assert await run.scanner.step(ScanState(1, 1)) == ScanState(2, 0)
        assert await run.scanner.step(ScanState(2, 0)) == ScanState(3, 1)
        assert await run.scanner.step(ScanState(3, 1)) is None

    @pytest.mark.asyncio
    async def test_run_from_state(self) -> None:
        run = await make_scanner({5: used()}, gap_limit=0)

        await run.scanner.run(ScanState(account_index=5))

        assert run.scanner.synced_indices == [5, 6]
        assert run.emitted_indices == [5]


class TestSchemeRules:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [EMPTY, AccountState(operations=7, balance=100)])
    async def test_non_iterable_scans_index_zero_only(self, state: AccountState) -> None:
        run = await make_scanner(
            {0: state},
            mode=DerivationMode.GALLEON_L,
            currency=TEZOS,
            gap_limit=3,
        )

        await run.scanner.run()

        assert run.scanner.synced_indices == [0]

    @pytest.mark.asyncio
    async def test_indices_below_start_synced_not_reported(self) -> None:
        run = await make_scanner(
            {0: used(), 1: used()},
            mode=DerivationMode.TEZOS_BIP44H,
            currency=TEZOS,
            gap_limit=0,
        )

        await run.scanner.run()

        assert run.scanner.synced_indices == [0, 1, 2]
        assert run.emitted_indices == [1]

    @pytest.mark.asyncio
    async def test_unsupported_index_never_reported(self) -> None:
        run = await make_scanner(
            {0: used(), 1: used()},
            mode=DerivationMode.ETH_MM,
            currency=ETHEREUM,
            gap_limit=0,
            show_new_account=True,
        )

        await run.scanner.run()

        assert 0 in run.scanner.synced_indices
        assert run.emitted_indices[:1] == [1]
        assert 0 not in run.emitted_indices


class TestAccountReuse:
    @pytest.mark.asyncio
    async def test_existing_accounts_are_not_recreated(self) -> None:
        first = await make_scanner({0: used()}, gap_limit=0)
        await first.scanner.run()
        created = list(first.engine.created_accounts)
        assert created == [(first.scanner.wallet.name, 0), (first.scanner.wallet.name, 1)]

        second = await make_scanner({}, gap_limit=0, engine=first.engine)
        await second.scanner.run()

        assert second.engine.created_accounts == created
        assert second.device.commands == []
        assert second.emitted_indices == [0]

    @pytest.mark.asyncio
    async def test_shared_cache_avoids_device_calls(self) -> None:
        cache = DerivationsCache()
        first = await make_scanner({0: used()}, gap_limit=0, cache=cache)
        await first.scanner.run()
        assert len(cache) == 2

        # Fresh engine, same scan cache: keys come from the cache
        second = await make_scanner({0: used()}, gap_limit=0, cache=cache)
        await second.scanner.run()

        assert second.device.commands == []
        assert cache.hits == 2


class TestCancellationAndErrors:
    @pytest.mark.asyncio
    async def test_cancel_before_run(self) -> None:
        run = await make_scanner({0: used()}, gap_limit=2)
        run.token.cancel()

        await run.scanner.run()

        assert run.scanner.synced_indices == []
        assert run.engine.created_accounts == []
        assert run.device.commands == []

    @pytest.mark.asyncio
    async def test_cancel_after_first_report(self) -> None:
        run = await make_scanner({0: used(), 1: used(), 2: used()}, gap_limit=2)

        def cancel_on_first(account: Account) -> None:
            run.emitted.append(account)
            run.token.cancel()

        run.scanner.on_account_scanned = cancel_on_first

        await run.scanner.run()

        assert run.emitted_indices == [0]
        assert run.scanner.synced_indices == [0]

    @pytest.mark.asyncio
    async def test_engine_error_propagates(self) -> None:
        run = await make_scanner(
            {0: used(), 1: AccountState(sync_error="NO_INTERNET_CONNECTIVITY")}, gap_limit=2
        )

        with pytest.raises(EngineError) as exc_info:
            await run.scanner.run()

        assert exc_info.value.code == EngineErrorCode.NO_INTERNET_CONNECTIVITY
        assert run.emitted_indices == [0]


class TestSchemesScannedAlike:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", [DerivationMode.LEGACY, DerivationMode.SEGWIT])
    async def test_empty_empty_used(self, mode: DerivationMode) -> None:
        """Accounts empty, empty, used at 0, 1, 2: every index synced, only 2 reported."""
        run = await make_scanner({2: used()}, mode=mode, gap_limit=2)

        await run.scanner.run()

        assert run.scanner.synced_indices[:3] == [0, 1, 2]
        assert run.emitted_indices == [2]
        assert run.emitted[0].derivation_mode == mode.value
