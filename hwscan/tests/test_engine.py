"""
Tests for the ledger engine boundary: wallets, account creation and sync.
"""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from _hwscan_test_helpers import (
    BITCOIN,
    TEST_DEVICE_ID,
    TEST_SEED,
    make_mock_core_account,
    used,
)

from hwscan.derivation import DerivationMode
from hwscan.engine.account_creation import DerivationsCache, create_account_from_device
from hwscan.engine.sync import build_account, new_sync_log_id, sync_core_account
from hwscan.engine.wallet import (
    KEYCHAIN_BIP49_P2SH,
    KEYCHAIN_BIP173_P2WPKH,
    KEYCHAIN_DERIVATION_SCHEME,
    KEYCHAIN_ENGINE,
    get_or_create_wallet,
    get_wallet_config,
)
from hwscan.errors import EngineError, EngineErrorCode
from hwscan.models import AccountCreationInfo, AddressRecord, SyncConfig
from hwscan.simulator import AccountState, InMemoryEngine, SimulatedChain, SimulatedDevice
from hwscan.stream import CancellationToken


async def create(
    wallet: Any,
    device: SimulatedDevice,
    index: int,
    mode: DerivationMode = DerivationMode.LEGACY,
    token: CancellationToken | None = None,
    cache: DerivationsCache | None = None,
) -> Any:
    return await create_account_from_device(
        wallet,
        device,
        BITCOIN,
        index,
        mode,
        token if token is not None else CancellationToken(),
        cache if cache is not None else DerivationsCache(),
    )


class TestWalletConfig:
    def test_native_segwit(self) -> None:
        config = get_wallet_config(BITCOIN, DerivationMode.NATIVE_SEGWIT)
        assert config[KEYCHAIN_ENGINE] == KEYCHAIN_BIP173_P2WPKH
        assert config[KEYCHAIN_DERIVATION_SCHEME] == (
            "84'/<coin_type>'/<account>'/<node>/<address>"
        )

    def test_segwit(self) -> None:
        assert get_wallet_config(BITCOIN, DerivationMode.SEGWIT)[KEYCHAIN_ENGINE] == (
            KEYCHAIN_BIP49_P2SH
        )


class TestGetOrCreateWallet:
    @pytest.mark.asyncio
    async def test_creates_once(self) -> None:
        engine = InMemoryEngine()
        first = await get_or_create_wallet(engine, "w_bitcoin_", BITCOIN, DerivationMode.LEGACY)
        second = await get_or_create_wallet(engine, "w_bitcoin_", BITCOIN, DerivationMode.LEGACY)

        assert first is second
        assert engine.created_wallets == ["w_bitcoin_"]
        assert first.config[KEYCHAIN_DERIVATION_SCHEME].startswith("44'/")

    @pytest.mark.asyncio
    async def test_concurrent_callers_create_once(self) -> None:
        engine = InMemoryEngine()
        wallets = await asyncio.gather(
            *(
                get_or_create_wallet(engine, "w_bitcoin_segwit", BITCOIN, DerivationMode.SEGWIT)
                for _ in range(5)
            )
        )
        assert all(w is wallets[0] for w in wallets)
        assert engine.created_wallets == ["w_bitcoin_segwit"]

    @pytest.mark.asyncio
    async def test_other_engine_errors_propagate(self) -> None:
        core = MagicMock()
        core.get_wallet = AsyncMock(
            side_effect=EngineError(EngineErrorCode.DATABASE_EXCEPTION, "locked")
        )
        core.create_wallet = AsyncMock()

        with pytest.raises(EngineError) as exc_info:
            await get_or_create_wallet(core, "w", BITCOIN, DerivationMode.LEGACY)

        assert exc_info.value.code == EngineErrorCode.DATABASE_EXCEPTION
        core.create_wallet.assert_not_awaited()


class TestCreateAccountFromDevice:
    async def _setup(self) -> tuple[SimulatedDevice, InMemoryEngine, Any]:
        device = SimulatedDevice(device_id=TEST_DEVICE_ID, seed=TEST_SEED)
        engine = InMemoryEngine()
        wallet = await get_or_create_wallet(engine, "w_bitcoin_", BITCOIN, DerivationMode.LEGACY)
        return device, engine, wallet

    @pytest.mark.asyncio
    async def test_registers_account_with_device_keys(self) -> None:
        device, engine, wallet = await self._setup()
        cache = DerivationsCache()

        account = await create(wallet, device, 2, cache=cache)

        assert account is not None
        assert account.info.derivations == ["44'/0'/2'"]
        assert account.info.public_keys == [device.public_key_for("44'/0'/2'")]
        assert account.info.chain_codes == [device.chain_code_for("44'/0'/2'")]
        assert engine.created_accounts == [("w_bitcoin_", 2)]
        assert "44'/0'/2'" in cache

    @pytest.mark.asyncio
    async def test_cached_derivation_skips_device(self) -> None:
        device, _, wallet = await self._setup()
        cache = DerivationsCache()
        cache.put(
            "44'/0'/0'",
            AddressRecord(
                address="1Cached", public_key="02cached", path="44'/0'/0'", chain_code="cc"
            ),
        )

        account = await create(wallet, device, 0, cache=cache)

        assert account is not None
        assert device.commands == []
        assert cache.hits == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_registration(self) -> None:
        device, engine, wallet = await self._setup()
        token = CancellationToken()
        token.cancel()

        account = await create(wallet, device, 0, token=token)

        assert account is None
        assert device.commands == []
        assert engine.created_accounts == []

    @pytest.mark.asyncio
    async def test_one_key_per_derivation(self) -> None:
        wallet = MagicMock()
        wallet.get_account_creation_info = AsyncMock(
            return_value=AccountCreationInfo(
                index=0, owners=["a", "b"], derivations=["44'/0'/0'", "44'/0'/1'"]
            )
        )
        wallet.new_account_with_info = AsyncMock(return_value="created")
        device = SimulatedDevice(device_id=TEST_DEVICE_ID, seed=TEST_SEED)

        result = await create(wallet, device, 0)

        assert result == "created"
        info = wallet.new_account_with_info.await_args.args[0]
        assert info.owners == ["a", "b"]
        assert len(info.public_keys) == 2
        assert info.public_keys[0] != info.public_keys[1]


class TestSync:
    def test_sync_log_ids_increase(self) -> None:
        first = new_sync_log_id()
        assert new_sync_log_id() > first

    @pytest.mark.asyncio
    async def test_sync_snapshots_account(self) -> None:
        core_account = make_mock_core_account(index=1, operations=4, balance=2500)
        config = SyncConfig(pagination_config={"operations": 50})

        account = await sync_core_account(
            core_account, BITCOIN, 1, DerivationMode.SEGWIT, "02seed", 7, config
        )

        core_account.synchronize.assert_awaited_once_with(config)
        assert account.index == 1
        assert account.operations_count == 4
        assert account.balance == 2500
        assert account.derivation_mode == "segwit"
        assert account.id == "hwscan:1:bitcoin:xpub-test:segwit"
        assert account.name == "Bitcoin 2 (segwit)"
        assert account.seed_identifier == "02seed"

    @pytest.mark.asyncio
    async def test_id_falls_back_to_fresh_address(self) -> None:
        core_account = make_mock_core_account(xpub=None)
        account = await build_account(core_account, BITCOIN, 0, DerivationMode.LEGACY, "02seed")
        assert account.id == "hwscan:1:bitcoin:1Fresh:"

    @pytest.mark.asyncio
    async def test_no_fresh_address(self) -> None:
        core_account = make_mock_core_account()
        core_account.get_fresh_public_addresses = AsyncMock(return_value=[])
        with pytest.raises(ValueError, match="no fresh address"):
            await build_account(core_account, BITCOIN, 0, DerivationMode.LEGACY, "02seed")

    @pytest.mark.asyncio
    async def test_sync_error_propagates(self) -> None:
        core_account = make_mock_core_account()
        core_account.synchronize = AsyncMock(
            side_effect=EngineError(EngineErrorCode.NO_INTERNET_CONNECTIVITY)
        )
        with pytest.raises(EngineError):
            await sync_core_account(
                core_account, BITCOIN, 0, DerivationMode.LEGACY, "02seed", 1, SyncConfig()
            )


class TestInMemoryEngine:
    @pytest.mark.asyncio
    async def test_missing_wallet_and_account(self) -> None:
        engine = InMemoryEngine()
        with pytest.raises(EngineError) as exc_info:
            await engine.get_wallet("nope")
        assert exc_info.value.code == EngineErrorCode.WALLET_NOT_FOUND

        wallet = await get_or_create_wallet(engine, "w_bitcoin_", BITCOIN, DerivationMode.LEGACY)
        with pytest.raises(EngineError) as exc_info:
            await wallet.get_account(0)
        assert exc_info.value.code == EngineErrorCode.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_fresh_address_follows_history(self) -> None:
        chain = SimulatedChain()
        chain.set_account(BITCOIN, DerivationMode.NATIVE_SEGWIT, 0, used(operations=5))
        engine = InMemoryEngine(chain)
        device = SimulatedDevice(device_id=TEST_DEVICE_ID, seed=TEST_SEED)
        wallet = await get_or_create_wallet(
            engine, "w_bitcoin_native_segwit", BITCOIN, DerivationMode.NATIVE_SEGWIT
        )
        account = await create(wallet, device, 0, DerivationMode.NATIVE_SEGWIT)
        assert account is not None

        await account.synchronize(SyncConfig())
        fresh = await account.get_fresh_public_addresses()

        assert fresh[0].derivation_path == "84'/0'/0'/0/5"
        assert await account.get_operations_count() == 5

    @pytest.mark.asyncio
    async def test_injected_sync_error(self) -> None:
        chain = SimulatedChain()
        failing = AccountState(operations=1, sync_error="HTTP_ERROR")
        chain.set_account(BITCOIN, DerivationMode.LEGACY, 0, failing)
        engine = InMemoryEngine(chain)
        device = SimulatedDevice(device_id=TEST_DEVICE_ID, seed=TEST_SEED)
        wallet = await get_or_create_wallet(engine, "w_bitcoin_", BITCOIN, DerivationMode.LEGACY)
        account = await create(wallet, device, 0)
        assert account is not None

        with pytest.raises(EngineError) as exc_info:
            await account.synchronize(SyncConfig())
        assert exc_info.value.code == EngineErrorCode.HTTP_ERROR
        assert engine.sync_log == [("w_bitcoin_", 0)]
