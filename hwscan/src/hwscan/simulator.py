"""
In-memory ledger engine and simulated device.

Used for dry runs of the scanner and in tests. The simulated device derives
stable fake keys by hashing (seed, path); the in-memory engine keeps wallets
and accounts in dicts and reads account history from a ``SimulatedChain``
keyed by account derivation path. Neither does real cryptography.

Profile JSON (every key is optional; app_name defaults to the currency's app):

    {
      "device_id": "sim-1",
      "currency": "bitcoin",
      "seed": "my test seed",
      "app_name": "Bitcoin",
      "app_version": "2.1.0",
      "refused_paths": ["49'/0'"],
      "rejected_paths": [],
      "accounts": {
        "native_segwit": {"0": {"operations": 4, "balance": 15000}},
        "legacy": {"2": {"operations": 1, "balance": 0}}
      }
    }
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from hwscan.currencies import find_crypto_currency_by_id
from hwscan.derivation import (
    DEFAULT_POLICY,
    DerivationMode,
    DerivationPolicy,
    get_account_derivation_path,
    parse_derivation_mode,
    run_derivation_scheme,
)
from hwscan.device.access import register_transport_module
from hwscan.device.transport import TransportModule, WalletPublicKey
from hwscan.engine.wallet import KEYCHAIN_DERIVATION_SCHEME
from hwscan.errors import (
    DisconnectedDevice,
    EngineError,
    EngineErrorCode,
    StatusCodes,
    TransportStatusError,
    UserRefusedAddress,
)
from hwscan.models import (
    AccountCreationInfo,
    AppAndVersion,
    CryptoCurrency,
    FreshAddress,
    SyncConfig,
)

SIMULATOR_MODULE_ID = "simulator"


def _digest(*parts: str) -> str:
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _path_matches(path: str, prefixes: Iterable[str]) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)


class AccountState(BaseModel):
    """On-chain state of one account as the simulated explorer reports it."""

    operations: int = Field(default=0, ge=0)
    balance: int = Field(default=0, ge=0)
    sync_error: str | None = Field(
        default=None,
        description="EngineErrorCode name raised when this account is synced",
    )

    @field_validator("sync_error")
    @classmethod
    def validate_sync_error(cls, v: str | None) -> str | None:
        if v is not None and v not in EngineErrorCode.__members__:
            raise ValueError(f"Unknown engine error code: {v}")
        return v


class SimulationProfile(BaseModel):
    """Device, seed and chain state for a simulated scan."""

    device_id: str = "simulator"
    currency: str = "bitcoin"
    seed: str = "hwscan simulated seed"
    app_name: str | None = None
    app_version: str = "2.1.0"
    refused_paths: list[str] = Field(default_factory=list)
    rejected_paths: list[str] = Field(default_factory=list)
    accounts: dict[str, dict[int, AccountState]] = Field(default_factory=dict)

    @field_validator("accounts")
    @classmethod
    def validate_schemes(
        cls, v: dict[str, dict[int, AccountState]]
    ) -> dict[str, dict[int, AccountState]]:
        for name in v:
            parse_derivation_mode(name)
        return v

    @classmethod
    def from_file(cls, path: Path) -> SimulationProfile:
        with open(path, encoding="utf-8") as f:
            return cls.model_validate(json.load(f))


@dataclass
class ChainEntry:
    state: AccountState
    scheme: DerivationMode
    index: int


class SimulatedChain:
    """Account states keyed by (currency id, account derivation path)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], ChainEntry] = {}

    def set_account(
        self,
        currency: CryptoCurrency,
        derivation_mode: DerivationMode,
        index: int,
        state: AccountState,
        policy: DerivationPolicy = DEFAULT_POLICY,
    ) -> str:
        scheme = policy.get_derivation_scheme(currency, derivation_mode)
        path = get_account_derivation_path(scheme, currency, index)
        self._entries[(currency.id, path)] = ChainEntry(state, derivation_mode, index)
        return path

    def get(self, currency_id: str, account_path: str) -> AccountState:
        entry = self._entries.get((currency_id, account_path))
        return entry.state if entry is not None else AccountState()

    @classmethod
    def from_accounts(
        cls,
        currency: CryptoCurrency,
        accounts: dict[DerivationMode, dict[int, AccountState]],
        policy: DerivationPolicy = DEFAULT_POLICY,
    ) -> SimulatedChain:
        chain = cls()
        for mode, states in accounts.items():
            for index, state in states.items():
                chain.set_account(currency, mode, index, state, policy)
        return chain


class SimulatedDevice:
    """Transport to a fake device holding one seed."""

    def __init__(
        self,
        device_id: str = "simulator",
        seed: str = "hwscan simulated seed",
        app_name: str = "Bitcoin",
        app_version: str = "2.1.0",
        refused_paths: Iterable[str] = (),
        rejected_paths: Iterable[str] = (),
    ):
        self.device_id = device_id
        self.seed = seed
        self.app = AppAndVersion(name=app_name, version=app_version)
        self.refused_paths = list(refused_paths)
        self.rejected_paths = list(rejected_paths)
        self.commands: list[tuple[str, str]] = []
        self.open_count = 0
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0

    def _begin(self, command: str, arg: str) -> None:
        if self.closed:
            raise DisconnectedDevice(f"Device {self.device_id!r} is closed")
        self.commands.append((command, arg))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _end(self) -> None:
        self.in_flight -= 1

    def public_key_for(self, path: str) -> str:
        return "02" + _digest(self.seed, "pub", path)

    def chain_code_for(self, path: str) -> str:
        return _digest(self.seed, "chain", path)

    def _check_path(self, path: str) -> None:
        if _path_matches(path, self.rejected_paths):
            raise TransportStatusError(StatusCodes.INCORRECT_DATA)
        if _path_matches(path, self.refused_paths):
            raise UserRefusedAddress(f"Address for {path} refused on device")

    async def get_app_and_version(self) -> AppAndVersion:
        self._begin("get_app_and_version", "")
        try:
            return self.app
        finally:
            self._end()

    async def get_wallet_public_key(
        self,
        path: str,
        *,
        address_format: str = "legacy",
        verify: bool = False,
        ask_chain_code: bool = False,
    ) -> WalletPublicKey:
        self._begin("get_wallet_public_key", path)
        try:
            self._check_path(path)
            digest = _digest(self.seed, "addr", address_format, path)
            prefix = {"legacy": "1", "p2sh": "3", "bech32": "bc1q"}.get(address_format)
            if prefix is None:
                raise TransportStatusError(StatusCodes.INCORRECT_P1_P2)
            return WalletPublicKey(
                public_key=self.public_key_for(path),
                address=prefix + digest[:38],
                chain_code=self.chain_code_for(path) if ask_chain_code else None,
            )
        finally:
            self._end()

    async def get_account_address(
        self,
        app: str,
        path: str,
        *,
        verify: bool = False,
        ask_chain_code: bool = False,
    ) -> WalletPublicKey:
        self._begin("get_account_address", path)
        try:
            if app != self.app.name:
                raise TransportStatusError(StatusCodes.CLA_NOT_SUPPORTED)
            self._check_path(path)
            return WalletPublicKey(
                public_key=self.public_key_for(path),
                address=f"{app[:3].lower()}1{_digest(self.seed, 'addr', app, path)[:40]}",
                chain_code=self.chain_code_for(path) if ask_chain_code else None,
            )
        finally:
            self._end()

    async def close(self) -> None:
        self.closed = True

    async def open(self) -> SimulatedDevice:
        self.closed = False
        self.open_count += 1
        return self


class InMemoryAccount:
    """Engine account backed by the simulated chain."""

    def __init__(self, wallet: InMemoryWallet, info: AccountCreationInfo):
        self.wallet = wallet
        self.info = info
        self.account_path = info.derivations[0]
        self.xpub = "xpub" + _digest(info.public_keys[0], info.chain_codes[0])[:100]
        self.state: AccountState | None = None
        self.sync_count = 0

    async def get_index(self) -> int:
        return self.info.index

    async def synchronize(self, sync_config: SyncConfig) -> None:
        engine = self.wallet.engine
        engine.sync_log.append((self.wallet.name, self.info.index))
        state = engine.chain.get(self.wallet.currency_id, self.account_path)
        if state.sync_error is not None:
            raise EngineError(
                EngineErrorCode[state.sync_error],
                f"Simulated failure syncing account {self.info.index}",
            )
        self.state = state
        self.sync_count += 1

    def _synced_state(self) -> AccountState:
        if self.state is None:
            raise EngineError(EngineErrorCode.RUNTIME_ERROR, "Account was never synchronized")
        return self.state

    async def get_balance(self) -> int:
        return self._synced_state().balance

    async def get_operations_count(self) -> int:
        return self._synced_state().operations

    async def get_fresh_public_addresses(self) -> list[FreshAddress]:
        state = self._synced_state()
        currency = self.wallet.engine.currency(self.wallet.currency_id)
        template = self.wallet.config[KEYCHAIN_DERIVATION_SCHEME]
        if "<address>" in template:
            path = run_derivation_scheme(
                template, currency, account=self.info.index, node=0, address=state.operations
            )
        else:
            path = self.account_path
        return [FreshAddress(address=_digest(self.xpub, path)[:40], derivation_path=path)]

    async def get_xpub(self) -> str | None:
        return self.xpub

    async def get_last_block_height(self) -> int:
        return self.wallet.engine.block_height


class InMemoryWallet:
    def __init__(
        self, engine: InMemoryEngine, name: str, currency_id: str, config: dict[str, str]
    ):
        self.engine = engine
        self.name = name
        self.currency_id = currency_id
        self.config = dict(config)
        self.accounts: dict[int, InMemoryAccount] = {}

    async def get_name(self) -> str:
        return self.name

    async def get_account(self, index: int) -> InMemoryAccount:
        try:
            return self.accounts[index]
        except KeyError:
            raise EngineError(
                EngineErrorCode.ACCOUNT_NOT_FOUND, f"Account {index} not in {self.name}"
            ) from None

    async def get_account_creation_info(self, index: int) -> AccountCreationInfo:
        currency = self.engine.currency(self.currency_id)
        path = get_account_derivation_path(self.config[KEYCHAIN_DERIVATION_SCHEME], currency, index)
        return AccountCreationInfo(index=index, owners=["main"], derivations=[path])

    async def new_account_with_info(self, info: AccountCreationInfo) -> InMemoryAccount:
        if len(info.public_keys) != len(info.derivations) or not info.public_keys:
            raise EngineError(
                EngineErrorCode.ILLEGAL_ARGUMENT, "One public key per derivation is required"
            )
        if info.index in self.accounts:
            raise EngineError(
                EngineErrorCode.ILLEGAL_ARGUMENT, f"Account {info.index} already exists"
            )
        account = InMemoryAccount(self, info)
        self.accounts[info.index] = account
        self.engine.created_accounts.append((self.name, info.index))
        return account


class InMemoryEngine:
    """
    Ledger engine keeping everything in memory.

    Attributes for inspection:
        sync_log: (wallet name, account index) of every sync, in order
        created_accounts: (wallet name, account index) of every account creation
        created_wallets: names of wallets created
    """

    def __init__(
        self,
        chain: SimulatedChain | None = None,
        currencies: Iterable[CryptoCurrency] = (),
        block_height: int = 800_000,
    ):
        self.chain = chain or SimulatedChain()
        self._currencies = {c.id: c for c in currencies}
        self.block_height = block_height
        self.wallets: dict[str, InMemoryWallet] = {}
        self.sync_log: list[tuple[str, int]] = []
        self.created_accounts: list[tuple[str, int]] = []
        self.created_wallets: list[str] = []

    def currency(self, currency_id: str) -> CryptoCurrency:
        currency = self._currencies.get(currency_id) or find_crypto_currency_by_id(currency_id)
        if currency is None:
            raise EngineError(EngineErrorCode.CURRENCY_NOT_FOUND, currency_id)
        return currency

    async def get_wallet(self, name: str) -> InMemoryWallet:
        try:
            return self.wallets[name]
        except KeyError:
            raise EngineError(EngineErrorCode.WALLET_NOT_FOUND, name) from None

    async def create_wallet(
        self, name: str, currency_id: str, config: dict[str, str]
    ) -> InMemoryWallet:
        self.currency(currency_id)
        if name in self.wallets:
            raise EngineError(EngineErrorCode.ILLEGAL_ARGUMENT, f"Wallet {name} already exists")
        wallet = InMemoryWallet(self, name, currency_id, config)
        self.wallets[name] = wallet
        self.created_wallets.append(name)
        return wallet

    def synced_indices(self, wallet_name_suffix: str = "") -> list[int]:
        """Indices synced in wallets whose name ends with the suffix."""
        return [i for name, i in self.sync_log if name.endswith(wallet_name_suffix)]


def register_simulator(device: SimulatedDevice) -> None:
    """Make the simulated device openable through ``with_device``."""

    async def open_device(device_id: str) -> SimulatedDevice | None:
        if device_id != device.device_id:
            return None
        return await device.open()

    register_transport_module(TransportModule(id=SIMULATOR_MODULE_ID, open=open_device))


def build_simulation(
    profile: SimulationProfile, policy: DerivationPolicy = DEFAULT_POLICY
) -> tuple[CryptoCurrency, SimulatedDevice, InMemoryEngine]:
    """
    Set up device, engine and chain from a profile and register the device.

    Raises:
        ValueError: If the profile's currency is unknown
    """
    currency = find_crypto_currency_by_id(profile.currency)
    if currency is None:
        raise ValueError(f"Unknown currency in simulation profile: {profile.currency}")

    accounts = {
        parse_derivation_mode(name): states for name, states in profile.accounts.items()
    }
    chain = SimulatedChain.from_accounts(currency, accounts, policy)
    device = SimulatedDevice(
        device_id=profile.device_id,
        seed=profile.seed,
        app_name=profile.app_name or currency.manager_app_name,
        app_version=profile.app_version,
        refused_paths=profile.refused_paths,
        rejected_paths=profile.rejected_paths,
    )
    register_simulator(device)
    logger.debug(
        f"Simulation ready: device {device.device_id!r}, {currency.id}, "
        f"{sum(len(s) for s in accounts.values())} account state(s)"
    )
    return currency, device, InMemoryEngine(chain)
