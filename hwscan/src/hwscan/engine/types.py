"""
Interface of the ledger engine.

The engine is a native library reached through bindings; everything here is a
message to it. It owns wallet persistence, derivation math and history sync.
Lookups that miss raise ``EngineError`` with ``ACCOUNT_NOT_FOUND`` or
``WALLET_NOT_FOUND``; other failures raise ``EngineError`` with another code.
"""

from __future__ import annotations

from typing import Protocol

from hwscan.models import AccountCreationInfo, FreshAddress, SyncConfig


class CoreAccount(Protocol):
    async def get_index(self) -> int: ...

    async def synchronize(self, sync_config: SyncConfig) -> None: ...

    async def get_balance(self) -> int: ...

    async def get_operations_count(self) -> int: ...

    async def get_fresh_public_addresses(self) -> list[FreshAddress]: ...

    async def get_xpub(self) -> str | None: ...

    async def get_last_block_height(self) -> int: ...


class CoreWallet(Protocol):
    async def get_name(self) -> str: ...

    async def get_account(self, index: int) -> CoreAccount: ...

    async def get_account_creation_info(self, index: int) -> AccountCreationInfo: ...

    async def new_account_with_info(self, info: AccountCreationInfo) -> CoreAccount: ...


class Core(Protocol):
    async def get_wallet(self, name: str) -> CoreWallet: ...

    async def create_wallet(
        self, name: str, currency_id: str, config: dict[str, str]
    ) -> CoreWallet: ...
