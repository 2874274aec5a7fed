"""
Ledger engine boundary: wallets, account creation and sync.
"""

from hwscan.engine.account_creation import DerivationsCache, create_account_from_device
from hwscan.engine.sync import new_sync_log_id, sync_core_account
from hwscan.engine.types import Core, CoreAccount, CoreWallet
from hwscan.engine.wallet import get_or_create_wallet

__all__ = [
    "Core",
    "CoreAccount",
    "CoreWallet",
    "DerivationsCache",
    "create_account_from_device",
    "get_or_create_wallet",
    "new_sync_log_id",
    "sync_core_account",
]
