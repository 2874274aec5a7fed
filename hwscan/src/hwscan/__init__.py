"""
Hardware wallet account discovery.

Scans a signing device for the accounts it controls, scheme by scheme, using
a ledger engine for history and balances.
"""

from hwscan.coordinator import scan_accounts
from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.models import Account, CryptoCurrency, ScanAccountEvent, SyncConfig
from hwscan.stream import ScanStream

__all__ = [
    "Account",
    "CryptoCurrency",
    "DEFAULT_POLICY",
    "DerivationMode",
    "DerivationPolicy",
    "ScanAccountEvent",
    "ScanStream",
    "SyncConfig",
    "scan_accounts",
]
