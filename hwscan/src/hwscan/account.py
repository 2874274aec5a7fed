"""
Account helpers shared by every scheme.
"""

from __future__ import annotations

from hwscan.derivation import DEFAULT_POLICY, DerivationMode, DerivationPolicy
from hwscan.models import Account, CryptoCurrency

ACCOUNT_ID_TYPE = "hwscan"
ACCOUNT_ID_VERSION = 1


def is_account_empty(account: Account) -> bool:
    """An account is empty when it has no operations and no balance."""
    return account.operations_count == 0 and account.balance == 0


def get_wallet_name(
    seed_identifier: str, currency: CryptoCurrency, derivation_mode: DerivationMode
) -> str:
    """
    Deterministic engine wallet name for a (seed, currency, scheme) triple.

    Repeat scans of the same seed and scheme land on the same wallet.
    """
    return f"{seed_identifier}_{currency.id}_{derivation_mode.value}"


def encode_account_id(
    currency: CryptoCurrency, xpub_or_address: str, derivation_mode: DerivationMode
) -> str:
    """Stable account id: type:version:currency:xpub:scheme."""
    return ":".join(
        [
            ACCOUNT_ID_TYPE,
            str(ACCOUNT_ID_VERSION),
            currency.id,
            xpub_or_address,
            derivation_mode.value,
        ]
    )


def get_account_placeholder_name(
    currency: CryptoCurrency,
    index: int,
    derivation_mode: DerivationMode,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> str:
    """Default display name, e.g. 'Bitcoin 2 (segwit)'."""
    tag = policy.get_tag_derivation_mode(currency, derivation_mode)
    suffix = f" ({tag})" if tag else ""
    return f"{currency.name} {index + 1}{suffix}"
