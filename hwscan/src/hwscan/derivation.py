"""
Derivation schemes and their scanning policy.

A derivation mode names a key-path generation scheme (legacy BIP44, segwit,
native segwit, third-party wallet paths, ...). Each mode carries the rules the
scanner follows for it:

- path template (BIP44-style or an explicit override)
- gap limit: consecutive empty accounts tolerated before the scan stops
- start index: lower indices are synced but never reported
- iterable flag: non-iterable modes only ever have account 0
- skip-first: index 0 duplicates another scheme's account and is never reported

Template placeholders: <coin_type>, <account>, <node>, <address>.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum

from hwscan.models import CryptoCurrency


class DerivationMode(str, Enum):
    LEGACY = ""
    SEGWIT = "segwit"
    NATIVE_SEGWIT = "native_segwit"
    UNSPLIT = "unsplit"
    SEGWIT_UNSPLIT = "segwit_unsplit"
    VERTCOIN_128 = "vertcoin_128"
    VERTCOIN_128_SEGWIT = "vertcoin_128_segwit"
    ETH_M = "ethM"
    ETH_MM = "ethMM"
    ETC_M = "etcM"
    SEP5 = "sep5"
    TEZBOX = "tezbox"
    TEZBOX_L = "tezboxL"
    GALLEON_L = "galleonL"
    TEZOS_BIP44H = "tezosbip44h"

    @property
    def display_name(self) -> str:
        """Human name; the default scheme has an empty value and shows as 'legacy'."""
        return self.value or "legacy"


def parse_derivation_mode(name: str) -> DerivationMode:
    """
    Parse a scheme name as typed by a user or found in config.

    Accepts 'legacy' (or the empty string) for the default scheme.

    Raises:
        ValueError: If the name matches no known scheme
    """
    if name in ("", "legacy", "default"):
        return DerivationMode.LEGACY
    try:
        return DerivationMode(name)
    except ValueError:
        known = ", ".join(m.display_name for m in DerivationMode)
        raise ValueError(f"Unknown derivation scheme '{name}' (known: {known})") from None


@dataclass(frozen=True)
class ModeSpec:
    """Scanning rules attached to one derivation mode."""

    tag: str | None = None
    purpose: int = 44
    coin_type: int | None = None
    overrides_derivation: str | None = None
    address_format: str = "legacy"
    is_segwit: bool = False
    is_native_segwit: bool = False
    is_unsplit: bool = False
    mandatory_empty_account_skip: int = 0
    starts_at: int = 0
    skip_first: bool = False
    is_non_iterable: bool = False


DEFAULT_MODES: dict[DerivationMode, ModeSpec] = {
    DerivationMode.LEGACY: ModeSpec(),
    DerivationMode.SEGWIT: ModeSpec(
        tag="segwit", purpose=49, address_format="p2sh", is_segwit=True
    ),
    DerivationMode.NATIVE_SEGWIT: ModeSpec(
        tag="native segwit",
        purpose=84,
        address_format="bech32",
        is_segwit=True,
        is_native_segwit=True,
    ),
    DerivationMode.UNSPLIT: ModeSpec(tag="unsplit", is_unsplit=True),
    DerivationMode.SEGWIT_UNSPLIT: ModeSpec(
        tag="segwit unsplit",
        purpose=49,
        address_format="p2sh",
        is_segwit=True,
        is_unsplit=True,
    ),
    # Older wallets derived vertcoin on coin type 128
    DerivationMode.VERTCOIN_128: ModeSpec(tag="legacy", coin_type=128),
    DerivationMode.VERTCOIN_128_SEGWIT: ModeSpec(
        tag="legacy", purpose=49, coin_type=128, address_format="p2sh", is_segwit=True
    ),
    DerivationMode.ETH_M: ModeSpec(
        tag="legacy",
        overrides_derivation="44'/60'/0'/<account>",
        mandatory_empty_account_skip=10,
    ),
    # Index 0 is the same key as the default BIP44 account 0
    DerivationMode.ETH_MM: ModeSpec(
        tag="metamask",
        overrides_derivation="44'/60'/0'/0/<account>",
        mandatory_empty_account_skip=10,
        skip_first=True,
    ),
    DerivationMode.ETC_M: ModeSpec(
        tag="legacy",
        overrides_derivation="44'/60'/160720'/0'/<account>",
        mandatory_empty_account_skip=10,
    ),
    DerivationMode.SEP5: ModeSpec(overrides_derivation="44'/<coin_type>'/<account>'"),
    DerivationMode.TEZBOX: ModeSpec(
        tag="tezbox", overrides_derivation="44'/1729'/<account>'/0'"
    ),
    DerivationMode.TEZBOX_L: ModeSpec(
        tag="tezbox", overrides_derivation="44'/1729'/0'/0'", is_non_iterable=True
    ),
    DerivationMode.GALLEON_L: ModeSpec(
        tag="galleon", overrides_derivation="44'/1729'/0'/0'/0'", is_non_iterable=True
    ),
    # Account 0 on this path is the galleonL account
    DerivationMode.TEZOS_BIP44H: ModeSpec(
        tag="galleon", overrides_derivation="44'/1729'/<account>'/0'/0'", starts_at=1
    ),
}

# Schemes used by older wallets, scanned before the standard ones
DEFAULT_LEGACY_DERIVATIONS: dict[str, list[DerivationMode]] = {
    "vertcoin": [DerivationMode.VERTCOIN_128, DerivationMode.VERTCOIN_128_SEGWIT],
    "ethereum": [DerivationMode.ETH_M, DerivationMode.ETH_MM],
    "ethereum_classic": [DerivationMode.ETH_M, DerivationMode.ETC_M, DerivationMode.ETH_MM],
    "tezos": [
        DerivationMode.GALLEON_L,
        DerivationMode.TEZBOX_L,
        DerivationMode.TEZOS_BIP44H,
        DerivationMode.TEZBOX,
    ],
    "stellar": [DerivationMode.SEP5],
}

# Currencies whose apps do not use plain BIP44 accounts
DEFAULT_DISABLE_BIP44: frozenset[str] = frozenset({"tezos", "stellar"})

# Coin types of currencies that unsplit modes may refer to
_FORK_PARENT_COIN_TYPES: dict[str, int] = {"bitcoin": 0, "bitcoin_testnet": 1}


class DerivationPolicy:
    """
    Lookup table of derivation modes and the order they apply per currency.

    All methods are pure. ``currency_modes`` pins an explicit ordered scheme
    list for a currency id and takes precedence over the derived order.
    """

    def __init__(
        self,
        modes: Mapping[DerivationMode, ModeSpec] | None = None,
        legacy_derivations: Mapping[str, list[DerivationMode]] | None = None,
        disable_bip44: Iterable[str] | None = None,
        currency_modes: Mapping[str, list[DerivationMode]] | None = None,
    ):
        self.modes = dict(DEFAULT_MODES if modes is None else modes)
        self.legacy_derivations = dict(
            DEFAULT_LEGACY_DERIVATIONS if legacy_derivations is None else legacy_derivations
        )
        self.disable_bip44 = frozenset(
            DEFAULT_DISABLE_BIP44 if disable_bip44 is None else disable_bip44
        )
        self.currency_modes = dict(currency_modes or {})

    def spec(self, mode: DerivationMode) -> ModeSpec:
        try:
            return self.modes[mode]
        except KeyError:
            raise ValueError(f"No policy for derivation mode '{mode.display_name}'") from None

    def with_gap_limits(self, overrides: Mapping[str, int]) -> DerivationPolicy:
        """
        Return a copy with some gap limits replaced.

        Args:
            overrides: Scheme name (as accepted by parse_derivation_mode) -> gap limit

        Raises:
            ValueError: On an unknown scheme name or a negative limit
        """
        modes = dict(self.modes)
        for name, limit in overrides.items():
            if limit < 0:
                raise ValueError(f"Gap limit must be >= 0, got {limit} for {name}")
            mode = parse_derivation_mode(name)
            modes[mode] = replace(self.spec(mode), mandatory_empty_account_skip=limit)
        return DerivationPolicy(
            modes=modes,
            legacy_derivations=self.legacy_derivations,
            disable_bip44=self.disable_bip44,
            currency_modes=self.currency_modes,
        )

    def get_derivation_modes_for_currency(self, currency: CryptoCurrency) -> list[DerivationMode]:
        if currency.id in self.currency_modes:
            return list(self.currency_modes[currency.id])

        modes: list[DerivationMode] = list(self.legacy_derivations.get(currency.id, []))
        if currency.forked_from:
            modes.append(DerivationMode.UNSPLIT)
            if currency.supports_segwit:
                modes.append(DerivationMode.SEGWIT_UNSPLIT)
        if currency.supports_native_segwit:
            modes.append(DerivationMode.NATIVE_SEGWIT)
        if currency.supports_segwit:
            modes.append(DerivationMode.SEGWIT)
        if currency.id not in self.disable_bip44:
            modes.append(DerivationMode.LEGACY)
        return modes

    def _coin_type(self, currency: CryptoCurrency, mode: DerivationMode) -> int:
        spec = self.spec(mode)
        if spec.is_unsplit and currency.forked_from:
            return _FORK_PARENT_COIN_TYPES.get(currency.forked_from, currency.coin_type)
        if spec.coin_type is not None:
            return spec.coin_type
        return currency.coin_type

    def get_seed_identifier_derivation(
        self, currency: CryptoCurrency, mode: DerivationMode
    ) -> str:
        """Path whose public key identifies the seed; independent of the account index."""
        purpose = self.spec(mode).purpose
        return f"{purpose}'/{self._coin_type(currency, mode)}'"

    def get_derivation_scheme(self, currency: CryptoCurrency, mode: DerivationMode) -> str:
        spec = self.spec(mode)
        if spec.overrides_derivation:
            return spec.overrides_derivation
        if spec.is_unsplit and currency.forked_from:
            coin_type = str(self._coin_type(currency, mode))
        elif spec.coin_type is not None:
            coin_type = str(spec.coin_type)
        else:
            coin_type = "<coin_type>"
        return f"{spec.purpose}'/{coin_type}'/<account>'/<node>/<address>"

    def derivation_mode_supports_index(self, mode: DerivationMode, index: int) -> bool:
        return not (self.spec(mode).skip_first and index == 0)

    def is_iterable_derivation_mode(self, mode: DerivationMode) -> bool:
        return not self.spec(mode).is_non_iterable

    def get_mandatory_empty_account_skip(self, mode: DerivationMode) -> int:
        return self.spec(mode).mandatory_empty_account_skip

    def get_derivation_mode_starts_at(self, mode: DerivationMode) -> int:
        return self.spec(mode).starts_at

    def is_segwit_derivation_mode(self, mode: DerivationMode) -> bool:
        return self.spec(mode).is_segwit

    def is_native_segwit_derivation_mode(self, mode: DerivationMode) -> bool:
        return self.spec(mode).is_native_segwit

    def get_address_format(self, mode: DerivationMode) -> str:
        return self.spec(mode).address_format

    def get_tag_derivation_mode(self, currency: CryptoCurrency, mode: DerivationMode) -> str | None:
        spec = self.spec(mode)
        if spec.tag:
            return spec.tag
        if mode == DerivationMode.LEGACY and currency.supports_segwit:
            return "legacy"
        return None

    def should_show_new_account(self, currency: CryptoCurrency, mode: DerivationMode) -> bool:
        """
        Whether empty accounts of this scheme are reported as fresh accounts to add.

        The last scheme of a currency always offers one; segwit schemes do too.
        """
        modes = self.get_derivation_modes_for_currency(currency)
        if modes and modes[-1] == mode:
            return True
        return mode in (DerivationMode.SEGWIT, DerivationMode.NATIVE_SEGWIT)


def run_derivation_scheme(
    derivation_scheme: str,
    currency: CryptoCurrency,
    account: int = 0,
    node: int = 0,
    address: int = 0,
) -> str:
    """Fill a path template for one account/node/address."""
    return (
        derivation_scheme.replace("<coin_type>", str(currency.coin_type))
        .replace("<account>", str(account))
        .replace("<node>", str(node))
        .replace("<address>", str(address))
    )


def get_account_derivation_path(
    derivation_scheme: str, currency: CryptoCurrency, account: int
) -> str:
    """
    Account-level path of a scheme: the template cut after its <account> level.

    Templates without an <account> level (single-account schemes) are used whole.
    """
    parts = derivation_scheme.split("/")
    for i, part in enumerate(parts):
        if "<account>" in part:
            parts = parts[: i + 1]
            break
    return run_derivation_scheme("/".join(parts), currency, account=account)


DEFAULT_POLICY = DerivationPolicy()


def get_derivation_modes_for_currency(currency: CryptoCurrency) -> list[DerivationMode]:
    return DEFAULT_POLICY.get_derivation_modes_for_currency(currency)


def get_seed_identifier_derivation(currency: CryptoCurrency, mode: DerivationMode) -> str:
    return DEFAULT_POLICY.get_seed_identifier_derivation(currency, mode)


def get_derivation_scheme(currency: CryptoCurrency, mode: DerivationMode) -> str:
    return DEFAULT_POLICY.get_derivation_scheme(currency, mode)


def derivation_mode_supports_index(mode: DerivationMode, index: int) -> bool:
    return DEFAULT_POLICY.derivation_mode_supports_index(mode, index)


def is_iterable_derivation_mode(mode: DerivationMode) -> bool:
    return DEFAULT_POLICY.is_iterable_derivation_mode(mode)


def get_mandatory_empty_account_skip(mode: DerivationMode) -> int:
    return DEFAULT_POLICY.get_mandatory_empty_account_skip(mode)


def get_derivation_mode_starts_at(mode: DerivationMode) -> int:
    return DEFAULT_POLICY.get_derivation_mode_starts_at(mode)


def get_tag_derivation_mode(currency: CryptoCurrency, mode: DerivationMode) -> str | None:
    return DEFAULT_POLICY.get_tag_derivation_mode(currency, mode)


def should_show_new_account(currency: CryptoCurrency, mode: DerivationMode) -> bool:
    return DEFAULT_POLICY.should_show_new_account(currency, mode)
