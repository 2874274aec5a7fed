"""
Built-in currency registry.
"""

from __future__ import annotations

from hwscan.models import CryptoCurrency

_CURRENCIES: dict[str, CryptoCurrency] = {
    c.id: c
    for c in [
        CryptoCurrency(
            id="bitcoin",
            name="Bitcoin",
            ticker="BTC",
            family="bitcoin",
            coin_type=0,
            manager_app_name="Bitcoin",
            supports_segwit=True,
            supports_native_segwit=True,
        ),
        CryptoCurrency(
            id="bitcoin_testnet",
            name="Bitcoin Testnet",
            ticker="BTC",
            family="bitcoin",
            coin_type=1,
            manager_app_name="Bitcoin Test",
            supports_segwit=True,
            supports_native_segwit=True,
        ),
        CryptoCurrency(
            id="bitcoin_cash",
            name="Bitcoin Cash",
            ticker="BCH",
            family="bitcoin",
            coin_type=145,
            manager_app_name="Bitcoin Cash",
            forked_from="bitcoin",
        ),
        CryptoCurrency(
            id="bitcoin_gold",
            name="Bitcoin Gold",
            ticker="BTG",
            family="bitcoin",
            coin_type=156,
            manager_app_name="Bitcoin Gold",
            supports_segwit=True,
            forked_from="bitcoin",
        ),
        CryptoCurrency(
            id="litecoin",
            name="Litecoin",
            ticker="LTC",
            family="bitcoin",
            coin_type=2,
            manager_app_name="Litecoin",
            supports_segwit=True,
            supports_native_segwit=True,
        ),
        CryptoCurrency(
            id="dogecoin",
            name="Dogecoin",
            ticker="DOGE",
            family="bitcoin",
            coin_type=3,
            manager_app_name="Dogecoin",
        ),
        CryptoCurrency(
            id="digibyte",
            name="DigiByte",
            ticker="DGB",
            family="bitcoin",
            coin_type=20,
            manager_app_name="Digibyte",
            supports_segwit=True,
            supports_native_segwit=True,
        ),
        CryptoCurrency(
            id="vertcoin",
            name="Vertcoin",
            ticker="VTC",
            family="bitcoin",
            coin_type=28,
            manager_app_name="Vertcoin",
            supports_segwit=True,
            supports_native_segwit=True,
        ),
        CryptoCurrency(
            id="ethereum",
            name="Ethereum",
            ticker="ETH",
            family="ethereum",
            coin_type=60,
            manager_app_name="Ethereum",
        ),
        CryptoCurrency(
            id="ethereum_classic",
            name="Ethereum Classic",
            ticker="ETC",
            family="ethereum",
            coin_type=61,
            manager_app_name="Ethereum Classic",
        ),
        CryptoCurrency(
            id="tezos",
            name="Tezos",
            ticker="XTZ",
            family="tezos",
            coin_type=1729,
            manager_app_name="Tezos Wallet",
        ),
        CryptoCurrency(
            id="stellar",
            name="Stellar",
            ticker="XLM",
            family="stellar",
            coin_type=148,
            manager_app_name="Stellar",
        ),
    ]
}


class UnknownCurrency(KeyError):
    """No currency registered under the requested id."""

    pass


def get_crypto_currency_by_id(currency_id: str) -> CryptoCurrency:
    """Look up a registered currency, raising UnknownCurrency if missing."""
    try:
        return _CURRENCIES[currency_id]
    except KeyError:
        raise UnknownCurrency(currency_id) from None


def find_crypto_currency_by_id(currency_id: str) -> CryptoCurrency | None:
    return _CURRENCIES.get(currency_id)


def list_crypto_currencies() -> list[CryptoCurrency]:
    return list(_CURRENCIES.values())
