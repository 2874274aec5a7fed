"""
hw-scan command line interface.

Commands:
    schemes      List a currency's derivation schemes and their scan policy
    scan         Discover the accounts of a (simulated) device
    config-init  Write the commented configuration template
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from hwcore.cli_common import log_resolved_settings, resolve_simulation_file, setup_cli
from hwcore.settings import ConfigFileError, HwScanSettings, ensure_config_file
from hwcore.version import get_version_banner
from hwscan.coordinator import scan_accounts
from hwscan.currencies import find_crypto_currency_by_id, list_crypto_currencies
from hwscan.derivation import (
    DEFAULT_POLICY,
    DerivationMode,
    DerivationPolicy,
    parse_derivation_mode,
)
from hwscan.errors import HwScanError
from hwscan.models import Account, CryptoCurrency, SyncConfig
from hwscan.simulator import SimulationProfile, build_simulation

app = typer.Typer(
    name="hw-scan",
    help="Hardware wallet account discovery",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        print(get_version_banner())
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Hardware wallet account discovery."""


def _resolve_currency(currency_id: str) -> CryptoCurrency:
    currency = find_crypto_currency_by_id(currency_id)
    if currency is None:
        known = ", ".join(c.id for c in list_crypto_currencies())
        logger.error(f"Unknown currency '{currency_id}' (known: {known})")
        raise typer.Exit(1)
    return currency


def _resolve_scheme(scheme: str | None) -> DerivationMode | None:
    if scheme is None:
        return None
    try:
        return parse_derivation_mode(scheme)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1) from None


def _build_policy(settings: HwScanSettings) -> DerivationPolicy:
    if not settings.scan.gap_limits:
        return DEFAULT_POLICY
    try:
        return DEFAULT_POLICY.with_gap_limits(settings.scan.gap_limits)
    except ValueError as e:
        logger.error(f"Invalid scan.gap_limits: {e}")
        raise typer.Exit(1) from None


def _build_sync_config(settings: HwScanSettings) -> SyncConfig:
    if settings.scan.operations_page_size is None:
        return SyncConfig()
    return SyncConfig(pagination_config={"operations": settings.scan.operations_page_size})


def _format_account(account: Account) -> str:
    mode = DerivationMode(account.derivation_mode).display_name
    return (
        f"{account.name:<28} {mode:<20} {account.index:>5} "
        f"{account.operations_count:>6} {account.balance:>16,}  {account.fresh_address_path}"
    )


@app.command()
def schemes(
    currency_id: Annotated[str, typer.Argument(help="Currency id, e.g. bitcoin")],
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level (default from config or INFO)"),
    ] = None,
) -> None:
    """Show the derivation schemes scanned for a currency, in scan order."""
    settings = setup_cli(log_level)
    currency = _resolve_currency(currency_id)
    policy = _build_policy(settings)

    print(f"\nDerivation schemes for {currency.name} ({currency.id}):")
    print("=" * 100)
    print(f"{'Scheme':<20} {'Path template':<40} {'Gap':>4} {'Start':>6}  Flags")
    print("-" * 100)
    for mode in policy.get_derivation_modes_for_currency(currency):
        flags = []
        if not policy.is_iterable_derivation_mode(mode):
            flags.append("single-account")
        if not policy.derivation_mode_supports_index(mode, 0):
            flags.append("skip-first")
        if policy.should_show_new_account(currency, mode):
            flags.append("offers-new")
        print(
            f"{mode.display_name:<20} {policy.get_derivation_scheme(currency, mode):<40} "
            f"{policy.get_mandatory_empty_account_skip(mode):>4} "
            f"{policy.get_derivation_mode_starts_at(mode):>6}  {', '.join(flags)}"
        )
    print("=" * 100 + "\n")


async def _run_scan(
    profile: SimulationProfile,
    currency: CryptoCurrency,
    scheme: DerivationMode | None,
    sync_config: SyncConfig,
    policy: DerivationPolicy,
    json_output: bool,
) -> list[Account]:
    _, device, engine = build_simulation(profile, policy)
    accounts: list[Account] = []
    async with scan_accounts(
        engine, currency, device.device_id, scheme, sync_config, policy=policy
    ) as stream:
        async for event in stream:
            accounts.append(event.account)
            if json_output:
                print(event.model_dump_json())
    return accounts


@app.command()
def scan(
    currency_id: Annotated[str, typer.Argument(help="Currency id, e.g. bitcoin")],
    scheme: Annotated[
        str | None,
        typer.Option("--scheme", "-s", help="Only scan this scheme (e.g. native_segwit, legacy)"),
    ] = None,
    simulate: Annotated[
        Path | None,
        typer.Option(
            "--simulate",
            help="Simulation profile (JSON); default from device.simulation_file",
        ),
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Print one JSON event per discovered account")
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level (default from config or INFO)"),
    ] = None,
) -> None:
    """Discover the accounts a device holds for a currency."""
    settings = setup_cli(log_level)
    logger.info(get_version_banner())
    log_resolved_settings(settings)

    currency = _resolve_currency(currency_id)
    derivation_mode = _resolve_scheme(scheme)
    policy = _build_policy(settings)

    if settings.device.transport != "simulator":
        logger.error(f"Transport module '{settings.device.transport}' is not available")
        raise typer.Exit(1)

    profile_path = resolve_simulation_file(settings, simulate)
    if profile_path is None:
        logger.error("No simulation profile: pass --simulate or set device.simulation_file")
        raise typer.Exit(1)

    try:
        profile = SimulationProfile.from_file(profile_path)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot load simulation profile {profile_path}: {e}")
        raise typer.Exit(1) from None

    if profile.currency != currency.id:
        logger.warning(
            f"Simulation profile is for {profile.currency}, scanning {currency.id}; "
            "using the profile's chain state as is"
        )
        profile = profile.model_copy(update={"currency": currency.id})

    try:
        accounts = asyncio.run(
            _run_scan(
                profile,
                currency,
                derivation_mode,
                _build_sync_config(settings),
                policy,
                json_output,
            )
        )
    except HwScanError as e:
        logger.error(f"Scan failed: {type(e).__name__}: {e}")
        raise typer.Exit(1) from None

    if json_output:
        return

    if not accounts:
        print(f"\nNo {currency.name} accounts found.")
        return

    print(f"\n{currency.name} accounts ({len(accounts)}):")
    print("=" * 110)
    print(
        f"{'Name':<28} {'Scheme':<20} {'Index':>5} {'Ops':>6} {'Balance':>16}  Fresh address path"
    )
    print("-" * 110)
    for account in accounts:
        print(_format_account(account))
    print("=" * 110 + "\n")


@app.command("config-init")
def config_init(
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            help="Write config.toml here (default: $HWSCAN_CONFIG_FILE or ~/.hwscan)",
        ),
    ] = None,
) -> None:
    """Write the configuration template if no config file exists yet."""
    try:
        config_path = ensure_config_file(data_dir)
    except (ConfigFileError, OSError) as e:
        logger.error(f"Cannot create config file: {e}")
        raise typer.Exit(1) from None
    print(f"Config file: {config_path}")


def main() -> None:
    """Entry point for the ``hw-scan`` console script."""
    app()


if __name__ == "__main__":
    main()
