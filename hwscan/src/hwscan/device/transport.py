"""
Transport protocol for talking to a hardware signing device.

The transport hides the device wire encoding: each method is one
application-level command. Implementations raise the device errors from
``hwscan.errors`` (``TransportStatusError`` for non-OK status words,
``UserRefusedAddress`` when the user declines on screen).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from hwscan.models import AppAndVersion


@dataclass
class WalletPublicKey:
    """Raw answer of a public key request."""

    public_key: str
    address: str
    chain_code: str | None = None


class Transport(Protocol):
    """One open link to a device; commands must not overlap."""

    device_id: str

    async def get_app_and_version(self) -> AppAndVersion: ...

    async def get_wallet_public_key(
        self,
        path: str,
        *,
        address_format: str = "legacy",
        verify: bool = False,
        ask_chain_code: bool = False,
    ) -> WalletPublicKey: ...

    async def get_account_address(
        self,
        app: str,
        path: str,
        *,
        verify: bool = False,
        ask_chain_code: bool = False,
    ) -> WalletPublicKey: ...

    async def close(self) -> None: ...


@dataclass
class TransportModule:
    """
    A way of opening devices (USB HID, BLE, simulator, ...).

    ``open`` returns a transport for the device id, or None if this module does
    not handle that id.
    """

    id: str
    open: Callable[[str], Awaitable[Transport | None]]
