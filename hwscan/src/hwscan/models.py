"""
Account discovery data models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field
from pydantic.dataclasses import dataclass


class CryptoCurrency(BaseModel):
    """A currency the device can sign for, with the facts derivation depends on."""

    id: str = Field(..., min_length=1)
    name: str
    ticker: str
    family: str
    coin_type: int = Field(..., ge=0)
    manager_app_name: str
    supports_segwit: bool = False
    supports_native_segwit: bool = False
    forked_from: str | None = None

    model_config = {"frozen": True}


@dataclass
class AppAndVersion:
    """Signing application currently open on the device."""

    name: str
    version: str
    flags: int = 0


@dataclass
class AddressRecord:
    """Address and key material the device returned for a derivation path."""

    address: str
    public_key: str
    path: str
    chain_code: str | None = None


@dataclass
class AccountCreationInfo:
    """Key material the engine needs to register a new account."""

    index: int
    owners: list[str]
    derivations: list[str]
    public_keys: list[str] = Field(default_factory=list)
    chain_codes: list[str] = Field(default_factory=list)


@dataclass
class FreshAddress:
    """Next unused receive address of an account."""

    address: str
    derivation_path: str


@dataclass
class SyncConfig:
    """Options passed through untouched to the engine's account sync."""

    pagination_config: dict[str, int] = Field(default_factory=dict)
    blacklisted_token_ids: list[str] = Field(default_factory=list)


class Account(BaseModel):
    """Synced snapshot of one account on the device."""

    id: str
    name: str
    seed_identifier: str
    derivation_mode: str
    index: int = Field(..., ge=0)
    currency_id: str
    xpub: str | None = None
    fresh_address: str
    fresh_address_path: str
    balance: int = Field(default=0, ge=0)
    operations_count: int = Field(default=0, ge=0)
    block_height: int = 0
    last_sync_date: datetime


class ScanAccountEvent(BaseModel):
    """Event emitted by a scan: one account was discovered."""

    type: Literal["discovered"] = "discovered"
    account: Account
