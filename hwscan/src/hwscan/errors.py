"""
Error taxonomy for account discovery.

Device errors come from the transport and are mostly scheme-local: a status
rejection or a refused address means the scheme is skipped. Engine errors
come from the ledger engine; "not found" lookups drive creation, anything
else ends the scan and is normalized with ``remap_engine_errors`` before it
reaches the caller.
"""

from __future__ import annotations

import re
from enum import IntEnum


class HwScanError(Exception):
    """Base exception for caller-facing scan errors."""

    pass


# ---------------------------------------------------------------------------
# Device errors
# ---------------------------------------------------------------------------


class StatusCodes(IntEnum):
    """Device status words the scanner knows by name."""

    OK = 0x9000
    SECURITY_STATUS_NOT_SATISFIED = 0x6982
    CONDITIONS_OF_USE_NOT_SATISFIED = 0x6985
    INCORRECT_DATA = 0x6A80
    INCORRECT_P1_P2 = 0x6B00
    INS_NOT_SUPPORTED = 0x6D00
    CLA_NOT_SUPPORTED = 0x6E00
    TECHNICAL_PROBLEM = 0x6F00


class DeviceError(HwScanError):
    """Base exception for hardware device errors."""

    pass


class TransportStatusError(DeviceError):
    """The device answered a command with a non-OK status word."""

    def __init__(self, status_code: int, message: str | None = None):
        self.status_code = status_code
        try:
            self.status_text = StatusCodes(status_code).name
        except ValueError:
            self.status_text = "UNKNOWN_ERROR"
        super().__init__(
            message or f"Device status 0x{status_code:04x} ({self.status_text})"
        )


class UserRefusedAddress(DeviceError):
    """The user declined the address confirmation on the device."""

    pass


class DisconnectedDevice(DeviceError):
    """The device went away while a command was in flight."""

    pass


class CantOpenDevice(DeviceError):
    """No transport module could open the requested device."""

    pass


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class EngineErrorCode(IntEnum):
    """Error codes raised across the ledger engine boundary."""

    UNKNOWN = 0
    ACCOUNT_NOT_FOUND = 1
    WALLET_NOT_FOUND = 2
    CURRENCY_NOT_FOUND = 3
    NO_INTERNET_CONNECTIVITY = 4
    API_ERROR = 5
    HTTP_ERROR = 6
    RUNTIME_ERROR = 7
    ILLEGAL_ARGUMENT = 8
    DATABASE_EXCEPTION = 9


class EngineError(Exception):
    """Raw error from the ledger engine."""

    def __init__(self, code: EngineErrorCode | int, message: str = ""):
        try:
            self.code: EngineErrorCode | int = EngineErrorCode(code)
        except ValueError:
            self.code = code
        self.message = message
        name = _code_name(self.code)
        super().__init__(f"{name}: {message}" if message else name)


def _code_name(code: EngineErrorCode | int) -> str:
    return code.name if isinstance(code, EngineErrorCode) else f"ENGINE_ERROR_{code}"


class NetworkDown(HwScanError):
    """The engine could not reach its explorer backend."""

    pass


class EngineHttpError(HwScanError):
    """The engine's explorer backend answered with an HTTP error."""

    def __init__(self, status: int | None, message: str = ""):
        self.status = status
        super().__init__(message or f"Explorer HTTP error {status}")


class EngineFailure(HwScanError):
    """Any other ledger engine failure, normalized for callers."""

    def __init__(self, code: EngineErrorCode | int, message: str = ""):
        self.code = code
        self.message = message
        super().__init__(f"Ledger engine failure ({_code_name(code)}): {message}")


_HTTP_STATUS_RE = re.compile(r"status\s*(?:code)?\s*[:=]?\s*(\d{3})", re.IGNORECASE)


def is_non_existing_account_error(error: BaseException) -> bool:
    """Check whether an engine lookup failed only because the account does not exist."""
    return isinstance(error, EngineError) and error.code == EngineErrorCode.ACCOUNT_NOT_FOUND


def is_non_existing_wallet_error(error: BaseException) -> bool:
    """Check whether an engine lookup failed only because the wallet does not exist."""
    return isinstance(error, EngineError) and error.code == EngineErrorCode.WALLET_NOT_FOUND


def remap_engine_errors(error: BaseException) -> BaseException:
    """
    Normalize an error escaping the ledger engine into the caller-facing taxonomy.

    Errors that did not come from the engine (device errors, programming
    errors) are returned unchanged.

    Args:
        error: The exception raised during a scan

    Returns:
        The exception to deliver to the caller
    """
    if not isinstance(error, EngineError):
        return error

    if error.code == EngineErrorCode.NO_INTERNET_CONNECTIVITY:
        return NetworkDown(error.message or "No internet connectivity")

    if error.code in (EngineErrorCode.HTTP_ERROR, EngineErrorCode.API_ERROR):
        match = _HTTP_STATUS_RE.search(error.message)
        status = int(match.group(1)) if match else None
        return EngineHttpError(status, error.message)

    return EngineFailure(error.code, error.message)
