"""
Scoped, exclusive access to hardware devices.

Transport modules are registered once at startup; ``with_device`` opens the
device through the first module that accepts its id, holds a per-device lock
for the whole block so concurrent jobs on the same device queue up, and always
closes the transport on exit.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger

from hwscan.device.transport import Transport, TransportModule
from hwscan.errors import CantOpenDevice, DeviceError

_modules: list[TransportModule] = []
_device_locks: dict[str, asyncio.Lock] = {}
_device_users: dict[str, int] = {}


def register_transport_module(module: TransportModule) -> None:
    """Register a transport module; a module with the same id is replaced in place."""
    for i, existing in enumerate(_modules):
        if existing.id == module.id:
            _modules[i] = module
            logger.debug(f"Replaced transport module {module.id}")
            return
    _modules.append(module)
    logger.debug(f"Registered transport module {module.id}")


def unregister_transport_module(module_id: str) -> None:
    _modules[:] = [m for m in _modules if m.id != module_id]


def get_transport_modules() -> list[TransportModule]:
    return list(_modules)


async def open_transport(device_id: str) -> Transport:
    """
    Open a device through the registered transport modules, in order.

    Raises:
        CantOpenDevice: If no module handles the device id
    """
    for module in _modules:
        transport = await module.open(device_id)
        if transport is not None:
            logger.debug(f"Opened device {device_id!r} with transport module {module.id}")
            return transport
    raise CantOpenDevice(f"No transport module can open device {device_id!r}")


@asynccontextmanager
async def with_device(device_id: str) -> AsyncIterator[Transport]:
    """
    Exclusive access to a device for the duration of the block.

    Usage:
        async with with_device(device_id) as transport:
            await transport.get_app_and_version()
    """
    _device_users[device_id] = _device_users.get(device_id, 0) + 1
    lock = _device_locks.setdefault(device_id, asyncio.Lock())
    try:
        async with lock:
            transport = await open_transport(device_id)
            try:
                yield transport
            finally:
                try:
                    await transport.close()
                except DeviceError as e:
                    logger.warning(f"Error closing device {device_id!r}: {e}")
                logger.debug(f"Released device {device_id!r}")
    finally:
        _device_users[device_id] -= 1
        if _device_users[device_id] == 0:
            del _device_users[device_id]
            _device_locks.pop(device_id, None)
