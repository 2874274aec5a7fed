"""
Hardware device access: transports, address resolution and app feature gating.
"""

from hwscan.device.access import register_transport_module, with_device
from hwscan.device.address import get_address, resolve_address
from hwscan.device.app_version import get_app_and_version, is_derivation_mode_supported
from hwscan.device.transport import Transport, TransportModule

__all__ = [
    "Transport",
    "TransportModule",
    "get_address",
    "get_app_and_version",
    "is_derivation_mode_supported",
    "register_transport_module",
    "resolve_address",
    "with_device",
]
