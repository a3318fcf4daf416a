"""
Known device registry.
Maps Ruuvi hardware addresses to a stable device id and display name.
"""

from .schema import Device, DeviceCollection, normalize_mac_address, validate_mac_address
from .registry import DeviceRegistry, DeviceRegistryError, DeviceRegistryFileError

__all__ = [
    "Device",
    "DeviceCollection",
    "DeviceRegistry",
    "DeviceRegistryError",
    "DeviceRegistryFileError",
    "normalize_mac_address",
    "validate_mac_address",
]
