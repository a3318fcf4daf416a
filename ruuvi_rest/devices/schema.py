"""
Pydantic schemas for the known devices file.
Defines the structure and validation rules for registered Ruuvi devices.
"""

import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAC_PATTERN = re.compile(r'^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$')


def validate_mac_address(mac_address: str) -> bool:
    """
    Validate MAC address format.

    Args:
        mac_address: MAC address to validate

    Returns:
        bool: True if valid MAC address format
    """
    return bool(MAC_PATTERN.match(mac_address))


def normalize_mac_address(mac_address: str) -> str:
    """
    Normalize MAC address to uppercase with colon separators.

    Args:
        mac_address: MAC address to normalize

    Returns:
        str: Normalized MAC address

    Raises:
        ValueError: If the address does not contain 12 hex digits
    """
    clean_mac = ''.join(c for c in mac_address.upper() if c.isalnum())

    if len(clean_mac) != 12 or any(c not in '0123456789ABCDEF' for c in clean_mac):
        raise ValueError(f"Invalid MAC address: {mac_address}")

    return ':'.join(clean_mac[i:i+2] for i in range(0, 12, 2))


class Device(BaseModel):
    """A registered Ruuvi device."""
    model_config = ConfigDict(frozen=True)

    mac_address: str = Field(..., description="Hardware address of the device")
    device_id: str = Field(..., min_length=1, max_length=100, description="Stable device id used by the collector")
    display_name: Optional[str] = Field(None, max_length=100, description="Human-readable device name")

    @field_validator('mac_address')
    @classmethod
    def mac_address_normalized(cls, v):
        """Accept colon or dash separated addresses, stored upper-case with colons."""
        if not validate_mac_address(v.strip()):
            raise ValueError(f"Invalid MAC address format: {v}")
        return normalize_mac_address(v.strip())

    @field_validator('device_id')
    @classmethod
    def device_id_must_not_be_empty(cls, v):
        """Validate that the device id is not blank."""
        if not v.strip():
            raise ValueError('Device id cannot be empty')
        return v.strip()

    @field_validator('display_name')
    @classmethod
    def display_name_stripped(cls, v):
        if v is None:
            return v
        return v.strip() or None


class DeviceCollection(BaseModel):
    """Root structure of the devices file."""
    version: str = Field("1.0", description="Schema version")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Last update timestamp")
    devices: List[Device] = Field(default_factory=list, description="Registered devices")

    @field_validator('devices')
    @classmethod
    def mac_addresses_unique(cls, v):
        """A hardware address may only be registered once."""
        seen = set()
        for device in v:
            if device.mac_address in seen:
                raise ValueError(f'Duplicate MAC address: {device.mac_address}')
            seen.add(device.mac_address)
        return v

    def update_timestamp(self):
        """Update the last_updated timestamp."""
        self.last_updated = datetime.now(timezone.utc)
