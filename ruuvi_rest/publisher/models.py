"""
Sample values handled by the publishing engine.
Defines the enriched sample and its JSON payload representation.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..ble.scanner import RuuviDataFormat, RuuviSensorData


# Fields that are averaged when several samples of one device are aggregated.
NUMERIC_FIELDS = (
    "temperature",
    "humidity",
    "pressure",
    "acceleration_x",
    "acceleration_y",
    "acceleration_z",
    "battery_voltage",
    "tx_power",
    "rssi",
)

# Payload key for every sample attribute, in output order.
PAYLOAD_KEYS = {
    "mac_address": "macAddress",
    "device_id": "deviceId",
    "display_name": "displayName",
    "timestamp": "timestamp",
    "data_format": "dataFormat",
    "temperature": "temperature",
    "humidity": "humidity",
    "pressure": "pressure",
    "acceleration_x": "accelerationX",
    "acceleration_y": "accelerationY",
    "acceleration_z": "accelerationZ",
    "battery_voltage": "batteryVoltage",
    "tx_power": "txPower",
    "rssi": "signalStrength",
    "movement_counter": "movementCounter",
    "measurement_sequence": "measurementSequence",
}


@dataclass(frozen=True)
class EnrichedSample:
    """A Ruuvi sample stamped with the identity of a known device."""
    mac_address: str
    timestamp: datetime
    data_format: RuuviDataFormat
    device_id: Optional[str] = None
    display_name: Optional[str] = None
    temperature: Optional[float] = None  # Celsius
    humidity: Optional[float] = None     # %RH
    pressure: Optional[float] = None     # hPa
    acceleration_x: Optional[float] = None  # g
    acceleration_y: Optional[float] = None  # g
    acceleration_z: Optional[float] = None  # g
    battery_voltage: Optional[float] = None  # V
    tx_power: Optional[float] = None     # dBm
    rssi: Optional[float] = None         # dBm
    movement_counter: Optional[int] = None
    measurement_sequence: Optional[int] = None

    @classmethod
    def create(cls, sample: RuuviSensorData,
               device_id: Optional[str] = None,
               display_name: Optional[str] = None) -> "EnrichedSample":
        """
        Build an enriched sample from a raw listener sample.

        Args:
            sample: Parsed Ruuvi advertisement
            device_id: Stable id of the device, None when unknown
            display_name: Display name of the device, None when unknown

        Returns:
            EnrichedSample: New immutable sample
        """
        return cls(
            mac_address=sample.mac_address,
            timestamp=sample.timestamp,
            data_format=sample.data_format,
            device_id=device_id,
            display_name=display_name,
            temperature=sample.temperature,
            humidity=sample.humidity,
            pressure=sample.pressure,
            acceleration_x=sample.acceleration_x,
            acceleration_y=sample.acceleration_y,
            acceleration_z=sample.acceleration_z,
            battery_voltage=sample.battery_voltage,
            tx_power=sample.tx_power,
            rssi=sample.rssi,
            movement_counter=sample.movement_counter,
            measurement_sequence=sample.measurement_sequence,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Lower camel case JSON object; attributes without a value are omitted."""
        payload = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, RuuviDataFormat):
                value = value.value
            payload[PAYLOAD_KEYS[field.name]] = value
        return payload


def serialize_batch(batch: Sequence[EnrichedSample]) -> List[Dict[str, Any]]:
    """Convert a batch into the JSON array posted to the collector."""
    return [sample.to_payload() for sample in batch]
