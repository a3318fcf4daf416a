"""
Bluetooth Low Energy listener for Ruuvi sensors.
Parses RuuviTag advertisements (data formats 3 and 5) and exposes them as an
asynchronous stream of immutable samples.
"""

import asyncio
import logging
import struct
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData


RUUVI_MANUFACTURER_ID = 0x0499


class RuuviDataFormat(Enum):
    """Ruuvi data format versions."""
    FORMAT_3 = 3
    FORMAT_5 = 5


@dataclass(frozen=True)
class RuuviSensorData:
    """A single parsed Ruuvi advertisement."""
    mac_address: str
    timestamp: datetime
    data_format: RuuviDataFormat
    temperature: Optional[float] = None  # Celsius
    humidity: Optional[float] = None     # %RH
    pressure: Optional[float] = None     # hPa
    acceleration_x: Optional[float] = None  # g
    acceleration_y: Optional[float] = None  # g
    acceleration_z: Optional[float] = None  # g
    battery_voltage: Optional[float] = None  # V
    tx_power: Optional[int] = None       # dBm
    movement_counter: Optional[int] = None
    measurement_sequence: Optional[int] = None
    rssi: Optional[int] = None           # dBm
    raw_data: Optional[bytes] = None


class ScannerError(Exception):
    """Base exception for scanner operations."""
    pass


class ScannerInitError(ScannerError):
    """Exception for scanner initialization errors."""
    pass


class ScannerOperationError(ScannerError):
    """Exception for scanner operation errors."""
    pass


def parse_format_3(data: bytes, mac_address: str = "",
                   timestamp: Optional[datetime] = None) -> Optional[RuuviSensorData]:
    """
    Parse Ruuvi data format 3 (RAWv1).

    Layout: format, humidity (0.5 %), temperature (sign bit + integer part,
    then 1/100 fraction), pressure (Pa - 50000), acceleration X/Y/Z (mg),
    battery (mV). All multi-byte values are big-endian.
    """
    if len(data) < 14:
        return None

    humidity = data[1] / 2.0
    temperature = (data[2] & 0x7F) + data[3] / 100.0
    if data[2] & 0x80:
        temperature = -temperature

    pressure, acc_x, acc_y, acc_z, battery_mv = struct.unpack('>HhhhH', data[4:14])

    return RuuviSensorData(
        mac_address=mac_address,
        timestamp=timestamp or datetime.now(timezone.utc),
        data_format=RuuviDataFormat.FORMAT_3,
        temperature=round(temperature, 2),
        humidity=humidity,
        pressure=(pressure + 50000) / 100.0,
        acceleration_x=acc_x / 1000.0,
        acceleration_y=acc_y / 1000.0,
        acceleration_z=acc_z / 1000.0,
        battery_voltage=battery_mv / 1000.0,
        raw_data=bytes(data)
    )


def parse_format_5(data: bytes, mac_address: str = "",
                   timestamp: Optional[datetime] = None) -> Optional[RuuviSensorData]:
    """
    Parse Ruuvi data format 5 (RAWv2).

    Values equal to the format's "not available" marker are returned as None.
    The MAC address embedded in the payload is used when the caller does not
    supply one.
    """
    if len(data) < 24:
        return None

    (temp_raw, humidity_raw, pressure_raw, acc_x, acc_y, acc_z,
     power_info, movement, sequence) = struct.unpack('>hHHhhhHBH', data[1:18])

    battery_raw = power_info >> 5
    tx_power_raw = power_info & 0x1F
    embedded_mac = ':'.join(f'{b:02X}' for b in data[18:24])

    return RuuviSensorData(
        mac_address=mac_address or embedded_mac,
        timestamp=timestamp or datetime.now(timezone.utc),
        data_format=RuuviDataFormat.FORMAT_5,
        temperature=None if temp_raw == -32768 else round(temp_raw * 0.005, 3),
        humidity=None if humidity_raw == 0xFFFF else round(humidity_raw * 0.0025, 4),
        pressure=None if pressure_raw == 0xFFFF else (pressure_raw + 50000) / 100.0,
        acceleration_x=None if acc_x == -32768 else acc_x / 1000.0,
        acceleration_y=None if acc_y == -32768 else acc_y / 1000.0,
        acceleration_z=None if acc_z == -32768 else acc_z / 1000.0,
        battery_voltage=None if battery_raw == 0x7FF else (battery_raw + 1600) / 1000.0,
        tx_power=None if tx_power_raw == 0x1F else tx_power_raw * 2 - 40,
        movement_counter=None if movement == 0xFF else movement,
        measurement_sequence=None if sequence == 0xFFFF else sequence,
        raw_data=bytes(data)
    )


_PARSERS = {
    RuuviDataFormat.FORMAT_3.value: parse_format_3,
    RuuviDataFormat.FORMAT_5.value: parse_format_5,
}


def parse_manufacturer_data(manufacturer_data: Dict[int, bytes], mac_address: str = "",
                            rssi: Optional[int] = None) -> Optional[RuuviSensorData]:
    """
    Parse manufacturer data from a BLE advertisement.

    Returns:
        Optional[RuuviSensorData]: Parsed sample, or None if the payload is not
        a supported Ruuvi broadcast
    """
    data = manufacturer_data.get(RUUVI_MANUFACTURER_ID)
    if not data:
        return None

    parser = _PARSERS.get(data[0])
    if parser is None:
        return None

    sample = parser(data, mac_address.upper())
    if sample is not None and rssi is not None:
        sample = replace(sample, rssi=rssi)
    return sample


class RuuviBLEScanner:
    """
    Passive BLE listener for Ruuvi sensors.

    Advertisements are parsed in the bleak detection callback and handed to
    consumers through a bounded queue. When the queue is full the newest
    advertisement is dropped; the radio is never throttled.
    """

    def __init__(self,
                 adapter: str = "auto",
                 queue_size: int = 1000,
                 retry_attempts: int = 3,
                 retry_delay: float = 2.0,
                 logger: Optional[logging.Logger] = None,
                 scanner_factory: Callable[..., Any] = BleakScanner):
        """
        Initialize BLE listener.

        Args:
            adapter: Bluetooth adapter name, or "auto" for the system default
            queue_size: Maximum number of parsed samples waiting for a consumer
            retry_attempts: Scanner start attempts before giving up
            retry_delay: Seconds between start attempts
            logger: Logger instance
            scanner_factory: Callable creating the bleak scanner
        """
        self.adapter = adapter
        self.queue_size = queue_size
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.logger = logger or logging.getLogger('ruuvi.ble')
        self._scanner_factory = scanner_factory

        self._queue: Optional[asyncio.Queue] = None
        self._is_scanning = False

        # Statistics
        self._advertisements = 0
        self._samples_parsed = 0
        self._samples_dropped = 0
        self._last_sample_time: Optional[datetime] = None

        self.logger.info(f"RuuviBLEScanner initialized with adapter: {self.adapter}")

    def _detection_callback(self, device: BLEDevice, advertisement_data: AdvertisementData):
        """Parse a detected advertisement and queue it for the consumer."""
        self._advertisements += 1

        sample = parse_manufacturer_data(
            advertisement_data.manufacturer_data,
            mac_address=device.address,
            rssi=advertisement_data.rssi
        )
        if sample is None or self._queue is None:
            return

        self._samples_parsed += 1
        self._last_sample_time = sample.timestamp

        try:
            self._queue.put_nowait(sample)
        except asyncio.QueueFull:
            self._samples_dropped += 1
            self.logger.warning(f"Sample queue full, dropped sample from {sample.mac_address}")

    async def _start_scanner(self):
        """
        Create and start the bleak scanner with retry logic.

        Raises:
            ScannerInitError: If the scanner cannot be started
        """
        adapter = None if self.adapter == "auto" else self.adapter

        for attempt in range(self.retry_attempts):
            try:
                scanner = self._scanner_factory(
                    detection_callback=self._detection_callback,
                    adapter=adapter
                )
                await scanner.start()
                self._is_scanning = True
                self.logger.info(f"BLE listening started (attempt {attempt + 1})")
                return scanner

            except Exception as e:
                self.logger.warning(f"Scanner start attempt {attempt + 1} failed: {e}")
                if attempt < self.retry_attempts - 1:
                    await asyncio.sleep(self.retry_delay)
                else:
                    raise ScannerInitError(
                        f"Failed to start scanner after {self.retry_attempts} attempts: {e}"
                    ) from e

    async def _stop_scanner(self, scanner):
        if not self._is_scanning:
            return
        try:
            await scanner.stop()
            self.logger.info("BLE listening stopped")
        except Exception as e:
            self.logger.warning(f"Error stopping scanner: {e}")
        finally:
            self._is_scanning = False

    async def samples(self) -> AsyncIterator[RuuviSensorData]:
        """
        Listen for Ruuvi advertisements until the consumer stops iterating.

        Yields:
            RuuviSensorData: One sample per observed Ruuvi broadcast

        Raises:
            ScannerInitError: If the scanner cannot be started
        """
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        scanner = await self._start_scanner()

        try:
            while True:
                yield await self._queue.get()
        finally:
            await self._stop_scanner(scanner)
            self._queue = None

    def is_scanning(self) -> bool:
        return self._is_scanning

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get listener statistics.

        Returns:
            Dict[str, Any]: Listener statistics
        """
        return {
            "advertisements": self._advertisements,
            "samples_parsed": self._samples_parsed,
            "samples_dropped": self._samples_dropped,
            "last_sample_time": self._last_sample_time,
            "is_scanning": self._is_scanning,
            "queue_size": self._queue.qsize() if self._queue else 0,
        }
