"""
Mock bleak scanner for testing the Ruuvi listener without hardware.
Replays prepared advertisements through the detection callback once started.
"""

import asyncio
from typing import Dict, List, Optional, Tuple


class MockBLEDevice:
    """Mock BLE device that mimics bleak's BLEDevice."""

    def __init__(self, address: str, name: str = None):
        self.address = address
        self.name = name or f"Ruuvi {address[-5:].replace(':', '')}"

    def __repr__(self):
        return f"MockBLEDevice(address='{self.address}', name='{self.name}')"


class MockAdvertisementData:
    """Mock advertisement data that mimics bleak's AdvertisementData."""

    def __init__(self, manufacturer_data: Dict[int, bytes], rssi: int = -65, local_name: str = None):
        self.manufacturer_data = manufacturer_data
        self.rssi = rssi
        self.local_name = local_name
        self.service_data = {}
        self.service_uuids = []


class MockBleakScanner:
    """
    Mock BleakScanner.

    ``start`` schedules the prepared advertisements on the running loop, one
    per ``interval`` seconds, so the listener sees them as real detections.
    """

    def __init__(self,
                 advertisements: List[Tuple[MockBLEDevice, MockAdvertisementData]],
                 detection_callback=None,
                 adapter=None,
                 interval: float = 0.0,
                 start_error: Optional[Exception] = None):
        self.advertisements = advertisements
        self.detection_callback = detection_callback
        self.adapter = adapter
        self.interval = interval
        self.start_error = start_error
        self.start_calls = 0
        self.stop_calls = 0
        self._task: Optional[asyncio.Task] = None

    async def _replay(self):
        for device, advertisement in self.advertisements:
            if self.interval:
                await asyncio.sleep(self.interval)
            else:
                await asyncio.sleep(0)
            self.detection_callback(device, advertisement)

    async def start(self):
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        self._task = asyncio.ensure_future(self._replay())

    async def stop(self):
        self.stop_calls += 1
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)


class MockBleakScannerFactory:
    """Callable passed as ``scanner_factory``; remembers the scanners it created."""

    def __init__(self, advertisements=None, interval: float = 0.0, start_errors: Optional[List[Exception]] = None):
        self.advertisements = advertisements or []
        self.interval = interval
        self.start_errors = list(start_errors or [])
        self.scanners: List[MockBleakScanner] = []

    def __call__(self, detection_callback=None, adapter=None):
        start_error = self.start_errors.pop(0) if self.start_errors else None
        scanner = MockBleakScanner(
            self.advertisements,
            detection_callback=detection_callback,
            adapter=adapter,
            interval=self.interval,
            start_error=start_error
        )
        self.scanners.append(scanner)
        return scanner
