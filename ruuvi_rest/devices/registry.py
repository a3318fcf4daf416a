"""
Known device registry backed by a JSON file.
Provides fast in-memory lookups for the ingestion path and hot reload on file changes.
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .schema import Device, DeviceCollection, normalize_mac_address


class DeviceRegistryError(Exception):
    """Base exception for device registry operations."""
    pass


class DeviceRegistryFileError(DeviceRegistryError):
    """Exception for devices file errors."""
    pass


class DevicesFileHandler(FileSystemEventHandler):
    """File system event handler reloading the registry when its file changes."""

    def __init__(self, registry: 'DeviceRegistry', reload_cooldown: float = 1.0):
        self.registry = registry
        self.last_reload: Optional[float] = None
        self.reload_cooldown = reload_cooldown

    def _handle(self, path: str):
        if Path(path).name != self.registry.devices_file.name:
            return

        current_time = time.monotonic()
        if self.last_reload is None or current_time - self.last_reload > self.reload_cooldown:
            self.last_reload = current_time
            self.registry.reload()

    def on_modified(self, event):
        if not event.is_directory:
            self._handle(event.src_path)

    def on_created(self, event):
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event):
        # Editors and save() replace the file atomically
        if not event.is_directory:
            self._handle(event.dest_path)


class DeviceRegistry:
    """
    Registry of known Ruuvi devices.

    Lookups are served from memory under a lock, so they can be called from
    the ingestion path while the file watcher reloads the registry.
    """

    def __init__(self, devices_file: Union[str, Path], logger: Optional[logging.Logger] = None):
        """
        Initialize device registry.

        Args:
            devices_file: Path to the devices JSON file
            logger: Logger instance
        """
        self.devices_file = Path(devices_file)
        self.logger = logger or logging.getLogger('ruuvi.devices')
        self._collection = DeviceCollection()
        self._devices: Dict[str, Device] = {}
        self._lock = threading.RLock()
        self._observer: Optional[Observer] = None

        self.logger.info(f"DeviceRegistry initialized with file: {self.devices_file}")

    def _read_file(self) -> DeviceCollection:
        """
        Read and validate the devices file.

        Raises:
            DeviceRegistryFileError: If the file cannot be read or is invalid
        """
        if not self.devices_file.exists():
            self.logger.info(f"Devices file {self.devices_file} does not exist, registry is empty")
            return DeviceCollection()

        try:
            with open(self.devices_file, 'r') as f:
                data = json.load(f)
            return DeviceCollection(**data)
        except json.JSONDecodeError as e:
            raise DeviceRegistryFileError(f"Invalid JSON in devices file {self.devices_file}: {e}") from e
        except ValidationError as e:
            raise DeviceRegistryFileError(f"Invalid devices file {self.devices_file}: {e}") from e
        except (OSError, TypeError) as e:
            raise DeviceRegistryFileError(f"Failed to read devices file {self.devices_file}: {e}") from e

    def _apply(self, collection: DeviceCollection):
        with self._lock:
            self._collection = collection
            self._devices = {device.mac_address: device for device in collection.devices}

    def load(self) -> List[Device]:
        """
        Load the registry from its file.

        Returns:
            List[Device]: Registered devices

        Raises:
            DeviceRegistryFileError: If the file cannot be read or is invalid
        """
        self._apply(self._read_file())
        self.logger.info(f"Loaded {len(self._devices)} known devices")
        return self.list_devices()

    def reload(self) -> bool:
        """
        Reload the registry, keeping the current devices if the file is invalid.

        Returns:
            bool: True if the registry was reloaded
        """
        try:
            self._apply(self._read_file())
        except DeviceRegistryFileError as e:
            self.logger.error(f"Device registry reload failed, keeping {len(self._devices)} devices: {e}")
            return False

        self.logger.info(f"Reloaded {len(self._devices)} known devices")
        return True

    def save(self):
        """
        Save the registry atomically.

        Raises:
            DeviceRegistryFileError: If the file cannot be written
        """
        temp_file = self.devices_file.with_suffix('.tmp')

        try:
            self.devices_file.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                self._collection.update_timestamp()
                content = self._collection.model_dump(mode='json')

            with open(temp_file, 'w') as f:
                json.dump(content, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())

            temp_file.replace(self.devices_file)
            self.logger.debug(f"Saved {len(content['devices'])} devices")

        except OSError as e:
            self.logger.error(f"Failed to save devices file: {e}")
            if temp_file.exists():
                temp_file.unlink()
            raise DeviceRegistryFileError(f"Failed to save devices file: {e}") from e

    def get_device_info(self, mac_address: str) -> Optional[Device]:
        """
        Look up a device by hardware address (case-insensitive).

        Args:
            mac_address: Hardware address of the sample

        Returns:
            Optional[Device]: Registered device or None if unknown
        """
        try:
            key = normalize_mac_address(mac_address)
        except ValueError:
            return None

        with self._lock:
            return self._devices.get(key)

    def is_known(self, mac_address: str) -> bool:
        return self.get_device_info(mac_address) is not None

    def list_devices(self) -> List[Device]:
        with self._lock:
            return list(self._devices.values())

    def add_device(self, mac_address: str, device_id: str, display_name: Optional[str] = None) -> Device:
        """
        Register a device and save the registry.

        Raises:
            DeviceRegistryError: If the device is invalid or already registered
        """
        try:
            device = Device(mac_address=mac_address, device_id=device_id, display_name=display_name)
        except ValidationError as e:
            raise DeviceRegistryError(f"Invalid device: {e}") from e

        with self._lock:
            if device.mac_address in self._devices:
                raise DeviceRegistryError(f"Device with MAC {device.mac_address} already exists")
            devices = list(self._collection.devices) + [device]
            self._apply(self._collection.model_copy(update={"devices": devices}))

        self.save()
        self.logger.info(f"Added device: {device.device_id} ({device.mac_address})")
        return device

    def remove_device(self, mac_address: str) -> bool:
        """
        Remove a device and save the registry.

        Returns:
            bool: True if the device was removed, False if it was not registered
        """
        try:
            key = normalize_mac_address(mac_address)
        except ValueError as e:
            raise DeviceRegistryError(str(e)) from e

        with self._lock:
            if key not in self._devices:
                return False
            devices = [device for device in self._collection.devices if device.mac_address != key]
            self._apply(self._collection.model_copy(update={"devices": devices}))

        self.save()
        self.logger.info(f"Removed device: {key}")
        return True

    def watch(self):
        """Reload the registry whenever its file changes."""
        if self._observer is not None:
            return

        watch_dir = self.devices_file.parent
        if not watch_dir.exists():
            self.logger.warning(f"Devices directory {watch_dir} does not exist, hot reload disabled")
            return

        self._observer = Observer()
        self._observer.schedule(DevicesFileHandler(self), str(watch_dir), recursive=False)
        self._observer.start()
        self.logger.info(f"Watching {self.devices_file} for changes")

    def stop_watching(self):
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join()
        self._observer = None
        self.logger.info("Stopped watching devices file")

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)
