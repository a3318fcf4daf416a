"""
Pytest configuration and shared fixtures for Ruuvi REST publisher tests.
Provides common test fixtures, mock objects, and test utilities.
"""

import json
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ruuvi_rest.devices.schema import Device
from ruuvi_rest.publisher.models import EnrichedSample
from ruuvi_rest.publisher.options import AgentOptions, RestAgentOptions
from tests.fixtures.sensor_data import KNOWN_MAC, UNKNOWN_MAC, make_sample
from tests.mocks.mock_publish_sink import RecordingSink


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.debug = Mock()
    logger.info = Mock()
    logger.warning = Mock()
    logger.error = Mock()
    return logger


@pytest.fixture
def sample_factory():
    """Factory for raw samples: sample_factory(mac, seconds, **values)."""
    return make_sample


@pytest.fixture
def enriched_factory():
    """Factory for enriched samples built from raw samples."""
    def _create(mac_address: str = KNOWN_MAC, seconds: float = 0.0,
                device_id: str = None, display_name: str = None, **values) -> EnrichedSample:
        return EnrichedSample.create(
            make_sample(mac_address, seconds, **values),
            device_id=device_id,
            display_name=display_name
        )
    return _create


@pytest.fixture
def known_device():
    return Device(mac_address=KNOWN_MAC, device_id="living-room", display_name="Living Room")


@pytest.fixture
def device_lookup(known_device):
    """Registry lookup knowing a single device."""
    def _lookup(mac_address: str):
        if mac_address.upper() == known_device.mac_address:
            return known_device
        return None
    return _lookup


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def size_options():
    """Size policy publishing every three samples."""
    return AgentOptions(publish_mode="size", batch_size=3)


@pytest.fixture
def rest_options():
    return RestAgentOptions(endpoint_url="https://collector.example.com/api/ruuvi")


@pytest.fixture
def devices_file(tmp_path):
    """Devices file with one registered device."""
    path = tmp_path / "config" / "devices.json"
    path.parent.mkdir()
    path.write_text(json.dumps({
        "version": "1.0",
        "devices": [
            {"mac_address": KNOWN_MAC.lower(), "device_id": "living-room", "display_name": "Living Room"}
        ]
    }))
    return path


@pytest.fixture
def clean_environment(monkeypatch, tmp_path):
    """Remove publisher environment variables and point file paths at tmp_path."""
    for key in [
        "RUUVI_REST_ENDPOINT_URL", "RUUVI_REST_PUBLISH_MODE", "RUUVI_REST_BATCH_SIZE",
        "RUUVI_REST_MAX_BATCH_AGE", "RUUVI_REST_AVERAGE_INTERVAL", "RUUVI_REST_SAMPLE_RATE",
        "RUUVI_REST_KNOWN_DEVICES_ONLY",
        "RUUVI_REST_TRUST_SSL", "RUUVI_REST_REQUEST_TIMEOUT", "RUUVI_REST_RETRY_ATTEMPTS",
        "BLE_ADAPTER", "BLE_QUEUE_SIZE", "DEVICES_FILE", "LOG_LEVEL", "LOG_DIR",
        "LOG_MAX_FILE_SIZE", "LOG_BACKUP_COUNT", "LOG_ENABLE_CONSOLE", "LOG_ENABLE_SYSLOG",
    ]:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
