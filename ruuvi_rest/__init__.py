"""
Ruuvi REST Publisher - forwards RuuviTag readings to an HTTP collector.

Listens for RuuviTag broadcasts via Bluetooth Low Energy (BLE) and posts them
to a remote HTTP endpoint, either one by one or as per-device averages.

Features:
- Per-device sample aggregation with time or size based batching
- REST and console publish sinks
- Known device registry with hot reload
- Clean final flush on shutdown
- Configuration management with environment variables
"""

__version__ = "1.0.0"
__author__ = "Ruuvi REST Publisher Team"
__description__ = "RuuviTag sample aggregation and REST publishing agent"

from .utils.config import Config, ConfigurationError
from .utils.logging import ProductionLogger, PerformanceMonitor
from .ble.scanner import RuuviBLEScanner, RuuviSensorData
from .devices.registry import DeviceRegistry
from .publisher.aggregator import SampleAggregator
from .publisher.agent import PublishingAgent
from .publisher.models import EnrichedSample
from .publisher.sink import ConsolePublishSink, PublishSink, RestPublishSink

__all__ = [
    "Config",
    "ConfigurationError",
    "ProductionLogger",
    "PerformanceMonitor",
    "RuuviBLEScanner",
    "RuuviSensorData",
    "DeviceRegistry",
    "SampleAggregator",
    "PublishingAgent",
    "EnrichedSample",
    "PublishSink",
    "RestPublishSink",
    "ConsolePublishSink",
]
