"""
Process lifecycle wiring for the Ruuvi publishing agent.
Connects configuration, device registry, BLE listener, sink and agent, and
handles graceful shutdown on SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
from typing import Any, AsyncIterable, Dict, Optional

import psutil

from ..ble.scanner import RuuviBLEScanner, RuuviSensorData
from ..devices.registry import DeviceRegistry
from ..publisher.agent import PublishingAgent
from ..publisher.options import AgentOptions
from ..publisher.sink import PublishSink
from ..utils.config import Config
from ..utils.logging import PerformanceMonitor


class AgentRunner:
    """
    Runs one publishing agent until it is asked to stop.

    Features:
    - Device registry loading and hot reload
    - BLE listener as the default sample source
    - Signal handling for graceful shutdown
    - Performance summary on exit
    """

    def __init__(self,
                 config: Config,
                 options: AgentOptions,
                 sink: PublishSink,
                 registry: Optional[DeviceRegistry] = None,
                 samples: Optional[AsyncIterable[RuuviSensorData]] = None,
                 watch_devices: bool = True,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize runner.

        Args:
            config: Application configuration
            options: Validated agent options
            sink: Destination for published batches
            registry: Device registry (loaded from the configured file by default)
            samples: Sample stream (the BLE listener by default)
            watch_devices: Reload the registry when the devices file changes
            logger: Logger instance
        """
        self.config = config
        self.options = options
        self.sink = sink
        self.logger = logger or logging.getLogger('ruuvi.rest')
        self.registry = registry if registry is not None else DeviceRegistry(config.devices_file)
        self.watch_devices = watch_devices
        self.performance_monitor = PerformanceMonitor()

        self._samples = samples
        self.scanner: Optional[RuuviBLEScanner] = None
        self.agent: Optional[PublishingAgent] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_handlers: Dict[int, Any] = {}

    def request_stop(self):
        """Ask the agent to stop; safe to call from any thread."""
        if self._loop is None or self._stop_event is None:
            return
        self._loop.call_soon_threadsafe(self._stop_event.set)

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            """Handle shutdown signals."""
            signal_name = signal.Signals(signum).name
            self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
            self.request_stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, signal_handler)

    def _restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _create_sample_source(self) -> AsyncIterable[RuuviSensorData]:
        if self._samples is not None:
            return self._samples

        self.scanner = RuuviBLEScanner(
            adapter=self.config.ble_adapter,
            queue_size=self.config.ble_queue_size
        )
        return self.scanner.samples()

    def _log_summary(self):
        summary = self.performance_monitor.get_performance_summary()
        publishes = summary['publishes']
        self.logger.info(
            f"Session summary: {publishes['successful']}/{publishes['total']} publishes succeeded, "
            f"{publishes['total_records_published']} records published, "
            f"uptime {summary['uptime_seconds']:.0f}s"
        )

        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        self.logger.info(f"Memory usage at shutdown: {memory_mb:.1f} MB")

        if self.scanner is not None:
            self.logger.info(f"Listener statistics: {self.scanner.get_statistics()}")

    async def run(self) -> Dict[str, Any]:
        """
        Run the agent until the sample stream ends or a stop is requested.

        Returns:
            Dict[str, Any]: Final agent statistics

        Raises:
            DeviceRegistryFileError: If the devices file is invalid
            ScannerError: If the BLE listener fails
        """
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()

        self.agent = PublishingAgent(
            self.options,
            self.sink,
            get_device_info=self.registry.get_device_info,
            performance_monitor=self.performance_monitor
        )

        self._setup_signal_handlers()
        try:
            with self.performance_monitor.measure_time("registry_load"):
                self.registry.load()
            if self.watch_devices:
                self.registry.watch()

            await self.agent.run(self._create_sample_source(), self._stop_event)
        finally:
            self._restore_signal_handlers()
            self.registry.stop_watching()
            await self.sink.close()
            self._log_summary()

        return self.agent.get_statistics()
