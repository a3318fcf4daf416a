"""
Publishing agent for Ruuvi samples.
Consumes the sample stream, aggregates per device and flushes batches to a sink.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterable, Callable, Dict, List, Optional, Set

from ..ble.scanner import RuuviSensorData
from ..devices.schema import Device
from ..utils.logging import PerformanceMonitor
from .aggregator import SampleAggregator
from .models import EnrichedSample
from .options import AgentOptions
from .sink import PublishSink
from .throttle import SampleRateLimiter
from .window import BatchWindow, SizeBatchWindow, TimeBatchWindow, create_batch_window


DeviceLookup = Callable[[str], Optional[Device]]


class AgentState(str, Enum):
    """Lifecycle states of a publishing agent."""
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class AgentStats:
    """Publishing agent statistics container."""
    samples_received: int = 0
    samples_discarded: int = 0
    samples_throttled: int = 0
    samples_aggregated: int = 0
    batches_published: int = 0
    batches_failed: int = 0
    records_published: int = 0
    records_dropped: int = 0
    last_publish_time: Optional[datetime] = None


class PublishingAgentError(Exception):
    """Raised when the agent is used incorrectly."""
    pass


class PublishingAgent:
    """
    Aggregates Ruuvi samples per device and publishes them in batches.

    Batches are drained from the aggregator before they are sent, so a failed
    publish drops the batch instead of retrying it; memory stays bounded by
    the batch window. Under the time policy an independent timer task
    flushes on every interval while the consumer keeps absorbing samples.
    The two only meet inside the aggregator's atomic operations.
    """

    def __init__(self,
                 options: AgentOptions,
                 sink: PublishSink,
                 get_device_info: Optional[DeviceLookup] = None,
                 aggregator: Optional[SampleAggregator] = None,
                 window: Optional[BatchWindow] = None,
                 rate_limiter: Optional[SampleRateLimiter] = None,
                 logger: Optional[logging.Logger] = None,
                 performance_monitor: Optional[PerformanceMonitor] = None):
        """
        Initialize publishing agent.

        Args:
            options: Validated agent options
            sink: Destination for drained batches
            get_device_info: Registry lookup from hardware address to device
            aggregator: Sample aggregator (a new one per run by default)
            window: Flush policy (selected from the options by default)
            rate_limiter: Per-device sample rate gate (built from ``sample_rate`` by default)
            logger: Logger instance
            performance_monitor: Records publish durations and outcomes
        """
        self.options = options
        self.sink = sink
        self.logger = logger or logging.getLogger('ruuvi.rest')
        self.performance_monitor = performance_monitor

        self._get_device_info = get_device_info
        self._aggregator = aggregator if aggregator is not None else SampleAggregator()
        self._window = window if window is not None else create_batch_window(options)
        self._rate_limiter = rate_limiter if rate_limiter is not None else SampleRateLimiter(options.sample_rate)

        self._state = AgentState.IDLE
        self._stats = AgentStats()
        self._inflight: Set[asyncio.Future] = set()

        self.logger.info(
            f"PublishingAgent initialized ({self._window.mode.value} policy, "
            f"known devices only: {options.known_devices_only}, "
            f"sample rate limit: {self._rate_limiter.interval if self._rate_limiter.enabled else 'none'})"
        )

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def aggregator(self) -> SampleAggregator:
        return self._aggregator

    def _absorb(self, sample: RuuviSensorData) -> bool:
        """
        Filter, enrich and aggregate one sample.

        Returns:
            bool: True if the sample was added to the aggregator
        """
        self._stats.samples_received += 1

        device = self._get_device_info(sample.mac_address) if self._get_device_info else None
        if device is None and self.options.known_devices_only:
            self._stats.samples_discarded += 1
            self.logger.debug(f"Discarded sample from unknown device {sample.mac_address}")
            return False

        if not self._rate_limiter.allow(sample.mac_address):
            self._stats.samples_throttled += 1
            return False

        self._aggregator.add(EnrichedSample.create(
            sample,
            device_id=device.device_id if device else None,
            display_name=device.display_name if device else None
        ))
        self._stats.samples_aggregated += 1
        return True

    async def _send(self, batch: List[EnrichedSample], reason: str) -> bool:
        """Send a drained batch; failures are logged and the batch is dropped."""
        start_time = time.monotonic()

        try:
            success = await self.sink.send(batch)
        except Exception as e:
            self.logger.error(f"Publish sink raised while sending {len(batch)} device records ({reason}): {e}")
            success = False

        duration = time.monotonic() - start_time
        if self.performance_monitor and batch:
            self.performance_monitor.log_publish(duration, len(batch), success)

        if success:
            if batch:
                self._stats.batches_published += 1
                self._stats.records_published += len(batch)
                self._stats.last_publish_time = datetime.now(timezone.utc)
                self.logger.info(f"Published {len(batch)} device records ({reason})")
        else:
            self._stats.batches_failed += 1
            self._stats.records_dropped += len(batch)
            self.logger.warning(f"Dropped batch of {len(batch)} device records after failed publish ({reason})")

        return success

    async def _publish(self, batch: List[EnrichedSample], reason: str) -> bool:
        """
        Send a batch as a tracked task.

        The send is shielded so that cancelling the caller does not abort a
        publish in flight; shutdown waits for tracked sends before the final
        drain.
        """
        task = asyncio.ensure_future(self._send(batch, reason))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def flush(self, reason: str = "manual") -> bool:
        """
        Drain the aggregator and publish whatever is pending.

        Returns:
            bool: True if the batch was published or nothing was pending
        """
        batch = self._aggregator.drain_averages(purge=True)
        if isinstance(self._window, SizeBatchWindow):
            self._window.reset()

        if not batch:
            return True

        return await self._publish(batch, reason)

    async def _consume(self, samples: AsyncIterable[RuuviSensorData], stop_event: asyncio.Event):
        """Absorb samples until the stream ends or a stop is requested."""
        iterator = samples.__aiter__()

        try:
            async for sample in iterator:
                absorbed = self._absorb(sample)

                if absorbed and isinstance(self._window, SizeBatchWindow) and self._window.record_sample():
                    await self.flush("batch size")

                if stop_event.is_set():
                    break
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _timer_loop(self, window: TimeBatchWindow):
        """Flush averaged samples on every tick."""
        skipped = window.skipped_ticks
        while True:
            await window.wait_for_tick()

            if window.skipped_ticks != skipped:
                self.logger.warning(
                    f"Publishing overran the averaging interval, skipped {window.skipped_ticks - skipped} ticks"
                )
                skipped = window.skipped_ticks

            if self._aggregator.count() == 0:
                self.logger.debug("Interval elapsed with no pending samples")
                continue

            await self.flush("interval")

    async def _stop_timer(self, timer_task: Optional[asyncio.Task]):
        if timer_task is None:
            return

        timer_task.cancel()
        results = await asyncio.gather(timer_task, return_exceptions=True)
        error = results[0]
        if isinstance(error, Exception):
            self.logger.error(f"Flush timer failed: {error}")

    async def _drain(self):
        """Final flush: wait for sends in flight, then publish everything pending once."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        batch = self._aggregator.drain_averages(purge=True)
        self.logger.info(f"Final flush of {len(batch)} device records")
        await self._send(batch, "shutdown")

    async def run(self, samples: AsyncIterable[RuuviSensorData],
                  stop_event: Optional[asyncio.Event] = None):
        """
        Consume samples until the stream ends, a stop is requested or the
        task is cancelled, then perform exactly one final flush.

        Args:
            samples: Asynchronous stream of raw samples
            stop_event: Event requesting a graceful stop

        Raises:
            PublishingAgentError: If the agent has already been run
            Exception: Any error raised by the sample stream, after the final flush
        """
        if self._state is not AgentState.IDLE:
            raise PublishingAgentError(f"Agent cannot be run in state {self._state.value}")

        stop_event = stop_event or asyncio.Event()
        self._state = AgentState.RUNNING
        self.logger.info("Publishing agent started")

        timer_task = None
        if isinstance(self._window, TimeBatchWindow):
            timer_task = asyncio.ensure_future(self._timer_loop(self._window))
        consumer = asyncio.ensure_future(self._consume(samples, stop_event))
        stop_waiter = asyncio.ensure_future(stop_event.wait())

        cancelled = False
        stream_error: Optional[BaseException] = None

        try:
            try:
                await asyncio.wait({consumer, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                cancelled = True

            stop_waiter.cancel()
            if not consumer.done():
                consumer.cancel()
            await asyncio.gather(consumer, stop_waiter, return_exceptions=True)

            if not consumer.cancelled() and consumer.exception() is not None:
                stream_error = consumer.exception()
                self.logger.error(f"Sample stream terminated: {stream_error}")

            self._state = AgentState.DRAINING
            self.logger.info("Stopping publishing agent")
            await self._stop_timer(timer_task)
            await self._drain()

        finally:
            if timer_task is not None and not timer_task.done():
                timer_task.cancel()
            self._state = AgentState.STOPPED
            self.logger.info(
                f"Publishing agent stopped ({self._stats.records_published} records published, "
                f"{self._stats.records_dropped} dropped)"
            )

        if stream_error is not None:
            raise stream_error
        if cancelled:
            raise asyncio.CancelledError()

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get agent statistics.

        Returns:
            Dict[str, Any]: Counters, pending sample count and state
        """
        stats = asdict(self._stats)
        stats["pending_samples"] = self._aggregator.count()
        stats["pending_devices"] = self._aggregator.device_count()
        stats["state"] = self._state.value
        stats["publish_mode"] = self._window.mode.value
        return stats
