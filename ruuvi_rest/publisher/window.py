"""
Batch window policies deciding when pending samples are flushed.
"""

import asyncio
import time
from abc import ABC
from typing import Awaitable, Callable, Optional

from .options import AgentOptions, PublishMode


class BatchWindow(ABC):
    """Flush policy selected once per agent run."""
    mode: PublishMode


class SizeBatchWindow(BatchWindow):
    """
    Flush once a number of samples has been absorbed since the last flush.

    With ``max_batch_age`` set, a batch whose first sample is older than the
    age is due as well; the age is only checked when a sample arrives.
    """

    mode = PublishMode.SIZE

    def __init__(self,
                 max_batch_size: int,
                 max_batch_age: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.max_batch_size = max(1, max_batch_size)
        self.max_batch_age = max_batch_age
        self._clock = clock
        self._pending = 0
        self._batch_started_at: Optional[float] = None

    @property
    def pending(self) -> int:
        return self._pending

    def record_sample(self) -> bool:
        """
        Count an absorbed sample.

        Returns:
            bool: True if the batch is due for a flush
        """
        if self._pending == 0:
            self._batch_started_at = self._clock()
        self._pending += 1
        return self.is_due()

    def is_due(self) -> bool:
        if self._pending >= self.max_batch_size:
            return True
        if self.max_batch_age is None or self._batch_started_at is None:
            return False
        return self._clock() - self._batch_started_at >= self.max_batch_age

    def reset(self):
        """Start a new batch."""
        self._pending = 0
        self._batch_started_at = None


class TimeBatchWindow(BatchWindow):
    """
    Flush on a fixed interval; a tick with nothing pending is a no-op for the caller.

    Ticks follow a fixed grid started by the first wait, so time the caller
    spends publishing between ticks does not push later ticks back. If the
    caller overruns by a whole interval or more, the missed ticks are skipped
    rather than fired back to back.
    """

    mode = PublishMode.TIME

    def __init__(self,
                 interval: float,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.interval = max(1, interval)
        self._sleep = sleep
        self._clock = clock
        self._deadline: Optional[float] = None
        self.ticks = 0
        self.skipped_ticks = 0

    async def wait_for_tick(self):
        """Suspend until the next tick."""
        now = self._clock()
        if self._deadline is None:
            self._deadline = now + self.interval
        elif now - self._deadline >= self.interval:
            skipped = int((now - self._deadline) // self.interval)
            self._deadline += skipped * self.interval
            self.skipped_ticks += skipped

        await self._sleep(max(0.0, self._deadline - now))
        self._deadline += self.interval
        self.ticks += 1


def create_batch_window(options: AgentOptions) -> BatchWindow:
    """
    Select the flush policy for a run.

    A batch size of zero or less publishes every sample immediately.
    """
    if options.publish_mode is PublishMode.TIME:
        return TimeBatchWindow(options.effective_average_interval)

    return SizeBatchWindow(options.effective_batch_size, options.max_batch_age)
