"""
Per-device sample rate limiting.
"""

import time
from typing import Callable, Dict


class SampleRateLimiter:
    """
    Let through at most one reading per device every ``interval`` seconds.

    Readings arriving while a device's period is still open are rejected;
    the next reading after the period ends is accepted and opens a new one.
    An interval of zero or less accepts everything.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._accepted_at: Dict[str, float] = {}
        self.rejected = 0

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    def allow(self, mac_address: str) -> bool:
        """
        Decide whether a reading from the device should be kept.

        Args:
            mac_address: Hardware address of the device (case-insensitive)

        Returns:
            bool: True if the reading is accepted
        """
        if not self.enabled:
            return True

        key = mac_address.upper()
        now = self._clock()
        last = self._accepted_at.get(key)
        if last is not None and now - last < self.interval:
            self.rejected += 1
            return False

        self._accepted_at[key] = now
        return True
