"""
Per-device sample aggregation for the publishing engine.
Keeps running sums for every device and turns them into averaged samples.
"""

import threading
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from .models import NUMERIC_FIELDS, EnrichedSample


@dataclass
class AggregationBucket:
    """Running accumulation of the pending samples of one device."""
    latest: EnrichedSample
    count: int = 0
    sums: Dict[str, float] = field(default_factory=dict)
    value_counts: Dict[str, int] = field(default_factory=dict)

    def absorb(self, sample: EnrichedSample):
        """Add a sample to the running sums."""
        self.count += 1

        for name in NUMERIC_FIELDS:
            value = getattr(sample, name)
            if value is None:
                continue
            self.sums[name] = self.sums.get(name, 0.0) + value
            self.value_counts[name] = self.value_counts.get(name, 0) + 1

        # Ties go to the sample added last
        if sample.timestamp >= self.latest.timestamp:
            self.latest = sample

    def average(self) -> EnrichedSample:
        """
        Compute the averaged sample of this bucket.

        A single sample is returned unchanged. Otherwise every numeric field
        is the mean of the values seen for it, and identity fields come from
        the sample with the latest timestamp.
        """
        if self.count == 1:
            return self.latest

        averages: Dict[str, Optional[float]] = {}
        for name in NUMERIC_FIELDS:
            value_count = self.value_counts.get(name, 0)
            averages[name] = self.sums[name] / value_count if value_count else None

        return replace(self.latest, **averages)


class SampleAggregator:
    """
    Thread-safe per-device sample accumulator.

    All operations are atomic with respect to each other. A purging drain
    reads and clears in one critical section, so a sample is either part of
    the drained batch or left pending for the next one.
    """

    def __init__(self):
        self._buckets: Dict[str, AggregationBucket] = {}
        self._lock = threading.Lock()

    def add(self, sample: EnrichedSample):
        """Absorb a sample into its device bucket, creating the bucket if needed."""
        key = sample.mac_address.upper()

        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = AggregationBucket(latest=sample)
                self._buckets[key] = bucket
            bucket.absorb(sample)

    def count(self) -> int:
        """Total number of pending samples across all devices."""
        with self._lock:
            return sum(bucket.count for bucket in self._buckets.values())

    def device_count(self) -> int:
        """Number of devices with pending samples."""
        with self._lock:
            return len(self._buckets)

    def drain_averages(self, purge: bool = True) -> List[EnrichedSample]:
        """
        Get one averaged sample per device with pending samples.

        Args:
            purge: Remove every bucket as part of the same critical section

        Returns:
            List[EnrichedSample]: Averaged samples in no particular device order
        """
        with self._lock:
            averages = [bucket.average() for bucket in self._buckets.values()]
            if purge:
                self._buckets.clear()

        return averages

    def purge_all(self):
        """Discard all pending samples."""
        with self._lock:
            self._buckets.clear()
