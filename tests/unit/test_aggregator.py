"""
Unit tests for per-device sample aggregation.
"""

import threading

import pytest

from ruuvi_rest.publisher.aggregator import SampleAggregator


class TestSampleAggregator:
    """Test suite for SampleAggregator."""

    def setup_method(self):
        self.aggregator = SampleAggregator()

    def test_empty_aggregator(self):
        assert self.aggregator.count() == 0
        assert self.aggregator.device_count() == 0
        assert self.aggregator.drain_averages(purge=True) == []

    def test_add_creates_bucket_per_device(self, enriched_factory):
        self.aggregator.add(enriched_factory("AA:AA:AA:AA:AA:01"))
        self.aggregator.add(enriched_factory("AA:AA:AA:AA:AA:01", seconds=1))
        self.aggregator.add(enriched_factory("AA:AA:AA:AA:AA:02"))

        assert self.aggregator.count() == 3
        assert self.aggregator.device_count() == 2

    def test_device_key_is_case_insensitive(self, enriched_factory):
        self.aggregator.add(enriched_factory("aa:bb:cc:dd:ee:ff"))
        self.aggregator.add(enriched_factory("AA:BB:CC:DD:EE:FF", seconds=1))

        assert self.aggregator.device_count() == 1

    def test_single_sample_is_returned_unchanged(self, enriched_factory):
        sample = enriched_factory(temperature=21.37, device_id="kitchen", display_name="Kitchen")
        self.aggregator.add(sample)

        drained = self.aggregator.drain_averages(purge=True)

        assert drained == [sample]
        assert drained[0] is sample

    def test_numeric_fields_are_averaged(self, enriched_factory):
        values = [
            dict(temperature=20.0, humidity=40.0, pressure=1000.0, battery_voltage=3.0, rssi=-60, tx_power=4),
            dict(temperature=21.0, humidity=50.0, pressure=1010.0, battery_voltage=2.9, rssi=-70, tx_power=4),
            dict(temperature=22.0, humidity=60.0, pressure=1020.0, battery_voltage=2.8, rssi=-80, tx_power=0),
        ]
        for i, fields in enumerate(values):
            self.aggregator.add(enriched_factory(seconds=i, acceleration_x=i * 0.1, **fields))

        average, = self.aggregator.drain_averages(purge=True)

        assert average.temperature == pytest.approx(21.0)
        assert average.humidity == pytest.approx(50.0)
        assert average.pressure == pytest.approx(1010.0)
        assert average.battery_voltage == pytest.approx(2.9)
        assert average.rssi == pytest.approx(-70.0)
        assert average.tx_power == pytest.approx(8 / 3)
        assert average.acceleration_x == pytest.approx(0.1)
        assert average.acceleration_z == pytest.approx(1.0)

    def test_metadata_taken_from_latest_timestamp(self, enriched_factory):
        newest = enriched_factory(seconds=30, device_id="new-id", display_name="New",
                                  movement_counter=9, measurement_sequence=300)
        self.aggregator.add(enriched_factory(seconds=10, device_id="old-id", display_name="Old",
                                             movement_counter=1, measurement_sequence=100))
        self.aggregator.add(newest)
        # Arrives last but was measured earlier
        self.aggregator.add(enriched_factory(seconds=20, device_id="mid-id", display_name="Mid",
                                             movement_counter=5, measurement_sequence=200))

        average, = self.aggregator.drain_averages(purge=True)

        assert average.timestamp == newest.timestamp
        assert average.device_id == "new-id"
        assert average.display_name == "New"
        assert average.movement_counter == 9
        assert average.measurement_sequence == 300
        assert average.mac_address == newest.mac_address
        assert average.data_format == newest.data_format

    def test_timestamp_tie_prefers_last_added(self, enriched_factory):
        self.aggregator.add(enriched_factory(seconds=5, measurement_sequence=1))
        self.aggregator.add(enriched_factory(seconds=5, measurement_sequence=2))

        average, = self.aggregator.drain_averages(purge=True)

        assert average.measurement_sequence == 2

    def test_missing_values_do_not_skew_mean(self, enriched_factory):
        self.aggregator.add(enriched_factory(seconds=0, temperature=20.0, pressure=None))
        self.aggregator.add(enriched_factory(seconds=1, temperature=None, pressure=None))
        self.aggregator.add(enriched_factory(seconds=2, temperature=24.0, pressure=None))

        average, = self.aggregator.drain_averages(purge=True)

        assert average.temperature == pytest.approx(22.0)
        assert average.pressure is None

    def test_inputs_are_not_mutated(self, enriched_factory):
        first = enriched_factory(seconds=0, temperature=20.0)
        second = enriched_factory(seconds=1, temperature=30.0)
        self.aggregator.add(first)
        self.aggregator.add(second)

        average, = self.aggregator.drain_averages(purge=True)

        assert average is not first and average is not second
        assert first.temperature == 20.0
        assert second.temperature == 30.0

    def test_purging_drain_clears_state(self, enriched_factory):
        self.aggregator.add(enriched_factory("AA:AA:AA:AA:AA:01"))
        self.aggregator.add(enriched_factory("AA:AA:AA:AA:AA:02"))

        drained = self.aggregator.drain_averages(purge=True)

        assert len(drained) == 2
        assert self.aggregator.count() == 0
        assert self.aggregator.device_count() == 0

    def test_sample_after_drain_goes_to_next_batch(self, enriched_factory):
        self.aggregator.add(enriched_factory(seconds=0, temperature=10.0))
        first = self.aggregator.drain_averages(purge=True)

        late = enriched_factory(seconds=1, temperature=30.0)
        self.aggregator.add(late)
        second = self.aggregator.drain_averages(purge=True)

        assert [s.temperature for s in first] == [10.0]
        assert second == [late]

    def test_non_purging_drain_keeps_buckets(self, enriched_factory):
        self.aggregator.add(enriched_factory(seconds=0, temperature=20.0))
        self.aggregator.add(enriched_factory(seconds=1, temperature=22.0))

        peek = self.aggregator.drain_averages(purge=False)
        drained = self.aggregator.drain_averages(purge=True)

        assert peek == drained
        assert peek[0].temperature == pytest.approx(21.0)

    def test_purge_all(self, enriched_factory):
        self.aggregator.add(enriched_factory())
        self.aggregator.purge_all()

        assert self.aggregator.count() == 0
        assert self.aggregator.drain_averages(purge=True) == []

    def test_concurrent_add_and_drain_lose_nothing(self, enriched_factory):
        """Every sample ends up in exactly one drained batch."""
        samples_per_writer = 300
        writers = 4
        drained = []
        done = threading.Event()

        def writer(index):
            # One device per sample, so each drained entry stands for one sample
            for i in range(samples_per_writer):
                mac = f"AA:AA:AA:{index:02X}:{i // 256:02X}:{i % 256:02X}"
                self.aggregator.add(enriched_factory(mac, seconds=i))

        def drainer():
            while not done.is_set():
                drained.extend(self.aggregator.drain_averages(purge=True))

        drain_thread = threading.Thread(target=drainer)
        threads = [threading.Thread(target=writer, args=(i,)) for i in range(writers)]
        drain_thread.start()
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        done.set()
        drain_thread.join()
        drained.extend(self.aggregator.drain_averages(purge=True))

        assert len(drained) == samples_per_writer * writers
        assert len({sample.mac_address for sample in drained}) == samples_per_writer * writers
        assert self.aggregator.count() == 0
