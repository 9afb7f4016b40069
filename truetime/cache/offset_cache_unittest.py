"""Tests for OffsetCache."""

import json
import threading
from typing import Mapping

import pytest

from truetime.cache.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from truetime.cache.offset_cache import (
    OffsetCache,
    kKeyRoundTripDelay,
    kKeySystemClockOffset,
    kKeyUptimeOffset,
)
from truetime.clock.fake_clock_source import FakeClockSource
from truetime.sntp.errors import MissingTimeDataError
from truetime.sntp.offset_sample import OffsetSample

kWall = 1_700_000_000_000
kUptime = 50_000


def consistent_sample(offset: int = 1_000, delay: int = 20) -> OffsetSample:
    """A sample whose clock difference matches the fixture clocks."""
    return OffsetSample(
        round_trip_delay=delay,
        system_clock_offset=offset,
        uptime_offset=kWall - kUptime + offset,
    )


@pytest.fixture
def clock() -> FakeClockSource:
    return FakeClockSource(wall_clock_ms=kWall, monotonic_clock_ms=kUptime)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(clock, store) -> OffsetCache:
    return OffsetCache(clock, store)


class TestOffsetCache:

    def test_empty_cache_raises_missing(self, cache) -> None:
        with pytest.raises(MissingTimeDataError):
            cache.get()
        assert not cache.has()

    def test_put_then_get_returns_identical_sample(self, cache) -> None:
        sample = consistent_sample()
        cache.put(sample)
        assert cache.get() == sample
        assert cache.has()

    def test_put_persists_all_three_fields(self, cache, store) -> None:
        cache.put(OffsetSample(20, 1_000, 2_000))
        assert store.get(kKeyRoundTripDelay) == 20
        assert store.get(kKeySystemClockOffset) == 1_000
        assert store.get(kKeyUptimeOffset) == 2_000

    def test_put_replaces_unconditionally(self, cache) -> None:
        cache.put(consistent_sample(offset=1_000, delay=5))
        cache.put(consistent_sample(offset=2_000, delay=500))
        assert cache.get() == consistent_sample(offset=2_000, delay=500)

    def test_valid_after_time_passes(self, cache, clock) -> None:
        sample = consistent_sample()
        cache.put(sample)
        clock.advance(3_600_000)
        assert cache.get() == sample

    def test_reads_back_from_store_after_restart(self, clock, store) -> None:
        sample = consistent_sample()
        OffsetCache(clock, store).put(sample)

        assert OffsetCache(clock, store).get() == sample

    def test_zero_values_are_not_absent(self, store) -> None:
        clock = FakeClockSource(wall_clock_ms=0, monotonic_clock_ms=0)
        OffsetCache(clock, store).put(OffsetSample(0, 0, 0))
        assert OffsetCache(clock, store).get() == OffsetSample(0, 0, 0)

    def test_partial_store_is_treated_as_absent(self, clock, store) -> None:
        store.set(kKeyRoundTripDelay, 20)
        store.set(kKeySystemClockOffset, 1_000)
        with pytest.raises(MissingTimeDataError):
            OffsetCache(clock, store).get()

    def test_stale_sample_is_evicted(self, store) -> None:
        # Stored diff |1000 - 900| = 100; live diff |1080 - 1000| = 80.
        clock = FakeClockSource(wall_clock_ms=1_080, monotonic_clock_ms=1_000)
        cache = OffsetCache(clock, store)
        cache.put(OffsetSample(20, 1_000, 900))

        with pytest.raises(MissingTimeDataError):
            cache.get()

        assert store.get(kKeyRoundTripDelay) is None
        assert store.get(kKeySystemClockOffset) is None
        assert store.get(kKeyUptimeOffset) is None
        # Once evicted, the sample stays gone even if the clocks realign.
        clock.set_wall_clock(1_100)
        with pytest.raises(MissingTimeDataError):
            cache.get()

    def test_tolerance_is_ten_milliseconds(self, store) -> None:
        # Stored diff 100; live diffs of 90 and 110 are right at the edge.
        clock = FakeClockSource(wall_clock_ms=1_090, monotonic_clock_ms=1_000)
        cache = OffsetCache(clock, store)
        cache.put(OffsetSample(20, 1_000, 900))
        assert cache.has()

        clock.set_wall_clock(1_110)
        assert cache.has()

        clock.set_wall_clock(1_111)
        assert not cache.has()

    def test_wall_clock_change_invalidates(self, cache, clock) -> None:
        cache.put(consistent_sample())
        clock.set_wall_clock(kWall + 60_000)
        with pytest.raises(MissingTimeDataError):
            cache.get()

    def test_reboot_invalidates(self, cache, clock) -> None:
        cache.put(consistent_sample())
        clock.reboot(monotonic_clock_ms=5_000)
        assert not cache.has()

    def test_update_transforms_without_validation(self, cache, clock) -> None:
        cache.put(consistent_sample())
        clock.reboot(monotonic_clock_ms=5_000)

        updated = cache.update(lambda old: old.with_uptime_offset(42))

        assert updated == consistent_sample().with_uptime_offset(42)
        assert cache.update(lambda old: old) == updated

    def test_update_without_baseline_is_noop(self, cache, store) -> None:
        calls = []
        assert cache.update(lambda old: calls.append(old) or old) is None
        assert calls == []
        assert store.get(kKeyUptimeOffset) is None

    def test_clear(self, cache, store) -> None:
        cache.put(consistent_sample())
        cache.clear()
        assert not cache.has()
        assert store.get(kKeySystemClockOffset) is None

    def test_memory_only_cache(self, clock) -> None:
        cache = OffsetCache(clock)
        assert not cache.persistent
        with pytest.raises(MissingTimeDataError):
            cache.get()

        sample = consistent_sample()
        cache.put(sample)
        assert cache.get() == sample
        assert cache.update(lambda old: old.with_uptime_offset(1)) is not None

    def test_concurrent_writers_never_interleave(self, clock, store) -> None:
        cache = OffsetCache(clock, store)
        samples = [consistent_sample(offset=i, delay=i) for i in range(20)]

        def write(sample: OffsetSample) -> None:
            for _ in range(50):
                cache.put(sample)

        threads = [threading.Thread(target=write, args=(s,)) for s in samples]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Whatever won, the persisted fields all belong to the same sample.
        restored = OffsetCache(clock, store).get()
        assert restored in samples
        assert restored.round_trip_delay == restored.system_clock_offset


class UptimeWriteFailingStore(InMemoryKeyValueStore):
    """Stores fields one at a time; the uptime offset write fails if armed."""

    def __init__(self) -> None:
        super().__init__()
        self.armed = False

    def set(self, key: str, value: int) -> None:
        if self.armed and key == kKeyUptimeOffset:
            raise OSError("No space left on device")
        super().set(key, value)

    def set_many(self, values: Mapping[str, int]) -> None:
        KeyValueStore.set_many(self, values)


class TestOffsetCacheStoreFailures:

    def test_failed_put_never_persists_a_mixed_sample(self, clock) -> None:
        store = UptimeWriteFailingStore()
        cache = OffsetCache(clock, store)
        old = consistent_sample(offset=1_000, delay=50)
        cache.put(old)

        store.armed = True
        with pytest.raises(OSError):
            cache.put(consistent_sample(offset=1_004, delay=5))

        assert cache.get() == old
        with pytest.raises(MissingTimeDataError):
            OffsetCache(clock, store).get()

    def test_failed_put_keeps_json_store_intact(
        self, clock, tmp_path, mocker
    ) -> None:
        store = JsonFileKeyValueStore(tmp_path / "time_data.json")
        old = consistent_sample(offset=1_000, delay=50)
        OffsetCache(clock, store).put(old)

        mocker.patch(
            "truetime.cache.key_value_store.os.replace",
            side_effect=OSError("No space left on device"),
        )
        cache = OffsetCache(clock, store)
        with pytest.raises(OSError):
            cache.put(consistent_sample(offset=1_004, delay=5))

        assert cache.get() == old
        assert OffsetCache(clock, store).get() == old

    def test_non_integer_field_in_json_store_is_missing_data(
        self, clock, tmp_path
    ) -> None:
        path = tmp_path / "time_data.json"
        path.write_text(
            json.dumps(
                {
                    kKeyRoundTripDelay: 20,
                    kKeySystemClockOffset: "x",
                    kKeyUptimeOffset: [1],
                }
            )
        )
        cache = OffsetCache(clock, JsonFileKeyValueStore(path))

        with pytest.raises(MissingTimeDataError):
            cache.get()
        assert not cache.has()
