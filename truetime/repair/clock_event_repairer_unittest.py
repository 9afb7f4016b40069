"""Tests for ClockEventRepairer."""

import pytest

from truetime.cache.key_value_store import InMemoryKeyValueStore
from truetime.cache.offset_cache import OffsetCache
from truetime.clock.fake_clock_source import FakeClockSource
from truetime.repair.clock_event import ClockEvent
from truetime.repair.clock_event_repairer import ClockEventRepairer
from truetime.sntp.offset_sample import OffsetSample

kWall = 1_700_000_000_000
kUptime = 50_000


@pytest.fixture
def clock() -> FakeClockSource:
    return FakeClockSource(wall_clock_ms=kWall, monotonic_clock_ms=kUptime)


@pytest.fixture
def cache(clock) -> OffsetCache:
    return OffsetCache(clock, InMemoryKeyValueStore())


@pytest.fixture
def repairer(cache, clock) -> ClockEventRepairer:
    return ClockEventRepairer(cache, clock)


def test_boot_completed_rebuilds_uptime_offset(cache, clock, repairer) -> None:
    cache.put(OffsetSample(20, 500, 7))
    clock.set_wall_clock(100_000)
    clock.reboot(monotonic_clock_ms=3_000)

    repaired = repairer.on_clock_event(ClockEvent.BOOT_COMPLETED)

    expected = OffsetSample(20, 500, (100_000 + 500) - 3_000)
    assert repaired == expected
    assert cache.get() == expected


def test_time_changed_rebuilds_system_clock_offset(
    cache, clock, repairer
) -> None:
    sample = OffsetSample(20, 1_000, kWall - kUptime + 1_000)
    cache.put(sample)
    clock.advance(5_000)
    clock.set_wall_clock(kWall + 5_000 + 60_000)

    repaired = repairer.on_clock_event(ClockEvent.TIME_CHANGED)

    # True time is still kWall + 5s + 1s; the wall clock now reads 60s ahead.
    assert repaired == sample.with_system_clock_offset(1_000 - 60_000)
    assert cache.get() == repaired


def test_repaired_sample_predicts_same_true_time(
    cache, clock, repairer
) -> None:
    sample = OffsetSample(20, 1_000, kWall - kUptime + 1_000)
    cache.put(sample)
    true_time = kWall + 1_000

    clock.reboot(monotonic_clock_ms=0)
    repaired = repairer.on_clock_event(ClockEvent.BOOT_COMPLETED)

    assert repaired is not None
    assert clock.wall_clock_ms() + repaired.system_clock_offset == true_time
    assert clock.monotonic_clock_ms() + repaired.uptime_offset == true_time


def test_no_baseline_is_noop(cache, repairer) -> None:
    assert repairer.on_clock_event(ClockEvent.BOOT_COMPLETED) is None
    assert repairer.on_clock_event(ClockEvent.TIME_CHANGED) is None
    assert not cache.has()


def test_is_callable_as_event_handler(cache, clock, repairer) -> None:
    cache.put(OffsetSample(20, 500, 7))
    clock.reboot(monotonic_clock_ms=0)
    assert repairer(ClockEvent.BOOT_COMPLETED) is not None


def test_failures_are_logged_not_raised(mocker, clock) -> None:
    cache = mocker.MagicMock(spec=OffsetCache)
    cache.update.side_effect = OSError("disk full")
    repairer = ClockEventRepairer(cache, clock)

    assert repairer.on_clock_event(ClockEvent.TIME_CHANGED) is None
    cache.update.assert_called_once()
