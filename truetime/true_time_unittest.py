"""Tests for TrueTime."""

import itertools
import json
import socket
import threading
from typing import Dict, List

import pytest

from truetime.cache.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from truetime.cache.offset_cache import (
    kKeyRoundTripDelay,
    kKeySystemClockOffset,
    kKeyUptimeOffset,
)
from truetime.clock.fake_clock_source import FakeClockSource
from truetime.config.sntp_config import SntpConfig
from truetime.repair.clock_event import ClockEvent
from truetime.sntp.errors import InvalidNtpResponseError, MissingTimeDataError
from truetime.sntp.offset_sample import OffsetSample
from truetime.sntp.sntp_client import SntpClient
from truetime.true_time import TrueTime

kWall = 1_700_000_000_000
kUptime = 50_000


def consistent_sample(offset: int, delay: int = 20) -> OffsetSample:
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
def mock_client(mocker):
    return mocker.MagicMock(spec=SntpClient)


class FakeServers:
    """Answers queries per address; delays cycle through |delays|."""

    def __init__(self, offsets: Dict[str, int], delays: List[int]) -> None:
        self.offsets = offsets
        self.lock = threading.Lock()
        self.counters = {a: itertools.cycle(delays) for a in offsets}
        self.calls: List[str] = []

    def query(self, address: str, **_kwargs) -> OffsetSample:
        with self.lock:
            self.calls.append(address)
            if address not in self.offsets:
                raise socket.timeout(f"{address} timed out")
            delay = next(self.counters[address])
        return consistent_sample(self.offsets[address], delay)


class TestSingleServer:

    def test_stores_result(self, clock, store, mock_client) -> None:
        sample = consistent_sample(1_000)
        mock_client.query.return_value = sample
        true_time = TrueTime(clock=clock, store=store, client=mock_client)

        assert true_time.request_time_from_server("time.example.com") == sample
        assert true_time.cache.get() == sample
        assert true_time.now() == kWall + 1_000

    def test_passes_config_to_client(self, clock, mock_client) -> None:
        mock_client.query.return_value = consistent_sample(0)
        config = SntpConfig(
            timeout_seconds=2.5,
            root_delay_max_ms=50.0,
            root_dispersion_max_ms=60.0,
            max_response_delay_ms=70,
            ntp_port=10123,
        )
        TrueTime(
            clock=clock, config=config, client=mock_client
        ).request_time_from_server("host")

        mock_client.query.assert_called_once_with(
            "host",
            timeout_seconds=2.5,
            root_delay_max=50.0,
            root_dispersion_max=60.0,
            max_response_delay=70,
            port=10123,
        )

    @pytest.mark.parametrize(
        "error",
        [socket.timeout("timed out"), InvalidNtpResponseError("bad", "mode")],
    )
    def test_failures_propagate(self, clock, mock_client, error) -> None:
        mock_client.query.side_effect = error
        true_time = TrueTime(clock=clock, client=mock_client)

        with pytest.raises(type(error)):
            true_time.request_time_from_server("host")
        assert not true_time.has_the_time()


class TestManyServers:

    def make(self, clock, store, mock_client, servers, resolver, **config):
        mock_client.query.side_effect = servers.query
        return TrueTime(
            clock=clock,
            store=store,
            config=SntpConfig(**config),
            client=mock_client,
            resolver=resolver,
        )

    def test_median_of_best_responses(self, clock, store, mock_client) -> None:
        servers = FakeServers(
            {"192.0.2.1": 100, "192.0.2.2": 300, "192.0.2.3": 200},
            delays=[50, 10, 30, 40],
        )
        resolver = {
            "a.example.com": ["192.0.2.1", "192.0.2.2"],
            "b.example.com": ["192.0.2.2", "192.0.2.3"],
        }.__getitem__
        true_time = self.make(clock, store, mock_client, servers, resolver)

        result = true_time.request_time_from_servers(
            "a.example.com", "b.example.com"
        )

        assert result == consistent_sample(200, delay=10)
        assert true_time.cache.get() == result
        assert true_time.now() == kWall + 200

    def test_each_address_queried_repeat_count_times(
        self, clock, store, mock_client
    ) -> None:
        servers = FakeServers(
            {"192.0.2.1": 100, "192.0.2.2": 300}, delays=[10]
        )
        resolver = {
            "a.example.com": ["192.0.2.1", "192.0.2.2"],
            "b.example.com": ["192.0.2.2"],
        }.__getitem__
        true_time = self.make(
            clock, store, mock_client, servers, resolver, repeat_count=3
        )

        true_time.request_time_from_servers("a.example.com", "b.example.com")

        # Duplicate addresses across hosts are only queried once each.
        assert sorted(servers.calls) == ["192.0.2.1"] * 3 + ["192.0.2.2"] * 3

    def test_failed_hosts_and_addresses_are_skipped(
        self, clock, store, mock_client
    ) -> None:
        servers = FakeServers({"192.0.2.1": 100}, delays=[10])

        def resolver(host: str) -> List[str]:
            if host == "unknown.invalid":
                raise socket.gaierror("unknown host")
            return ["192.0.2.1", "192.0.2.99"]

        true_time = self.make(clock, store, mock_client, servers, resolver)

        result = true_time.request_time_from_servers(
            "unknown.invalid", "pool.example.com"
        )

        assert result == consistent_sample(100, delay=10)
        assert true_time.has_the_time()

    def test_no_reachable_addresses(self, clock, store, mock_client) -> None:
        servers = FakeServers({}, delays=[10])
        true_time = self.make(
            clock, store, mock_client, servers, lambda host: []
        )

        assert true_time.request_time_from_servers("pool.example.com") is None
        mock_client.query.assert_not_called()
        assert not true_time.has_the_time()

    def test_all_addresses_fail(self, clock, store, mock_client) -> None:
        servers = FakeServers({}, delays=[10])
        true_time = self.make(
            clock, store, mock_client, servers, lambda host: ["192.0.2.1"]
        )

        assert true_time.request_time_from_servers("pool.example.com") is None
        with pytest.raises(MissingTimeDataError):
            true_time.now()

    def test_sampling_failure_is_logged_as_warning(
        self, clock, mock_client, mocker
    ) -> None:
        servers = FakeServers({"192.0.2.1": 100}, delays=[10])
        store = mocker.MagicMock(spec=KeyValueStore)
        store.get.return_value = None
        store.set_many.side_effect = OSError("No space left on device")
        mock_logging_warning = mocker.patch(
            "truetime.true_time.logger.warning"
        )
        true_time = self.make(
            clock, store, mock_client, servers, lambda host: ["192.0.2.1"]
        )

        result = true_time.request_time_from_servers("pool.example.com")

        assert result == consistent_sample(100, delay=10)
        mock_logging_warning.assert_any_call(
            "Sampling %s failed: %r", "192.0.2.1", mocker.ANY
        )
        assert not true_time.has_the_time()

    def test_each_session_starts_fresh(self, clock, store, mock_client) -> None:
        servers = FakeServers(
            {"192.0.2.1": 100, "192.0.2.2": 300}, delays=[10]
        )
        addresses = iter([["192.0.2.1"], ["192.0.2.2"]])
        true_time = self.make(
            clock, store, mock_client, servers, lambda host: next(addresses)
        )

        assert true_time.request_time_from_servers("x") == consistent_sample(
            100, delay=10
        )
        # A previous session's samples do not weigh on the next median.
        assert true_time.request_time_from_servers("x") == consistent_sample(
            300, delay=10
        )


class TestNow:

    def test_missing_without_data(self, clock) -> None:
        true_time = TrueTime(clock=clock)
        with pytest.raises(MissingTimeDataError):
            true_time.now()
        assert not true_time.has_the_time()

    def test_tracks_passing_time(self, clock, store) -> None:
        true_time = TrueTime(clock=clock, store=store)
        true_time.cache.put(consistent_sample(1_000))

        clock.advance(60_000)

        assert true_time.now() == kWall + 60_000 + 1_000

    def test_survives_restart_with_store(self, clock, store) -> None:
        TrueTime(clock=clock, store=store).cache.put(consistent_sample(1_000))
        assert TrueTime(clock=clock, store=store).now() == kWall + 1_000

    def test_clocks_disagreeing_on_time(self) -> None:
        # |0 - (-100)| equals the live difference of 100, but the two offsets
        # name different times: 1000 from the clock, 800 from uptime.
        clock = FakeClockSource(wall_clock_ms=1_000, monotonic_clock_ms=900)
        true_time = TrueTime(clock=clock)
        true_time.cache.put(OffsetSample(20, 0, -100))

        assert true_time.cache.has()
        with pytest.raises(MissingTimeDataError):
            true_time.now()
        assert not true_time.has_the_time()

    def test_corrupt_json_store_is_missing_data(self, clock, tmp_path) -> None:
        path = tmp_path / "time.json"
        path.write_text(
            json.dumps(
                {
                    kKeyRoundTripDelay: 20,
                    kKeySystemClockOffset: "x",
                    kKeyUptimeOffset: [1],
                }
            )
        )
        true_time = TrueTime(clock=clock, store=JsonFileKeyValueStore(path))

        with pytest.raises(MissingTimeDataError):
            true_time.now()
        assert not true_time.has_the_time()

    def test_wall_clock_change_without_repair(self, clock, store) -> None:
        true_time = TrueTime(clock=clock, store=store)
        true_time.cache.put(consistent_sample(1_000))

        clock.set_wall_clock(kWall - 3_600_000)

        assert not true_time.has_the_time()


class TestClockEvents:

    def test_time_changed_is_repaired(self, clock, store) -> None:
        true_time = TrueTime(clock=clock, store=store)
        true_time.cache.put(consistent_sample(1_000))

        clock.set_wall_clock(kWall - 3_600_000)
        repaired = true_time.on_clock_event(ClockEvent.TIME_CHANGED)

        assert repaired is not None
        assert true_time.now() == kWall + 1_000

    def test_boot_completed_is_repaired(self, clock, store) -> None:
        TrueTime(clock=clock, store=store).cache.put(consistent_sample(1_000))

        clock.advance(10_000)
        clock.reboot(monotonic_clock_ms=2_000)
        after_reboot = TrueTime(clock=clock, store=store)
        after_reboot.on_clock_event(ClockEvent.BOOT_COMPLETED)

        assert after_reboot.now() == kWall + 10_000 + 1_000

    def test_event_without_data_is_ignored(self, clock) -> None:
        true_time = TrueTime(clock=clock)
        assert true_time.on_clock_event(ClockEvent.BOOT_COMPLETED) is None
        assert not true_time.has_the_time()
