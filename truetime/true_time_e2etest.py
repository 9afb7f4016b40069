"""End-to-end tests for TrueTime against loopback SNTP servers."""

import socket
import time
from contextlib import ExitStack
from typing import List

import pytest

from truetime.cache.key_value_store import JsonFileKeyValueStore
from truetime.clock.clock_source import SystemClockSource
from truetime.config.sntp_config import SntpConfig
from truetime.repair.clock_event import ClockEvent
from truetime.sntp.errors import InvalidNtpResponseError, MissingTimeDataError
from truetime.sntp.sntp_client import SntpClient
from truetime.test.fake_ntp_server import FakeNtpServer
from truetime.true_time import TrueTime

kServerOffsetMs = 5_000

# Loopback round trips are fast; this leaves room for a busy test machine.
kToleranceMs = 100


def wall_ms() -> int:
    return time.time_ns() // 1_000_000


def test_single_exchange_measures_server_offset() -> None:
    with FakeNtpServer(offset_ms=kServerOffsetMs) as server:
        sample = SntpClient().query(
            "127.0.0.1", timeout_seconds=2, port=server.port
        )

    assert abs(sample.system_clock_offset - kServerOffsetMs) < kToleranceMs
    assert abs(sample.round_trip_delay) < kToleranceMs
    assert server.request_count == 1


def test_request_then_now(tmp_path) -> None:
    store = JsonFileKeyValueStore(tmp_path / "time.json")
    with FakeNtpServer(offset_ms=kServerOffsetMs) as server:
        true_time = TrueTime(
            store=store,
            config=SntpConfig(timeout_seconds=2, ntp_port=server.port),
        )
        sample = true_time.request_time_from_server("127.0.0.1")

    assert true_time.cache.get() == sample
    assert abs(true_time.now() - (wall_ms() + kServerOffsetMs)) < kToleranceMs

    # A new instance picks the data up from the store.
    restarted = TrueTime(store=store)
    assert abs(restarted.now() - (wall_ms() + kServerOffsetMs)) < kToleranceMs


def test_untrustworthy_server_is_rejected() -> None:
    with FakeNtpServer(stratum=0) as server:
        true_time = TrueTime(
            config=SntpConfig(timeout_seconds=2, ntp_port=server.port)
        )
        with pytest.raises(InvalidNtpResponseError):
            true_time.request_time_from_server("127.0.0.1")

    with pytest.raises(MissingTimeDataError):
        true_time.now()


def test_silent_server_times_out() -> None:
    with FakeNtpServer(reply=False) as server:
        true_time = TrueTime(
            config=SntpConfig(timeout_seconds=0.3, ntp_port=server.port)
        )
        with pytest.raises(OSError):
            true_time.request_time_from_server("127.0.0.1")


def test_repeats_against_one_address() -> None:
    with FakeNtpServer(offset_ms=kServerOffsetMs) as server:
        true_time = TrueTime(
            config=SntpConfig(
                timeout_seconds=2, ntp_port=server.port, repeat_count=4
            ),
            resolver=lambda host: ["127.0.0.1"],
        )
        result = true_time.request_time_from_servers("localhost")

    assert result is not None
    assert abs(result.system_clock_offset - kServerOffsetMs) < kToleranceMs
    assert server.request_count == 4


def test_consensus_across_loopback_servers() -> None:
    addresses = ["127.0.0.1", "127.0.0.2", "127.0.0.3"]
    offsets = [1_000, 50_000, 3_000]

    with ExitStack() as stack:
        first = stack.enter_context(
            FakeNtpServer(offset_ms=offsets[0], address=addresses[0])
        )
        servers: List[FakeNtpServer] = [first]
        for address, offset in zip(addresses[1:], offsets[1:]):
            try:
                server = FakeNtpServer(
                    offset_ms=offset, address=address, port=first.port
                )
            except OSError:
                pytest.skip(f"Cannot bind loopback address {address}")
            servers.append(stack.enter_context(server))

        true_time = TrueTime(
            config=SntpConfig(
                timeout_seconds=2, ntp_port=first.port, repeat_count=2
            ),
            resolver=lambda host: addresses,
        )
        result = true_time.request_time_from_servers("pool.localhost")

    # The median of offsets 1s, 3s, 50s is 3s; the outlier is ignored.
    assert result is not None
    assert abs(result.system_clock_offset - 3_000) < kToleranceMs
    assert abs(true_time.now() - (wall_ms() + 3_000)) < kToleranceMs
    assert all(s.request_count == 2 for s in servers)


def test_one_silent_server_does_not_block_consensus() -> None:
    with FakeNtpServer(offset_ms=kServerOffsetMs) as server:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as silent:
            try:
                silent.bind(("127.0.0.2", server.port))
            except OSError:
                pytest.skip("Cannot bind loopback address 127.0.0.2")

            true_time = TrueTime(
                config=SntpConfig(timeout_seconds=0.5, ntp_port=server.port),
                resolver=lambda host: ["127.0.0.1", "127.0.0.2"],
            )
            result = true_time.request_time_from_servers("pool.localhost")

    assert result is not None
    assert abs(result.system_clock_offset - kServerOffsetMs) < kToleranceMs
    assert true_time.has_the_time()


def test_no_hosts_yields_nothing() -> None:
    true_time = TrueTime(resolver=lambda host: ["127.0.0.1"])
    assert true_time.request_time_from_servers() is None
    assert not true_time.has_the_time()


def test_reboot_repair_with_real_clocks(tmp_path) -> None:
    store = JsonFileKeyValueStore(tmp_path / "time.json")
    with FakeNtpServer(offset_ms=kServerOffsetMs) as server:
        true_time = TrueTime(
            store=store,
            config=SntpConfig(timeout_seconds=2, ntp_port=server.port),
        )
        true_time.request_time_from_server("127.0.0.1")

    # No clock actually moved, so the repair must leave the time unchanged.
    before = true_time.now()
    repaired = true_time.on_clock_event(ClockEvent.BOOT_COMPLETED)
    assert repaired is not None
    clock = SystemClockSource()
    assert (
        abs(clock.monotonic_clock_ms() + repaired.uptime_offset - before)
        < kToleranceMs
    )
    assert true_time.has_the_time()
