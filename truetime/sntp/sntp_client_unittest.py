"""Tests for SntpClient."""

import socket
from typing import Any

import ntplib  # type: ignore[import-untyped]
import pytest

from truetime.clock.fake_clock_source import FakeClockSource
from truetime.sntp.errors import InvalidNtpResponseError
from truetime.sntp.ntp_timestamp import read_timestamp
from truetime.sntp.offset_sample import OffsetSample
from truetime.sntp.sntp_client import SntpClient, build_request
from truetime.test.fake_ntp_server import build_response

kWall = 1_700_000_000_000
kUptime = 50_000
kServerOffset = 1_000
kServerAddress = ("192.0.2.1", 123)


def make_response(**kwargs: Any) -> bytes:
    """A response from a server 1s ahead, 10ms away in each direction."""
    server_time = kWall + kServerOffset + 10
    kwargs.setdefault("receive_time_ms", server_time)
    kwargs.setdefault("transmit_time_ms", server_time)
    return build_response(**kwargs)


def process(
    client: SntpClient, data: bytes, **kwargs: Any
) -> OffsetSample:
    kwargs.setdefault("clock_at_request", kWall)
    kwargs.setdefault("uptime_at_request", kUptime)
    kwargs.setdefault("clock_at_response", kWall + 20)
    kwargs.setdefault("uptime_at_response", kUptime + 20)
    return client.process_response(data, **kwargs)


@pytest.fixture
def clock() -> FakeClockSource:
    return FakeClockSource(wall_clock_ms=kWall, monotonic_clock_ms=kUptime)


@pytest.fixture
def mock_socket(mocker, clock):
    """Patches socket creation; recvfrom advances the clock by 20ms."""
    sock = mocker.MagicMock(spec=socket.socket)
    sock.__enter__.return_value = sock
    sock.__exit__.return_value = False

    def recvfrom_side_effect(_bufsize):
        clock.advance(20)
        return make_response(), kServerAddress

    sock.recvfrom.side_effect = recvfrom_side_effect
    mocker.patch(
        "truetime.sntp.sntp_client.socket.socket", return_value=sock
    )
    mocker.patch(
        "truetime.sntp.sntp_client.socket.getaddrinfo",
        return_value=[
            (socket.AF_INET, socket.SOCK_DGRAM, 17, "", kServerAddress)
        ],
    )
    return sock


class TestBuildRequest:

    def test_layout(self) -> None:
        request = build_request(kWall)
        assert len(request) == 48
        # Version 3, mode 3.
        assert request[0] == 0x1B
        assert request[1:40] == bytes(39)
        assert kWall - 1 <= read_timestamp(request, 40) <= kWall


class TestQuery:

    def test_valid_exchange_produces_sample(self, clock, mock_socket) -> None:
        client = SntpClient(clock)

        sample = client.query("time.example.com", timeout_seconds=3)

        assert sample == OffsetSample(
            round_trip_delay=20,
            system_clock_offset=kServerOffset,
            uptime_offset=kWall - kUptime + kServerOffset,
        )
        mock_socket.settimeout.assert_called_once_with(3)
        sent, address = mock_socket.sendto.call_args[0]
        assert address == kServerAddress
        assert sent[0] == 0x1B
        assert kWall - 1 <= read_timestamp(sent, 40) <= kWall
        mock_socket.__exit__.assert_called_once()

    def test_timeout_propagates_and_closes_socket(
        self, clock, mock_socket
    ) -> None:
        mock_socket.recvfrom.side_effect = socket.timeout("timed out")
        client = SntpClient(clock)

        with pytest.raises(OSError):
            client.query("time.example.com")

        mock_socket.__exit__.assert_called_once()

    def test_invalid_response_propagates_and_closes_socket(
        self, clock, mock_socket
    ) -> None:
        mock_socket.recvfrom.side_effect = None
        mock_socket.recvfrom.return_value = (
            make_response(stratum=0),
            kServerAddress,
        )
        client = SntpClient(clock)

        with pytest.raises(InvalidNtpResponseError) as exc_info:
            client.query("time.example.com")

        assert exc_info.value.property_name == "stratum"
        mock_socket.__exit__.assert_called_once()

    def test_resolution_failure_propagates(self, mocker, clock) -> None:
        mocker.patch(
            "truetime.sntp.sntp_client.socket.getaddrinfo",
            side_effect=socket.gaierror("no such host"),
        )
        with pytest.raises(OSError):
            SntpClient(clock).query("nonexistent.invalid")


class TestProcessResponse:

    @pytest.fixture
    def client(self, clock) -> SntpClient:
        clock.advance(20)
        return SntpClient(clock)

    def test_offsets_and_round_trip(self, client) -> None:
        sample = process(client, make_response())
        assert sample.round_trip_delay == 20
        assert sample.system_clock_offset == kServerOffset
        assert sample.uptime_offset == kWall - kUptime + kServerOffset

    def test_server_processing_time_is_excluded(self, client) -> None:
        server_time = kWall + kServerOffset + 5
        data = make_response(
            receive_time_ms=server_time, transmit_time_ms=server_time + 10
        )
        sample = process(client, data)
        assert sample.round_trip_delay == 10
        assert sample.system_clock_offset == kServerOffset

    @pytest.mark.parametrize(
        "fields",
        [
            {"mode": 5},
            {"stratum": 1},
            {"stratum": 15},
            {"leap": 1},
            {"leap": 2},
            {"root_delay_ms": 99.0},
            {"root_dispersion_ms": 99.0},
        ],
    )
    def test_accepts_trustworthy_responses(self, client, fields) -> None:
        assert process(client, make_response(**fields)).round_trip_delay == 20

    @pytest.mark.parametrize(
        "fields,property_name",
        [
            ({"root_delay_ms": 150.0}, "root_delay"),
            ({"root_dispersion_ms": 150.0}, "root_dispersion"),
            ({"mode": 3}, "mode"),
            ({"mode": 0}, "mode"),
            ({"mode": 6}, "mode"),
            ({"stratum": 0}, "stratum"),
            ({"stratum": 16}, "stratum"),
            ({"stratum": 255}, "stratum"),
            ({"leap": 3}, "leap"),
        ],
    )
    def test_rejects_untrustworthy_header(
        self, client, fields, property_name
    ) -> None:
        with pytest.raises(InvalidNtpResponseError) as exc_info:
            process(client, make_response(**fields))
        assert exc_info.value.property_name == property_name
        assert isinstance(exc_info.value, ntplib.NTPException)

    def test_checks_run_in_order(self, client) -> None:
        data = make_response(root_delay_ms=150.0, stratum=0, leap=3)
        with pytest.raises(InvalidNtpResponseError) as exc_info:
            process(client, data)
        assert exc_info.value.property_name == "root_delay"

    def test_thresholds_are_configurable(self, client) -> None:
        data = make_response(root_delay_ms=150.0)
        assert process(client, data, root_delay_max=200.0) is not None

        with pytest.raises(InvalidNtpResponseError):
            process(client, make_response(), max_response_delay=20)

    def test_rejects_long_round_trip(self, client) -> None:
        server_time = kWall + kServerOffset
        data = make_response(
            receive_time_ms=server_time, transmit_time_ms=server_time - 230
        )
        with pytest.raises(InvalidNtpResponseError) as exc_info:
            process(client, data)
        assert exc_info.value.property_name == "server_response_delay"
        assert exc_info.value.actual_value == 250

    def test_rejects_large_negative_round_trip(self, client) -> None:
        server_time = kWall + kServerOffset
        data = make_response(
            receive_time_ms=server_time, transmit_time_ms=server_time + 230
        )
        with pytest.raises(InvalidNtpResponseError) as exc_info:
            process(client, data)
        assert exc_info.value.actual_value == 210

    def test_small_negative_round_trip_is_accepted(self, client) -> None:
        server_time = kWall + kServerOffset
        data = make_response(
            receive_time_ms=server_time, transmit_time_ms=server_time + 30
        )
        assert process(client, data).round_trip_delay == -10

    def test_rejects_stale_request(self, clock) -> None:
        clock.advance(20_000)
        with pytest.raises(InvalidNtpResponseError) as exc_info:
            process(SntpClient(clock), make_response())
        assert exc_info.value.property_name == "elapsed_since_request"

    def test_rejects_clocks_that_moved_apart(self, client) -> None:
        # The monotonic clock advanced 60ms while the wall clock advanced 20.
        with pytest.raises(InvalidNtpResponseError) as exc_info:
            process(client, make_response(), uptime_at_response=kUptime + 60)
        assert exc_info.value.property_name == "clock_disagreement"

    def test_rejects_short_packet(self, client) -> None:
        with pytest.raises(InvalidNtpResponseError):
            process(client, make_response()[:40])
