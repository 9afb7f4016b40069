"""Tests for NTP timestamp conversion."""

import struct

import pytest

from truetime.sntp.constants import kNtpToUnixEpochSeconds
from truetime.sntp.ntp_timestamp import (
    read_timestamp,
    read_uint32,
    short_format_to_ms,
    write_timestamp,
)


def test_epoch_offset_is_seventy_years() -> None:
    assert kNtpToUnixEpochSeconds == 2_208_988_800


@pytest.mark.parametrize(
    "time_ms",
    [
        0,
        1,
        999,
        1_000,
        1_537_000_000_123,
        1_700_000_000_999,
        1_760_875_200_500,
    ],
)
def test_write_then_read_is_within_one_millisecond(time_ms: int) -> None:
    buffer = bytearray(8)
    write_timestamp(buffer, 0, time_ms)
    decoded = read_timestamp(bytes(buffer), 0)
    assert time_ms - 1 <= decoded <= time_ms


def test_whole_seconds_are_exact() -> None:
    buffer = bytearray(8)
    write_timestamp(buffer, 0, 1_700_000_000_000)
    assert read_timestamp(bytes(buffer), 0) == 1_700_000_000_000


def test_write_layout_is_big_endian_seconds() -> None:
    buffer = bytearray(16)
    write_timestamp(buffer, 8, 1_000)
    seconds = struct.unpack_from("!I", buffer, 8)[0]
    assert seconds == kNtpToUnixEpochSeconds + 1
    assert buffer[:8] == bytearray(8)
    # Top three fraction bytes are zero for a whole second.
    assert buffer[12:15] == bytearray(3)


def test_fraction_scaling() -> None:
    buffer = bytearray(8)
    write_timestamp(buffer, 0, 500)
    # Half a second is 0x80000000; only the top three bytes are written.
    assert buffer[4:7] == bytearray([0x80, 0x00, 0x00])


def test_read_timestamp_after_ntp_era_rollover() -> None:
    # 2040-01-01T00:00:00Z; NTP seconds wrap in 2036.
    time_ms = 2_208_988_800_000
    buffer = bytearray(8)
    write_timestamp(buffer, 0, time_ms)
    assert struct.unpack_from("!I", buffer, 0)[0] < 0x80000000
    assert read_timestamp(bytes(buffer), 0) == time_ms


def test_read_uint32() -> None:
    assert read_uint32(b"\x00\x01\x00\x00\xff\xff\xff\xff", 0) == 65536
    assert read_uint32(b"\x00\x01\x00\x00\xff\xff\xff\xff", 4) == 0xFFFFFFFF


def test_short_format_to_ms() -> None:
    assert short_format_to_ms(0) == 0
    # One second in 16.16 fixed point.
    assert short_format_to_ms(0x00010000) == pytest.approx(1000.0)
    assert short_format_to_ms(328) == pytest.approx(5.0, abs=0.01)
