"""
Conversion between Unix millisecond times and NTP 64-bit timestamps.

An NTP timestamp is 32 bits of seconds since 1900-01-01 followed by 32 bits
of fractional second, both big-endian. All arithmetic here is integer so that
no precision is lost on the seconds.
"""

import random
import struct

from truetime.sntp.constants import kNtpToUnixEpochSeconds

_kFractionScale = 2**32
_kUint32Mask = 0xFFFFFFFF


def read_uint32(buffer: bytes, offset: int) -> int:
    """Reads an unsigned 32 bit big-endian number at |offset|."""
    value: int = struct.unpack_from("!I", buffer, offset)[0]
    return value


def write_timestamp(buffer: bytearray, offset: int, time_ms: int) -> None:
    """
    Writes a Unix millisecond time into |buffer| as an NTP timestamp.

    Only the top three bytes of the fraction carry data. The lowest byte is
    filled with random padding, as suggested by RFC 4330 for the transmit
    timestamp of a request.

    Args:
        buffer: Destination packet buffer.
        offset: Index of the first byte of the 8-byte timestamp.
        time_ms: Milliseconds since the Unix epoch.
    """
    seconds = time_ms // 1000 + kNtpToUnixEpochSeconds
    milliseconds = time_ms % 1000
    fraction = milliseconds * _kFractionScale // 1000

    struct.pack_into("!I", buffer, offset, seconds & _kUint32Mask)
    buffer[offset + 4] = (fraction >> 24) & 0xFF
    buffer[offset + 5] = (fraction >> 16) & 0xFF
    buffer[offset + 6] = (fraction >> 8) & 0xFF
    buffer[offset + 7] = random.randrange(256)


def read_timestamp(buffer: bytes, offset: int) -> int:
    """
    Reads an NTP timestamp from |buffer| as Unix milliseconds.

    Timestamps with the most significant bit of the seconds clear are taken
    to be in NTP era 1 (after 2036-02-07), per RFC 4330 section 3.
    """
    seconds = read_uint32(buffer, offset)
    fraction = read_uint32(buffer, offset + 4)
    if seconds & 0x80000000 == 0:
        seconds += _kFractionScale
    return (seconds - kNtpToUnixEpochSeconds) * 1000 + (
        fraction * 1000 // _kFractionScale
    )


def short_format_to_ms(raw: int) -> float:
    """Converts an NTP short format value (16.16 fixed point) to ms."""
    return raw / 65.536
