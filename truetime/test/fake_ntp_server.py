"""A loopback SNTP server and packet builder for tests."""

import logging
import socket
import struct
import threading
import time
from typing import Optional

from truetime.sntp.constants import (
    kIndexReceiveTime,
    kIndexTransmitTime,
    kNtpPacketSize,
    kNtpServerMode,
    kNtpToUnixEpochSeconds,
)

kNtpHeaderFormat = "!B B B b I I I"


def encode_timestamp(time_ms: int) -> bytes:
    """
    Encodes Unix ms as an NTP timestamp with a fully populated fraction.

    The fraction is rounded up so that decoding yields exactly |time_ms|.
    """
    seconds = time_ms // 1000 + kNtpToUnixEpochSeconds
    fraction = -(-(time_ms % 1000) * 2**32 // 1000)
    return struct.pack("!I I", seconds & 0xFFFFFFFF, fraction)


# pylint: disable=too-many-arguments
def build_response(
    receive_time_ms: int,
    transmit_time_ms: int,
    stratum: int = 2,
    mode: int = kNtpServerMode,
    leap: int = 0,
    version: int = 3,
    root_delay_ms: float = 5.0,
    root_dispersion_ms: float = 5.0,
) -> bytes:
    """Builds a 48-byte server response with the given header fields."""
    header = struct.pack(
        kNtpHeaderFormat,
        (leap << 6) | (version << 3) | mode,
        stratum,
        0,
        0,
        int(round(root_delay_ms * 65.536)),
        int(round(root_dispersion_ms * 65.536)),
        0,
    )
    buffer = bytearray(kNtpPacketSize)
    buffer[: len(header)] = header
    buffer[kIndexReceiveTime : kIndexReceiveTime + 8] = encode_timestamp(
        receive_time_ms
    )
    buffer[kIndexTransmitTime : kIndexTransmitTime + 8] = encode_timestamp(
        transmit_time_ms
    )
    return bytes(buffer)


class FakeNtpServer:
    """
    Answers SNTP requests on a loopback address from a background thread.

    The server's clock is the local wall clock shifted by |offset_ms|, so a
    client on the same host should measure an offset close to that value.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        offset_ms: int = 0,
        stratum: int = 2,
        mode: int = kNtpServerMode,
        leap: int = 0,
        root_delay_ms: float = 5.0,
        root_dispersion_ms: float = 5.0,
        reply: bool = True,
        address: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        self.__offset_ms = offset_ms
        self.__stratum = stratum
        self.__mode = mode
        self.__leap = leap
        self.__root_delay_ms = root_delay_ms
        self.__root_dispersion_ms = root_dispersion_ms
        self.__reply = reply
        self.__socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.__socket.bind((address, port))
        self.__socket.settimeout(0.1)
        self.__stopped = threading.Event()
        self.__thread: Optional[threading.Thread] = None
        self.request_count = 0

    @property
    def port(self) -> int:
        port: int = self.__socket.getsockname()[1]
        return port

    def start(self) -> None:
        self.__thread = threading.Thread(target=self.__serve, daemon=True)
        self.__thread.start()

    def stop(self) -> None:
        self.__stopped.set()
        if self.__thread is not None:
            self.__thread.join(timeout=2)
        self.__socket.close()

    def __enter__(self) -> "FakeNtpServer":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    def __now_ms(self) -> int:
        return time.time_ns() // 1_000_000 + self.__offset_ms

    def __serve(self) -> None:
        while not self.__stopped.is_set():
            try:
                data, addr = self.__socket.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError as e:
                logging.warning("FakeNtpServer receive failed: %s", e)
                return

            receive_time = self.__now_ms()
            self.request_count += 1
            if not data or not self.__reply:
                continue

            response = build_response(
                receive_time_ms=receive_time,
                transmit_time_ms=self.__now_ms(),
                stratum=self.__stratum,
                mode=self.__mode,
                leap=self.__leap,
                root_delay_ms=self.__root_delay_ms,
                root_dispersion_ms=self.__root_dispersion_ms,
            )
            self.__socket.sendto(response, addr)
