"""SntpClient implementation: one SNTP request/response over UDP."""

import logging
import socket
from typing import Optional

import ntplib  # type: ignore[import-untyped]

from truetime.clock.clock_source import ClockSource, SystemClockSource
from truetime.sntp.constants import (
    kClockDisagreementToleranceMs,
    kDefaultMaxResponseDelayMs,
    kDefaultRootDelayMaxMs,
    kDefaultRootDispersionMaxMs,
    kDefaultTimeoutSeconds,
    kIndexReceiveTime,
    kIndexRootDelay,
    kIndexRootDispersion,
    kIndexTransmitTime,
    kIndexVersion,
    kLeapUnsynchronized,
    kMaxElapsedSinceRequestMs,
    kMaxStratum,
    kMinStratum,
    kNtpBroadcastMode,
    kNtpClientMode,
    kNtpPacketSize,
    kNtpPort,
    kNtpServerMode,
    kNtpVersion,
)
from truetime.sntp.errors import InvalidNtpResponseError
from truetime.sntp.ntp_timestamp import (
    read_timestamp,
    read_uint32,
    short_format_to_ms,
    write_timestamp,
)
from truetime.sntp.offset_sample import OffsetSample

logger = logging.getLogger(__name__)


def build_request(clock_at_request_ms: int) -> bytes:
    """
    Builds a 48-byte SNTP client request.

    Mode is in the low 3 bits of the first byte and the version in bits 3-5.
    Every other field is zero except the transmit timestamp.
    """
    buffer = bytearray(kNtpPacketSize)
    buffer[kIndexVersion] = kNtpClientMode | (kNtpVersion << 3)
    write_timestamp(buffer, kIndexTransmitTime, clock_at_request_ms)
    return bytes(buffer)


class SntpClient:
    """
    Simple Network Time Protocol client.

    The Simple in SNTP means that a server is only asked for the time once.
    That server may be wrong, or the response may suffer an anomalous delay,
    so callers wanting a trustworthy value should query several servers
    several times (see `TrueTime.request_time_from_servers`).
    """

    def __init__(self, clock: Optional[ClockSource] = None) -> None:
        """
        Initializes the SntpClient.

        Args:
            clock: Source of the local wall and monotonic clocks. Defaults to
                the real system clocks.
        """
        self.__clock = clock if clock is not None else SystemClockSource()

    # pylint: disable=too-many-arguments # Thresholds are independent knobs.
    def query(
        self,
        host: str,
        timeout_seconds: float = kDefaultTimeoutSeconds,
        root_delay_max: float = kDefaultRootDelayMaxMs,
        root_dispersion_max: float = kDefaultRootDispersionMaxMs,
        max_response_delay: int = kDefaultMaxResponseDelayMs,
        port: int = kNtpPort,
    ) -> OffsetSample:
        """
        Sends an SNTP request to |host| and processes the response.

        Args:
            host: Host name or IP address of the server.
            timeout_seconds: Socket timeout for the whole exchange.
            root_delay_max: Largest acceptable root delay, in ms.
            root_dispersion_max: Largest acceptable root dispersion, in ms.
            max_response_delay: Round trip delay (ms) at or above which the
                response is rejected.
            port: Server port.

        Returns:
            The OffsetSample computed from the exchange.

        Raises:
            OSError: On resolution, socket or timeout failure.
            InvalidNtpResponseError: If the response fails validation.
        """
        try:
            address_info = socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM)
            family, _, _, _, address = address_info[0]

            with socket.socket(family, socket.SOCK_DGRAM) as sock:
                sock.settimeout(timeout_seconds)

                clock_at_request = self.__clock.wall_clock_ms()
                uptime_at_request = self.__clock.monotonic_clock_ms()
                sock.sendto(build_request(clock_at_request), address)

                data, _ = sock.recvfrom(1024)
                uptime_at_response = self.__clock.monotonic_clock_ms()
                clock_at_response = self.__clock.wall_clock_ms()

            sample = self.process_response(
                data,
                clock_at_request=clock_at_request,
                uptime_at_request=uptime_at_request,
                clock_at_response=clock_at_response,
                uptime_at_response=uptime_at_response,
                root_delay_max=root_delay_max,
                root_dispersion_max=root_dispersion_max,
                max_response_delay=max_response_delay,
            )
        except (OSError, ntplib.NTPException) as e:
            logger.warning("SNTP request to %s failed: %s", host, e)
            raise

        logger.debug("SNTP response from %s: %s", host, sample)
        return sample

    # pylint: disable=too-many-arguments,too-many-locals # One response, many checks.
    def process_response(
        self,
        data: bytes,
        *,
        clock_at_request: int,
        uptime_at_request: int,
        clock_at_response: int,
        uptime_at_response: int,
        root_delay_max: float = kDefaultRootDelayMaxMs,
        root_dispersion_max: float = kDefaultRootDispersionMaxMs,
        max_response_delay: int = kDefaultMaxResponseDelayMs,
    ) -> OffsetSample:
        """
        Validates a raw response and computes the offsets it implies.

        See https://en.wikipedia.org/wiki/Network_Time_Protocol for the clock
        synchronization algorithm used.

        Raises:
            InvalidNtpResponseError: If any validation check fails.
        """
        if len(data) < kNtpPacketSize:
            raise InvalidNtpResponseError(
                f"Response too short: {len(data)} bytes",
                "length",
                kNtpPacketSize,
                len(data),
            )

        packet = ntplib.NTPPacket()
        try:
            packet.from_data(data)
        except ntplib.NTPException as e:
            raise InvalidNtpResponseError(str(e), "packet") from e

        receive_time = read_timestamp(data, kIndexReceiveTime)  # T1
        transmit_time = read_timestamp(data, kIndexTransmitTime)  # T2

        root_delay = short_format_to_ms(read_uint32(data, kIndexRootDelay))
        if root_delay > root_delay_max:
            raise InvalidNtpResponseError(
                "root_delay violation. "
                f"{root_delay} [actual] > {root_delay_max} [expected]",
                "root_delay",
                root_delay_max,
                root_delay,
            )

        root_dispersion = short_format_to_ms(
            read_uint32(data, kIndexRootDispersion)
        )
        if root_dispersion > root_dispersion_max:
            raise InvalidNtpResponseError(
                "root_dispersion violation. "
                f"{root_dispersion} [actual] > {root_dispersion_max} "
                "[expected]",
                "root_dispersion",
                root_dispersion_max,
                root_dispersion,
            )

        if packet.mode not in (kNtpServerMode, kNtpBroadcastMode):
            raise InvalidNtpResponseError(
                f"Untrusted mode value: {packet.mode} "
                f"({ntplib.mode_to_text(packet.mode)})",
                "mode",
                kNtpServerMode,
                packet.mode,
            )

        if not kMinStratum <= packet.stratum <= kMaxStratum:
            raise InvalidNtpResponseError(
                f"Untrusted stratum value: {packet.stratum}",
                "stratum",
                kMaxStratum,
                packet.stratum,
            )

        if packet.leap == kLeapUnsynchronized:
            raise InvalidNtpResponseError(
                "Unsynchronized server responded: "
                f"{ntplib.leap_to_text(packet.leap)}",
                "leap",
                0,
                packet.leap,
            )

        round_trip_delay = (clock_at_response - clock_at_request) - (
            transmit_time - receive_time
        )
        if abs(round_trip_delay) >= max_response_delay:
            raise InvalidNtpResponseError(
                "server_response_delay too large for comfort; "
                f"{abs(round_trip_delay)} [actual] >= {max_response_delay} "
                "[max]",
                "server_response_delay",
                max_response_delay,
                abs(round_trip_delay),
            )

        elapsed = abs(clock_at_request - self.__clock.wall_clock_ms())
        if elapsed >= kMaxElapsedSinceRequestMs:
            raise InvalidNtpResponseError(
                f"Request was sent more than 10 seconds ago: {elapsed}ms",
                "elapsed_since_request",
                kMaxElapsedSinceRequestMs,
                elapsed,
            )

        system_clock_offset = (
            (receive_time - clock_at_request)
            + (transmit_time - clock_at_response)
        ) // 2
        uptime_offset = (
            (receive_time - uptime_at_request)
            + (transmit_time - uptime_at_response)
        ) // 2

        # Both clocks must name the same true time at the moment of response.
        disagreement = abs(
            (clock_at_response + system_clock_offset)
            - (uptime_at_response + uptime_offset)
        )
        if disagreement > kClockDisagreementToleranceMs:
            raise InvalidNtpResponseError(
                "Wall clock and monotonic clock offsets disagree by "
                f"{disagreement}ms",
                "clock_disagreement",
                kClockDisagreementToleranceMs,
                disagreement,
            )

        return OffsetSample(
            round_trip_delay=round_trip_delay,
            system_clock_offset=system_clock_offset,
            uptime_offset=uptime_offset,
        )
