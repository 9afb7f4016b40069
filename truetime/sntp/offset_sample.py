"""Defines OffsetSample, the result of one successful SNTP exchange."""

import dataclasses
from dataclasses import dataclass


@dataclass(frozen=True)
class OffsetSample:
    """
    The difference between each local clock and the time on a remote server.

    All values are in milliseconds. Adding `system_clock_offset` to the wall
    clock, or `uptime_offset` to the monotonic clock, gives the true time.
    `round_trip_delay` gauges the accuracy of the measurement.
    """

    round_trip_delay: int
    system_clock_offset: int
    uptime_offset: int

    @property
    def stored_clock_diff(self) -> int:
        """The wall/monotonic clock difference fixed at measurement time."""
        return abs(self.system_clock_offset - self.uptime_offset)

    def with_uptime_offset(self, uptime_offset: int) -> "OffsetSample":
        """Returns a copy with |uptime_offset| replaced."""
        return dataclasses.replace(self, uptime_offset=uptime_offset)

    def with_system_clock_offset(
        self, system_clock_offset: int
    ) -> "OffsetSample":
        """Returns a copy with |system_clock_offset| replaced."""
        return dataclasses.replace(
            self, system_clock_offset=system_clock_offset
        )
