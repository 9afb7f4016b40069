"""Defines the pair of local clocks used to anchor network time offsets."""

import time
from abc import ABC, abstractmethod


class ClockSource(ABC):
    """
    Abstract interface for the two independent local clocks.

    The wall clock may be changed at any time by the user or the system. The
    monotonic clock is immune to such changes but restarts at boot. Offsets
    are tracked against both so that either one can be repaired from the
    other.
    """

    @abstractmethod
    def wall_clock_ms(self) -> int:
        """Returns the current wall clock time in Unix milliseconds."""

    @abstractmethod
    def monotonic_clock_ms(self) -> int:
        """Returns milliseconds elapsed since boot."""


class SystemClockSource(ClockSource):
    """
    Reads the host's real clocks.

    Uses CLOCK_BOOTTIME where the platform provides it, so that time spent
    suspended is still counted, and falls back to `time.monotonic_ns()`.
    """

    def wall_clock_ms(self) -> int:
        return time.time_ns() // 1_000_000

    def monotonic_clock_ms(self) -> int:
        if hasattr(time, "CLOCK_BOOTTIME"):
            return time.clock_gettime_ns(time.CLOCK_BOOTTIME) // 1_000_000
        return time.monotonic_ns() // 1_000_000
