"""Local clock sources."""

from truetime.clock.clock_source import ClockSource, SystemClockSource
from truetime.clock.fake_clock_source import FakeClockSource

__all__ = ["ClockSource", "FakeClockSource", "SystemClockSource"]
