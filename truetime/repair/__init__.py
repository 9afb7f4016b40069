"""Recovery of cached time data from reboots and clock changes."""

from truetime.repair.clock_event import ClockEvent
from truetime.repair.clock_event_repairer import ClockEventRepairer

__all__ = ["ClockEvent", "ClockEventRepairer"]
