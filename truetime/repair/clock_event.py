"""Defines the system events that disturb one of the local clocks."""

from enum import Enum


class ClockEvent(Enum):
    """A notification from the host that a local clock was disturbed."""

    # The host restarted; the monotonic clock began again from zero.
    BOOT_COMPLETED = "boot_completed"

    # The wall clock was set by the user or the system.
    TIME_CHANGED = "time_changed"
