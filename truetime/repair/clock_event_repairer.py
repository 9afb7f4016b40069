"""Repairs cached time data after a reboot or a manual clock change."""

import logging
from typing import Optional

from truetime.cache.offset_cache import OffsetCache
from truetime.clock.clock_source import ClockSource
from truetime.repair.clock_event import ClockEvent
from truetime.sntp.offset_sample import OffsetSample

logger = logging.getLogger(__name__)


class ClockEventRepairer:
    """
    Recomputes the offset invalidated by a clock event from the intact one.

    Each event is assumed to disturb exactly one clock. After a reboot the
    monotonic clock restarted, but the wall clock kept its offset from true
    time, so the uptime offset is rebuilt from the system clock offset. After
    a manual time change the reverse holds.

    Repair is best effort: with no prior sample there is nothing to repair
    and the event is ignored, and no failure is ever raised to the event
    source.
    """

    def __init__(self, cache: OffsetCache, clock: ClockSource) -> None:
        self.__cache = cache
        self.__clock = clock

    def __call__(self, event: ClockEvent) -> Optional[OffsetSample]:
        return self.on_clock_event(event)

    def on_clock_event(self, event: ClockEvent) -> Optional[OffsetSample]:
        """
        Handles one clock event.

        Returns:
            The repaired sample, or None if nothing was repaired.
        """
        logger.info("Clock event %s detected. Repairing time data...", event)
        try:
            if event == ClockEvent.BOOT_COMPLETED:
                repaired = self.__cache.update(self.__repair_uptime_offset)
            elif event == ClockEvent.TIME_CHANGED:
                repaired = self.__cache.update(self.__repair_clock_offset)
            else:
                logger.warning("Ignoring unknown clock event %r", event)
                return None
        # pylint: disable=broad-exception-caught # Repair never fails the event source.
        except Exception as e:
            logger.error(
                "Failed to repair time data after %s: %r",
                event,
                e,
                exc_info=True,
            )
            return None

        if repaired is None:
            logger.info("No time data to repair after %s.", event)
        else:
            logger.info("Repaired time data after %s: %s", event, repaired)
        return repaired

    def __repair_uptime_offset(self, old: OffsetSample) -> OffsetSample:
        """The monotonic clock can no longer be trusted."""
        true_time = self.__clock.wall_clock_ms() + old.system_clock_offset
        return old.with_uptime_offset(
            true_time - self.__clock.monotonic_clock_ms()
        )

    def __repair_clock_offset(self, old: OffsetSample) -> OffsetSample:
        """The wall clock can no longer be trusted."""
        true_time = self.__clock.monotonic_clock_ms() + old.uptime_offset
        return old.with_system_clock_offset(
            true_time - self.__clock.wall_clock_ms()
        )
