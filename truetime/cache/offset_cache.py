"""Defines OffsetCache, the single authoritative offset sample."""

import logging
import threading
from collections.abc import Callable
from typing import Optional

from truetime.cache.key_value_store import KeyValueStore
from truetime.clock.clock_source import ClockSource
from truetime.sntp.constants import kClockDisagreementToleranceMs
from truetime.sntp.errors import MissingTimeDataError
from truetime.sntp.offset_sample import OffsetSample

logger = logging.getLogger(__name__)

kKeyRoundTripDelay = "round trip delay"
kKeySystemClockOffset = "system clock offset"
kKeyUptimeOffset = "uptime offset"


class OffsetCache:
    """
    Holds the current offset sample in memory and mirrors it to a store.

    Every read re-validates the sample against the live clocks. The
    difference between the wall clock and the monotonic clock should be the
    same now as it was when the sample was taken; if it has moved by more
    than 10ms, one of the clocks has been changed (or the host rebooted) and
    the sample no longer describes either of them. Such a sample is evicted:
    correct data beats slightly wrong data, which beats no data, which beats
    very wrong data.

    All operations are serialized on one lock, so no reader can observe a
    partially written sample.
    """

    def __init__(
        self, clock: ClockSource, store: Optional[KeyValueStore] = None
    ) -> None:
        """
        Initializes the OffsetCache.

        Args:
            clock: Source of the live clocks used for validation.
            store: Persistent mirror. When None, the cache is memory-only and
                time data cannot survive a restart.
        """
        self.__clock = clock
        self.__store = store
        self.__lock = threading.RLock()
        self.__sample: Optional[OffsetSample] = None

        if store is None:
            logger.warning(
                "No persistent store provided; time data will not survive "
                "restarts or be repaired after a reboot."
            )

    @property
    def persistent(self) -> bool:
        """Whether samples are mirrored to a persistent store."""
        return self.__store is not None

    def get(self) -> OffsetSample:
        """
        Returns the current sample after checking it is still valid.

        Raises:
            MissingTimeDataError: If no complete sample exists in memory or in
                the store, or if the sample failed validation (in which case
                it has been evicted).
        """
        with self.__lock:
            sample = self.__load()
            if sample is None:
                raise MissingTimeDataError(
                    "No time data in memory or in the persistent store. "
                    "Has a network request succeeded at least once?"
                )

            stored_diff = sample.stored_clock_diff
            wall_now = self.__clock.wall_clock_ms()
            uptime_now = self.__clock.monotonic_clock_ms()
            live_diff = abs(wall_now - uptime_now)

            if abs(stored_diff - live_diff) > kClockDisagreementToleranceMs:
                logger.warning(
                    "Time data was found to be invalid when checked and has "
                    "been discarded. Stored clock offset: %d; stored uptime "
                    "offset: %d; live clock: %d; live uptime: %d; stored "
                    "clock difference: %d; live clock difference: %d",
                    sample.system_clock_offset,
                    sample.uptime_offset,
                    wall_now,
                    uptime_now,
                    stored_diff,
                    live_diff,
                )
                self.clear()
                raise MissingTimeDataError(
                    "Time data is invalid: the local clocks have moved "
                    "relative to each other since it was measured. A fresh "
                    "network request is required."
                )

            return sample

    def has(self) -> bool:
        """Whether `get()` would return a sample rather than raise."""
        try:
            self.get()
            return True
        except MissingTimeDataError:
            return False

    def put(self, sample: OffsetSample) -> None:
        """
        Replaces the current sample in memory and in the store.

        Raises:
            Exception: Whatever the store raised if it could not be written.
                The previous sample is kept in memory in that case.
        """
        with self.__lock:
            self.__write(sample)

    def update(
        self, transform: Callable[[OffsetSample], OffsetSample]
    ) -> Optional[OffsetSample]:
        """
        Replaces the current sample with |transform| applied to it.

        The current sample is read without validation, since the point of a
        transform is to repair a sample that one clock has invalidated. The
        read, transform and write happen as one critical section.

        Returns:
            The new sample, or None if there was no complete sample to
            transform, in which case nothing is written.
        """
        with self.__lock:
            old = self.__load()
            if old is None:
                return None
            new = transform(old)
            self.__write(new)
            return new

    def clear(self) -> None:
        """Removes the sample from memory and from the store."""
        with self.__lock:
            self.__sample = None
            if self.__store is not None:
                self.__store.remove(kKeyRoundTripDelay)
                self.__store.remove(kKeySystemClockOffset)
                self.__store.remove(kKeyUptimeOffset)

    def __load(self) -> Optional[OffsetSample]:
        """Returns the in-memory sample, falling back to the store."""
        if self.__sample is not None:
            return self.__sample
        if self.__store is None:
            return None

        logger.debug("No time data in memory; reading persistent store.")
        round_trip_delay = self.__store.get(kKeyRoundTripDelay)
        system_clock_offset = self.__store.get(kKeySystemClockOffset)
        uptime_offset = self.__store.get(kKeyUptimeOffset)
        if (
            round_trip_delay is None
            or system_clock_offset is None
            or uptime_offset is None
        ):
            return None

        self.__sample = OffsetSample(
            round_trip_delay=round_trip_delay,
            system_clock_offset=system_clock_offset,
            uptime_offset=uptime_offset,
        )
        return self.__sample

    def __write(self, sample: OffsetSample) -> None:
        """
        Writes |sample| to the store as one update, then to memory.

        If the store write fails, the in-memory sample is left unchanged and
        the error propagates.
        """
        if self.__store is not None:
            logger.debug("Saving time data to persistent store: %s", sample)
            self.__store.set_many(
                {
                    kKeyRoundTripDelay: sample.round_trip_delay,
                    kKeySystemClockOffset: sample.system_clock_offset,
                    kKeyUptimeOffset: sample.uptime_offset,
                }
            )
        self.__sample = sample
