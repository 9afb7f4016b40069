"""Defines RunningMedianCollator, the consensus across several hosts."""

import logging
import threading
from collections.abc import Callable
from typing import Optional, Set

from truetime.sntp.offset_sample import OffsetSample

logger = logging.getLogger(__name__)


class RunningMedianCollator:
    """
    Tracks the median of per-host samples as they arrive.

    Each admitted sample joins a set, so two samples identical in every field
    count once. After every admission the median by `system_clock_offset` is
    recomputed, taking the element at index `len // 2` (the upper of the two
    middle elements for an even count). When the median changes it is handed
    to |on_new_median|, so consensus refines as servers respond rather than
    after all of them have.

    Admissions are serialized; `admit` may be called from any thread.
    Create one instance per multi-server query.
    """

    def __init__(
        self,
        on_new_median: Optional[Callable[[OffsetSample], None]] = None,
    ) -> None:
        """
        Initializes the collator.

        Args:
            on_new_median: Called with each new median, while the collator's
                lock is held, so emissions arrive in order.
        """
        self.__on_new_median = on_new_median
        self.__lock = threading.Lock()
        self.__samples: Set[OffsetSample] = set()
        self.__median: Optional[OffsetSample] = None

    @property
    def median(self) -> Optional[OffsetSample]:
        """The current median, or None if nothing has been admitted."""
        with self.__lock:
            return self.__median

    def __len__(self) -> int:
        with self.__lock:
            return len(self.__samples)

    def admit(self, sample: OffsetSample) -> OffsetSample:
        """
        Adds |sample| and recomputes the median.

        Returns:
            The median after the admission.
        """
        with self.__lock:
            self.__samples.add(sample)
            # Remaining fields only break ties, so set order cannot matter.
            ordered = sorted(
                self.__samples,
                key=lambda s: (
                    s.system_clock_offset,
                    s.round_trip_delay,
                    s.uptime_offset,
                ),
            )
            new_median = ordered[len(ordered) // 2]
            if new_median != self.__median:
                self.__median = new_median
                logger.info("New median time data: %s", new_median)
                if self.__on_new_median is not None:
                    self.__on_new_median(new_median)
            return new_median
