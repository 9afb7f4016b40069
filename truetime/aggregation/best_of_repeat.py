"""Selects the most trustworthy of several samples taken from one host."""

from collections.abc import Iterable
from typing import Optional

from truetime.sntp.offset_sample import OffsetSample


def best_of_repeat(samples: Iterable[OffsetSample]) -> Optional[OffsetSample]:
    """
    Returns the sample with the smallest round trip delay.

    The comparison uses the signed delay, so a negative delay (possible when
    the server's clock steps mid-exchange) wins over any positive one. Ties go
    to the sample seen first.

    Returns:
        The best sample, or None if |samples| is empty.
    """
    best: Optional[OffsetSample] = None
    for sample in samples:
        if best is None or sample.round_trip_delay < best.round_trip_delay:
            best = sample
    return best
