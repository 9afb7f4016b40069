"""Reduction of many offset samples into one estimate."""

from truetime.aggregation.best_of_repeat import best_of_repeat
from truetime.aggregation.running_median_collator import (
    RunningMedianCollator,
)

__all__ = ["RunningMedianCollator", "best_of_repeat"]
