"""Threading utilities for truetime."""

from truetime.threading.parallel_sampler import ParallelSampler, TaskOutcome

__all__ = ["ParallelSampler", "TaskOutcome"]
