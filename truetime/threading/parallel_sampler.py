"""
Defines `ParallelSampler`, which fans a worker out over threads.

Each unit of work runs on its own thread and its outcome, result or
exception, is captured as a value. Callers block until every unit has
finished and receive only the successful results, so a single failed or slow
exchange never costs them the rest.
"""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

InT = TypeVar("InT")
OutT = TypeVar("OutT")


@dataclass(frozen=True)
class TaskOutcome(Generic[InT, OutT]):
    """The result of running the worker once on |input_value|.

    Exactly one of `result` and `error` is meaningful, as given by `ok`.
    """

    input_value: InT
    result: Optional[OutT] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ParallelSampler(Generic[InT, OutT]):
    """
    Performs a worker function on its inputs concurrently.

    One thread is started per unit of work. There is no ordering guarantee
    on completion and no timeout beyond whatever the worker applies itself.
    """

    def __init__(
        self,
        worker: Callable[[InT], OutT],
        on_failure: Optional[Callable[[InT, Exception], None]] = None,
    ) -> None:
        """
        Initializes a ParallelSampler.

        Args:
            worker: Function run on each input.
            on_failure: Optional callback invoked with the input and the
                exception for every failed unit of work. Called from the
                worker thread.
        """
        assert worker is not None, "worker cannot be None"
        self.__worker = worker
        self.__on_failure = on_failure

    def repeat_on_input(self, count: int, value: InT) -> List[OutT]:
        """
        Runs the worker |count| times concurrently on the same input.

        Blocks until every run finishes, then returns the successful results.
        """
        assert count >= 0, f"count must be non-negative, got {count}"
        return self.__successes(self.run_all([value] * count))

    def one_worker_per_element(self, values: Iterable[InT]) -> List[OutT]:
        """
        Runs the worker once per element of |values|, concurrently.

        Blocks until every run finishes, then returns the successful results.
        Duplicate results are kept.
        """
        return self.__successes(self.run_all(values))

    def run_all(self, values: Iterable[InT]) -> List[TaskOutcome[InT, OutT]]:
        """
        Runs the worker once per element and returns every outcome.

        The returned list is in input order. Failures are reported as
        outcomes carrying the exception rather than being raised.
        """
        inputs = list(values)
        if not inputs:
            return []

        with ThreadPoolExecutor(
            max_workers=len(inputs), thread_name_prefix="ParallelSampler"
        ) as executor:
            futures = [executor.submit(self.__run_one, v) for v in inputs]
            return [future.result() for future in futures]

    def __run_one(self, value: InT) -> TaskOutcome[InT, OutT]:
        """Runs the worker, converting any exception into an outcome."""
        try:
            return TaskOutcome(input_value=value, result=self.__worker(value))
        # pylint: disable=broad-exception-caught # One failure must not sink the rest.
        except Exception as e:
            logger.debug("Worker failed for input %r: %r", value, e)
            if self.__on_failure is not None:
                self.__report_failure(value, e)
            return TaskOutcome(input_value=value, error=e)

    def __report_failure(self, value: InT, error: Exception) -> None:
        assert self.__on_failure is not None
        try:
            self.__on_failure(value, error)
        # pylint: disable=broad-exception-caught # Outcome still returned.
        except Exception as e:
            logger.error(
                "on_failure callback raised for input %r: %r",
                value,
                e,
                exc_info=True,
            )

    @staticmethod
    def __successes(
        outcomes: List[TaskOutcome[InT, OutT]],
    ) -> List[OutT]:
        return [o.result for o in outcomes if o.ok]  # type: ignore[misc]
