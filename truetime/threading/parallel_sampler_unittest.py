import threading
import time
from typing import List, Tuple

import pytest

from truetime.threading.parallel_sampler import ParallelSampler, TaskOutcome


class CustomException(Exception):
    """A custom exception for testing."""


def double(value: int) -> int:
    return value * 2


def fail_on_odd(value: int) -> int:
    if value % 2:
        raise CustomException(f"odd: {value}")
    return value


class TestParallelSampler:

    def test_one_worker_per_element(self) -> None:
        sampler = ParallelSampler(double)
        assert sorted(sampler.one_worker_per_element([1, 2, 3])) == [2, 4, 6]

    def test_repeat_on_input(self) -> None:
        calls: List[str] = []
        lock = threading.Lock()

        def worker(value: str) -> str:
            with lock:
                calls.append(value)
            return value.upper()

        sampler = ParallelSampler(worker)
        assert sampler.repeat_on_input(4, "host") == ["HOST"] * 4
        assert calls == ["host"] * 4

    def test_empty_input(self) -> None:
        sampler = ParallelSampler(double)
        assert sampler.one_worker_per_element([]) == []
        assert sampler.repeat_on_input(0, 5) == []
        assert sampler.run_all([]) == []

    def test_failures_are_dropped_and_siblings_survive(self) -> None:
        sampler = ParallelSampler(fail_on_odd)
        results = sampler.one_worker_per_element([1, 2, 3, 4, 5])
        assert sorted(results) == [2, 4]

    def test_all_failures_yield_empty_list(self) -> None:
        sampler = ParallelSampler(fail_on_odd)
        assert sampler.repeat_on_input(3, 7) == []

    def test_on_failure_receives_input_and_exception(self) -> None:
        seen: List[Tuple[int, Exception]] = []
        lock = threading.Lock()

        def on_failure(value: int, error: Exception) -> None:
            with lock:
                seen.append((value, error))

        sampler = ParallelSampler(fail_on_odd, on_failure=on_failure)
        sampler.one_worker_per_element([1, 2, 3])

        assert sorted(v for v, _ in seen) == [1, 3]
        assert all(isinstance(e, CustomException) for _, e in seen)

    def test_raising_on_failure_does_not_sink_siblings(self, mocker) -> None:
        mock_logging_error = mocker.patch(
            "truetime.threading.parallel_sampler.logger.error"
        )

        def on_failure(value: int, error: Exception) -> None:
            raise RuntimeError("callback failed")

        sampler = ParallelSampler(fail_on_odd, on_failure=on_failure)
        assert sorted(sampler.one_worker_per_element([0, 1, 2])) == [0, 2]

        outcomes = sampler.run_all([1])
        assert not outcomes[0].ok
        assert isinstance(outcomes[0].error, CustomException)
        assert mock_logging_error.call_count == 2

    def test_run_all_reports_failures_as_values(self) -> None:
        sampler = ParallelSampler(fail_on_odd)
        outcomes = sampler.run_all([1, 2])

        assert outcomes[0].input_value == 1
        assert not outcomes[0].ok
        assert isinstance(outcomes[0].error, CustomException)
        assert outcomes[1] == TaskOutcome(input_value=2, result=2)
        assert outcomes[1].ok

    def test_duplicates_are_kept(self) -> None:
        sampler = ParallelSampler(lambda _: "same")
        assert sampler.one_worker_per_element([1, 2, 3]) == ["same"] * 3

    def test_runs_concurrently(self) -> None:
        count = 5
        barrier = threading.Barrier(count, timeout=5)

        def worker(value: int) -> int:
            # Deadlocks (and times out) unless every worker runs at once.
            barrier.wait()
            return value

        sampler = ParallelSampler(worker)
        assert sorted(sampler.one_worker_per_element(range(count))) == list(
            range(count)
        )

    def test_blocks_until_slow_worker_finishes(self) -> None:
        def worker(delay: float) -> float:
            time.sleep(delay)
            return delay

        sampler = ParallelSampler(worker)
        start = time.monotonic()
        results = sampler.one_worker_per_element([0.0, 0.2])
        assert time.monotonic() - start >= 0.2
        assert sorted(results) == [0.0, 0.2]

    def test_negative_count_is_rejected(self) -> None:
        with pytest.raises(AssertionError):
            ParallelSampler(double).repeat_on_input(-1, 1)
