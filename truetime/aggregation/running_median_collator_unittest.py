import threading
from typing import List

from truetime.aggregation.running_median_collator import (
    RunningMedianCollator,
)
from truetime.sntp.offset_sample import OffsetSample


def sample(offset: int, delay: int = 10) -> OffsetSample:
    return OffsetSample(
        round_trip_delay=delay, system_clock_offset=offset, uptime_offset=0
    )


class TestRunningMedianCollator:

    def setup_method(self) -> None:
        self.emitted: List[OffsetSample] = []
        self.collator = RunningMedianCollator(self.emitted.append)

    def test_empty(self) -> None:
        assert self.collator.median is None
        assert len(self.collator) == 0

    def test_median_index_is_half_the_size(self) -> None:
        # [100] -> 100; [100, 300] -> index 1 -> 300; [100, 200, 300] -> 200.
        assert self.collator.admit(sample(100)) == sample(100)
        assert self.collator.admit(sample(300)) == sample(300)
        assert self.collator.admit(sample(200)) == sample(200)

        assert self.emitted == [sample(100), sample(300), sample(200)]
        assert self.collator.median == sample(200)

    def test_unchanged_median_is_not_emitted(self) -> None:
        self.collator.admit(sample(100))
        self.collator.admit(sample(300))
        self.collator.admit(sample(200))
        # [100, 200, 300, 400] -> index 2 -> 300.
        self.collator.admit(sample(400))
        # [50, 100, 200, 300, 400] -> index 2 -> 200.
        self.collator.admit(sample(50))
        # [50, 100, 200, 300, 400, 500] -> index 3 -> 300.
        self.collator.admit(sample(500))
        # [50, 100, 200, 250, 300, 400, 500] -> index 3 -> 250.
        self.collator.admit(sample(250))
        # [0, 50, 100, 200, 250, 300, 400, 500] -> index 4 -> 250.
        self.collator.admit(sample(0))

        assert [s.system_clock_offset for s in self.emitted] == [
            100,
            300,
            200,
            300,
            200,
            300,
            250,
        ]

    def test_identical_samples_collapse(self) -> None:
        self.collator.admit(sample(100))
        self.collator.admit(sample(300))
        # A second server agreeing on every field does not count twice.
        self.collator.admit(sample(100))

        assert len(self.collator) == 2
        assert self.collator.median == sample(300)
        assert self.emitted == [sample(100), sample(300)]

    def test_same_offset_different_delay_counts_twice(self) -> None:
        self.collator.admit(sample(100, delay=10))
        self.collator.admit(sample(100, delay=20))
        assert len(self.collator) == 2

    def test_works_without_callback(self) -> None:
        collator = RunningMedianCollator()
        assert collator.admit(sample(7)) == sample(7)

    def test_concurrent_admissions(self) -> None:
        thread_count = 16

        def admit(offset: int) -> None:
            self.collator.admit(sample(offset))

        threads = [
            threading.Thread(target=admit, args=(i * 10,))
            for i in range(thread_count)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(self.collator) == thread_count
        assert self.collator.median == sample((thread_count // 2) * 10)
        # Every emission differs from the one before it.
        for previous, current in zip(self.emitted, self.emitted[1:]):
            assert previous != current
        assert self.emitted[-1] == self.collator.median
