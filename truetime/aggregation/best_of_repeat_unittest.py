from truetime.aggregation.best_of_repeat import best_of_repeat
from truetime.sntp.offset_sample import OffsetSample


def sample(delay: int, offset: int = 0) -> OffsetSample:
    return OffsetSample(
        round_trip_delay=delay, system_clock_offset=offset, uptime_offset=0
    )


def test_selects_smallest_delay() -> None:
    samples = [sample(50, 1), sample(10, 2), sample(30, 3)]
    assert best_of_repeat(samples) == sample(10, 2)


def test_empty_input_is_none() -> None:
    assert best_of_repeat([]) is None


def test_single_sample() -> None:
    assert best_of_repeat([sample(99)]) == sample(99)


def test_ties_go_to_first_seen() -> None:
    samples = [sample(20, 1), sample(10, 2), sample(10, 3)]
    assert best_of_repeat(samples) == sample(10, 2)


def test_accepts_any_iterable() -> None:
    assert best_of_repeat(iter([sample(3), sample(1)])) == sample(1)


def test_negative_delay_is_treated_as_best() -> None:
    # The signed delay is compared, not its magnitude: a negative delay from
    # clock skew beats a genuinely short positive one.
    samples = [sample(5, 1), sample(-40, 2)]
    assert best_of_repeat(samples) == sample(-40, 2)
