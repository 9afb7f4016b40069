import dataclasses

import pytest

from truetime.sntp.offset_sample import OffsetSample


def test_structural_equality_and_hash() -> None:
    a = OffsetSample(10, 1000, 900)
    b = OffsetSample(
        round_trip_delay=10, system_clock_offset=1000, uptime_offset=900
    )
    assert a == b
    assert hash(a) == hash(b)
    assert len({a, b}) == 1
    assert a != OffsetSample(11, 1000, 900)


def test_is_immutable() -> None:
    sample = OffsetSample(10, 1000, 900)
    with pytest.raises(dataclasses.FrozenInstanceError):
        sample.uptime_offset = 5  # type: ignore[misc]


def test_stored_clock_diff() -> None:
    assert OffsetSample(0, 1000, 900).stored_clock_diff == 100
    assert OffsetSample(0, 900, 1000).stored_clock_diff == 100


def test_derived_copies_keep_other_fields() -> None:
    sample = OffsetSample(10, 1000, 900)

    fixed_uptime = sample.with_uptime_offset(42)
    assert fixed_uptime == OffsetSample(10, 1000, 42)

    fixed_clock = sample.with_system_clock_offset(-7)
    assert fixed_clock == OffsetSample(10, -7, 900)

    assert sample == OffsetSample(10, 1000, 900)
