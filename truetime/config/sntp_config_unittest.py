import dataclasses

import pytest

from truetime.config.sntp_config import SntpConfig


def test_defaults() -> None:
    config = SntpConfig()
    assert config.timeout_seconds == 30.0
    assert config.root_delay_max_ms == 100.0
    assert config.root_dispersion_max_ms == 100.0
    assert config.max_response_delay_ms == 200
    assert config.repeat_count == 4
    assert config.ntp_port == 123
    assert config.reachability_port == 80
    assert config.reachability_timeout_seconds == 5.0


def test_is_frozen() -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        SntpConfig().repeat_count = 2  # type: ignore[misc]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"timeout_seconds": 0},
        {"root_delay_max_ms": -1},
        {"root_dispersion_max_ms": 0},
        {"max_response_delay_ms": 0},
        {"repeat_count": 0},
        {"reachability_timeout_seconds": 0},
    ],
)
def test_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(AssertionError):
        SntpConfig(**kwargs)
