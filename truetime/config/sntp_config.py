from dataclasses import dataclass

from truetime.network.address_resolver import (
    kReachabilityPort,
    kReachabilityTimeoutSeconds,
)
from truetime.sntp.constants import (
    kDefaultMaxResponseDelayMs,
    kDefaultRootDelayMaxMs,
    kDefaultRootDispersionMaxMs,
    kDefaultTimeoutSeconds,
    kNtpPort,
)


@dataclass(frozen=True)
class SntpConfig:
    """Configuration for querying SNTP servers."""

    # Socket timeout for a single exchange.
    timeout_seconds: float = kDefaultTimeoutSeconds

    # Response validation thresholds, in milliseconds.
    root_delay_max_ms: float = kDefaultRootDelayMaxMs
    root_dispersion_max_ms: float = kDefaultRootDispersionMaxMs
    max_response_delay_ms: int = kDefaultMaxResponseDelayMs

    # Exchanges per address when querying many servers; the one with the
    # smallest round trip delay is kept.
    repeat_count: int = 4

    ntp_port: int = kNtpPort

    # TCP probe used to skip unreachable addresses before querying them.
    reachability_port: int = kReachabilityPort
    reachability_timeout_seconds: float = kReachabilityTimeoutSeconds

    def __post_init__(self) -> None:
        assert self.timeout_seconds > 0, "timeout_seconds must be positive"
        assert self.root_delay_max_ms > 0, "root_delay_max_ms must be positive"
        assert (
            self.root_dispersion_max_ms > 0
        ), "root_dispersion_max_ms must be positive"
        assert (
            self.max_response_delay_ms > 0
        ), "max_response_delay_ms must be positive"
        assert self.repeat_count >= 1, "repeat_count must be at least 1"
        assert (
            self.reachability_timeout_seconds > 0
        ), "reachability_timeout_seconds must be positive"
