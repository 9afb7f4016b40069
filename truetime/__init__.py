"""truetime: network-authoritative time for hosts with untrustworthy clocks.

Offsets from SNTP servers are measured against both the wall clock and the
monotonic clock, cached persistently, and repaired when a reboot or a manual
clock change invalidates one of them.
"""

from truetime.cache.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from truetime.config.sntp_config import SntpConfig
from truetime.repair.clock_event import ClockEvent
from truetime.sntp.errors import InvalidNtpResponseError, MissingTimeDataError
from truetime.sntp.offset_sample import OffsetSample
from truetime.true_time import TrueTime

__all__ = [
    "ClockEvent",
    "InMemoryKeyValueStore",
    "InvalidNtpResponseError",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MissingTimeDataError",
    "OffsetSample",
    "SntpConfig",
    "TrueTime",
]
