"""SNTP wire protocol: timestamps, samples and the single-exchange client."""

from truetime.sntp.errors import InvalidNtpResponseError, MissingTimeDataError
from truetime.sntp.offset_sample import OffsetSample
from truetime.sntp.sntp_client import SntpClient

__all__ = [
    "InvalidNtpResponseError",
    "MissingTimeDataError",
    "OffsetSample",
    "SntpClient",
]
