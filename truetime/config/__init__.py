"""Configuration for truetime."""

from truetime.config.sntp_config import SntpConfig

__all__ = ["SntpConfig"]
