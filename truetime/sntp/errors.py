"""Exceptions raised while acquiring or reading the network time."""

from typing import Optional

import ntplib  # type: ignore[import-untyped]


class InvalidNtpResponseError(ntplib.NTPException):  # type: ignore[misc]
    """
    Raised when an NTP server sends back a response that fails validation.

    The response was structurally readable, but one of its fields (or the
    timing of the exchange) makes it untrustworthy.
    """

    def __init__(
        self,
        message: str,
        property_name: str = "n/a",
        expected_value: Optional[float] = None,
        actual_value: Optional[float] = None,
    ) -> None:
        """
        Initializes the error.

        Args:
            message: Human readable description of the violation.
            property_name: The response property which failed validation.
            expected_value: The threshold or expected value, if any.
            actual_value: The value observed in the response, if any.
        """
        super().__init__(message)
        self.property_name = property_name
        self.expected_value = expected_value
        self.actual_value = actual_value


class MissingTimeDataError(Exception):
    """
    Raised when the true time is requested but no valid offset is known.

    Either no request has ever succeeded, the persisted data is incomplete, or
    the cached data was found to be stale and was discarded. A fresh network
    request is required.
    """
