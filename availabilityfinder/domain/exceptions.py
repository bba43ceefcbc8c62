"""
Domain-specific exception hierarchy for the availability finder.
"""

from __future__ import annotations

from typing import Any, Optional


class AvailabilityError(Exception):
    """Base class for all application-level errors."""


class InvalidQuery(AvailabilityError, ValueError):
    """Raised when scheduling constraints are malformed. Never retried."""


class MalformedInterval(AvailabilityError, ValueError):
    """Raised for a single busy interval that cannot be used (start >= end)."""

    def __init__(self, message: str, interval: Any = None) -> None:
        super().__init__(message)
        self.interval = interval


class CalendarAPIError(AvailabilityError):
    """Raised when calendar data cannot be fetched or parsed."""

    retryable = False


class Unauthorized(CalendarAPIError):
    """The provider rejected our credentials or access to the calendar."""


class RateLimited(CalendarAPIError):
    """The provider throttled the request."""

    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class Unavailable(CalendarAPIError):
    """The provider could not be reached or answered with a transient failure."""

    retryable = True


class AuthenticationError(AvailabilityError):
    """Raised when authentication or token handling fails."""
