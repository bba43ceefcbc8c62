"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability_service import AvailabilityService, CalendarClientProtocol, RetryPolicy
from .contracts import AvailabilityRequest, AvailabilityResponse

__all__ = [
    "AvailabilityRequest",
    "AvailabilityResponse",
    "AvailabilityService",
    "CalendarClientProtocol",
    "RetryPolicy",
]
