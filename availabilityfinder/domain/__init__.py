"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability_engine import resolve_availability
from .models import (
    AvailabilityQuery,
    AvailabilityResult,
    BusyInterval,
    DayRun,
    DayWindow,
    FreeBlock,
    QualifyingDay,
    TimeRange,
    UnknownDayPolicy,
)

__all__ = [
    "AvailabilityQuery",
    "AvailabilityResult",
    "BusyInterval",
    "DayRun",
    "DayWindow",
    "FreeBlock",
    "QualifyingDay",
    "TimeRange",
    "UnknownDayPolicy",
    "resolve_availability",
]
