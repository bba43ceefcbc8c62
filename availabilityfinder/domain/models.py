"""
Domain models for busy intervals, daily windows and multi-day runs.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, Iterable, Iterator, Optional, Tuple

import pendulum
from pendulum import DateTime
from pendulum.tz.exceptions import InvalidTimezone

from .exceptions import InvalidQuery

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
BUSINESS_DAYS: FrozenSet[int] = frozenset(range(5))  # 0=Monday, 6=Sunday


def local_datetime(day: date, at: time, timezone: str) -> DateTime:
    """Combine a calendar day and a wall-clock time in ``timezone``."""
    return pendulum.datetime(day.year, day.month, day.day, at.hour, at.minute, at.second, tz=timezone)


def in_timezone(value: datetime, timezone: str) -> DateTime:
    """Convert ``value`` to ``timezone``; naive values are taken as already local."""
    if value.tzinfo is None:
        return pendulum.instance(value, tz=timezone)
    return pendulum.instance(value).in_timezone(timezone)


def to_utc(value: datetime) -> DateTime:
    """Return the UTC instant of an aware datetime."""
    return in_timezone(value, "UTC")


class UnknownDayPolicy(str, enum.Enum):
    """How to treat a day for which the calendar supplied no data at all."""

    FREE = "free"
    BUSY = "busy"


@dataclass(frozen=True)
class BusyInterval:
    """
    A raw busy interval ``[start, end)`` as supplied by a calendar provider.

    Not validated on construction: malformed records are rejected by the
    normalizer so a single bad record never aborts a whole query.
    """
    start: datetime
    end: datetime
    calendar_id: str = ""


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Both bounds are stored as UTC instants, so ordering and overlap checks
    stay correct across DST transitions.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.start.diff(self.end).in_minutes()

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None
        return TimeRange(start=max(self.start, other.start), end=min(self.end, other.end))

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')} UTC"


@dataclass(frozen=True)
class DayWindow:
    """The requested daily availability window on one calendar day."""
    date: date
    open_time: time
    close_time: time
    timezone: str = "UTC"

    def __post_init__(self):
        if self.open_time >= self.close_time:
            raise ValueError(
                f"Window opens at {self.open_time} but closes at {self.close_time}"
            )

    def as_range(self) -> TimeRange:
        """Return the window's local opening hours as an absolute range."""
        return TimeRange(
            start=local_datetime(self.date, self.open_time, self.timezone),
            end=local_datetime(self.date, self.close_time, self.timezone),
        )


@dataclass(frozen=True)
class FreeBlock:
    """A free sub-interval of a day's window, in the window's local time."""
    date: date
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if to_utc(self.start) >= to_utc(self.end):
            raise ValueError(f"Free block start {self.start} must be before end {self.end}")

    def duration_minutes(self) -> int:
        return to_utc(self.start).diff(to_utc(self.end)).in_minutes()

    def duration_seconds(self) -> int:
        return to_utc(self.start).diff(to_utc(self.end)).in_seconds()

    def __str__(self) -> str:
        return f"{self.start.format('HH:mm')} – {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class QualifyingDay:
    """A day and its free blocks that satisfy the minimum duration."""
    date: date
    blocks: Tuple[FreeBlock, ...] = ()

    @property
    def is_qualifying(self) -> bool:
        return bool(self.blocks)

    def total_free_minutes(self) -> int:
        return sum(block.duration_minutes() for block in self.blocks)


@dataclass(frozen=True)
class DayRun:
    """
    A run of qualifying days of the required length.

    ``days`` always holds exactly the required number of days. When excluded
    weekdays are skipped, ``end_date`` may lie further out than
    ``len(days) - 1`` days after ``start_date``.
    """
    start_date: date
    end_date: date
    days: Tuple[QualifyingDay, ...]

    def total_free_minutes(self) -> int:
        return sum(day.total_free_minutes() for day in self.days)

    @property
    def is_multi_day(self) -> bool:
        return len(self.days) > 1

    def format_display(self) -> str:
        """
        Format the run for display.
        Format: Ddd DD.MM.YYYY – Ddd DD.MM.YYYY (N min free)
        """
        span = f"{self.start_date:%a %d.%m.%Y}"
        if self.is_multi_day:
            span = f"{span} – {self.end_date:%a %d.%m.%Y}"
        return f"{span} ({self.total_free_minutes()} min free)"


@dataclass(frozen=True)
class AvailabilityQuery:
    """
    Structured, immutable scheduling constraints for one engine call.

    Raises:
        InvalidQuery: If any constraint is malformed
    """
    search_range_start: date
    search_range_end: date
    daily_open_time: time
    daily_close_time: time
    min_duration_minutes: int
    required_consecutive_days: int = 1
    allowed_weekdays: FrozenSet[int] = BUSINESS_DAYS
    timezone: str = "UTC"
    unknown_day_policy: UnknownDayPolicy = UnknownDayPolicy.FREE
    skip_excluded_weekdays: bool = True
    result_limit: Optional[int] = None

    def __post_init__(self):
        if self.search_range_start > self.search_range_end:
            raise InvalidQuery(
                f"Search range start {self.search_range_start} is after end {self.search_range_end}"
            )
        if self.min_duration_minutes <= 0:
            raise InvalidQuery("Minimum duration must be greater than 0")
        if self.required_consecutive_days < 1:
            raise InvalidQuery("Required consecutive days must be at least 1")
        if self.daily_open_time >= self.daily_close_time:
            raise InvalidQuery(
                f"Daily window opens at {self.daily_open_time} but closes at {self.daily_close_time}"
            )
        if self.result_limit is not None and self.result_limit <= 0:
            raise InvalidQuery("Result limit must be greater than 0")

        weekdays = parse_weekdays(self.allowed_weekdays)
        if not weekdays:
            raise InvalidQuery("At least one allowed weekday is required")
        invalid = sorted(day for day in weekdays if day not in range(7))
        if invalid:
            raise InvalidQuery(f"Weekdays must be between 0 (Monday) and 6 (Sunday), got {invalid}")
        object.__setattr__(self, "allowed_weekdays", weekdays)
        object.__setattr__(self, "unknown_day_policy", UnknownDayPolicy(self.unknown_day_policy))

        try:
            pendulum.timezone(self.timezone)
        except (InvalidTimezone, ValueError) as exc:
            raise InvalidQuery(f"Unknown timezone: {self.timezone}") from exc

    def days(self) -> Iterator[date]:
        """Yield every calendar day of the search range, inclusive."""
        span = (self.search_range_end - self.search_range_start).days
        for offset in range(span + 1):
            yield self.search_range_start + timedelta(days=offset)

    def is_allowed(self, day: date) -> bool:
        return day.weekday() in self.allowed_weekdays

    def window_for(self, day: date) -> DayWindow:
        return DayWindow(
            date=day,
            open_time=self.daily_open_time,
            close_time=self.daily_close_time,
            timezone=self.timezone,
        )


@dataclass(frozen=True)
class AvailabilityResult:
    """
    Ranked day runs for one query. An empty result is a valid outcome,
    not an error.
    """
    runs: Tuple[DayRun, ...] = ()
    rejected_intervals: int = 0
    evaluated_days: Tuple[QualifyingDay, ...] = field(default=(), repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.runs

    def __iter__(self) -> Iterator[DayRun]:
        return iter(self.runs)

    def __len__(self) -> int:
        return len(self.runs)


def parse_weekdays(values: Iterable[object]) -> FrozenSet[int]:
    """
    Parse weekday identifiers (0-6 or English names / 3-letter prefixes).

    Raises:
        InvalidQuery: If an identifier is not a weekday
    """
    parsed = set()
    for value in values:
        if isinstance(value, int):
            parsed.add(value)
            continue
        text = str(value).strip().lower()
        if text.isdigit():
            parsed.add(int(text))
            continue
        matches = [idx for idx, name in enumerate(WEEKDAY_NAMES) if len(text) >= 3 and name.startswith(text)]
        if not matches:
            raise InvalidQuery(f"Unknown weekday: '{value}'")
        parsed.add(matches[0])
    return frozenset(parsed)
