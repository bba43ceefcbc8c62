"""
Detection of consecutive qualifying days.

The scan walks the days of the search range in order and tracks one open run:

- IDLE: no run open
- ACCUMULATING: run open, shorter than required
- COMPLETE: run reached the required length; it is emitted and its oldest
  day is released, so the next day can complete an overlapping run

Excluded weekdays never count toward a run. With ``skip_excluded_weekdays``
they are transparent (a weekend does not break a weekday run); without it
they break the run like a busy day.
"""

from collections import deque
from typing import Collection, Deque, List, Sequence

from .models import DayRun, QualifyingDay


def find_day_runs(
    days: Sequence[QualifyingDay],
    required_consecutive_days: int,
    allowed_weekdays: Collection[int],
    skip_excluded_weekdays: bool = True,
) -> List[DayRun]:
    """
    Find every run of ``required_consecutive_days`` qualifying allowed days.

    Args:
        days: One entry per calendar day, in date order
        required_consecutive_days: Run length to look for
        allowed_weekdays: Weekdays (0=Monday) that may be part of a run
        skip_excluded_weekdays: Whether excluded weekdays are transparent

    Returns:
        Runs in scan order; overlapping runs are all included
    """
    runs: List[DayRun] = []
    window: Deque[QualifyingDay] = deque()

    for day in days:
        allowed = day.date.weekday() in allowed_weekdays

        if not allowed and skip_excluded_weekdays:
            continue

        if not allowed or not day.is_qualifying:
            window.clear()
            continue

        window.append(day)

        if len(window) == required_consecutive_days:
            runs.append(
                DayRun(
                    start_date=window[0].date,
                    end_date=window[-1].date,
                    days=tuple(window),
                )
            )
            window.popleft()

    return runs
