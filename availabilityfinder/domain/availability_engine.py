"""
The availability resolution pipeline.

Pure domain logic without any external dependencies (no API calls, no I/O):

raw busy intervals -> merged busy ranges -> daily free blocks
-> duration-qualified days -> day runs -> ranked candidates
"""

import logging
from datetime import date
from typing import Iterable, List, Mapping

from .day_run_matcher import find_day_runs
from .duration_matcher import qualify_day
from .models import AvailabilityQuery, AvailabilityResult, BusyInterval, FreeBlock, QualifyingDay
from .normalizer import normalize_day
from .ranker import rank_runs
from .window_filter import free_blocks, unknown_day_blocks

logger = logging.getLogger(__name__)


def resolve_availability(
    query: AvailabilityQuery,
    busy_by_day: Mapping[date, Iterable[BusyInterval]],
) -> AvailabilityResult:
    """
    Compute the ranked multi-day candidate windows for a query.

    Args:
        query: Scheduling constraints
        busy_by_day: Busy intervals per local calendar day. A day missing from
            the mapping has no calendar data and follows
            ``query.unknown_day_policy``; a day mapped to an empty list is
            known to be free.

    Returns:
        AvailabilityResult, empty when nothing qualifies
    """
    evaluated: List[QualifyingDay] = []
    rejected = 0

    for day in query.days():
        if not query.is_allowed(day):
            evaluated.append(QualifyingDay(date=day))
            continue

        window = query.window_for(day)
        blocks: List[FreeBlock]

        if day in busy_by_day:
            normalized = normalize_day(busy_by_day[day], query.timezone)
            rejected += len(normalized.rejected)
            blocks = free_blocks(window, normalized.ranges)
        else:
            logger.debug("No calendar data for %s, treating as %s", day, query.unknown_day_policy.value)
            blocks = unknown_day_blocks(window, query.unknown_day_policy)

        evaluated.append(qualify_day(day, blocks, query.min_duration_minutes))

    runs = find_day_runs(
        evaluated,
        required_consecutive_days=query.required_consecutive_days,
        allowed_weekdays=query.allowed_weekdays,
        skip_excluded_weekdays=query.skip_excluded_weekdays,
    )
    ranked = rank_runs(runs, limit=query.result_limit)

    logger.debug(
        "Resolved %d run(s) from %d qualifying day(s) between %s and %s (%d interval(s) rejected)",
        len(ranked),
        sum(1 for day in evaluated if day.is_qualifying),
        query.search_range_start,
        query.search_range_end,
        rejected,
    )

    return AvailabilityResult(runs=tuple(ranked), rejected_intervals=rejected, evaluated_days=tuple(evaluated))
