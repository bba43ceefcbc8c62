"""
Canonicalization of raw busy intervals into merged per-day ranges.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Tuple

from .exceptions import MalformedInterval
from .models import BusyInterval, TimeRange, in_timezone, to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedDay:
    """Merged busy ranges for one day plus the records that were rejected."""
    ranges: Tuple[TimeRange, ...]
    rejected: Tuple[MalformedInterval, ...] = ()


def validate_interval(interval: BusyInterval, timezone: str = "UTC") -> TimeRange:
    """
    Turn a raw busy interval into a validated absolute range.

    Naive bounds are read as wall-clock times in ``timezone``.

    Raises:
        MalformedInterval: If a bound is missing or start >= end
    """
    if interval.start is None or interval.end is None:
        raise MalformedInterval(f"Busy interval is missing a bound: {interval}", interval)

    start = to_utc(in_timezone(interval.start, timezone))
    end = to_utc(in_timezone(interval.end, timezone))
    if start >= end:
        raise MalformedInterval(f"Busy interval starts at {start} but ends at {end}", interval)

    return TimeRange(start=start, end=end)


def merge_intervals(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or touching ranges.

    Example: [09:00-10:00, 10:00-11:00, 10:30-12:00] -> [09:00-12:00]
    """
    sorted_ranges = sorted(ranges, key=lambda r: (r.start, r.end))
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]
    for current in sorted_ranges[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
        else:
            merged.append(current)

    return merged


def normalize_day(intervals: Iterable[BusyInterval], timezone: str) -> NormalizedDay:
    """
    Validate a day's busy intervals against ``timezone``, drop malformed records
    and merge the rest.

    Malformed records are logged and returned in ``rejected``; they never
    abort the day.
    """
    valid: List[TimeRange] = []
    rejected: List[MalformedInterval] = []

    for interval in intervals:
        try:
            valid.append(validate_interval(interval, timezone))
        except MalformedInterval as exc:
            logger.warning("Dropping malformed busy interval: %s", exc)
            rejected.append(exc)

    return NormalizedDay(ranges=tuple(merge_intervals(valid)), rejected=tuple(rejected))


def split_by_day(intervals: Iterable[BusyInterval], timezone: str) -> Dict[date, List[BusyInterval]]:
    """
    Bucket busy intervals by local calendar day in ``timezone``.

    Intervals crossing midnight are split into one piece per day. Malformed
    intervals are kept whole under their start day so ``normalize_day`` can
    reject them there.
    """
    buckets: Dict[date, List[BusyInterval]] = defaultdict(list)

    for interval in intervals:
        if interval.start is None:
            logger.warning("Skipping busy interval without a start: %s", interval)
            continue

        start = in_timezone(interval.start, timezone)
        end = in_timezone(interval.end, timezone) if interval.end is not None else None
        if end is None or to_utc(start) >= to_utc(end):
            buckets[start.date()].append(interval)
            continue

        cursor = start
        while to_utc(cursor) < to_utc(end):
            next_midnight = cursor.start_of("day").add(days=1)
            piece_end = end if to_utc(end) <= to_utc(next_midnight) else next_midnight
            buckets[cursor.date()].append(
                BusyInterval(start=cursor, end=piece_end, calendar_id=interval.calendar_id)
            )
            cursor = piece_end

    return dict(buckets)
