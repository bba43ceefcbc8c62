"""
Intersection of merged busy ranges with a day's availability window.
"""

from typing import List, Sequence

from .models import DayWindow, FreeBlock, TimeRange, UnknownDayPolicy


def _local_block(window: DayWindow, free: TimeRange) -> FreeBlock:
    return FreeBlock(
        date=window.date,
        start=free.start.in_timezone(window.timezone),
        end=free.end.in_timezone(window.timezone),
    )


def free_blocks(window: DayWindow, busy_ranges: Sequence[TimeRange]) -> List[FreeBlock]:
    """
    Subtract busy ranges from the window, yielding free blocks.

    ``busy_ranges`` must be merged and sorted (see ``merge_intervals``).
    Ranges outside the window are ignored, ranges crossing a window boundary
    are clipped. All arithmetic happens on UTC instants; the resulting blocks
    are expressed in the window's timezone.

    Example:
    Window: 09:00 - 17:00
    Busy: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
    """
    bounds = window.as_range()
    free: List[FreeBlock] = []
    current_start = bounds.start

    for busy in busy_ranges:
        clipped = bounds.intersect(busy)
        if clipped is None:
            continue

        if current_start < clipped.start:
            free.append(_local_block(window, TimeRange(start=current_start, end=clipped.start)))

        current_start = max(current_start, clipped.end)

    if current_start < bounds.end:
        free.append(_local_block(window, TimeRange(start=current_start, end=bounds.end)))

    return free


def unknown_day_blocks(window: DayWindow, policy: UnknownDayPolicy) -> List[FreeBlock]:
    """Free blocks for a day the calendar supplied no data for."""
    if policy is UnknownDayPolicy.BUSY:
        return []
    return [_local_block(window, window.as_range())]
