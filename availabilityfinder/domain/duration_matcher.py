"""
Minimum-duration filtering of a day's free blocks.
"""

from datetime import date
from typing import Iterable

from .models import FreeBlock, QualifyingDay, to_utc


def qualify_day(day: date, blocks: Iterable[FreeBlock], min_duration_minutes: int) -> QualifyingDay:
    """
    Keep the blocks lasting at least ``min_duration_minutes``.

    Surviving blocks are not merged; they stay in start order so callers can
    pick the earliest option.
    """
    required_seconds = min_duration_minutes * 60
    kept = sorted(
        (block for block in blocks if block.duration_seconds() >= required_seconds),
        key=lambda block: to_utc(block.start),
    )
    return QualifyingDay(date=day, blocks=tuple(kept))
