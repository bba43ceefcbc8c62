"""
Deterministic ordering of candidate day runs.
"""

from typing import Iterable, List, Optional

from .models import DayRun


def rank_runs(runs: Iterable[DayRun], limit: Optional[int] = None) -> List[DayRun]:
    """
    Order runs by earliest start, then by most total free time.

    Runs sharing a start date are deduplicated, keeping the best-ranked one.
    An empty input gives an empty list.

    Args:
        runs: Candidate runs in any order
        limit: Maximum number of runs to return (None = unlimited)
    """
    ordered = sorted(
        runs,
        key=lambda run: (run.start_date, -run.total_free_minutes(), run.end_date),
    )

    ranked: List[DayRun] = []
    seen_starts = set()
    for run in ordered:
        if run.start_date in seen_starts:
            continue
        seen_starts.add(run.start_date)
        ranked.append(run)

    if limit is not None:
        return ranked[:limit]
    return ranked
