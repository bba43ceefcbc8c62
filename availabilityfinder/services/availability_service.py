"""
Application service for resolving availability across calendars.

The service fetches busy intervals through a calendar client adapter and
hands the merged data to the pure ``resolve_availability`` pipeline. All I/O
happens here: bounded fan-out across calendars, per-call timeouts, retry with
exponential backoff for transient provider failures, and cancellation of the
remaining fetches as soon as one fails for good. The engine is only invoked
once every fetch has completed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from ..config import FetchConfig
from ..domain.availability_engine import resolve_availability
from ..domain.exceptions import CalendarAPIError, Unavailable
from ..domain.models import AvailabilityQuery, AvailabilityResult, BusyInterval, local_datetime
from ..domain.normalizer import split_by_day
from ..adapters.graph_client import BusyPage

logger = logging.getLogger(__name__)


class CalendarClientProtocol(Protocol):
    """Protocol describing the calendar client behaviour needed by the service."""

    def fetch_busy_intervals(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        page_token: Optional[str] = None,
    ) -> BusyPage:
        """Return one page of busy intervals for a calendar."""


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for retryable provider failures."""
    max_retries: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        if retry_after is not None and retry_after >= 0:
            return min(retry_after, self.max_backoff_seconds)
        return min(self.backoff_seconds * (2 ** attempt), self.max_backoff_seconds)


class AvailabilityService:
    """
    Orchestrates busy-interval retrieval and availability resolution.

    Dependency inversion toward a protocol makes it easy to plug in the real
    Microsoft Graph adapter or the mock implementation in tests.
    """

    def __init__(
        self,
        calendar_client: CalendarClientProtocol,
        *,
        max_concurrency: int = 4,
        timeout_seconds: float = 30.0,
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._calendar_client = calendar_client
        self._max_concurrency = max_concurrency
        self._timeout_seconds = timeout_seconds
        self._retry_policy = retry_policy
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        calendar_client: CalendarClientProtocol,
        fetch_config: FetchConfig,
    ) -> "AvailabilityService":
        return cls(
            calendar_client,
            max_concurrency=fetch_config.max_concurrency,
            timeout_seconds=fetch_config.timeout_seconds,
            retry_policy=RetryPolicy(
                max_retries=fetch_config.max_retries,
                backoff_seconds=fetch_config.backoff_seconds,
                max_backoff_seconds=fetch_config.max_backoff_seconds,
            ),
        )

    async def find_availability(
        self,
        *,
        calendar_ids: Sequence[str],
        query: AvailabilityQuery,
    ) -> AvailabilityResult:
        """
        Fetch busy data for every calendar and resolve the query.

        Raises:
            CalendarAPIError: If calendar data could not be fetched
        """
        range_start, range_end = self.search_bounds(query)
        busy_times = await self.fetch_busy_times(
            calendar_ids=calendar_ids,
            range_start=range_start,
            range_end=range_end,
        )
        return self.resolve(query, busy_times)

    @staticmethod
    def search_bounds(query: AvailabilityQuery) -> tuple[datetime, datetime]:
        """Absolute bounds covering every day of the search range."""
        return (
            local_datetime(query.search_range_start, time(0), query.timezone),
            local_datetime(query.search_range_end, time(0), query.timezone).add(days=1),
        )

    async def fetch_busy_times(
        self,
        *,
        calendar_ids: Sequence[str],
        range_start: datetime,
        range_end: datetime,
    ) -> Dict[str, List[BusyInterval]]:
        """
        Fetch busy intervals for every calendar with bounded concurrency.

        The first non-retryable failure cancels the other fetches and is
        raised unchanged.
        """
        calendar_list = list(dict.fromkeys(calendar_ids))
        semaphore = asyncio.Semaphore(self._max_concurrency)

        tasks = [
            asyncio.create_task(
                self._fetch_calendar(calendar_id, range_start, range_end, semaphore)
            )
            for calendar_id in calendar_list
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return dict(zip(calendar_list, results))

    def resolve(
        self,
        query: AvailabilityQuery,
        busy_times: Dict[str, List[BusyInterval]],
    ) -> AvailabilityResult:
        """
        Resolve a query against fetched busy data.

        Busy intervals of all calendars are combined, so a day only has free
        time where every calendar is free. Days without any busy interval
        are left out of the mapping and follow ``query.unknown_day_policy``.
        """
        combined = [interval for intervals in busy_times.values() for interval in intervals]
        busy_by_day = split_by_day(combined, query.timezone)
        return resolve_availability(query, busy_by_day)

    async def _fetch_calendar(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        semaphore: asyncio.Semaphore,
    ) -> List[BusyInterval]:
        intervals: List[BusyInterval] = []
        page_token: Optional[str] = None
        pages = 0

        while True:
            async with semaphore:
                page = await self._fetch_page(calendar_id, range_start, range_end, page_token)
            intervals.extend(page.intervals)
            pages += 1
            if not page.next_page_token:
                break
            page_token = page.next_page_token

        logger.debug("Fetched %d busy interval(s) for %s in %d page(s)", len(intervals), calendar_id, pages)
        return intervals

    async def _fetch_page(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        page_token: Optional[str],
    ) -> BusyPage:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(
                        self._calendar_client.fetch_busy_intervals,
                        calendar_id,
                        range_start,
                        range_end,
                        page_token,
                    ),
                    timeout=self._timeout_seconds,
                )
            except asyncio.TimeoutError:
                error: CalendarAPIError = Unavailable(
                    f"Fetching calendar {calendar_id} timed out after {self._timeout_seconds}s"
                )
            except CalendarAPIError as exc:
                if not exc.retryable:
                    raise
                error = exc

            if attempt >= self._retry_policy.max_retries:
                raise error

            delay = self._retry_policy.delay_for(attempt, getattr(error, "retry_after", None))
            logger.warning(
                "Calendar %s: %s, retrying in %.1fs (attempt %d/%d)",
                calendar_id,
                error,
                delay,
                attempt + 1,
                self._retry_policy.max_retries,
            )
            await self._sleep(delay)
            attempt += 1
