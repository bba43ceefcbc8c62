"""
Mock calendar provider for running without Azure authentication.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import BusyInterval
from .graph_client import BusyPage

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockGraphClient:
    """
    Mock client that serves busy intervals from a JSON file.

    Each entry is ``{"calendarId": ..., "start": ..., "end": ...}``. Results
    are paginated with numeric page tokens to exercise the same code path as
    the real client.
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        events: Optional[List[Dict[str, Any]]] = None,
        page_size: int = 50,
        timezone: str = "UTC",
    ):
        """
        Initialize the mock client.

        Args:
            data_file: JSON file with mock events (defaults to the bundled data)
            events: Events to serve directly instead of loading a file
            page_size: Number of events per page
            timezone: Timezone for event times without an offset
        """
        self.page_size = page_size
        self.timezone = timezone
        self.calendar_events = events if events is not None else self._load_calendar_data(
            data_file or DEFAULT_DATA_FILE
        )

    @staticmethod
    def _load_calendar_data(data_file: Path) -> List[Dict[str, Any]]:
        if not data_file.exists():
            logger.warning("Mock calendar data file %s not found; serving no events", data_file)
            return []
        with open(data_file, "r", encoding="utf-8") as f:
            return json.load(f)

    def _parse(self, value: str) -> DateTime:
        # values without an offset are local to the configured timezone
        parsed = pendulum.parse(value, tz=self.timezone)
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Could not parse datetime: {value}")
        return parsed.in_timezone("UTC")

    def fetch_busy_intervals(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        page_token: Optional[str] = None,
    ) -> BusyPage:
        """
        Return one page of mock busy intervals overlapping the window.

        Raises:
            CalendarAPIError: If ``page_token`` is not a token this client issued
        """
        try:
            offset = int(page_token) if page_token else 0
        except ValueError as e:
            raise CalendarAPIError(f"Invalid page token: {page_token}") from e

        matching: List[BusyInterval] = []
        for event in self.calendar_events:
            if event.get("calendarId") != calendar_id:
                continue
            try:
                start = self._parse(event["start"])
                end = self._parse(event["end"])
            except (KeyError, ValueError) as e:
                logger.warning("Skipping invalid mock event %s: %s", event, e)
                continue
            if start < range_end and end > range_start:
                matching.append(BusyInterval(start=start, end=end, calendar_id=calendar_id))

        page = matching[offset:offset + self.page_size]
        next_offset = offset + self.page_size
        next_token = str(next_offset) if next_offset < len(matching) else None
        return BusyPage(intervals=page, next_page_token=next_token)

    def test_connection(self) -> Dict[str, Any]:
        """
        Mock connection test.

        Returns:
            Mock user profile data
        """
        return {
            "displayName": "Mock User",
            "mail": "mock.user@example.com",
            "userPrincipalName": "mock.user@example.com",
        }
