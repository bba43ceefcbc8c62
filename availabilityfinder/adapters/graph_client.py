"""
Microsoft Graph API client for fetching calendar busy intervals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError, RateLimited, Unauthorized, Unavailable
from ..domain.models import BusyInterval

logger = logging.getLogger(__name__)

BUSY_STATUSES = {"busy", "tentative", "oof", "workingelsewhere"}
TRANSIENT_STATUS_CODES = {500, 502, 503, 504}


@dataclass(frozen=True)
class BusyPage:
    """One page of busy intervals plus the token for the next page, if any."""
    intervals: List[BusyInterval] = field(default_factory=list)
    next_page_token: Optional[str] = None


def _utc_iso(value: datetime) -> str:
    return pendulum.instance(value, tz="UTC").in_timezone("UTC").to_iso8601_string()


class GraphClient:
    """
    Client for Microsoft Graph API calendar operations.

    Uses the /calendarView endpoint, which expands recurring series into
    single occurrences and pages results through ``@odata.nextLink``.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    def __init__(self, access_token: str, page_size: int = 50, timeout: float = 30):
        """
        Initialize the Graph API client.

        Args:
            access_token: Valid Microsoft Graph access token
            page_size: Number of events requested per page
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.page_size = page_size
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Prefer": 'outlook.timezone="UTC"',
        }

    def _calendar_view_url(self, calendar_id: str) -> str:
        if not calendar_id or calendar_id.lower() == "me":
            return f"{self.GRAPH_API_ENDPOINT}/me/calendarView"
        return f"{self.GRAPH_API_ENDPOINT}/users/{calendar_id}/calendarView"

    def fetch_busy_intervals(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        page_token: Optional[str] = None,
    ) -> BusyPage:
        """
        Fetch one page of busy intervals for a calendar.

        Args:
            calendar_id: Mailbox address of the calendar owner, or "me"
            range_start: Start of the time window
            range_end: End of the time window
            page_token: ``@odata.nextLink`` of the previous page

        Returns:
            BusyPage with the busy intervals of this page

        Raises:
            Unauthorized: On 401/403
            RateLimited: On 429
            Unavailable: On 5xx, connection errors and timeouts
            CalendarAPIError: On any other failure
        """
        if page_token:
            url = page_token
            params = None
        else:
            url = self._calendar_view_url(calendar_id)
            params = {
                "startDateTime": _utc_iso(range_start),
                "endDateTime": _utc_iso(range_end),
                "$top": self.page_size,
                "$select": "start,end,showAs,isCancelled",
                "$orderby": "start/dateTime",
            }

        data = self._get(url, params)

        return BusyPage(
            intervals=self._parse_events(data.get("value", []), calendar_id),
            next_page_token=data.get("@odata.nextLink"),
        )

    def _get(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = requests.get(url, headers=self.headers, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise Unavailable(f"Microsoft Graph timed out: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise Unavailable(f"Could not reach Microsoft Graph: {e}") from e
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Failed to fetch calendar from Microsoft Graph: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise Unauthorized(f"Microsoft Graph denied access ({status})")
        if status == 429:
            raise RateLimited(
                "Microsoft Graph rate limit reached",
                retry_after=self._retry_after(response),
            )
        if status in TRANSIENT_STATUS_CODES:
            raise Unavailable(f"Microsoft Graph unavailable ({status})")

        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise CalendarAPIError(f"Failed to fetch calendar from Microsoft Graph: {e}") from e
        except ValueError as e:
            raise CalendarAPIError(f"Microsoft Graph returned invalid JSON: {e}") from e

    @staticmethod
    def _retry_after(response: requests.Response) -> Optional[float]:
        header = response.headers.get("Retry-After")
        if header is None:
            return None
        try:
            return float(header)
        except ValueError:
            return None

    def _parse_events(self, events: List[Dict[str, Any]], calendar_id: str) -> List[BusyInterval]:
        """
        Parse calendarView events into busy intervals.

        Event format:
        {
            "showAs": "busy",
            "isCancelled": false,
            "start": {"dateTime": "2024-11-25T09:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": "2024-11-25T10:00:00.0000000", "timeZone": "UTC"}
        }
        """
        busy: List[BusyInterval] = []

        for event in events:
            if event.get("isCancelled"):
                continue
            if str(event.get("showAs", "")).lower() not in BUSY_STATUSES:
                continue

            try:
                start = self._parse_datetime(event["start"]["dateTime"])
                end = self._parse_datetime(event["end"]["dateTime"])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Could not parse calendar event for %s: %s", calendar_id, e)
                continue

            busy.append(BusyInterval(start=start, end=end, calendar_id=calendar_id))

        return busy

    @staticmethod
    def _parse_datetime(datetime_str: str) -> DateTime:
        """Parse a Graph dateTime (UTC due to the Prefer header) into a pendulum DateTime."""
        value = pendulum.parse(datetime_str, tz="UTC")
        if isinstance(value, DateTime):
            return value
        raise ValueError(f"Could not parse datetime: {datetime_str}")

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching user profile.

        Returns:
            User profile data

        Raises:
            CalendarAPIError: If connection test fails
        """
        return self._get(f"{self.GRAPH_API_ENDPOINT}/me", None)
