"""
Tests for the Microsoft Graph calendarView client.

``requests.get`` is replaced with a fake, so no network access happens.
"""

from typing import Any, Dict, List, Optional

import pendulum
import pytest
import requests

from availabilityfinder.adapters import graph_client
from availabilityfinder.adapters.graph_client import GraphClient
from availabilityfinder.domain.exceptions import CalendarAPIError, RateLimited, Unauthorized, Unavailable

RANGE_START = pendulum.datetime(2024, 11, 24, 23, 0, tz="UTC")
RANGE_END = pendulum.datetime(2024, 11, 29, 23, 0, tz="UTC")


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeGet:
    """Replacement for requests.get that replays queued responses."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _event(start: str, end: str, show_as: str = "busy", cancelled: bool = False) -> Dict[str, Any]:
    return {
        "showAs": show_as,
        "isCancelled": cancelled,
        "start": {"dateTime": start, "timeZone": "UTC"},
        "end": {"dateTime": end, "timeZone": "UTC"},
    }


@pytest.fixture
def fake_get(monkeypatch):
    def install(*responses):
        fake = FakeGet(*responses)
        monkeypatch.setattr(graph_client.requests, "get", fake)
        return fake

    return install


def test_first_page_request_parameters(fake_get):
    fake = fake_get(FakeResponse(payload={"value": []}))
    client = GraphClient("token-123", page_size=25, timeout=10)

    client.fetch_busy_intervals("me", RANGE_START, RANGE_END)

    call = fake.calls[0]
    assert call["url"] == "https://graph.microsoft.com/v1.0/me/calendarView"
    assert call["params"]["startDateTime"] == "2024-11-24T23:00:00Z"
    assert call["params"]["endDateTime"] == "2024-11-29T23:00:00Z"
    assert call["params"]["$top"] == 25
    assert call["headers"]["Authorization"] == "Bearer token-123"
    assert call["headers"]["Prefer"] == 'outlook.timezone="UTC"'
    assert call["timeout"] == 10


def test_local_range_bounds_sent_as_utc(fake_get):
    fake = fake_get(FakeResponse(payload={"value": []}))

    GraphClient("token").fetch_busy_intervals(
        "me",
        pendulum.datetime(2024, 11, 25, tz="Europe/Berlin"),
        pendulum.datetime(2024, 11, 30, tz="Europe/Berlin"),
    )

    assert fake.calls[0]["params"]["startDateTime"] == "2024-11-24T23:00:00Z"
    assert fake.calls[0]["params"]["endDateTime"] == "2024-11-29T23:00:00Z"


def test_other_users_calendar_url(fake_get):
    fake = fake_get(FakeResponse(payload={"value": []}))

    GraphClient("token").fetch_busy_intervals("anna@example.com", RANGE_START, RANGE_END)

    assert fake.calls[0]["url"].endswith("/users/anna@example.com/calendarView")


def test_parses_busy_events_and_skips_free_and_cancelled(fake_get):
    fake_get(
        FakeResponse(
            payload={
                "value": [
                    _event("2024-11-25T08:00:00.0000000", "2024-11-25T09:00:00.0000000"),
                    _event("2024-11-25T10:00:00.0000000", "2024-11-25T11:00:00.0000000", show_as="free"),
                    _event("2024-11-25T12:00:00.0000000", "2024-11-25T13:00:00.0000000", cancelled=True),
                    _event("2024-11-25T14:00:00.0000000", "2024-11-25T15:00:00.0000000", show_as="tentative"),
                    {"showAs": "busy", "start": {}, "end": {}},
                ]
            }
        )
    )

    page = GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)

    assert [(i.start.hour, i.end.hour) for i in page.intervals] == [(8, 9), (14, 15)]
    assert page.intervals[0].start.timezone_name == "UTC"
    assert page.intervals[0].calendar_id == "me"
    assert page.next_page_token is None


def test_next_link_is_followed_verbatim(fake_get):
    next_link = "https://graph.microsoft.com/v1.0/me/calendarView?$skiptoken=abc"
    fake = fake_get(
        FakeResponse(payload={"value": [], "@odata.nextLink": next_link}),
        FakeResponse(payload={"value": []}),
    )
    client = GraphClient("token")

    first = client.fetch_busy_intervals("me", RANGE_START, RANGE_END)
    client.fetch_busy_intervals("me", RANGE_START, RANGE_END, page_token=first.next_page_token)

    assert first.next_page_token == next_link
    assert fake.calls[1]["url"] == next_link
    assert fake.calls[1]["params"] is None


@pytest.mark.parametrize("status", [401, 403])
def test_auth_failures_map_to_unauthorized(fake_get, status):
    fake_get(FakeResponse(status_code=status))

    with pytest.raises(Unauthorized):
        GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)


def test_throttling_maps_to_rate_limited_with_retry_after(fake_get):
    fake_get(FakeResponse(status_code=429, headers={"Retry-After": "12"}))

    with pytest.raises(RateLimited) as exc_info:
        GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)

    assert exc_info.value.retry_after == 12.0
    assert exc_info.value.retryable


@pytest.mark.parametrize("status", [500, 502, 503, 504])
def test_server_errors_map_to_unavailable(fake_get, status):
    fake_get(FakeResponse(status_code=status))

    with pytest.raises(Unavailable):
        GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)


@pytest.mark.parametrize(
    "error",
    [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("offline")],
)
def test_network_errors_map_to_unavailable(fake_get, error):
    fake_get(error)

    with pytest.raises(Unavailable):
        GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)


def test_other_client_errors_are_not_retryable(fake_get):
    fake_get(FakeResponse(status_code=400))

    with pytest.raises(CalendarAPIError) as exc_info:
        GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)

    assert not exc_info.value.retryable


def test_invalid_json_raises_calendar_api_error(fake_get):
    fake_get(FakeResponse(payload=ValueError("Expecting value")))

    with pytest.raises(CalendarAPIError, match="invalid JSON"):
        GraphClient("token").fetch_busy_intervals("me", RANGE_START, RANGE_END)


def test_connection_returns_profile(fake_get):
    fake = fake_get(FakeResponse(payload={"displayName": "Test User"}))

    assert GraphClient("token").test_connection() == {"displayName": "Test User"}
    assert fake.calls[0]["url"].endswith("/me")
