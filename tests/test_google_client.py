"""
Tests for GoogleCalendarClient against a fake discovery service object.
"""

import httplib2
import pytest
from googleapiclient.errors import HttpError

from busy_mirror.google_client import GoogleCalendarClient
from busy_mirror.google_client import is_token_invalidated
from busy_mirror.models import CalendarSyncError
from busy_mirror.models import RemoteFetchError
from busy_mirror.models import SyncTokenInvalidated
from tests.conftest import NOW

GONE_BODY = (
    b'{"error": {"code": 410, "message": "Sync token is no longer valid, '
    b'a full sync is required.", "errors": [{"reason": "fullSyncRequired"}]}}'
)


def http_error(status: int, body: bytes = b"{}") -> HttpError:
    return HttpError(httplib2.Response({"status": status}), body)


class FakeRequest:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def execute(self):
        if self.error is not None:
            raise self.error
        return self.result


class FakeResource:
    """Records list/insert kwargs and replays queued responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            return FakeRequest(error=response)
        return FakeRequest(result=response)

    def list(self, **kwargs):
        return self._next(**kwargs)

    def insert(self, **kwargs):
        return self._next(**kwargs)


class FakeService:
    def __init__(self, events=(), calendars=()):
        self._events = FakeResource(events)
        self._calendars = FakeResource(calendars)

    def events(self):
        return self._events

    def calendarList(self):
        return self._calendars


def test_full_listing_sends_time_min():
    service = FakeService(events=[{"items": [], "nextSyncToken": "t1"}])
    client = GoogleCalendarClient(service)

    page = client.list_events("cal", time_min=NOW, max_results=50)

    assert page["nextSyncToken"] == "t1"
    assert service.events().calls == [
        {"calendarId": "cal", "maxResults": 50, "timeMin": "2026-10-19T09:00:00+00:00"}
    ]


def test_incremental_listing_sends_token_only():
    service = FakeService(events=[{"items": []}])
    client = GoogleCalendarClient(service)

    client.list_events("cal", sync_token="abc", time_min=NOW, page_token="p2")

    (params,) = service.events().calls
    assert params["syncToken"] == "abc"
    assert params["pageToken"] == "p2"
    assert "timeMin" not in params


def test_gone_with_token_is_invalidation():
    service = FakeService(events=[http_error(410, GONE_BODY)])
    client = GoogleCalendarClient(service)

    with pytest.raises(SyncTokenInvalidated):
        client.list_events("cal", sync_token="stale")


def test_gone_without_token_is_fetch_error():
    service = FakeService(events=[http_error(410, GONE_BODY)])
    client = GoogleCalendarClient(service)

    with pytest.raises(RemoteFetchError):
        client.list_events("cal", time_min=NOW)


def test_server_error_is_fetch_error():
    service = FakeService(events=[http_error(500)])
    client = GoogleCalendarClient(service)

    with pytest.raises(RemoteFetchError) as exc_info:
        client.list_events("cal", sync_token="abc")
    assert not isinstance(exc_info.value, SyncTokenInvalidated)


def test_dns_failure_is_fetch_error():
    service = FakeService(events=[httplib2.ServerNotFoundError("Unable to find the server")])
    client = GoogleCalendarClient(service)

    with pytest.raises(RemoteFetchError):
        client.list_events("cal", sync_token="abc")


def test_network_error_is_fetch_error():
    service = FakeService(events=[ConnectionResetError("reset by peer")])
    client = GoogleCalendarClient(service)

    with pytest.raises(RemoteFetchError):
        client.list_events("cal", sync_token="abc")


def test_is_token_invalidated():
    assert is_token_invalidated(http_error(410))
    assert is_token_invalidated(Exception("Sync token is no longer valid"))
    assert not is_token_invalidated(http_error(404))


def test_insert_event():
    body = {"summary": "Test", "start": {}, "end": {}}
    service = FakeService(events=[dict(body, id="new-1")])
    client = GoogleCalendarClient(service)

    created = client.insert_event(body, "cal")

    assert created["id"] == "new-1"
    assert service.events().calls == [{"calendarId": "cal", "body": body}]


def test_insert_event_failure():
    service = FakeService(events=[http_error(403)])
    client = GoogleCalendarClient(service)

    with pytest.raises(CalendarSyncError):
        client.insert_event({}, "cal")


def test_list_calendars_follows_pages():
    service = FakeService(
        calendars=[
            {"items": [{"id": "a"}], "nextPageToken": "n1"},
            {"items": [{"id": "b"}]},
        ]
    )
    client = GoogleCalendarClient(service)

    assert [c["id"] for c in client.list_calendars()] == ["a", "b"]
    assert [c["pageToken"] for c in service.calendarList().calls] == [None, "n1"]
