"""
Google Calendar API wrapper for the private (source) calendar.
"""

import logging
from datetime import datetime
from pathlib import Path

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .models import CalendarSyncError
from .models import RemoteFetchError
from .models import SyncTokenInvalidated

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Google answers an expired or otherwise unusable syncToken with 410 GONE
# and this message (reason "fullSyncRequired").
_TOKEN_INVALID_STATUS = 410
_TOKEN_INVALID_MSG = "sync token is no longer valid"


def is_token_invalidated(e: Exception) -> bool:
    """Return True when the remote service rejected the sync token."""
    resp = getattr(e, "resp", None)
    status = getattr(resp, "status", None)
    if status is not None and int(status) == _TOKEN_INVALID_STATUS:
        return True
    return _TOKEN_INVALID_MSG in str(e).lower()


def load_credentials(client_secrets_file: Path, token_file: Path) -> Credentials:
    """Load cached OAuth credentials, refreshing or running the consent flow as needed."""
    creds = None
    if token_file.exists():
        try:
            creds = Credentials.from_authorized_user_file(str(token_file), SCOPES)
        except ValueError as e:
            logger.warning("Ignoring unreadable token file %s: %s", token_file, e)
            creds = None
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except GoogleAuthError as e:
                raise CalendarSyncError(f"Failed to refresh Google credentials: {e}") from e
        else:
            if not client_secrets_file.exists():
                raise CalendarSyncError(
                    f"Google client secrets not found: {client_secrets_file}"
                )
            flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets_file), SCOPES)
            creds = flow.run_local_server(port=0)
        token_file.parent.mkdir(parents=True, exist_ok=True)
        token_file.write_text(creds.to_json())
    return creds


def build_service(client_secrets_file: Path, token_file: Path):
    creds = load_credentials(client_secrets_file, token_file)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


class GoogleCalendarClient:
    """Thin wrapper over the ``events``/``calendarList`` resources."""

    def __init__(self, service):
        self.service = service

    @classmethod
    def from_files(cls, client_secrets_file: Path, token_file: Path) -> "GoogleCalendarClient":
        return cls(build_service(client_secrets_file, token_file))

    def list_events(
        self,
        calendar_id: str,
        *,
        sync_token: str | None = None,
        time_min: datetime | None = None,
        page_token: str | None = None,
        max_results: int = 100,
    ) -> dict:
        """Fetch one page of events.

        With ``sync_token`` the page holds changes since that token;
        otherwise it is a full listing bounded below by ``time_min``.
        The API forbids combining ``syncToken`` with ``timeMin``.
        """
        params = {"calendarId": calendar_id, "maxResults": max_results}
        if sync_token:
            params["syncToken"] = sync_token
        elif time_min is not None:
            params["timeMin"] = time_min.isoformat()
        if page_token:
            params["pageToken"] = page_token

        try:
            return self.service.events().list(**params).execute()
        except HttpError as e:
            if sync_token and is_token_invalidated(e):
                raise SyncTokenInvalidated(
                    f"Sync token for {calendar_id} is no longer valid"
                ) from e
            raise RemoteFetchError(f"Failed to list events for {calendar_id}: {e}") from e
        except (OSError, httplib2.HttpLib2Error, GoogleAuthError) as e:
            raise RemoteFetchError(f"Failed to list events for {calendar_id}: {e}") from e

    def insert_event(self, body: dict, calendar_id: str) -> dict:
        """Create an event from a raw Events resource body."""
        try:
            return self.service.events().insert(calendarId=calendar_id, body=body).execute()
        except HttpError as e:
            raise CalendarSyncError(f"Failed to insert event into {calendar_id}: {e}") from e

    def list_calendars(self) -> list[dict]:
        """Return every calendarList entry visible to the account."""
        calendars: list[dict] = []
        page_token = None
        while True:
            try:
                result = self.service.calendarList().list(pageToken=page_token).execute()
            except (HttpError, OSError, httplib2.HttpLib2Error) as e:
                raise RemoteFetchError(f"Failed to list calendars: {e}") from e
            calendars.extend(result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                return calendars
