"""
Google Calendar v3 connectivity wrapper.
"""

import logging
from collections.abc import Iterator
from pathlib import Path

import google.auth
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .models import EventPage
from .models import ListFilters
from .models import TransportError

CALENDAR_EVENTS_SCOPE = "https://www.googleapis.com/auth/calendar.events"

# googleapiclient retries 429, 5xx and rate-limit 403 responses with backoff.
DEFAULT_NUM_RETRIES = 5

# Deleting an event that is already gone answers 404 or 410 (Gone).
_ALREADY_DELETED = frozenset({404, 410})

_logger = logging.getLogger(__name__)


def load_credentials(credentials_file: Path | None = None):
    """Service-account key file when given, Application Default Credentials otherwise."""
    if credentials_file is not None:
        return service_account.Credentials.from_service_account_file(
            str(credentials_file), scopes=[CALENDAR_EVENTS_SCOPE]
        )
    credentials, _ = google.auth.default(scopes=[CALENDAR_EVENTS_SCOPE])
    return credentials


def _status_of(error: HttpError) -> int | None:
    return getattr(error.resp, "status", None)


def _wrap(error: HttpError, action: str) -> TransportError:
    status = _status_of(error)
    return TransportError(f"{action} failed (HTTP {status}): {error}", status=status)


class GoogleCalendarClient:
    """Wrapper for Google Calendar event operations."""

    def __init__(self, service=None, num_retries: int = DEFAULT_NUM_RETRIES):
        self.service = service
        self.num_retries = num_retries

    def connect(self, credentials_file: Path | None = None):
        """Build the Calendar API service."""
        if self.service is not None:
            return
        try:
            credentials = load_credentials(credentials_file)
        except (GoogleAuthError, OSError, ValueError) as e:
            raise TransportError(f"Failed to load Google credentials: {e}") from e
        self.service = build("calendar", "v3", credentials=credentials, cache_discovery=False)

    def _events(self):
        if self.service is None:
            raise TransportError("Client not connected")
        return self.service.events()

    def _paginate(self, make_request, action: str) -> Iterator[EventPage]:
        page_token = None
        while True:
            try:
                result = make_request(page_token).execute(num_retries=self.num_retries)
            except HttpError as e:
                raise _wrap(e, action) from e
            yield EventPage(items=result.get("items", []), watermark=result.get("updated"))
            page_token = result.get("nextPageToken")
            if not page_token:
                return

    def list_events(
        self, calendar_id: str, filters: ListFilters | None = None
    ) -> Iterator[EventPage]:
        """Yield pages of events in ``calendar_id`` matching ``filters``."""
        filters = filters or ListFilters()
        params = {"calendarId": calendar_id}
        if filters.single_events:
            params["singleEvents"] = True
        if filters.show_deleted:
            params["showDeleted"] = True
        if filters.time_min:
            params["timeMin"] = filters.time_min
        if filters.time_max:
            params["timeMax"] = filters.time_max
        if filters.updated_since:
            params["updatedMin"] = filters.updated_since
        if filters.ical_uid:
            params["iCalUID"] = filters.ical_uid

        events = self._events()
        _logger.debug("events.list %s", params)
        return self._paginate(
            lambda token: events.list(pageToken=token, **params),
            f"listing {calendar_id!r}",
        )

    def list_instances(
        self, calendar_id: str, series_event_id: str, original_start: str | None
    ) -> Iterator[EventPage]:
        """Yield pages of instances of a recurring series, optionally at one original start."""
        params = {"calendarId": calendar_id, "eventId": series_event_id}
        if original_start:
            params["originalStart"] = original_start

        events = self._events()
        return self._paginate(
            lambda token: events.instances(pageToken=token, **params),
            f"listing instances of {series_event_id!r}",
        )

    def upsert_event(self, calendar_id: str, event: dict) -> dict:
        """Import an event; an existing event with the same iCalUID is replaced."""
        try:
            return (
                self._events()
                .import_(calendarId=calendar_id, body=event)
                .execute(num_retries=self.num_retries)
            )
        except HttpError as e:
            raise _wrap(e, f"importing {event.get('iCalUID')!r}") from e

    def update_event(self, calendar_id: str, event_id: str, event: dict) -> dict:
        """Replace an existing event addressed by the service's own id."""
        try:
            return (
                self._events()
                .update(calendarId=calendar_id, eventId=event_id, body=event)
                .execute(num_retries=self.num_retries)
            )
        except HttpError as e:
            raise _wrap(e, f"updating {event_id!r}") from e

    def delete_event(self, calendar_id: str, event_id: str):
        """Delete an event; an event that is already gone counts as deleted."""
        try:
            self._events().delete(calendarId=calendar_id, eventId=event_id).execute(
                num_retries=self.num_retries
            )
        except HttpError as e:
            if _status_of(e) in _ALREADY_DELETED:
                _logger.debug("Event %s already deleted", event_id)
                return
            raise _wrap(e, f"deleting {event_id!r}") from e
