"""
In-memory fake calendar client for testing.

Duck-type-compatible stand-in for GoogleCalendarClient. No network connection
is required; events are kept in plain lists keyed by calendar id.
"""

import copy
import threading
import time

from gcal_syncer.models import EventPage
from gcal_syncer.models import ListFilters
from gcal_syncer.models import TransportError
from gcal_syncer.sync.utils import original_start_value


class FakeCalendarClient:
    """In-memory stub that satisfies the GoogleCalendarClient duck-type contract."""

    def __init__(self, calendars: dict[str, list[dict]] | None = None, page_size: int = 2):
        # calendar id → events (Google resource dicts)
        self._calendars: dict[str, list[dict]] = {
            cal_id: [copy.deepcopy(e) for e in events]
            for cal_id, events in (calendars or {}).items()
        }
        self.page_size = page_size
        self.watermarks: dict[str, str] = {}
        self._next_id = 0
        self._lock = threading.Lock()

        # Failure injection
        self.fail_listing: set[str] = set()
        self.fail_keys: set[str] = set()  # iCalUIDs or event ids whose writes fail
        self.write_delay = 0.0

        # Call recording
        self.list_calls: list[tuple[str, ListFilters]] = []
        self.upserts: list[dict] = []
        self.updates: list[tuple[str, dict]] = []
        self.deletes: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    # ------------------------------------------------------------------ #
    # Internal helpers                                                      #
    # ------------------------------------------------------------------ #

    def _events(self, calendar_id: str) -> list[dict]:
        return self._calendars.setdefault(calendar_id, [])

    def _new_id(self) -> str:
        self._next_id += 1
        return f"t{self._next_id}"

    def _pages(self, items: list[dict], watermark: str | None):
        if not items:
            yield EventPage(items=[], watermark=watermark)
            return
        for start in range(0, len(items), self.page_size):
            yield EventPage(items=items[start : start + self.page_size], watermark=watermark)

    def _begin_write(self, key: str | None):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.write_delay:
            time.sleep(self.write_delay)
        if key in self.fail_keys:
            with self._lock:
                self.in_flight -= 1
            raise TransportError(f"simulated failure for {key}", status=500)

    def _end_write(self):
        with self._lock:
            self.in_flight -= 1

    @staticmethod
    def _matches(event: dict, filters: ListFilters) -> bool:
        if filters.ical_uid is not None and event.get("iCalUID") != filters.ical_uid:
            return False
        if filters.updated_since is not None and event.get("updated", "") < filters.updated_since:
            return False
        if not filters.show_deleted and event.get("status") == "cancelled":
            return False
        return True

    # ------------------------------------------------------------------ #
    # GoogleCalendarClient interface                                        #
    # ------------------------------------------------------------------ #

    def list_events(self, calendar_id: str, filters: ListFilters | None = None):
        filters = filters or ListFilters()
        self.list_calls.append((calendar_id, filters))
        if calendar_id in self.fail_listing:
            raise TransportError(f"simulated listing failure for {calendar_id}", status=503)
        items = [
            copy.deepcopy(e) for e in self._events(calendar_id) if self._matches(e, filters)
        ]
        return self._pages(items, self.watermarks.get(calendar_id))

    def list_instances(self, calendar_id: str, series_event_id: str, original_start: str | None):
        with self._lock:
            items = [
                copy.deepcopy(e)
                for e in self._events(calendar_id)
                if e.get("recurringEventId") == series_event_id
                and (original_start is None or original_start_value(e) == original_start)
            ]
            if not items and original_start is not None:
                instance = self._expand_instance(calendar_id, series_event_id, original_start)
                if instance is not None:
                    items = [copy.deepcopy(instance)]
        return self._pages(items, None)

    def _expand_instance(self, calendar_id: str, master_id: str, original_start: str):
        # Google materializes occurrences of a stored series on request.
        for master in self._events(calendar_id):
            if master["id"] != master_id or not master.get("recurrence"):
                continue
            if original_start >= master.get("start", {}).get("dateTime", ""):
                compact = original_start.replace("-", "").replace(":", "")
                instance = {
                    "id": f"{master_id}_{compact}",
                    "iCalUID": master.get("iCalUID"),
                    "recurringEventId": master_id,
                    "originalStartTime": {"dateTime": original_start},
                    "summary": master.get("summary", ""),
                    "start": {"dateTime": original_start},
                    "end": copy.deepcopy(master.get("end", {})),
                    "status": "confirmed",
                }
                self._events(calendar_id).append(instance)
                return instance
        return None

    def upsert_event(self, calendar_id: str, event: dict) -> dict:
        self._begin_write(event.get("iCalUID"))
        try:
            with self._lock:
                self.upserts.append(copy.deepcopy(event))
                stored = copy.deepcopy(event)
                events = self._events(calendar_id)
                for i, existing in enumerate(events):
                    if existing.get("iCalUID") == event.get("iCalUID") and not existing.get(
                        "recurringEventId"
                    ):
                        stored["id"] = existing["id"]
                        events[i] = stored
                        return copy.deepcopy(stored)
                stored["id"] = self._new_id()
                events.append(stored)
                return copy.deepcopy(stored)
        finally:
            self._end_write()

    def update_event(self, calendar_id: str, event_id: str, event: dict) -> dict:
        self._begin_write(event_id)
        try:
            with self._lock:
                self.updates.append((event_id, copy.deepcopy(event)))
                events = self._events(calendar_id)
                for i, existing in enumerate(events):
                    if existing["id"] == event_id:
                        events[i] = dict(copy.deepcopy(event), id=event_id)
                        return copy.deepcopy(events[i])
                raise TransportError(f"event {event_id} not found", status=404)
        finally:
            self._end_write()

    def delete_event(self, calendar_id: str, event_id: str):
        self._begin_write(event_id)
        try:
            with self._lock:
                self.deletes.append(event_id)
                self._calendars[calendar_id] = [
                    e for e in self._events(calendar_id) if e["id"] != event_id
                ]
        finally:
            self._end_write()

    # ------------------------------------------------------------------ #
    # Test helpers                                                          #
    # ------------------------------------------------------------------ #

    def events(self, calendar_id: str) -> list[dict]:
        return [copy.deepcopy(e) for e in self._events(calendar_id)]

    def event_count(self, calendar_id: str) -> int:
        return len(self._events(calendar_id))

    def by_uid(self, calendar_id: str, ical_uid: str) -> dict | None:
        for event in self._events(calendar_id):
            if event.get("iCalUID") == ical_uid and not event.get("recurringEventId"):
                return copy.deepcopy(event)
        return None

    def add_event(self, calendar_id: str, event: dict):
        self._events(calendar_id).append(copy.deepcopy(event))

    @property
    def write_count(self) -> int:
        return len(self.upserts) + len(self.updates) + len(self.deletes)

    def reset_counters(self):
        """Clear the recorded calls between sync runs."""
        self.list_calls.clear()
        self.upserts.clear()
        self.updates.clear()
        self.deletes.clear()
        self.max_in_flight = 0
