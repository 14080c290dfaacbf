"""
Shared pytest fixtures and event helpers.
"""

import logging

import pytest

from gcal_syncer.models import IncrementalScope
from gcal_syncer.models import SourceSpec
from gcal_syncer.models import SyncOptions
from gcal_syncer.models import SyncScope
from gcal_syncer.models import SyncStats

WORK_CAL_ID = "work@example.com"
HOME_CAL_ID = "home@example.com"
HOLIDAYS_CAL_ID = "holidays@example.com"
TARGET_CAL_ID = "mirror@example.com"
SCOPE_ID = "mirror"


def make_event(
    event_id: str,
    summary: str = "Test Event",
    start: str = "2026-03-01T10:00:00Z",
    end: str = "2026-03-01T11:00:00Z",
    **extra,
) -> dict:
    """Return a minimal timed Google event resource."""
    event = {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": start},
        "end": {"dateTime": end},
        "status": "confirmed",
    }
    event.update(extra)
    return event


def make_all_day_event(event_id: str, summary: str = "All Day", day: str = "2026-03-01") -> dict:
    return {
        "id": event_id,
        "summary": summary,
        "start": {"date": day},
        "end": {"date": day},
        "status": "confirmed",
    }


def make_cancelled_event(event_id: str, **extra) -> dict:
    """Return the stub Google sends for a deleted event when showDeleted is set."""
    event = {"id": event_id, "status": "cancelled"}
    event.update(extra)
    return event


def make_exception(
    series_id: str,
    original_start: str,
    summary: str = "Moved",
    start: str = "2026-03-02T14:00:00Z",
    end: str = "2026-03-02T15:00:00Z",
    **extra,
) -> dict:
    """Return a single-occurrence override of ``series_id``."""
    compact = original_start.replace("-", "").replace(":", "")
    return make_event(
        f"{series_id}_{compact}",
        summary=summary,
        start=start,
        end=end,
        recurringEventId=series_id,
        originalStartTime={"dateTime": original_start},
        **extra,
    )


@pytest.fixture
def scope():
    return SyncScope(
        id=SCOPE_ID,
        source_calendars=[SourceSpec(WORK_CAL_ID, "[W] ")],
        target_calendar_id=TARGET_CAL_ID,
    )


@pytest.fixture
def incremental_scope():
    return IncrementalScope(
        id="team",
        source_calendar_id=WORK_CAL_ID,
        target_calendar_id=TARGET_CAL_ID,
        prefix="[T] ",
    )


@pytest.fixture
def sync_options(tmp_path):
    return SyncOptions(state_db_path=tmp_path / "state.db", update_concurrency=4)


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
