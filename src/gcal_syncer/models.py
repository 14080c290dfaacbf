"""
Pure data models: no Google API or sqlite imports.
"""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from threading import Event

DEFAULT_STATE_DB = Path.home() / ".local/share/gcal-syncer-state.db"
DEFAULT_CONFIG = Path.home() / ".config/gcal-syncer.json"
DEFAULT_UPDATE_CONCURRENCY = 10


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class ConfigError(CalendarSyncError):
    """Configuration is missing, malformed or inconsistent."""

    pass


class TransportError(CalendarSyncError):
    """A call against the calendar service failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ListingError(CalendarSyncError):
    """Enumerating a calendar failed; fatal to the current run."""

    def __init__(self, calendar_id: str, cause: Exception):
        super().__init__(f"listing calendar {calendar_id!r}: {cause}")
        self.calendar_id = calendar_id
        self.cause = cause


class SyncCancelledError(CalendarSyncError):
    """The run was cancelled while waiting to dispatch more work."""

    pass


@dataclass
class SourceSpec:
    """One source calendar and the prefix prepended to its titles."""

    id: str
    prefix: str = ""


@dataclass
class SyncScope:
    """Full reconciliation: many sources (minus exclusions) into one target."""

    id: str
    source_calendars: list[SourceSpec]
    target_calendar_id: str
    exclude_calendar_ids: list[str] = field(default_factory=list)
    busy_only: bool = False
    mask: str = ""


@dataclass
class IncrementalScope:
    """Incremental sync: one source into one target, scoped by a watermark."""

    id: str
    source_calendar_id: str
    target_calendar_id: str
    busy_only: bool = False
    mask: str = ""
    prefix: str = ""


@dataclass
class SyncConfig:
    """Configuration for a sync run."""

    syncs: list[SyncScope] = field(default_factory=list)
    incremental: list[IncrementalScope] = field(default_factory=list)
    time_min: str | None = None
    time_max: str | None = None
    update_concurrency: int = DEFAULT_UPDATE_CONCURRENCY
    credentials_file: Path | None = None

    def scope_ids(self) -> list[str]:
        return [s.id for s in self.syncs] + [s.id for s in self.incremental]


@dataclass
class SyncOptions:
    """Per-run knobs that are not part of the persisted configuration."""

    state_db_path: Path = DEFAULT_STATE_DB
    time_min: str | None = None
    time_max: str | None = None
    update_concurrency: int = DEFAULT_UPDATE_CONCURRENCY
    dry_run: bool = False
    full: bool = False  # ignore stored watermarks
    only: str | None = None  # restrict the run to one scope id
    cancel_event: Event | None = None
    deadline: float | None = None  # time.monotonic() value

    @classmethod
    def from_config(cls, config: SyncConfig, **overrides) -> "SyncOptions":
        opts = cls(
            time_min=config.time_min,
            time_max=config.time_max,
            update_concurrency=config.update_concurrency,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(opts, key, value)
        return opts


@dataclass
class ListFilters:
    """Query parameters understood by ``list_events``."""

    time_min: str | None = None
    time_max: str | None = None
    updated_since: str | None = None
    show_deleted: bool = False
    ical_uid: str | None = None
    single_events: bool = False


@dataclass
class EventPage:
    """One page of a listing; ``watermark`` is the service's modification stamp."""

    items: list[dict]
    watermark: str | None = None


@dataclass
class ChangeSet:
    """Classified result of diffing the desired state against a target listing."""

    creates: dict[str, dict] = field(default_factory=dict)
    updates: dict[str, dict] = field(default_factory=dict)
    deletes: dict[str, str] = field(default_factory=dict)  # target event id -> identity
    unchanged: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


OP_CREATE = "create"
OP_UPDATE = "update"
OP_DELETE = "delete"
OP_INSTANCE = "instance"


@dataclass
class Operation:
    """A single mutation against a target calendar."""

    kind: str
    calendar_id: str
    identity: str
    event: dict | None = None
    event_id: str | None = None

    def describe(self) -> str:
        if self.kind == OP_DELETE:
            return f"{self.kind} {self.event_id!r} ({self.identity})"
        if self.kind == OP_INSTANCE:
            return f"{self.kind} {self.event_id!r} of {self.identity}"
        return f"{self.kind} {self.identity!r}"


@dataclass
class OperationError:
    """An apply-phase failure for one operation."""

    operation: Operation
    cause: Exception

    def __str__(self) -> str:
        return f"{self.operation.describe()}: {self.cause}"


class ApplyError(CalendarSyncError):
    """Aggregate of every apply-phase failure in a run."""

    def __init__(self, failures: list[OperationError]):
        self.failures = list(failures)
        lines = [f"{len(self.failures)} operation(s) failed:"]
        lines.extend(f"  {f}" for f in self.failures)
        super().__init__("\n".join(lines))


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
