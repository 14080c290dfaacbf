"""
Full reconciliation: sources + exclusions → target.
"""

from collections.abc import Callable

from ..models import ChangeSet
from ..models import ListFilters
from ..models import ListingError
from ..models import OperationError
from ..models import SyncOptions
from ..models import SyncScope
from ..models import SyncStats
from ..models import TransportError
from ..transform import EventTransformer
from .apply import apply_operations
from .apply import operations_from_changes
from .utils import events_equal
from .utils import full_identity
from .utils import should_sync


def _window_filters(options: SyncOptions) -> ListFilters:
    return ListFilters(time_min=options.time_min, time_max=options.time_max, single_events=True)


def _each_event(client, calendar_id: str, options: SyncOptions, fn: Callable[[dict], None]):
    """Call ``fn`` for every event of every page; listing failures become ListingError."""
    try:
        for page in client.list_events(calendar_id, _window_filters(options)):
            for event in page.items:
                fn(event)
    except TransportError as e:
        raise ListingError(calendar_id, e) from e


def build_desired_state(scope: SyncScope, options: SyncOptions, client, logger) -> dict[str, dict]:
    """Aggregate every source calendar into a mapping keyed by identity."""
    desired: dict[str, dict] = {}

    for source in scope.source_calendars:
        logger.info(f"Listing source calendar {source.id!r}...")

        def merge(event: dict, prefix: str = source.prefix):
            if not should_sync(event, scope.busy_only):
                return
            identity = full_identity(event, scope.id)
            desired[identity] = EventTransformer.build(
                desired.get(identity), event, identity, prefix, scope.mask
            )

        _each_event(client, source.id, options, merge)

    return desired


def apply_exclusions(
    desired: dict[str, dict], scope: SyncScope, options: SyncOptions, client, logger
) -> dict[str, dict]:
    """Drop every identity that also appears in an exclusion calendar."""
    for calendar_id in scope.exclude_calendar_ids:
        logger.info(f"Listing exclude calendar {calendar_id!r}...")

        def exclude(event: dict):
            desired.pop(full_identity(event, scope.id), None)

        _each_event(client, calendar_id, options, exclude)

    return desired


def diff_target(
    desired: dict[str, dict], scope: SyncScope, options: SyncOptions, client, logger
) -> ChangeSet:
    """
    Classify every identity against the current target listing.

    ``desired`` is left untouched; update bodies are copies carrying the
    target's own event id so the import replaces in place.
    """
    logger.info(f"Listing target calendar {scope.target_calendar_id!r}...")
    changes = ChangeSet()
    pending = dict(desired)

    def classify(event: dict):
        identity = event.get("iCalUID", "")
        wanted = pending.pop(identity, None)
        if wanted is None:
            # Not desired, or a duplicate copy of an identity already matched.
            changes.deletes[event["id"]] = identity
        elif events_equal(wanted, event):
            changes.unchanged.add(identity)
        else:
            update = dict(wanted)
            update["id"] = event["id"]
            changes.updates[identity] = update

    _each_event(client, scope.target_calendar_id, options, classify)

    changes.creates = pending
    return changes


def run_reconciliation(
    scope: SyncScope, options: SyncOptions, stats: SyncStats, logger, client
) -> list[OperationError]:
    """Execute one full reconciliation pass; return the apply-phase failures."""
    desired = build_desired_state(scope, options, client, logger)
    apply_exclusions(desired, scope, options, client, logger)
    changes = diff_target(desired, scope, options, client, logger)

    logger.info(
        f"[{scope.id}] {len(changes.creates)} to create, {len(changes.updates)} to update, "
        f"{len(changes.deletes)} to delete, {len(changes.unchanged)} unchanged"
    )
    stats.unchanged += len(changes.unchanged)

    operations = operations_from_changes(changes, scope.target_calendar_id)
    return apply_operations(operations, client, options, stats, logger)
