"""
Incremental sync: one source into one target, scoped by a per-scope watermark.

Only events changed since the stored watermark are fetched. Each one is
either a deletion (cancelled, or hidden by busy-only), an exception to a
recurring series, or a plain upsert. Plain events are planned while the
listing is consumed and applied first; exceptions are held back and
propagated afterwards, once every series master of the batch exists in the
target.
"""

from ..models import OP_CREATE
from ..models import OP_DELETE
from ..models import OP_INSTANCE
from ..models import IncrementalScope
from ..models import ListFilters
from ..models import ListingError
from ..models import Operation
from ..models import OperationError
from ..models import SyncOptions
from ..models import SyncStats
from ..models import TransportError
from ..transform import EventTransformer
from .apply import apply_operations
from .utils import CANCELLED
from .utils import incremental_identity
from .utils import is_event_cancelled
from .utils import is_recurring_exception
from .utils import is_visible
from .utils import original_start_value


def _collect(pages_factory, calendar_id: str) -> list[dict]:
    try:
        return [event for page in pages_factory() for event in page.items]
    except TransportError as e:
        raise ListingError(calendar_id, e) from e


def find_target_events(client, scope: IncrementalScope, identity: str) -> list[dict]:
    """Return every target event whose iCalUID is ``identity``."""
    filters = ListFilters(ical_uid=identity)
    return _collect(
        lambda: client.list_events(scope.target_calendar_id, filters), scope.target_calendar_id
    )


def resolve_series_master(client, scope: IncrementalScope, series_id: str) -> dict | None:
    """Return the target's master event for a source series, or None if not synced yet."""
    identity = incremental_identity(series_id, scope.id)
    for event in find_target_events(client, scope, identity):
        if not event.get("recurringEventId"):
            return event
    return None


def resolve_deletion(event: dict, scope: IncrementalScope, client, logger) -> list[Operation]:
    """Delete every target copy carrying the event's identity."""
    identity = incremental_identity(event["id"], scope.id)
    ops = [
        Operation(OP_DELETE, scope.target_calendar_id, identity, event_id=existing["id"])
        for existing in find_target_events(client, scope, identity)
    ]
    if not ops:
        logger.debug(f"No target copy of {identity} to delete")
    return ops


def propagate_exception(
    event: dict, scope: IncrementalScope, client, stats: SyncStats, logger
) -> list[Operation]:
    """
    Carry a single-occurrence override onto the matching target instance.

    The target series master is located by the parent's identity. When the
    master has not been synced yet the exception is skipped; a later run
    retries once the series exists. Otherwise every target instance at the
    override's original start time receives the override's time span,
    status and (masked or plain) title fields. An override hidden by
    busy-only cancels its instance.
    """
    series_id = event["recurringEventId"]
    master = resolve_series_master(client, scope, series_id)
    if master is None:
        logger.info(
            f"Skipping exception {event['id']!r}: series {series_id!r} "
            f"not in target calendar yet"
        )
        stats.skipped += 1
        return []

    if not is_visible(event, scope.busy_only):
        event = dict(event, status=CANCELLED)

    parent_identity = incremental_identity(series_id, scope.id)
    original_start = original_start_value(event)
    instances = _collect(
        lambda: client.list_instances(scope.target_calendar_id, master["id"], original_start),
        scope.target_calendar_id,
    )
    if not instances:
        logger.debug(f"No target instance of {parent_identity} at {original_start}")

    return [
        Operation(
            OP_INSTANCE,
            scope.target_calendar_id,
            parent_identity,
            event=EventTransformer.overlay_instance(instance, event, scope.prefix, scope.mask),
            event_id=instance["id"],
        )
        for instance in instances
    ]


def plan_event(
    event: dict, scope: IncrementalScope, client, stats: SyncStats, logger
) -> list[Operation]:
    """Classify one changed source event into target operations."""
    if is_recurring_exception(event):
        return propagate_exception(event, scope, client, stats, logger)

    if is_event_cancelled(event) or not is_visible(event, scope.busy_only):
        return resolve_deletion(event, scope, client, logger)

    identity = incremental_identity(event["id"], scope.id)
    body = EventTransformer.build_incremental(event, identity, scope.prefix, scope.mask)
    return [Operation(OP_CREATE, scope.target_calendar_id, identity, event=body)]


def run_incremental(
    scope: IncrementalScope,
    options: SyncOptions,
    stats: SyncStats,
    logger,
    client,
    watermark: str | None,
) -> tuple[str | None, list[OperationError]]:
    """
    Sync the events changed since ``watermark``.

    Returns the watermark reported by the last page (or the previous one when
    the source reported none) together with the apply-phase failures.
    Listing failures raise ListingError and leave the watermark untouched.
    """
    if watermark:
        logger.info(
            f"[{scope.id}] Listing changes in {scope.source_calendar_id!r} since {watermark}"
        )
        filters = ListFilters(updated_since=watermark, show_deleted=True)
    else:
        logger.info(f"[{scope.id}] No watermark, listing all of {scope.source_calendar_id!r}")
        filters = ListFilters(
            time_min=options.time_min, time_max=options.time_max, show_deleted=True
        )

    operations: list[Operation] = []
    exceptions: list[dict] = []
    new_watermark = watermark
    changed = 0
    try:
        for page in client.list_events(scope.source_calendar_id, filters):
            for event in page.items:
                changed += 1
                if is_recurring_exception(event):
                    exceptions.append(event)
                else:
                    operations.extend(plan_event(event, scope, client, stats, logger))
            if page.watermark:
                new_watermark = page.watermark
    except TransportError as e:
        raise ListingError(scope.source_calendar_id, e) from e

    logger.info(
        f"[{scope.id}] {changed} changed event(s): {len(operations)} operation(s), "
        f"{len(exceptions)} exception(s)"
    )
    failures = apply_operations(operations, client, options, stats, logger)

    # Masters written above are now resolvable by their overrides.
    overrides: list[Operation] = []
    for event in exceptions:
        overrides.extend(propagate_exception(event, scope, client, stats, logger))
    failures.extend(apply_operations(overrides, client, options, stats, logger))
    return new_watermark, failures
