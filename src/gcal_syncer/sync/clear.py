"""
Clear operation: remove every event a scope has written to its target.
"""

from gcal_syncer.db import WatermarkStore
from gcal_syncer.models import OP_DELETE
from gcal_syncer.models import ListFilters
from gcal_syncer.models import ListingError
from gcal_syncer.models import Operation
from gcal_syncer.models import OperationError
from gcal_syncer.models import SyncOptions
from gcal_syncer.models import SyncStats
from gcal_syncer.models import TransportError
from gcal_syncer.sync.apply import apply_operations
from gcal_syncer.sync.utils import scope_suffix


def find_managed_events(client, calendar_id: str, scope_id: str) -> list[dict]:
    """Return target events whose iCalUID was minted by ``scope_id``."""
    suffix = scope_suffix(scope_id)
    try:
        return [
            event
            for page in client.list_events(calendar_id, ListFilters())
            for event in page.items
            if event.get("iCalUID", "").endswith(suffix)
        ]
    except TransportError as e:
        raise ListingError(calendar_id, e) from e


def perform_clear(
    scope_id: str,
    target_calendar_id: str,
    options: SyncOptions,
    stats: SyncStats,
    logger,
    client,
    store: WatermarkStore | None = None,
) -> list[OperationError]:
    """Delete managed events from the target, leaving other events untouched."""
    logger.warning(f"CLEAR MODE: Removing events synced by {scope_id!r}...")

    managed = find_managed_events(client, target_calendar_id, scope_id)
    if not managed:
        logger.info("No managed events found - calendar is clean")
    else:
        logger.info(f"Found {len(managed)} managed event(s) in {target_calendar_id!r}")

    operations = [
        Operation(OP_DELETE, target_calendar_id, event["iCalUID"], event_id=event["id"])
        for event in managed
    ]
    failures = apply_operations(operations, client, options, stats, logger)

    if store is not None:
        if options.dry_run:
            logger.info(f"[DRY RUN] Would forget watermark for {scope_id!r}")
        else:
            store.clear(scope_id)

    logger.info(f"Clear complete: removed {stats.deleted} synced event(s) (other events preserved)")
    return failures
