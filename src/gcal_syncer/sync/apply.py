"""
Change application: executes classified operations with bounded concurrency.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait

from ..models import OP_CREATE
from ..models import OP_DELETE
from ..models import OP_INSTANCE
from ..models import OP_UPDATE
from ..models import ChangeSet
from ..models import Operation
from ..models import OperationError
from ..models import SyncCancelledError
from ..models import SyncOptions
from ..models import SyncStats

# How often a blocked dispatcher re-checks for cancellation.
_SLOT_POLL_INTERVAL = 0.05

_DRY_RUN_VERBS = {
    OP_CREATE: "CREATE",
    OP_UPDATE: "UPDATE",
    OP_DELETE: "DELETE",
    OP_INSTANCE: "UPDATE INSTANCE",
}


def operations_from_changes(changes: ChangeSet, calendar_id: str) -> list[Operation]:
    """Flatten a ChangeSet into operations against ``calendar_id``."""
    ops = [
        Operation(OP_CREATE, calendar_id, identity, event=event)
        for identity, event in changes.creates.items()
    ]
    ops.extend(
        Operation(OP_UPDATE, calendar_id, identity, event=event, event_id=event.get("id"))
        for identity, event in changes.updates.items()
    )
    ops.extend(
        Operation(OP_DELETE, calendar_id, identity, event_id=event_id)
        for event_id, identity in changes.deletes.items()
    )
    return ops


def _cancelled(options: SyncOptions) -> bool:
    if options.cancel_event is not None and options.cancel_event.is_set():
        return True
    return options.deadline is not None and time.monotonic() >= options.deadline


def _acquire_slot(slots: threading.Semaphore, options: SyncOptions):
    """Block until a slot is free; raise SyncCancelledError if the run is stopped first."""
    while not slots.acquire(timeout=_SLOT_POLL_INTERVAL):
        if _cancelled(options):
            raise SyncCancelledError("sync cancelled while waiting for an apply slot")
    if _cancelled(options):
        slots.release()
        raise SyncCancelledError("sync cancelled while waiting for an apply slot")


def _execute(client, op: Operation):
    if op.kind in (OP_CREATE, OP_UPDATE):
        client.upsert_event(op.calendar_id, op.event)
    elif op.kind == OP_DELETE:
        client.delete_event(op.calendar_id, op.event_id)
    elif op.kind == OP_INSTANCE:
        client.update_event(op.calendar_id, op.event_id, op.event)
    else:
        raise ValueError(f"unknown operation kind {op.kind!r}")


def _count(stats: SyncStats, op: Operation):
    if op.kind == OP_CREATE:
        stats.added += 1
    elif op.kind == OP_DELETE:
        stats.deleted += 1
    else:
        stats.modified += 1


def apply_operations(
    operations: list[Operation],
    client,
    options: SyncOptions,
    stats: SyncStats,
    logger,
) -> list[OperationError]:
    """
    Execute ``operations`` and return every failure.

    At most ``options.update_concurrency`` operations are in flight at once.
    A failing operation never stops its siblings: all dispatched work runs to
    completion before the failures are returned. Raises SyncCancelledError if
    the run is cancelled while waiting for a slot; operations already handed
    to the pool still run to completion.
    """
    if options.dry_run:
        for op in operations:
            logger.info(f"[DRY RUN] Would {_DRY_RUN_VERBS[op.kind]} event: {op.describe()}")
            _count(stats, op)
        return []

    failures: list[OperationError] = []
    lock = threading.Lock()
    slots = threading.Semaphore(options.update_concurrency)

    def run(op: Operation):
        try:
            logger.debug(f"Applying {op.describe()}")
            _execute(client, op)
        except Exception as e:
            logger.error(f"Failed to {op.describe()}: {e}")
            with lock:
                failures.append(OperationError(op, e))
                stats.errors += 1
        else:
            with lock:
                _count(stats, op)
        finally:
            slots.release()

    executor = ThreadPoolExecutor(
        max_workers=options.update_concurrency, thread_name_prefix="gcal-apply"
    )
    futures = []
    try:
        for op in operations:
            _acquire_slot(slots, options)
            futures.append(executor.submit(run, op))
    except SyncCancelledError:
        executor.shutdown(wait=False, cancel_futures=False)
        raise

    wait(futures)
    executor.shutdown()
    return failures
