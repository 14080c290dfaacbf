"""
Stateless event-inspection helpers.
"""

# Google omits ``transparency`` for the default (busy) value.
OPAQUE = "opaque"
TRANSPARENT = "transparent"
CANCELLED = "cancelled"

# Fields compared by ``events_equal``; (key, sub-key) where sub-key is None for scalars.
_COMPARED_FIELDS = (
    ("summary", None),
    ("description", None),
    ("location", None),
    ("start", "date"),
    ("start", "dateTime"),
    ("end", "date"),
    ("end", "dateTime"),
    ("transparency", None),
)


def normalized_transparency(event: dict) -> str:
    return event.get("transparency") or OPAQUE


def full_identity(event: dict, scope_id: str) -> str:
    """Return the cross-run identity used by full reconciliation.

    Transparency is folded in so that an event flipping between busy and free
    becomes a different occurrence: the old copy is deleted and a new one
    created rather than edited in place.
    """
    return f"{event['id']}-{normalized_transparency(event)}@{scope_id}"


def incremental_identity(event_id: str, scope_id: str) -> str:
    """Return the cross-run identity used by incremental sync."""
    return f"{event_id}@{scope_id}"


def scope_suffix(scope_id: str) -> str:
    """Every identity minted for ``scope_id`` ends with this suffix."""
    return f"@{scope_id}"


def is_event_cancelled(event: dict) -> bool:
    return event.get("status") == CANCELLED


def is_free_time(event: dict) -> bool:
    """Return True if the event does not block time (shows as available)."""
    return normalized_transparency(event) == TRANSPARENT


def is_visible(event: dict, busy_only: bool) -> bool:
    """Busy-only scopes hide free events; everything else is visible."""
    return not (busy_only and is_free_time(event))


def should_sync(event: dict, busy_only: bool) -> bool:
    return is_visible(event, busy_only) and not is_event_cancelled(event)


def is_recurring_exception(event: dict) -> bool:
    return bool(event.get("recurringEventId"))


def _field(event: dict, key: str, sub: str | None) -> str:
    if key == "transparency":
        return normalized_transparency(event)
    value = event.get(key)
    if sub is not None:
        value = (value or {}).get(sub)
    return value or ""


def events_equal(a: dict, b: dict) -> bool:
    """Strict equality on the mirrored fields; a missing value equals an empty one."""
    return all(_field(a, key, sub) == _field(b, key, sub) for key, sub in _COMPARED_FIELDS)


def original_start_value(event: dict) -> str | None:
    """Return the RFC3339 (or date) string of an exception's original start."""
    original = event.get("originalStartTime") or {}
    return original.get("dateTime") or original.get("date")
