"""
Event transformation: turns source events into the copies written to a target.
"""

import copy

# Fields carried over unchanged from the source occurrence.
_TIME_FIELDS = ("start", "end")


class EventTransformer:
    """Builds target-side event bodies from source events per scope settings."""

    @staticmethod
    def _title_fields(original: dict, mask: str) -> dict:
        """Return summary/description/location, honouring an optional mask.

        A mask replaces the title and drops the description and location so
        nothing but the time block leaks into the target.
        """
        if mask:
            return {"summary": mask}
        fields = {"summary": original.get("summary", "")}
        for key in ("description", "location"):
            if original.get(key):
                fields[key] = original[key]
        return fields

    @classmethod
    def build(
        cls,
        base: dict | None,
        original: dict,
        identity: str,
        prefix: str,
        mask: str = "",
    ) -> dict:
        """
        Build the desired copy of ``original`` for full reconciliation.

        Args:
            base: Event already built for the same identity by an earlier
                source, or None when this is the first occurrence.
            original: The source event as listed.
            identity: The identity stored in the copy's iCalUID.
            prefix: Prefix of the source currently being merged.
            mask: Optional fixed title.

        Returns:
            A new event dict; ``base`` is never modified. When ``base`` is
            given only the title changes: ``prefix`` is prepended to the title
            already built, every other field keeps the first occurrence's value.
        """
        if base is not None:
            layered = dict(base)
            layered["summary"] = prefix + base.get("summary", "")
            return layered

        event = {"iCalUID": identity}
        for key in _TIME_FIELDS:
            if key in original:
                event[key] = copy.deepcopy(original[key])
        if original.get("transparency"):
            event["transparency"] = original["transparency"]

        event.update(cls._title_fields(original, mask))
        event["summary"] = prefix + event["summary"]
        return event

    @classmethod
    def build_incremental(cls, original: dict, identity: str, prefix: str, mask: str = "") -> dict:
        """Build the copy of ``original`` for incremental sync, keeping its recurrence."""
        event = cls.build(None, original, identity, prefix, mask)
        if original.get("recurrence"):
            event["recurrence"] = list(original["recurrence"])
        return event

    @classmethod
    def overlay_instance(cls, instance: dict, exception: dict, prefix: str, mask: str = "") -> dict:
        """Apply a source exception's overrides onto a target series instance."""
        updated = copy.deepcopy(instance)
        if exception.get("status") == "cancelled":
            # Cancelled overrides carry no other fields worth copying.
            updated["status"] = exception["status"]
            return updated

        for key in _TIME_FIELDS:
            if key in exception:
                updated[key] = copy.deepcopy(exception[key])
        if exception.get("status"):
            updated["status"] = exception["status"]

        updated.pop("description", None)
        updated.pop("location", None)
        updated.update(cls._title_fields(exception, mask))
        updated["summary"] = prefix + updated["summary"]
        return updated
