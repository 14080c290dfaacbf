"""
Configuration loading: JSON into typed dataclasses.

The file (or the ``GCAL_SYNCER_CONFIG`` environment variable) holds::

    {
      "syncs": [
        {
          "id": "work-mirror",
          "source_calendars": [{"id": "a@group.calendar.google.com", "prefix": "[A] "}],
          "target_calendar_id": "me@example.com",
          "exclude_calendar_ids": [],
          "busy_only": true,
          "mask": "Busy"
        }
      ],
      "incremental": [
        {"id": "team", "source_calendar_id": "...", "target_calendar_id": "..."}
      ],
      "time_min": "2024-01-01T00:00:00Z",
      "update_concurrency": 10
    }

A bare object with ``source_calendars`` is read as a single entry of ``syncs``.
"""

import json
from pathlib import Path

from gcal_syncer.models import ConfigError
from gcal_syncer.models import IncrementalScope
from gcal_syncer.models import SourceSpec
from gcal_syncer.models import SyncConfig
from gcal_syncer.models import SyncScope

_TOP_LEVEL_KEYS = {
    "syncs",
    "incremental",
    "time_min",
    "time_max",
    "update_concurrency",
    "credentials_file",
}


def _check_keys(raw: dict, required: set[str], optional: set[str], where: str):
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object, got {type(raw).__name__}")
    missing = required - raw.keys()
    if missing:
        raise ConfigError(f"{where}: missing required field(s) {', '.join(sorted(missing))}")
    unknown = raw.keys() - required - optional
    if unknown:
        raise ConfigError(f"{where}: unknown field(s) {', '.join(sorted(unknown))}")


def _expect(value, kind: type, where: str):
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigError(f"{where}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def _str(raw: dict, key: str, where: str, default: str = "") -> str:
    return _expect(raw.get(key, default), str, f"{where}.{key}")


def _bool(raw: dict, key: str, where: str) -> bool:
    return _expect(raw.get(key, False), bool, f"{where}.{key}")


def _parse_source(raw, where: str) -> SourceSpec:
    _check_keys(raw, {"id"}, {"prefix"}, where)
    return SourceSpec(id=_str(raw, "id", where), prefix=_str(raw, "prefix", where))


def _parse_sync(raw, where: str) -> SyncScope:
    _check_keys(
        raw,
        {"id", "source_calendars", "target_calendar_id"},
        {"exclude_calendar_ids", "busy_only", "mask"},
        where,
    )
    sources = _expect(raw["source_calendars"], list, f"{where}.source_calendars")
    excludes = _expect(raw.get("exclude_calendar_ids", []), list, f"{where}.exclude_calendar_ids")
    return SyncScope(
        id=_str(raw, "id", where),
        source_calendars=[
            _parse_source(s, f"{where}.source_calendars[{i}]") for i, s in enumerate(sources)
        ],
        target_calendar_id=_str(raw, "target_calendar_id", where),
        exclude_calendar_ids=[
            _expect(c, str, f"{where}.exclude_calendar_ids[{i}]") for i, c in enumerate(excludes)
        ],
        busy_only=_bool(raw, "busy_only", where),
        mask=_str(raw, "mask", where),
    )


def _parse_incremental(raw, where: str) -> IncrementalScope:
    _check_keys(
        raw,
        {"id", "source_calendar_id", "target_calendar_id"},
        {"busy_only", "mask", "prefix"},
        where,
    )
    return IncrementalScope(
        id=_str(raw, "id", where),
        source_calendar_id=_str(raw, "source_calendar_id", where),
        target_calendar_id=_str(raw, "target_calendar_id", where),
        busy_only=_bool(raw, "busy_only", where),
        mask=_str(raw, "mask", where),
        prefix=_str(raw, "prefix", where),
    )


def parse_config(raw) -> SyncConfig:
    """Validate a decoded JSON document and return the typed configuration."""
    if isinstance(raw, dict) and "source_calendars" in raw:
        raw = {"syncs": [raw]}

    _check_keys(raw, set(), _TOP_LEVEL_KEYS, "config")
    syncs = _expect(raw.get("syncs", []), list, "config.syncs")
    incremental = _expect(raw.get("incremental", []), list, "config.incremental")

    config = SyncConfig(
        syncs=[_parse_sync(s, f"syncs[{i}]") for i, s in enumerate(syncs)],
        incremental=[_parse_incremental(s, f"incremental[{i}]") for i, s in enumerate(incremental)],
    )

    if raw.get("time_min") is not None:
        config.time_min = _expect(raw["time_min"], str, "config.time_min")
    if raw.get("time_max") is not None:
        config.time_max = _expect(raw["time_max"], str, "config.time_max")
    if raw.get("update_concurrency") is not None:
        config.update_concurrency = _expect(
            raw["update_concurrency"], int, "config.update_concurrency"
        )
    if raw.get("credentials_file") is not None:
        config.credentials_file = Path(
            _expect(raw["credentials_file"], str, "config.credentials_file")
        ).expanduser()

    validate_config(config)
    return config


def validate_config(config: SyncConfig):
    """Reject configurations that cannot be run."""
    if not config.scope_ids():
        raise ConfigError("config: no sync scopes configured")

    seen: set[str] = set()
    for scope_id in config.scope_ids():
        if not scope_id:
            raise ConfigError("config: scope id must not be empty")
        if scope_id in seen:
            raise ConfigError(f"config: duplicate scope id {scope_id!r}")
        seen.add(scope_id)

    for scope in config.syncs:
        if not scope.source_calendars:
            raise ConfigError(f"sync {scope.id!r}: at least one source calendar is required")

    if config.update_concurrency < 1:
        raise ConfigError("config: update_concurrency must be at least 1")


def load_config(config_path: Path | None = None, config_json: str | None = None) -> SyncConfig:
    """Load configuration from inline JSON when given, else from ``config_path``."""
    if config_json:
        source = "GCAL_SYNCER_CONFIG"
        text = config_json
    elif config_path is not None and config_path.exists():
        source = str(config_path)
        try:
            text = config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    else:
        raise ConfigError(
            f"No configuration found (looked for {config_path} and GCAL_SYNCER_CONFIG)"
        )

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{source}: invalid JSON: {e}") from e
    return parse_config(raw)
