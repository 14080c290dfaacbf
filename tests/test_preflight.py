"""
Tests for run_preflight_checks in gcal_syncer.preflight.
"""

from rich.console import Console

from gcal_syncer.models import SourceSpec
from gcal_syncer.models import SyncConfig
from gcal_syncer.preflight import run_preflight_checks
from tests.conftest import HOLIDAYS_CAL_ID
from tests.conftest import TARGET_CAL_ID
from tests.conftest import WORK_CAL_ID


def _console() -> Console:
    return Console(record=True, width=200)


def test_valid_config_passes(scope, incremental_scope, sync_options):
    config = SyncConfig(syncs=[scope], incremental=[incremental_scope])
    incremental_scope.target_calendar_id = "team-mirror@example.com"
    assert run_preflight_checks(config, sync_options, _console())
    assert sync_options.state_db_path.parent.exists()


def test_unknown_only(scope, sync_options):
    sync_options.only = "nope"
    console = _console()
    assert not run_preflight_checks(SyncConfig(syncs=[scope]), sync_options, console)
    assert "unknown scope id: nope" in console.export_text()


def test_target_also_source(scope, sync_options):
    scope.source_calendars.append(SourceSpec(TARGET_CAL_ID))
    console = _console()
    assert not run_preflight_checks(SyncConfig(syncs=[scope]), sync_options, console)
    assert "is also a source" in console.export_text()


def test_target_also_exclusion(scope, sync_options):
    scope.exclude_calendar_ids = [TARGET_CAL_ID]
    console = _console()
    assert not run_preflight_checks(SyncConfig(syncs=[scope]), sync_options, console)
    assert "is also an exclusion" in console.export_text()


def test_source_also_exclusion_only_warns(scope, sync_options, caplog):
    scope.exclude_calendar_ids = [WORK_CAL_ID, HOLIDAYS_CAL_ID]
    assert run_preflight_checks(SyncConfig(syncs=[scope]), sync_options, _console())
    assert "both source and exclusion" in caplog.text


def test_incremental_source_is_target(incremental_scope, sync_options):
    incremental_scope.target_calendar_id = incremental_scope.source_calendar_id
    console = _console()
    config = SyncConfig(incremental=[incremental_scope])
    assert not run_preflight_checks(config, sync_options, console)
    assert "source and target are both" in console.export_text()


def test_state_db_unwritable_dir(incremental_scope, sync_options, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    sync_options.state_db_path = blocker / "state.db"
    console = _console()
    config = SyncConfig(incremental=[incremental_scope])
    assert not run_preflight_checks(config, sync_options, console)
    assert "State database" in console.export_text()
