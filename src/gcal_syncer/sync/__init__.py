"""
CalendarSynchronizer: thin orchestrator that delegates to sync submodules.
"""

import logging

from gcal_syncer.db import WatermarkStore
from gcal_syncer.google_client import GoogleCalendarClient
from gcal_syncer.models import ApplyError
from gcal_syncer.models import ConfigError
from gcal_syncer.models import OperationError
from gcal_syncer.models import SyncConfig
from gcal_syncer.models import SyncOptions
from gcal_syncer.models import SyncStats
from gcal_syncer.sync.clear import perform_clear
from gcal_syncer.sync.incremental import run_incremental
from gcal_syncer.sync.reconcile import run_reconciliation


class CalendarSynchronizer:
    """Main synchronization engine."""

    def __init__(self, config: SyncConfig, options: SyncOptions, client=None):
        self.config = config
        self.options = options
        self.client = client
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()

    def _selected(self, scopes):
        if self.options.only is None:
            return list(scopes)
        return [s for s in scopes if s.id == self.options.only]

    def _connect(self):
        if self.client is None:
            self.logger.info("Connecting to Google Calendar...")
            client = GoogleCalendarClient()
            client.connect(self.config.credentials_file)
            self.client = client

    def run(self) -> SyncStats:
        """
        Execute every configured scope.

        Listing failures abort immediately. Apply failures are collected
        across all scopes and raised together as one ApplyError once every
        scope has run; ``self.stats`` is complete either way.
        """
        self._connect()
        failures: list[OperationError] = []

        for scope in self._selected(self.config.syncs):
            self.logger.info(f"Syncing {scope.id!r} → {scope.target_calendar_id!r}")
            failures.extend(
                run_reconciliation(scope, self.options, self.stats, self.logger, self.client)
            )

        incremental = self._selected(self.config.incremental)
        if incremental:
            with WatermarkStore(self.options.state_db_path) as store:
                failures.extend(self._run_incremental(incremental, store))

        if failures:
            raise ApplyError(failures)
        return self.stats

    def _run_incremental(self, scopes, store: WatermarkStore) -> list[OperationError]:
        watermarks = {} if self.options.full else store.load()
        failures: list[OperationError] = []

        for scope in scopes:
            self.logger.info(f"Syncing {scope.id!r} incrementally → {scope.target_calendar_id!r}")
            new_watermark, scope_failures = run_incremental(
                scope,
                self.options,
                self.stats,
                self.logger,
                self.client,
                watermarks.get(scope.id),
            )
            failures.extend(scope_failures)

            # Advances even when some operations failed; never on a dry run.
            if new_watermark and not self.options.dry_run:
                store.save({scope.id: new_watermark})
                self.logger.debug(f"Saved watermark {new_watermark} for {scope.id!r}")

        return failures

    def clear(self, scope_id: str) -> SyncStats:
        """Remove everything ``scope_id`` has written to its target and forget its watermark."""
        scopes = {s.id: s for s in self.config.syncs + self.config.incremental}
        scope = scopes.get(scope_id)
        if scope is None:
            raise ConfigError(f"Unknown scope id {scope_id!r}")

        self._connect()
        with WatermarkStore(self.options.state_db_path) as store:
            failures = perform_clear(
                scope.id,
                scope.target_calendar_id,
                self.options,
                self.stats,
                self.logger,
                self.client,
                store,
            )
        if failures:
            raise ApplyError(failures)
        return self.stats
