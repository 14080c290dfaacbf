"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from gcal_syncer.models import SyncConfig
from gcal_syncer.models import SyncOptions

logger = logging.getLogger(__name__)


def _scope_issues(config: SyncConfig) -> list[tuple[str, str, str]]:
    issues = []
    for scope in config.syncs:
        source_ids = {s.id for s in scope.source_calendars}
        if scope.target_calendar_id in source_ids:
            issues.append(
                (
                    f"Scope {scope.id}",
                    f"target {scope.target_calendar_id} is also a source",
                    "A scope would mirror its own copies; use a separate target calendar",
                )
            )
        if scope.target_calendar_id in scope.exclude_calendar_ids:
            issues.append(
                (
                    f"Scope {scope.id}",
                    f"target {scope.target_calendar_id} is also an exclusion",
                    "Every synced copy would exclude itself on the next run",
                )
            )
        overlap = source_ids & set(scope.exclude_calendar_ids)
        if overlap:
            logger.warning(
                "Scope %s: calendar(s) %s are both source and exclusion; they sync nothing",
                scope.id,
                ", ".join(sorted(overlap)),
            )
    for scope in config.incremental:
        if scope.target_calendar_id == scope.source_calendar_id:
            issues.append(
                (
                    f"Scope {scope.id}",
                    f"source and target are both {scope.source_calendar_id}",
                    "Use a separate target calendar",
                )
            )
    return issues


def run_preflight_checks(config: SyncConfig, options: SyncOptions, console: Console) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Scope selection
    if options.only is not None and options.only not in config.scope_ids():
        issues.append(
            (
                "Scope",
                f"unknown scope id: {options.only}",
                f"Configured scopes: {', '.join(config.scope_ids())}",
            )
        )

    # 2. Calendars wired sensibly
    issues.extend(_scope_issues(config))

    # 3. State DB parent dir writable + DB readable if it exists (incremental only)
    db_path = options.state_db_path
    if config.incremental:
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create state DB directory %s: %s", db_path.parent, e)
            issues.append(
                (
                    "State database",
                    f"{db_path}: {e}",
                    f"Check permissions on {db_path.parent}",
                )
            )
        else:
            if db_path.exists():
                try:
                    conn = sqlite3.connect(db_path)
                    conn.execute("SELECT 1")
                    # BEGIN IMMEDIATE takes the write lock, which needs a journal
                    # file beside the DB.
                    conn.execute("BEGIN IMMEDIATE")
                    conn.execute("ROLLBACK")
                    conn.close()
                except sqlite3.Error as e:
                    logger.error("State DB not readable/writable (%s): %s", db_path, e)
                    issues.append(
                        (
                            "State database",
                            f"{db_path}: {e}",
                            f"Check permissions on {db_path.parent} "
                            f"(journal files must be creatable alongside the DB)",
                        )
                    )

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
