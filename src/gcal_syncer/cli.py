"""
Command-line interface for gcal-syncer.
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gcal_syncer.config import load_config
from gcal_syncer.db import query_watermarks
from gcal_syncer.models import DEFAULT_CONFIG
from gcal_syncer.models import DEFAULT_STATE_DB
from gcal_syncer.models import ApplyError
from gcal_syncer.models import CalendarSyncError
from gcal_syncer.models import SyncCancelledError
from gcal_syncer.models import SyncConfig
from gcal_syncer.models import SyncOptions
from gcal_syncer.models import SyncStats
from gcal_syncer.sync import CalendarSynchronizer

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Mirror Google Calendar sources (minus exclusions) into target calendars.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    config_json: str | None = None
    state_db: Path = field(default_factory=lambda: DEFAULT_STATE_DB)
    credentials: Path | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option(
            "--config",
            "-c",
            envvar="GCAL_SYNCER_CONFIG_FILE",
            help=f"Config file path (default: {DEFAULT_CONFIG})",
        ),
    ] = DEFAULT_CONFIG,
    config_json: Annotated[
        str | None,
        typer.Option(
            "--config-json",
            envvar="GCAL_SYNCER_CONFIG",
            help="Inline JSON configuration (takes precedence over --config)",
        ),
    ] = None,
    state_db: Annotated[
        Path,
        typer.Option("--state-db", help=f"State DB path (default: {DEFAULT_STATE_DB})"),
    ] = DEFAULT_STATE_DB,
    credentials: Annotated[
        Path | None,
        typer.Option(
            "--credentials",
            help="Service-account key file (default: Application Default Credentials)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.config_json = config_json
    state.state_db = state_db
    state.credentials = credentials
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # googleapiclient logs every discovery/HTTP detail at INFO.
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _load_config() -> SyncConfig:
    try:
        cfg = load_config(state.config_path, state.config_json)
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    if state.credentials is not None:
        cfg.credentials_file = state.credentials
    return cfg


def _install_cancel_handler(cancel: threading.Event) -> None:
    """SIGTERM stops dispatching new work; in-flight calls finish."""

    def _handler(signum, frame):
        logging.getLogger(__name__).warning("Received signal %s, stopping...", signum)
        cancel.set()

    signal.signal(signal.SIGTERM, _handler)


def _print_results(stats: SyncStats) -> None:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(stats.added))
    results.add_row("Modified", str(stats.modified))
    results.add_row("Deleted", str(stats.deleted))
    results.add_row("Unchanged", str(stats.unchanged))
    results.add_row("Skipped", str(stats.skipped))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))


def _run(synchronizer: CalendarSynchronizer, action) -> None:
    """Run ``action`` and render its outcome; exit non-zero on any failure."""
    try:
        stats = action()
    except ApplyError as e:
        console.print(f"[bold red]{len(e.failures)} operation(s) failed:[/]")
        for failure in e.failures:
            console.print(f"  [red]✗[/] {failure}")
        _print_results(synchronizer.stats)
        raise typer.Exit(1) from None
    except SyncCancelledError as e:
        console.print(f"[yellow]{e}[/]")
        _print_results(synchronizer.stats)
        raise typer.Exit(1) from None
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e

    _print_results(stats)


def _scope_table(cfg: SyncConfig, only: str | None = None) -> Table:
    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Scope")
    table.add_column("Mode")
    table.add_column("Sources")
    table.add_column("Target")
    for scope in cfg.syncs:
        if only and scope.id != only:
            continue
        sources = "\n".join(
            f"{s.id}" + (f" [dim]({s.prefix!r})[/dim]" if s.prefix else "")
            for s in scope.source_calendars
        )
        if scope.exclude_calendar_ids:
            sources += "\n" + "\n".join(f"[red]− {c}[/]" for c in scope.exclude_calendar_ids)
        table.add_row(scope.id, "full", sources, scope.target_calendar_id)
    for scope in cfg.incremental:
        if only and scope.id != only:
            continue
        table.add_row(scope.id, "incremental", scope.source_calendar_id, scope.target_calendar_id)
    return table


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


@app.command()
def sync(
    time_min: Annotated[
        str | None,
        typer.Option(envvar="GCAL_SYNCER_TIME_MIN", help="Only list events ending after (RFC3339)"),
    ] = None,
    time_max: Annotated[
        str | None,
        typer.Option(
            envvar="GCAL_SYNCER_TIME_MAX", help="Only list events starting before (RFC3339)"
        ),
    ] = None,
    update_concurrency: Annotated[
        int | None,
        typer.Option(
            envvar="GCAL_SYNCER_UPDATE_CONCURRENCY",
            min=1,
            help="Maximum concurrent write calls (default: 10)",
        ),
    ] = None,
    only: Annotated[str | None, typer.Option("--only", help="Sync a single scope id")] = None,
    full: Annotated[
        bool, typer.Option("--full", help="Ignore stored watermarks and list everything")
    ] = False,
    timeout: Annotated[
        float | None,
        typer.Option(help="Stop dispatching new writes after this many seconds"),
    ] = None,
    dry_run: _DRY_RUN = False,
) -> None:
    """Reconcile every configured target calendar with its sources."""
    from gcal_syncer.preflight import run_preflight_checks

    cfg = _load_config()
    cancel = threading.Event()
    options = SyncOptions.from_config(
        cfg,
        state_db_path=state.state_db,
        time_min=time_min,
        time_max=time_max,
        update_concurrency=update_concurrency,
        dry_run=dry_run,
        full=full,
        only=only,
        cancel_event=cancel,
        deadline=time.monotonic() + timeout if timeout else None,
    )

    if not run_preflight_checks(cfg, options, console):
        raise typer.Exit(1)

    info = Text()
    info.append("  Operation: ")
    info.append("SYNC", style="bold green")
    if options.full:
        info.append(" (full listing)", style="yellow")
    if options.time_min or options.time_max:
        info.append(f"\n  Window:    {options.time_min or '…'} → {options.time_max or '…'}")
    info.append(f"\n  Writers:   {options.update_concurrency}")
    if options.dry_run:
        info.append("\n  Mode:      ")
        info.append("DRY RUN", style="bold magenta")
    console.print(Panel(_scope_table(cfg, only), title="[bold]gcal-syncer[/bold]"))
    console.print(info)

    _install_cancel_handler(cancel)
    synchronizer = CalendarSynchronizer(cfg, options)
    _run(synchronizer, synchronizer.run)


@app.command()
def clear(
    scope_id: Annotated[str, typer.Argument(help="Scope whose synced events are removed")],
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Remove every event a scope created in its target, and forget its watermark.

    Events in the target that were not created by [bold]SCOPE_ID[/bold] are left untouched.
    """
    cfg = _load_config()
    options = SyncOptions.from_config(cfg, state_db_path=state.state_db, dry_run=dry_run)

    console.print(
        Panel(
            Text.from_markup(
                f"  Scope:     [cyan]{scope_id}[/]\n"
                f"  Operation: [bold red]CLEAR (remove synced events, no resync)[/]"
                + ("\n  Mode:      [bold magenta]DRY RUN[/]" if dry_run else "")
            ),
            title="[bold]gcal-syncer[/bold]",
        )
    )
    if not yes and not dry_run:
        typer.confirm("Proceed?", abort=True)

    synchronizer = CalendarSynchronizer(cfg, options)
    _run(synchronizer, lambda: synchronizer.clear(scope_id))


@app.command()
def status() -> None:
    """Show sync configuration and stored watermarks."""
    from datetime import datetime

    config_exists = state.config_path.exists()
    db_exists = state.state_db.exists()

    cfg_info = Text()
    cfg_info.append("  Config:   ", style="bold")
    if state.config_json:
        cfg_info.append("GCAL_SYNCER_CONFIG ")
        cfg_info.append("✓", style="green")
    else:
        cfg_info.append(str(state.config_path) + " ")
        cfg_info.append(
            "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
        )
    cfg_info.append("\n  State DB: ", style="bold")
    cfg_info.append(str(state.state_db) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    console.print(Panel(cfg_info, title="[bold]gcal-syncer: Status[/bold]"))

    if state.config_json or config_exists:
        console.print(_scope_table(_load_config()))

    rows = query_watermarks(state.state_db)
    if not rows:
        console.print("[yellow]No watermarks stored; the next incremental run lists everything.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Scope")
    table.add_column("Watermark")
    table.add_column("Saved")
    for row in rows:
        ts = row["updated_at"] or 0
        saved = datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S") if ts else "—"
        table.add_row(row["scope_id"], row["watermark"], saved)
    console.print(Panel(table, title="[bold]Watermarks[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
