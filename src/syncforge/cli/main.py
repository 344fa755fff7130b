"""
SyncForge CLI Main Entry Point.

Provides the command-line interface for directory synchronization.
"""

from __future__ import annotations

import json
import re
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from syncforge import __version__
from syncforge.core.config import SyncForgeConfig, load_config
from syncforge.core.errors import ConfigError, FatalScanError, SyncForgeError
from syncforge.core.logging import setup_logging
from syncforge.core.models import (
    ActionReport,
    Conflict,
    ConflictStrategy,
    Direction,
    DirectorySnapshot,
    FileRecord,
    SyncMode,
    SyncPlan,
)
from syncforge.sync.classifier import diff
from syncforge.sync.scheduler import CancelToken, SyncScheduler, load_status
from syncforge.sync.snapshot import SnapshotBuilder

console = Console()
# Prompts go to stderr so --json keeps stdout machine-readable
err_console = Console(stderr=True)

EXIT_FAILURES = 2


class PromptDecider:
    """Asks on the terminal which version of a conflicting file to keep."""

    CHOICES: dict[str, ConflictStrategy | None] = {
        "source": ConflictStrategy.KEEP_SOURCE,
        "target": ConflictStrategy.KEEP_TARGET,
        "both": ConflictStrategy.KEEP_BOTH,
        "skip": None,
    }

    def __init__(self, output: Console | None = None) -> None:
        self.output = output or err_console

    def ask(self, conflict: Conflict) -> ConflictStrategy | None:
        self.output.print(f"\n[yellow]⚠️  Conflict:[/yellow] {conflict.path}")
        self.output.print(f"  source: {_describe(conflict.source)}")
        self.output.print(f"  target: {_describe(conflict.target)}")
        try:
            choice = click.prompt(
                "Keep which version",
                type=click.Choice(list(self.CHOICES)),
                default="both",
                err=True,
            )
        except click.Abort:
            return None
        return self.CHOICES[choice]


def _describe(record: FileRecord) -> str:
    if record.is_directory:
        return "directory"
    modified = datetime.fromtimestamp(record.modified_at).strftime("%Y-%m-%d %H:%M:%S")
    return f"{humanize.naturalsize(record.size, binary=True)}, modified {modified}"


@click.group()
@click.version_option(version=__version__, prog_name="SyncForge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--verbose", "-v", is_flag=True, help="Log every action")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """
    SyncForge - Directory synchronization tool.

    Mirrors or two-way merges a source and a target directory, once or
    continuously, with content-aware change detection.
    """
    ctx.ensure_object(dict)

    try:
        app_config = SyncForgeConfig.load(config) if config else load_config()
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    logging_config = app_config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    if json_output or quiet:
        logging_config = logging_config.model_copy(update={"console_enabled": False})
    setup_logging(logging_config)

    ctx.obj["config"] = app_config
    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


@cli.command("sync")
@click.argument("source", type=click.Path(file_okay=False, path_type=Path))
@click.argument("target", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--mode",
    "-m",
    type=click.Choice([mode.value for mode in SyncMode]),
    help="mirror: make target match source; merge: two-way without deletions",
)
@click.option("--include", help="Only sync files whose name matches this glob")
@click.option("--exclude", help="Skip files whose name matches this glob")
@click.option("--max-size", help="Skip hashing files larger than this (e.g., 100M)")
@click.option(
    "--strategy",
    "-s",
    type=click.Choice([strategy.value for strategy in ConflictStrategy]),
    help="How to resolve conflicts in merge mode",
)
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option("--workers", type=click.IntRange(1, 32), help="Parallel hashing/copy workers")
@click.option("--continuous", is_flag=True, help="Keep syncing at a fixed interval")
@click.option("--interval", help="Wait between cycles in continuous mode (e.g., 30s, 5m)")
@click.option(
    "--cycles",
    type=click.IntRange(0),
    default=0,
    help="Stop continuous mode after this many cycles (0 = until interrupted)",
)
@click.pass_context
def sync_command(
    ctx: click.Context,
    source: Path,
    target: Path,
    mode: str | None,
    include: str | None,
    exclude: str | None,
    max_size: str | None,
    strategy: str | None,
    dry_run: bool,
    workers: int | None,
    continuous: bool,
    interval: str | None,
    cycles: int,
) -> None:
    """Synchronize TARGET with SOURCE."""
    config: SyncForgeConfig = ctx.obj["config"]

    max_size_bytes = None
    if max_size:
        max_size_bytes = parse_size(max_size)
        if max_size_bytes is None:
            console.print(f"[red]Invalid size format: {max_size}[/red]")
            sys.exit(1)

    interval_seconds = config.schedule.interval_seconds
    if interval:
        parsed_interval = parse_duration(interval)
        if parsed_interval is None:
            console.print(f"[red]Invalid interval format: {interval}[/red]")
            sys.exit(1)
        interval_seconds = parsed_interval

    try:
        sync_config = config.for_roots(
            source,
            target,
            mode=mode,
            include_pattern=include,
            exclude_pattern=exclude,
            max_file_size=max_size_bytes,
            conflict_strategy=strategy,
            dry_run=True if dry_run else None,
            workers=workers,
        )
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    interactive = sync_config.conflict_strategy is ConflictStrategy.INTERACTIVE
    scheduler = SyncScheduler(sync_config, PromptDecider() if interactive else None)
    continuous = continuous or config.schedule.continuous

    last_report: ActionReport | None = None
    try:
        if continuous:
            last_report = _run_continuous(ctx, scheduler, interval_seconds, cycles)
        elif interactive or ctx.obj.get("json_output"):
            last_report = scheduler.run_cycle()
            _print_report(ctx, last_report)
        else:
            with console.status("Synchronizing..."):
                last_report = scheduler.run_cycle()
            _print_report(ctx, last_report)
    except (FatalScanError, ConfigError) as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if last_report is not None and last_report.has_failures:
        sys.exit(EXIT_FAILURES)


def _run_continuous(
    ctx: click.Context,
    scheduler: SyncScheduler,
    interval_seconds: float,
    max_cycles: int,
) -> ActionReport | None:
    token = CancelToken()

    def request_stop(signum: int, frame: Any) -> None:
        token.cancel()

    previous_handlers = {
        sig: signal.signal(sig, request_stop) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    if not ctx.obj.get("quiet") and not ctx.obj.get("json_output"):
        console.print(
            f"[cyan]Continuous sync every {humanize.naturaldelta(interval_seconds)}"
            " - press Ctrl+C to stop[/cyan]"
        )

    last_report = None
    count = 0
    try:
        for report in scheduler.run_continuous(interval_seconds, token):
            _print_report(ctx, report)
            last_report = report
            count += 1
            if max_cycles and count >= max_cycles:
                token.cancel()
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    if not ctx.obj.get("quiet") and not ctx.obj.get("json_output"):
        console.print("[yellow]Sync stopped[/yellow]")
    return last_report


@cli.command("diff")
@click.argument("source", type=click.Path(file_okay=False, path_type=Path))
@click.argument("target", type=click.Path(file_okay=False, path_type=Path))
@click.option("--mode", "-m", type=click.Choice([mode.value for mode in SyncMode]))
@click.option("--include", help="Only compare files whose name matches this glob")
@click.option("--exclude", help="Skip files whose name matches this glob")
@click.pass_context
def diff_command(
    ctx: click.Context,
    source: Path,
    target: Path,
    mode: str | None,
    include: str | None,
    exclude: str | None,
) -> None:
    """Show what a sync would do without resolving or executing anything."""
    config: SyncForgeConfig = ctx.obj["config"]
    try:
        sync_config = config.for_roots(
            source, target, mode=mode, include_pattern=include, exclude_pattern=exclude
        )
        builder = SnapshotBuilder(workers=sync_config.workers)
        source_snapshot = builder.build(
            sync_config.source_root,
            sync_config.include_pattern,
            sync_config.exclude_pattern,
            sync_config.max_file_size,
        )
        if sync_config.target_root.exists():
            target_snapshot = builder.build(
                sync_config.target_root,
                sync_config.include_pattern,
                sync_config.exclude_pattern,
                sync_config.max_file_size,
            )
        else:
            target_snapshot = DirectorySnapshot.empty(sync_config.target_root)
    except (FatalScanError, ConfigError) as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    plan = diff(
        source_snapshot,
        target_snapshot,
        sync_config.mode,
        sync_config.timestamp_tolerance_seconds,
    )

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(plan.to_dict(), indent=2))
        return

    _print_plan(plan, sync_config.mode)


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show the report of the last sync cycle."""
    config: SyncForgeConfig = ctx.obj["config"]
    if config.status_file is None:
        console.print("[yellow]No status file configured[/yellow]")
        return

    try:
        report = load_status(config.status_file)
    except (OSError, ValueError, KeyError) as e:
        console.print(f"[red]✗ Cannot read {config.status_file}: {e}[/red]")
        sys.exit(1)

    if report is None:
        console.print("[yellow]No sync has run yet[/yellow]")
        return

    _print_report(ctx, report)


def _print_report(ctx: click.Context, report: ActionReport) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    color = "red" if report.has_failures else "green"
    if ctx.obj.get("quiet"):
        console.print(f"[{color}]{report.summary()}[/{color}]")
        return

    if report.action_count or report.failures or report.conflicts_resolved:
        table = Table(title=f"Sync {report.cycle_timestamp.strftime('%Y-%m-%d %H:%M:%S')}")
        table.add_column("Action", style="cyan")
        table.add_column("Path", style="white")
        table.add_column("Detail", style="yellow")

        for entry in report.conflicts_resolved:
            table.add_row("resolve", entry.path, entry.strategy.value)
        for renamed in report.renamed:
            table.add_row("rename", renamed.path, f"→ {renamed.renamed_to}")
        for copied in report.copied:
            arrow = "source → target" if copied.direction is Direction.FORWARD else "target → source"
            table.add_row("copy", copied.path, arrow)
        for path in report.deleted:
            table.add_row("delete", path, "")
        for failure in report.failures:
            table.add_row("[red]failed[/red]", failure.path, f"{failure.error_kind}: {failure.message}")

        console.print(table)

    for warning in report.warnings:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")

    duration = report.duration_seconds
    timing = f" in {humanize.precisedelta(duration, minimum_unit='milliseconds')}" if duration else ""
    if report.dry_run:
        console.print(Panel(
            f"[yellow]DRY RUN - No changes were made[/yellow]\n\n{report.summary()}",
            title="Sync Plan",
        ))
    else:
        console.print(f"[{color}]✓ {report.summary()}{timing}[/{color}]")


def _print_plan(plan: SyncPlan, mode: SyncMode) -> None:
    if plan.is_empty:
        console.print("[green]✓ in sync[/green]")
        return

    table = Table(title=f"Sync Plan ({mode.value})")
    table.add_column("Action", style="cyan")
    table.add_column("Path", style="white")
    table.add_column("Detail", style="yellow")

    for entry in plan.sorted_copies():
        table.add_row("copy", entry.path, entry.direction.value)
    for path in plan.sorted_deletes():
        table.add_row("delete", path, "")
    for path in sorted(plan.conflicts):
        table.add_row("[red]conflict[/red]", path, "")

    console.print(table)
    console.print(
        f"{len(plan.to_copy)} to copy, {len(plan.to_delete)} to delete, "
        f"{len(plan.conflicts)} conflicts"
    )


def parse_size(size_str: str) -> int | None:
    """Parse size string like '10G' to bytes."""
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([KMGT]?)B?$", size_str.strip().upper())
    if not match:
        return None

    value = float(match.group(1))
    unit = match.group(2)

    multipliers = {
        "": 1,
        "K": 1024,
        "M": 1024**2,
        "G": 1024**3,
        "T": 1024**4,
    }

    return int(value * multipliers.get(unit, 1))


def parse_duration(duration_str: str) -> float | None:
    """Parse duration string like '30s', '5m' or '1h' to seconds."""
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([smh]?)$", duration_str.strip().lower())
    if not match:
        return None

    value = float(match.group(1))
    multipliers = {"": 1, "s": 1, "m": 60, "h": 3600}
    seconds = value * multipliers[match.group(2)]
    return seconds if seconds > 0 else None


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except SyncForgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
