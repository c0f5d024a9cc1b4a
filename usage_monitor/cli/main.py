"""
CLI interface for the usage monitor.

Provides command-line access to the cached usage reports.
"""

import asyncio
import logging
import sys
from datetime import timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from usage_monitor.config.loader import MonitorConfig, default_config, load_monitor_config
from usage_monitor.core.aggregator import INVALID_PERIOD, UsageAggregator, format_number, format_percent
from usage_monitor.core.refresh import PeriodView, RefreshCache
from usage_monitor.core.windows import CivilCalendar, Period, SystemClock
from usage_monitor.storage.repository import CacheRepository
from usage_monitor.storage.scanner import FileSystemScanner

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

PERIOD_LABELS = {
    "today": "Today",
    "week": "Last 7 days",
    "month": "Last 30 days",
}


def _load_config(config_path: Optional[str]) -> MonitorConfig:
    if config_path is None:
        return default_config()
    return load_monitor_config(config_path)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_refresh_cache(config: MonitorConfig) -> RefreshCache:
    """Wire the scanner, aggregator, calendar and cache from configuration."""
    calendar = CivilCalendar(
        utc_offset_hours=config.calendar.utc_offset_hours,
        daily_refresh_minute=config.refresh.daily_refresh_minute,
    )
    scanner = FileSystemScanner(
        max_files=config.scan.max_files,
        max_lines_per_file=config.scan.max_lines_per_file,
        max_depth=config.scan.max_depth,
    )
    aggregator = UsageAggregator(
        scanner=scanner,
        calendar=calendar,
        clock=SystemClock(),
        claude_root=config.sources.claude,
        codex_root=config.sources.codex,
    )
    repository = CacheRepository(config.cache.db_path)
    repository.initialize_schema()

    return RefreshCache(
        aggregator=aggregator,
        today_interval=timedelta(minutes=config.refresh.today_interval_minutes),
        repository=repository,
    )


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AI usage monitor CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AI Usage Monitor - Use --help to see available commands")


@app.command()
def init(
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration file"
    ),
):
    """Initialize the cached report database."""
    try:
        config = _load_config(config_path)
        CacheRepository(config.cache.db_path).initialize_schema()
        console.print("[green]✓[/] Cache database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing cache database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def report(
    period: str = typer.Option(
        "today",
        "--period",
        "-p",
        help="Report window: today, week or month"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Recompute even if the cached report is fresh"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Show token usage for a period, broken down by model.

    Reuses the cached report while it is fresh: today's report for five
    minutes, the 7 and 30 day reports until the next daily batch at 00:05.
    """
    _configure_logging(verbose)
    if period not in PERIOD_LABELS:
        console.print(f"[red]Error:[/] {INVALID_PERIOD} ({period!r})")
        sys.exit(EXIT_CODE_FAIL)

    try:
        config = _load_config(config_path)
        cache = build_refresh_cache(config)
        view = asyncio.run(cache.refresh(period, force=force))
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_view(view)

    if view.error and not view.has_data:
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def refresh(
    force: bool = typer.Option(
        False, "--force", "-f", help="Recompute every period"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Refresh every stale period."""
    _configure_logging(verbose)
    try:
        config = _load_config(config_path)
        cache = build_refresh_cache(config)
        views = asyncio.run(cache.refresh_all(force=force))
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    failed = False
    for period in Period:
        view = views[period.value]
        label = PERIOD_LABELS[period.value]
        if view.error:
            failed = failed or not view.has_data
            console.print(f"[yellow]![/] {label}: {view.error}")
        else:
            console.print(f"[green]✓[/] {label}: {format_number(view.data.total)} tokens")

    sys.exit(EXIT_CODE_FAIL if failed else EXIT_CODE_PASS)


@app.command()
def status(
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration file"
    ),
):
    """Show the cache state of each period without recomputing."""
    try:
        config = _load_config(config_path)
        cache = build_refresh_cache(config)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Cached reports")
    table.add_column("Period")
    table.add_column("State")
    table.add_column("Computed at")
    table.add_column("Total", justify="right")

    for period in Period:
        view = cache.view(period)
        computed = view.computed_at.isoformat(timespec="seconds") if view.computed_at else "-"
        table.add_row(
            PERIOD_LABELS[period.value],
            cache.state(period).value,
            computed,
            format_number(view.data.total) if view.has_data else "-",
        )

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def clear(
    period: Optional[str] = typer.Option(
        None, "--period", "-p", help="Only clear this period (default: all)"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to YAML configuration file"
    ),
):
    """Delete cached reports so the next report recomputes them."""
    if period is not None and period not in PERIOD_LABELS:
        console.print(f"[red]Error:[/] {INVALID_PERIOD} ({period!r})")
        sys.exit(EXIT_CODE_FAIL)

    periods = [period] if period is not None else [p.value for p in Period]
    try:
        config = _load_config(config_path)
        repository = CacheRepository(config.cache.db_path)
        for name in periods:
            repository.delete_entry(name)
    except Exception as e:
        console.print(f"[red]Error clearing cached reports:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Cleared cached reports: {', '.join(periods)}")
    sys.exit(EXIT_CODE_PASS)


def _display_view(view: PeriodView):
    """Display a period report: totals, distribution and model table."""
    console.print(f"\n[bold]Token usage - {PERIOD_LABELS[view.period]}[/bold]")
    console.print("-" * 40)

    if view.error:
        console.print(f"[yellow]{view.error}[/]")
    for warning in view.warnings:
        console.print(f"[dim]Warning: {warning}[/]")

    if not view.has_data:
        console.print("\n[dim]No data yet.[/]")
        return

    data = view.data
    console.print(f"Total: {format_number(data.total)}")
    console.print(f"Input: {format_number(data.input)}")
    console.print(f"Output: {format_number(data.output)}")
    console.print(f"Cache: {format_number(data.cache)}")

    if not data.models:
        console.print("\n[dim]No usage recorded in this window.[/]")
        return

    console.print("\n[bold]Distribution[/bold]")
    for bucket in data.distribution:
        name = bucket.name
        if bucket.model_count > 1:
            name = f"{bucket.name} ({bucket.model_count} models)"
        console.print(f"[{bucket.color}]■[/] {name}: {format_percent(bucket.percent)}")

    table = Table()
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Share", justify="right")
    for model in data.models:
        table.add_row(
            model.name,
            format_number(model.input),
            format_number(model.output),
            format_number(model.cache_read + model.cache_create),
            format_number(model.total),
            format_percent(model.percent),
        )
    console.print(table)


if __name__ == "__main__":
    app()
