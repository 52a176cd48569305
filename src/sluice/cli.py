# src/sluice/cli.py
"""Sluice Command Line Interface.

Entry point for the sluice CLI tool.
"""

import threading
from pathlib import Path

import typer
from pydantic import ValidationError

from sluice import __version__
from sluice.contracts.errors import DataPurgingError, PurgeConfigurationError
from sluice.contracts.retention import RETAIN_ALL
from sluice.core.clock import SystemClock
from sluice.core.config import SluiceSettings, load_settings
from sluice.core.durations import format_duration_ms
from sluice.core.logging import configure_logging
from sluice.core.retention.policy import resolve_purge_policy

app = typer.Typer(
    name="sluice",
    help="Sluice: retention purging for incremental aggregation tables.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sluice version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Sluice: retention purging for incremental aggregation tables."""
    pass


def _load(settings: str) -> SluiceSettings:
    """Load settings or exit with a readable error."""
    try:
        config = load_settings(Path(settings))
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None

    configure_logging(
        json_output=config.logging.json_output, level=config.logging.level
    )
    return config


@app.command()
def validate(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Validate configuration and show the effective retention policies."""
    config = _load(settings)

    failed = False
    for aggregation in config.aggregations:
        try:
            policy, purge_config = resolve_purge_policy(
                aggregation.granularities, aggregation.purge
            )
        except PurgeConfigurationError as e:
            typer.echo(f"Aggregation '{aggregation.name}': {e}", err=True)
            failed = True
            continue

        typer.echo(f"Aggregation '{aggregation.name}':")
        if not purge_config.enabled:
            typer.echo("  Purging: disabled")
            continue
        typer.echo(f"  Purging: every {format_duration_ms(purge_config.interval_ms)}")
        for granularity, retention in policy.items():
            shown = "all" if retention is RETAIN_ALL else format_duration_ms(retention)
            typer.echo(f"    {granularity.value}: {shown}")

    if failed:
        raise typer.Exit(1)
    typer.echo("Configuration valid.")


@app.command()
def purge(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    aggregation: str | None = typer.Option(
        None,
        "--aggregation",
        "-a",
        help="Only purge this aggregation.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be deleted without deleting.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """Run one purge tick now.

    Deletes rows older than each granularity's retention from every
    aggregation with purging enabled.

    Examples:

        # See what would be deleted
        sluice purge -s settings.yaml --dry-run

        # Purge one aggregation without prompting
        sluice purge -s settings.yaml -a StockAggregation --yes
    """
    from sluice.engine.runtime import PurgeRuntime

    config = _load(settings)

    try:
        runtime = PurgeRuntime(config)
    except PurgeConfigurationError as e:
        typer.echo(f"Purge configuration error: {e}", err=True)
        raise typer.Exit(1) from None

    with runtime:
        if aggregation is not None and aggregation not in runtime.aggregations:
            typer.echo(f"Error: Aggregation '{aggregation}' not found.", err=True)
            raise typer.Exit(1)

        names = [aggregation] if aggregation is not None else list(runtime.aggregations)
        enabled = [n for n in names if runtime.get(n).task.is_purging_enabled]
        if not enabled:
            typer.echo("Purging is disabled for every selected aggregation.")
            return

        if dry_run:
            now_ms = SystemClock().now_ms()
            typer.echo("Would delete:")
            for name in enabled:
                entry = runtime.get(name)
                for target in entry.task.plan(now_ms):
                    table = entry.tables[target.granularity]
                    count = table.count_rows(older_than=target.cutoff_ms)
                    typer.echo(
                        f"  {target.table_id}: {count} row(s) older than {target.cutoff_ms}"
                    )
            return

        if not yes:
            confirm = typer.confirm(
                f"Purge expired rows from {len(enabled)} aggregation(s)?"
            )
            if not confirm:
                typer.echo("Aborted.")
                raise typer.Exit(1)

        try:
            results = runtime.purge_once(aggregation=aggregation)
        except DataPurgingError as e:
            typer.echo(f"Purge failed: {e}", err=True)
            raise typer.Exit(1) from None

        for name, result in results.items():
            typer.echo(f"Aggregation '{name}': deleted {result.total_deleted} row(s)")
            for target in result.purged:
                typer.echo(
                    f"  {target.table_id}: {result.deleted_rows[target.table_id]} "
                    f"(cutoff {target.cutoff_ms})"
                )


@app.command()
def run(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Purge on schedule until interrupted (Ctrl+C)."""
    from sluice.engine.runtime import PurgeRuntime

    config = _load(settings)

    try:
        runtime = PurgeRuntime(config)
    except PurgeConfigurationError as e:
        typer.echo(f"Purge configuration error: {e}", err=True)
        raise typer.Exit(1) from None

    stop = threading.Event()
    with runtime:
        runtime.start()
        typer.echo(f"Purging {len(runtime.aggregations)} aggregation(s). Press Ctrl+C to stop.")
        try:
            while not stop.wait(1.0):
                pass
        except KeyboardInterrupt:
            typer.echo("Stopping.")


if __name__ == "__main__":
    app()
