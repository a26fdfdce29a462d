"""Publish CLI commands for pushing file trees to the remote store."""

from pathlib import Path

import typer
from loguru import logger

from data_publisher.lib.publisher import PublishCounts, PublishError
from data_publisher.lib.store import StoreError

publish_app = typer.Typer(name="publish", help="Publish files to the remote store.")


def _report(counts: PublishCounts) -> None:
    """Print publish counts and exit non-zero if any file failed."""
    typer.echo(f"Found: {counts.found}")
    typer.echo(f"Published: {counts.processed}")
    typer.echo(f"Errors: {counts.errors}")
    if counts.errors > 0:
        raise typer.Exit(code=1)


@publish_app.command("tree")
def tree_command(
    source: Path = typer.Argument(..., help="Local directory to publish", exists=True, file_okay=False),
    dest: str = typer.Argument(..., help="Remote destination collection"),
    pattern: str | None = typer.Option(None, "--pattern", help="Publish only files whose name matches this regex"),
    force: bool = typer.Option(False, "--force", help="Republish files already recorded as published"),
    max_errors: int | None = typer.Option(None, "--max-errors", min=0, help="Abort after this many errors"),
    restart_file: Path | None = typer.Option(None, "--restart-file", help="Restart file for idempotent reruns"),
    manifest: Path | None = typer.Option(None, "--manifest", help="Append published files to this product manifest"),
    collection_record: Path | None = typer.Option(
        None, "--collection-record", help="Write a whole-collection record to this file"
    ),
    workers: int | None = typer.Option(None, "--workers", min=1, max=32, help="Concurrent uploads per collection"),
) -> None:
    """Publish a local directory tree to a remote collection."""
    from data_publisher.core.config import get_settings
    from data_publisher.services.publish_service import publish_tree

    settings = get_settings()
    try:
        counts = publish_tree(
            settings,
            source,
            dest,
            pattern=pattern,
            force=force,
            max_errors=max_errors,
            restart_file=restart_file,
            manifest_path=manifest,
            collection_record=collection_record,
            workers=workers,
        )
    except (PublishError, StoreError) as exc:
        logger.error("Publish failed: {}", exc)
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    _report(counts)


@publish_app.command("analysis")
def analysis_command(
    runfolder: Path = typer.Argument(..., help="Directory holding the cell's analysis output", exists=True),
    dest: str = typer.Argument(..., help="Remote collection for the run"),
    warehouse: Path = typer.Option(..., "--warehouse", help="JSON export of warehouse cell records", exists=True),
    run_name: str = typer.Option(..., "--run", help="Run name"),
    well: str = typer.Option(..., "--well", help="Well label, e.g. A01"),
    force: bool = typer.Option(False, "--force", help="Republish files already recorded as published"),
    max_errors: int | None = typer.Option(None, "--max-errors", min=0, help="Abort after this many errors"),
    restart_file: Path | None = typer.Option(None, "--restart-file", help="Restart file for idempotent reruns"),
    manifest: Path | None = typer.Option(None, "--manifest", help="Append published files to this product manifest"),
) -> None:
    """Publish one instrument cell's analysis output with warehouse metadata."""
    from data_publisher.core.config import get_settings
    from data_publisher.services.publish_service import publish_analysis

    settings = get_settings()
    try:
        counts = publish_analysis(
            settings,
            runfolder,
            dest,
            warehouse,
            run_name=run_name,
            well=well,
            force=force,
            max_errors=max_errors,
            restart_file=restart_file,
            manifest_path=manifest,
        )
    except (PublishError, StoreError, ValueError) as exc:
        logger.error("Publish failed: {}", exc)
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    _report(counts)


@publish_app.command("status")
def status_command(
    restart_file: Path = typer.Argument(..., help="Restart file to summarize"),
) -> None:
    """Summarize the published and failed files recorded in a restart file."""
    from data_publisher.services.publish_service import summarize_restart_file

    try:
        summary = summarize_restart_file(restart_file)
    except PublishError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(f"Restart file: {summary.path}")
    typer.echo(f"Published: {summary.published}")
    typer.echo(f"Failed: {summary.failed}")
    if summary.last_updated:
        typer.echo(f"Last updated: {summary.last_updated}")
    else:
        typer.echo("No files recorded yet.")
