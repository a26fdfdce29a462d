"""Typer CLI root application."""

import typer

from data_publisher.core.config import get_settings
from data_publisher.core.logging import setup_logging

app = typer.Typer(name="data-publisher", help="Publish local file trees to a remote data store")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json_logs=settings.log_json)


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from data_publisher.cli.publish_cmd import publish_app

    app.add_typer(publish_app, name="publish", help="Publish files and inspect restart files")


_register_subcommands()
