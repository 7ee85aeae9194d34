"""Typer CLI root application."""

import typer

from geocoding_jobs.core.config import get_settings
from geocoding_jobs.core.logging import setup_logging

app = typer.Typer(name="geocoding-jobs", help="Geocoding job lifecycle and credit accounting CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from geocoding_jobs.cli.db_cmd import db_app
    from geocoding_jobs.cli.geocode_cmd import geocode_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(geocode_app, name="geocode", help="Geocoding job commands")


_register_subcommands()
