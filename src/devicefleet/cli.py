#!/usr/bin/env python3
"""
devicefleet - bulk device lifecycle driver

A CLI tool that populates and clears large test fleets of devices on a
ThingsBoard-style management API.
"""
from typing import Optional

import typer
from rich.console import Console

from devicefleet import __version__

from .commands import config, devices
from .utils.config import Config
from .utils.logging_config import LogLevel, LoggingConfig, setup_logging

app = typer.Typer(
    help="devicefleet - create and remove large fleets of devices on a management API.",
    add_completion=True,
    no_args_is_help=True,
)
console = Console()

app.add_typer(devices.app, name="devices")
app.add_typer(config.app, name="config")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR); default: logging.level"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Shortcut for --log-level DEBUG"),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also write JSON logs to the configured log directory"
    ),
):
    """Configure logging before running a command."""
    logging_settings = Config().get_logging_config()
    if log_level:
        logging_settings["level"] = log_level.upper()
    if verbose:
        logging_settings["level"] = LogLevel.DEBUG.value
    if log_file:
        logging_settings["file_enabled"] = True

    try:
        logging_config = LoggingConfig.from_dict(logging_settings)
    except ValueError as e:
        console.print(f"[red]Error: Invalid logging configuration: {e}[/red]")
        raise typer.Exit(1)

    setup_logging(logging_config)


@app.command()
def version():
    """Show the application version and exit."""
    console.print(f"devicefleet version: {__version__}")
    raise typer.Exit()


if __name__ == "__main__":
    app()
