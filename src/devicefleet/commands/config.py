"""Configuration management commands for devicefleet."""

import json

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from ..utils.config import Config

app = typer.Typer(
    help="Manage devicefleet configuration (REST connection, device range, bulk tuning)."
)
console = Console()

MASKED_KEYS = {"password"}


def _masked(section: dict) -> dict:
    return {
        key: ("********" if key in MASKED_KEYS and value else value)
        for key, value in section.items()
    }


@app.command("show")
def show_config(
    section: str = typer.Option(
        None, "--section", "-s", help="Show one section (rest, device, bulk, logging)"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, yaml, json"),
) -> None:
    """Show the effective configuration (file values merged over defaults and environment)."""
    config = Config()
    config_data = {name: _masked(values) for name, values in config.get_effective_config().items()}

    if section:
        if section not in config_data:
            console.print(f"[red]Configuration section '{section}' not found.[/red]")
            console.print(f"Available sections: {', '.join(config_data.keys())}")
            raise typer.Exit(1)
        config_data = {section: config_data[section]}

    if format == "yaml":
        yaml_output = yaml.dump(config_data, default_flow_style=False, indent=2, sort_keys=False)
        console.print(Syntax(yaml_output, "yaml", theme="monokai", line_numbers=True))
    elif format == "json":
        json_output = json.dumps(config_data, indent=2)
        console.print(Syntax(json_output, "json", theme="monokai", line_numbers=True))
    else:
        table = Table(title="devicefleet configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section_name, values in config_data.items():
            for key, value in values.items():
                table.add_row(f"{section_name}.{key}", str(value))
        console.print(table)


@app.command("set")
def set_config(
    key_value: str = typer.Argument(
        ..., help="Configuration key=value pair (e.g., bulk.workers=50)"
    ),
) -> None:
    """Set a configuration value using key=value format.

    Values are parsed as YAML scalars, so numbers and booleans keep their type.

    Examples:
    - devicefleet config set rest.url=https://tb.example.com
    - devicefleet config set device.end_idx=100000
    - devicefleet config set bulk.refresh_interval=300
    """
    if "=" not in key_value:
        console.print("[red]Error: Invalid format. Use 'key=value' (e.g., bulk.workers=50)[/red]")
        raise typer.Exit(1)

    key, raw_value = key_value.split("=", 1)
    key = key.strip()
    if not key:
        console.print("[red]Error: Configuration key cannot be empty.[/red]")
        raise typer.Exit(1)

    try:
        value = yaml.safe_load(raw_value) if raw_value.strip() else ""
    except yaml.YAMLError:
        value = raw_value

    config = Config()
    config.set(key, value)

    shown = "********" if key.split(".")[-1] in MASKED_KEYS else value
    console.print(f"[green]Set {key} = {shown}[/green]")

    if key.startswith("bulk."):
        for error in config.validate_bulk_config():
            console.print(f"[yellow]Warning: {error}[/yellow]")


@app.command("unset")
def unset_config(
    key: str = typer.Argument(..., help="Configuration key (e.g., bulk.workers)"),
) -> None:
    """Remove a value from the configuration file, restoring its default."""
    config = Config()
    if config.delete(key):
        console.print(f"[green]Removed {key}[/green]")
    else:
        console.print(f"[yellow]{key} is not set in the configuration file.[/yellow]")


@app.command("path")
def show_config_path():
    """Show the path to the configuration file."""
    config = Config()
    config_path = config.get_config_file_path()

    console.print(f"[green]Configuration file:[/green] {config_path}")

    if config_path.exists():
        console.print("[green]File exists:[/green] Yes")
        console.print(f"[green]File size:[/green] {config_path.stat().st_size} bytes")
    else:
        console.print("[yellow]File exists:[/yellow] No")
