"""Device fleet commands for devicefleet.

This module provides commands that create and remove a contiguous range of
devices against the management API with bounded parallelism.

Commands:
    create: Create one device per index and assign its access token
    remove: Delete every device recorded in a registry file
    cycle: Create a fleet and remove it again in one run

Examples:
    # Create devices 0..999 using the configured server
    $ devicefleet devices create --end 1000 --registry-file fleet.json

    # Remove them again later
    $ devicefleet devices remove fleet.json

    # Populate and clear a fleet in one go
    $ devicefleet devices cycle --start 0 --end 5000 --workers 50
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ..bulk.batch import DeviceLifecycleOrchestrator
from ..bulk.models import IndexRange, PhaseResult
from ..bulk.registry import DeviceRegistry
from ..bulk.reporting import ReportGenerator
from ..rest_clients.client import DeviceRestClient, RestClientError
from ..utils.config import Config
from ..utils.validators import validate_index_range, validate_rest_settings

app = typer.Typer(
    help="""Create and remove fleets of devices.

Devices are named '<prefix><token>' where the token is the device index
zero-padded to 20 digits; the same token is set as the device access token.

Examples:
  devicefleet devices create --start 0 --end 1000 --registry-file fleet.json
  devicefleet devices remove fleet.json
  devicefleet devices cycle --end 100
"""
)
console = Console()


def _build_client(
    config: Config,
    url: Optional[str],
    username: Optional[str],
    password: Optional[str],
    workers: int,
) -> DeviceRestClient:
    """Create the REST client from options, falling back to configuration."""
    rest_config = config.get_rest_config()
    url = url or rest_config["url"]
    username = username or rest_config["username"]
    password = password or rest_config["password"]

    if not validate_rest_settings(url, username, password):
        raise typer.Exit(1)

    return DeviceRestClient(
        url,
        username,
        password,
        timeout=rest_config["timeout"],
        verify_ssl=rest_config["verify_ssl"],
        max_connections=workers,
    )


def _resolve_workers(config: Config, workers: Optional[int]) -> int:
    """Validate the bulk settings and return the worker count to use."""
    bulk_config = config.get_bulk_config()
    if workers is not None:
        bulk_config["workers"] = workers

    errors = config.validate_bulk_config(bulk_config)
    if errors:
        for error in errors:
            console.print(f"[red]Error: {error}[/red]")
        raise typer.Exit(1)

    return bulk_config["workers"]


def _resolve_range(config: Config, start: Optional[int], end: Optional[int]) -> IndexRange:
    device_config = config.get_device_config()
    return validate_index_range(
        start if start is not None else device_config["start_idx"],
        end if end is not None else device_config["end_idx"],
    )


def _report(result: PhaseResult) -> None:
    reporter = ReportGenerator(console)
    reporter.generate_summary_report(result)
    reporter.generate_error_summary(result)


def _run_create(
    orchestrator: DeviceLifecycleOrchestrator,
    client: DeviceRestClient,
    index_range: IndexRange,
) -> PhaseResult:
    try:
        return orchestrator.create_all(index_range, client)
    except RestClientError as e:
        console.print(f"[red]Error: Could not log in to {client.base_url}: {e}[/red]")
        raise typer.Exit(1)


def _run_remove(
    orchestrator: DeviceLifecycleOrchestrator,
    client: DeviceRestClient,
    registry: DeviceRegistry,
) -> PhaseResult:
    try:
        return orchestrator.remove_all(registry, client)
    except RestClientError as e:
        console.print(f"[red]Error: Could not log in to {client.base_url}: {e}[/red]")
        raise typer.Exit(1)


@app.command("create")
def create_devices(
    start: Optional[int] = typer.Option(
        None, "--start", help="First device index, inclusive (default: device.start_idx)"
    ),
    end: Optional[int] = typer.Option(
        None, "--end", help="Last device index, exclusive (default: device.end_idx)"
    ),
    registry_file: Optional[Path] = typer.Option(
        None, "--registry-file", "-o", help="Write created device IDs to this JSON file"
    ),
    url: Optional[str] = typer.Option(None, "--url", help="Management API base URL"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Login username"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Login password"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Parallel API calls (default: bulk.workers)"
    ),
    device_type: Optional[str] = typer.Option(
        None, "--device-type", help="Device type to create (default: device.type)"
    ),
):
    """Create one device per index in [start, end) and assign its access token.

    Failures on individual devices are logged and counted; the run always
    finishes and prints a summary. A device whose credentials could not be
    set is deleted again. If the run is interrupted, the devices created so
    far are still written to the registry file.
    """
    config = Config()
    index_range = _resolve_range(config, start, end)
    workers = _resolve_workers(config, workers)
    client = _build_client(config, url, username, password, workers)
    orchestrator = DeviceLifecycleOrchestrator.from_config(
        config, max_workers=workers, device_type=device_type
    )

    completed = False
    try:
        result = _run_create(orchestrator, client, index_range)
        completed = True
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted; cancelling devices that have not started.[/yellow]")
        orchestrator.shutdown(cancel_pending=True)
        raise
    finally:
        orchestrator.shutdown()
        client.close()
        # An interrupted run still records what it created so far
        if registry_file and (completed or len(orchestrator.registry) > 0):
            saved = orchestrator.registry.save(registry_file)
            console.print(
                f"[green]Saved {len(orchestrator.registry)} device IDs to {saved}[/green]"
            )

    _report(result)

    if not registry_file and len(orchestrator.registry) > 0:
        console.print(
            "[yellow]No --registry-file given; created devices cannot be removed "
            "with 'devicefleet devices remove'.[/yellow]"
        )


@app.command("remove")
def remove_devices(
    registry_file: Path = typer.Argument(..., help="Registry file written by 'devices create'"),
    url: Optional[str] = typer.Option(None, "--url", help="Management API base URL"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Login username"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Login password"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Parallel API calls (default: bulk.workers)"
    ),
):
    """Delete every device listed in a registry file.

    The registry file is left unchanged, whatever the outcome of each deletion.
    """
    try:
        registry = DeviceRegistry.load(registry_file)
    except FileNotFoundError:
        console.print(f"[red]Error: Registry file '{registry_file}' not found.[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    config = Config()
    workers = _resolve_workers(config, workers)
    client = _build_client(config, url, username, password, workers)
    orchestrator = DeviceLifecycleOrchestrator.from_config(config, max_workers=workers)

    try:
        result = _run_remove(orchestrator, client, registry)
    finally:
        orchestrator.shutdown()
        client.close()

    _report(result)


@app.command("cycle")
def cycle_devices(
    start: Optional[int] = typer.Option(
        None, "--start", help="First device index, inclusive (default: device.start_idx)"
    ),
    end: Optional[int] = typer.Option(
        None, "--end", help="Last device index, exclusive (default: device.end_idx)"
    ),
    url: Optional[str] = typer.Option(None, "--url", help="Management API base URL"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Login username"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Login password"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Parallel API calls (default: bulk.workers)"
    ),
    device_type: Optional[str] = typer.Option(
        None, "--device-type", help="Device type to create (default: device.type)"
    ),
):
    """Create a fleet and then remove every device that was created.

    Both phases share one worker pool and one session.
    """
    config = Config()
    index_range = _resolve_range(config, start, end)
    workers = _resolve_workers(config, workers)
    client = _build_client(config, url, username, password, workers)
    orchestrator = DeviceLifecycleOrchestrator.from_config(
        config, max_workers=workers, device_type=device_type
    )

    try:
        created = _run_create(orchestrator, client, index_range)
        _report(created)
        removed = _run_remove(orchestrator, client, orchestrator.registry)
        _report(removed)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted; cancelling operations that have not started.[/yellow]")
        orchestrator.shutdown(cancel_pending=True)
        raise
    finally:
        orchestrator.shutdown()
        client.close()
