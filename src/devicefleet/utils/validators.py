"""Input validation utilities for devicefleet."""

from urllib.parse import urlparse

import typer
from rich.console import Console

from ..bulk.models import IndexRange
from ..bulk.tokens import MAX_INDEX

console = Console()


def validate_index_range(start: int, end: int) -> IndexRange:
    """
    Validate device index bounds and build the range.

    Args:
        start: First index (inclusive)
        end: Last index (exclusive)

    Returns:
        The validated IndexRange

    Raises:
        typer.Exit: If the bounds are invalid
    """
    if start < 0:
        console.print(f"[red]Error: start index must be non-negative, got {start}.[/red]")
        raise typer.Exit(1)

    if end < start:
        console.print(
            f"[red]Error: end index ({end}) must not be smaller than start index ({start}).[/red]"
        )
        raise typer.Exit(1)

    if end - 1 > MAX_INDEX:
        console.print(f"[red]Error: end index exceeds the token domain (max {MAX_INDEX}).[/red]")
        raise typer.Exit(1)

    return IndexRange(start, end)


def validate_rest_settings(url: str, username: str, password: str) -> bool:
    """
    Validate the management API connection settings.

    Args:
        url: Base URL of the API
        username: Login username
        password: Login password

    Returns:
        True if the settings are usable, False otherwise
    """
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        console.print(f"[red]Error: '{url}' is not a valid http(s) URL.[/red]")
        return False

    if not username:
        console.print("[red]Error: username cannot be empty.[/red]")
        return False

    if not password:
        console.print("[red]Error: password cannot be empty.[/red]")
        console.print(
            "[yellow]Set it with 'devicefleet config set rest.password ...' "
            "or the DEVICEFLEET_REST_PASSWORD environment variable.[/yellow]"
        )
        return False

    return True
