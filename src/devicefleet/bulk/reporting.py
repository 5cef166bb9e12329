"""Reporting components for bulk phases.

Renders the final summary of a create-all or remove-all phase with Rich
formatting for console output.

Classes:
    ReportGenerator: Generates formatted reports for phase results
"""

from collections import Counter
from typing import List

from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .exceptions import CreationFailure, DeletionFailure
from .models import PhaseResult

MAX_FAILURE_ROWS = 20


class ReportGenerator:
    """Generates summary and failure reports for bulk phases."""

    def __init__(self, console: Console):
        """Initialize report generator.

        Args:
            console: Rich console for output
        """
        self.console = console

    def generate_summary_report(self, result: PhaseResult):
        """Display the summary panel for one phase."""
        summary_table = Table(show_header=False, box=None, padding=(0, 1))
        summary_table.add_column("Metric", style="bold cyan")
        summary_table.add_column("Value", style="bold")

        summary_table.add_row("Operation", result.operation.title())
        summary_table.add_row("Attempted", str(result.attempted))
        summary_table.add_row("Successful", f"[green]{result.succeeded}[/green]")
        summary_table.add_row("Failed", f"[red]{result.failed}[/red]")
        summary_table.add_row("Success Rate", f"{result.success_rate:.1f}%")
        summary_table.add_row("Duration", self._format_duration(result.duration))

        status_panels = []
        if result.succeeded > 0:
            status_panels.append(
                Panel(
                    f"[bold green]{result.succeeded}[/bold green]\nSuccessful",
                    style="green",
                    width=15,
                )
            )
        if result.failed > 0:
            status_panels.append(
                Panel(f"[bold red]{result.failed}[/bold red]\nFailed", style="red", width=15)
            )

        self.console.print()
        self.console.print(
            Panel(
                summary_table,
                title=f"[bold]Device {result.operation.title()} Summary[/bold]",
                border_style="blue",
            )
        )

        if status_panels:
            self.console.print()
            self.console.print(Columns(status_panels, equal=True, expand=True))

    def generate_error_summary(self, result: PhaseResult):
        """Display the collected failures of a phase, grouped by cause type."""
        if not result.failures:
            return

        cause_counts = Counter(
            type(getattr(failure, "cause", failure)).__name__ for failure in result.failures
        )
        causes = ", ".join(f"{name} x{count}" for name, count in cause_counts.most_common())
        total = max(result.failed, len(result.failures))
        self.console.print()
        self.console.print(f"[red]{total} failures[/red] ({causes})")

        failure_table = Table(show_header=True, header_style="bold magenta")
        failure_table.add_column("Index", justify="right", width=8)
        failure_table.add_column("Device ID", style="cyan", width=38)
        failure_table.add_column("Error", style="red")

        for row in self._failure_rows(result)[:MAX_FAILURE_ROWS]:
            failure_table.add_row(*row)

        self.console.print(failure_table)
        hidden = total - MAX_FAILURE_ROWS
        if hidden > 0:
            self.console.print(f"[dim]... and {hidden} more (see log output)[/dim]")

    def _failure_rows(self, result: PhaseResult) -> List[List[str]]:
        rows = []
        for failure in result.failures:
            index = ""
            device_id = ""
            if isinstance(failure, CreationFailure):
                index = str(failure.index)
                device_id = failure.device_id or ""
            elif isinstance(failure, DeletionFailure):
                device_id = failure.device_id
            cause = getattr(failure, "cause", failure)
            rows.append([index, device_id, str(cause)])
        return rows

    def _format_duration(self, seconds: float) -> str:
        """Format duration in seconds to human-readable string."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            remaining_seconds = int(seconds % 60)
            return f"{minutes}m {remaining_seconds}s"
        else:
            hours = int(seconds // 3600)
            remaining_minutes = int((seconds % 3600) // 60)
            return f"{hours}h {remaining_minutes}m"
