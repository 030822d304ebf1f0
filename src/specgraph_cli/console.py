"""Console output helpers.

Usage:
    from specgraph_cli.console import console, print_success, print_error

    print_success("Created CAP-123456")
    print_error("Capability not found")
"""

from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message (green checkmark)."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message (red X) to stderr."""
    err_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message (yellow warning sign)."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def create_table(title: str = "", *columns: str) -> Table:
    table = Table(title=title or None)
    for column in columns:
        table.add_column(column)
    return table


__all__ = [
    "console",
    "err_console",
    "print_success",
    "print_error",
    "print_warning",
    "print_info",
    "create_table",
]
