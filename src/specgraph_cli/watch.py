"""The specgraph watch command: print document changes as they happen."""

import threading

import typer

from specgraph.config import build_context, get_debounce_seconds
from specgraph.events import ChangeBus, FileChangeEvent
from specgraph.watcher import DocumentWatcher

from .console import console, print_info

_STYLES = {
    "created": "green",
    "modified": "yellow",
    "deleted": "red",
    "moved": "blue",
}


def format_event(event: FileChangeEvent) -> str:
    change = event.change_type.value
    style = _STYLES.get(change, "white")
    return f"[dim]{event.timestamp}[/dim] [{style}]{change:<8}[/{style}] {event.path}"


def watch_command(
    ctx: typer.Context,
    debounce: float | None = typer.Option(
        None, "--debounce", help="Quiet period in seconds (default: from config)"
    ),
) -> None:
    """Watch the content roots and print external edits until interrupted."""
    config = ctx.obj["config"]
    bus = ChangeBus()
    bus.subscribe(lambda event: console.print(format_event(event)))

    watcher = DocumentWatcher(
        build_context(config),
        bus,
        debounce if debounce is not None else get_debounce_seconds(config),
    )
    stop = threading.Event()
    print_info("Watching for changes (Ctrl+C to stop)...")
    try:
        watcher.run_until(stop)
    except KeyboardInterrupt:
        stop.set()
        print_info("Stopped.")
