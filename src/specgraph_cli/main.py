"""SpecGraph CLI entry point."""

import logging
from pathlib import Path

import typer

from specgraph.config import get_log_level, load_config
from specgraph.exceptions import ConfigurationError

from . import __version__
from .console import console, print_error
from .documents import (
    allocate_id_command,
    check_command,
    copy_command,
    delete_command,
    new_capability_command,
    new_enabler_command,
    render_command,
    reparent_command,
    show_command,
    sync_deps_command,
)
from .watch import watch_command

app = typer.Typer(
    name="specgraph",
    help="SpecGraph - capability and enabler specifications as a document graph",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"specgraph version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: SPECGRAPH_CONFIG_PATH or ./specgraph-config.yaml)",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log store activity to stderr"
    ),
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """SpecGraph - capability and enabler specifications as a document graph."""
    try:
        settings = load_config(str(config) if config else None)
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    logging.basicConfig(
        level=get_log_level(settings) if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    ctx.obj = {"config": settings}


app.command(name="show")(show_command)
app.command(name="render")(render_command)
app.command(name="allocate-id")(allocate_id_command)
app.command(name="new-capability")(new_capability_command)
app.command(name="new-enabler")(new_enabler_command)
app.command(name="reparent")(reparent_command)
app.command(name="sync-deps")(sync_deps_command)
app.command(name="copy")(copy_command)
app.command(name="delete")(delete_command)
app.command(name="check")(check_command)
app.command(name="watch")(watch_command)


if __name__ == "__main__":
    app()
