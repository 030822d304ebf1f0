#!/usr/bin/env python3
"""
SpecGraph MCP Server

FastMCP server exposing the specification document graph via Model Context
Protocol.

Features:
- Parse, render (live enabler join) and create capability/enabler documents
- Reparenting and dependency mirroring as tool calls
- External edit watcher publishing change events
- Graceful shutdown on SIGTERM/SIGINT
"""

import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from specgraph import __version__
from specgraph.config import (
    build_context,
    get_debounce_seconds,
    get_log_level,
    load_config,
)
from specgraph.events import ChangeBus, FileChangeEvent
from specgraph.exceptions import SpecGraphError
from specgraph.operations import SpecGraph
from specgraph.watcher import DocumentWatcher

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("specgraph")

# Load configuration
# Priority: SPECGRAPH_CONFIG_PATH env var > ./specgraph-config.yaml > defaults
server_config = load_config()

change_bus = ChangeBus()
graph = SpecGraph(build_context(server_config), change_bus)

# Shutdown management (graceful shutdown on SIGTERM/SIGINT)
_shutdown_event = threading.Event()

# Most recent change events, newest last
MAX_RECENT_CHANGES = 100
_recent_changes: list[dict] = []
_recent_lock = threading.Lock()


def _record_change(event: FileChangeEvent) -> None:
    with _recent_lock:
        _recent_changes.append(event.to_dict())
        del _recent_changes[:-MAX_RECENT_CHANGES]
    logger.info(
        f"Document {event.change_type.value} ({event.source.value}): {event.path.name}"
    )


change_bus.subscribe(_record_change)


def _error(e: Exception, **extra) -> dict:
    return {"success": False, "error": str(e), **extra}


@mcp.tool()
async def parse_document(path: str) -> dict:
    """
    Parse a capability or enabler document into structured fields.

    Args:
        path: Document path (absolute, or relative to a content root)

    Returns:
        Dictionary with:
        - document: Parsed entity (metadata, enablers/requirements, dependencies)
        - version: Version stamp to pass back when saving
    """
    try:
        document = graph.read(path)
        entity = document.parse()
        if entity is None:
            return _error(SpecGraphError(f"Not a capability or enabler: {path}"))
        return {
            "success": True,
            "path": str(document.path),
            "version": document.version,
            "document": entity.to_dict(),
        }
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in parse_document: {e}", exc_info=True)
        return _error(e, path=path)


@mcp.tool()
async def allocate_id(prefix: str, count: int = 1) -> dict:
    """
    Allocate ids unique within the store.

    Args:
        prefix: One of "CAP-", "ENB-", "FR-", "NFR-"
        count: Number of distinct ids (default: 1)

    Examples:
        allocate_id("ENB-")
        allocate_id("FR-", count=3)
    """
    try:
        ids = graph.ids.allocate_many(prefix, count)
        return {"success": True, "ids": ids}
    except ValueError as e:
        return _error(e, prefix=prefix)


@mcp.tool()
async def render_document(path: str) -> dict:
    """
    Document text with enabler tables joined against the live enabler files.

    Enabler rows show each enabler's current name, status, approval and
    priority whatever layout the stored table uses.
    """
    try:
        return {"success": True, "path": path, "content": graph.render_document(path)}
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in render_document: {e}", exc_info=True)
        return _error(e, path=path)


@mcp.tool()
async def create_capability(
    name: str,
    purpose: str = "",
    priority: str = "High",
    owner: str = "",
    system: str | None = None,
    component: str | None = None,
) -> dict:
    """Create a capability document from the plan template."""
    try:
        path = graph.create_capability(
            name,
            purpose=purpose,
            priority=priority,
            owner=owner,
            system=system,
            component=component,
        )
        return {"success": True, "path": str(path), "id": graph.read(path).id}
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in create_capability: {e}", exc_info=True)
        return _error(e)


@mcp.tool()
async def create_enabler(
    name: str,
    capability_id: str | None = None,
    description: str = "",
    priority: str = "High",
    owner: str = "",
) -> dict:
    """
    Create an enabler document and list it in its parent capability.

    Args:
        name: Enabler name
        capability_id: Parent capability (optional)
        description: Purpose of the enabler
    """
    try:
        path = graph.create_enabler(
            name,
            capability_id=capability_id,
            description=description,
            priority=priority,
            owner=owner,
        )
        return {"success": True, "path": str(path), "id": graph.read(path).id}
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in create_enabler: {e}", exc_info=True)
        return _error(e)


@mcp.tool()
async def reparent_enabler(enabler_id: str, capability_id: str | None = None) -> dict:
    """
    Move an enabler to another capability (omit capability_id to orphan it).

    The old parent loses the enabler's row, the new parent gains it.
    """
    try:
        path = graph.reparent_enabler(enabler_id, capability_id)
        return {
            "success": True,
            "enabler_id": enabler_id,
            "capability_id": capability_id,
            "path": str(path),
        }
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in reparent_enabler: {e}", exc_info=True)
        return _error(e, enabler_id=enabler_id)


@mcp.tool()
async def sync_dependencies(capability_id: str) -> dict:
    """
    Mirror a capability's internal dependency tables into every other capability.

    After this call: A lists B downstream exactly when B lists A upstream.
    """
    try:
        updated = graph.sync_dependencies(capability_id)
        return {
            "success": True,
            "capability_id": capability_id,
            "updated": [str(p) for p in updated],
        }
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in sync_dependencies: {e}", exc_info=True)
        return _error(e, capability_id=capability_id)


@mcp.tool()
async def copy_document(path: str) -> dict:
    """
    Copy a capability (with its enablers) or an enabler under new ids.
    """
    try:
        new_path = graph.copy_document(path)
        return {"success": True, "path": str(new_path), "id": graph.read(new_path).id}
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in copy_document: {e}", exc_info=True)
        return _error(e, path=path)


@mcp.tool()
async def delete_document(path: str) -> dict:
    """Delete a document, removing an enabler from its parent first."""
    try:
        graph.delete_document(path)
        return {"success": True, "path": path}
    except (SpecGraphError, OSError) as e:
        logger.error(f"Error in delete_document: {e}", exc_info=True)
        return _error(e, path=path)


@mcp.tool()
async def check_integrity() -> dict:
    """Report enabler/capability reference and dependency symmetry problems."""
    issues = graph.check_integrity()
    return {
        "success": True,
        "issue_count": len(issues),
        "issues": [issue.to_dict() for issue in issues],
        "timestamp": datetime.now().isoformat(),
    }


@mcp.tool()
async def recent_changes(limit: int = 20) -> dict:
    """Most recent document change events (store writes and external edits)."""
    with _recent_lock:
        changes = list(_recent_changes[-limit:])
    return {"changes": changes, "count": len(changes)}


def _signal_handler(sig, frame):
    """
    Graceful shutdown handler for SIGTERM/SIGINT signals.

    Stops the file watcher thread and exits.
    """
    logger.info(
        f"Received signal {sig} ({signal.Signals(sig).name}), initiating graceful shutdown..."
    )
    _shutdown_event.set()
    logger.info("Shutdown complete")
    sys.exit(0)


def main():
    """Main entry point for the specgraph-server command.

    Starts the SpecGraph MCP Server with:
    - File watcher for external edits
    - Signal handlers for graceful shutdown
    """
    logging.basicConfig(
        level=get_log_level(server_config),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    logger.info(f"=== Starting SpecGraph MCP Server {__version__} ===")
    for root in graph.context.roots:
        if not Path(root).exists():
            logger.warning(f"Content root does not exist: {root}")
    logger.info(
        f"Content roots: {[str(r) for r in graph.context.roots]} "
        f"({len(graph.store.capability_files())} capabilities, "
        f"{len(graph.store.enabler_files())} enablers)"
    )

    watcher = DocumentWatcher(
        graph.context, change_bus, get_debounce_seconds(server_config)
    )
    watcher_thread = threading.Thread(
        target=watcher.run_until,
        args=(_shutdown_event,),
        daemon=True,
        name="FileWatcher",
    )
    watcher_thread.start()
    logger.info("File watcher thread started")

    # Start MCP server (blocks until shutdown)
    logger.info("MCP server ready - listening for tool calls")
    mcp.run()


if __name__ == "__main__":
    main()
