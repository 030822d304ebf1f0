"""
External edit watcher.

Observes every content root with watchdog and publishes advisory
FileChangeEvents (source=watcher) for capability and enabler files edited
outside this process. Bursts of events are debounced: a path is published
once the directory has been quiet for debounce_seconds.

Watcher events carry no ordering guarantee against the store's own writes;
subscribers should treat them as "maybe stale, re-read".
"""

import logging
import threading
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import StoreContext
from .events import ChangeBus, ChangeSource, ChangeType
from .store import CAPABILITY_SUFFIX, ENABLER_SUFFIX

logger = logging.getLogger(__name__)

WATCHED_SUFFIXES = (CAPABILITY_SUFFIX, ENABLER_SUFFIX)

_EVENT_TYPES = {
    "created": ChangeType.CREATED,
    "modified": ChangeType.MODIFIED,
    "deleted": ChangeType.DELETED,
    "moved": ChangeType.MOVED,
}


class SpecFileEventHandler(FileSystemEventHandler):
    """
    File watcher event handler for specification documents.

    Only reacts to actual file changes (created, modified, deleted, moved) of
    -capability.md / -enabler.md files, not to reads.
    """

    def __init__(self, bus: ChangeBus, debounce_seconds: float = 1.0):
        """
        Args:
            bus: Bus the debounced events are published on
            debounce_seconds: Quiet period after the last event before publishing
        """
        super().__init__()
        self.bus = bus
        self.debounce_seconds = debounce_seconds
        self._pending: dict[Path, ChangeType] = {}
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @staticmethod
    def is_spec_file(path: str | Path) -> bool:
        return Path(path).name.endswith(WATCHED_SUFFIXES)

    def _should_process(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        if event.event_type not in _EVENT_TYPES:
            return False
        if self.is_spec_file(event.src_path):
            return True
        dest = getattr(event, "dest_path", "")
        return bool(dest) and self.is_spec_file(dest)

    def _handle_event(self, event: FileSystemEvent) -> None:
        if not self._should_process(event):
            return

        change_type = _EVENT_TYPES[event.event_type]
        dest = getattr(event, "dest_path", "")
        path = Path(dest if change_type is ChangeType.MOVED and dest else event.src_path)
        logger.debug(f"File {event.event_type}: {path.name}")

        with self._lock:
            # A create followed by modifies is still a create
            if self._pending.get(path) is not ChangeType.CREATED:
                self._pending[path] = change_type
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def on_modified(self, event: FileSystemEvent):
        self._handle_event(event)

    def on_created(self, event: FileSystemEvent):
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent):
        self._handle_event(event)

    def on_moved(self, event: FileSystemEvent):
        self._handle_event(event)

    def flush(self) -> int:
        """Publish every pending change now; returns how many were published."""
        with self._lock:
            pending = self._pending
            self._pending = {}
            self._timer = None

        if pending:
            logger.info(f"Publishing {len(pending)} external change(s)")
        for path, change_type in pending.items():
            self.bus.notify(path, change_type, ChangeSource.WATCHER)
        return len(pending)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()


class DocumentWatcher:
    """Runs a watchdog Observer over every existing content root."""

    def __init__(
        self, context: StoreContext, bus: ChangeBus, debounce_seconds: float = 1.0
    ):
        self.context = context
        self.handler = SpecFileEventHandler(bus, debounce_seconds)
        self._observer: Observer | None = None

    def start(self) -> None:
        self._observer = Observer()
        for root in self.context.roots:
            if not root.exists():
                logger.warning(f"Not watching missing content root: {root}")
                continue
            self._observer.schedule(self.handler, str(root), recursive=True)
            logger.info(f"Watching {root}")
        self._observer.start()

    def stop(self) -> None:
        self.handler.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
            logger.info("File watcher stopped")

    def run_until(self, shutdown_event: threading.Event) -> None:
        """Watch until shutdown_event is set (target for a background thread)."""
        try:
            self.start()
            while not shutdown_event.wait(1):
                pass
        except Exception as e:
            logger.error(f"File watcher error: {e}", exc_info=True)
        finally:
            self.stop()
