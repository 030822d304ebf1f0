"""Unit tests for the external edit watcher.

Handler tests feed watchdog event objects directly; one test runs a real
Observer against tmp_path.
"""

import threading
import time
from pathlib import Path

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from specgraph.config import StoreContext
from specgraph.events import ChangeBus, ChangeSource, ChangeType
from specgraph.watcher import DocumentWatcher, SpecFileEventHandler


@pytest.fixture
def received():
    return []


@pytest.fixture
def handler(received):
    bus = ChangeBus()
    bus.subscribe(received.append)
    handler = SpecFileEventHandler(bus, debounce_seconds=60)
    yield handler
    handler.cancel()


class TestSpecFileEventHandler:
    """Tests for event filtering and debouncing."""

    def test_is_spec_file(self):
        assert SpecFileEventHandler.is_spec_file("/s/1-capability.md")
        assert SpecFileEventHandler.is_spec_file(Path("2-enabler.md"))
        assert not SpecFileEventHandler.is_spec_file("/s/README.md")
        assert not SpecFileEventHandler.is_spec_file("/s/1-capability.md.swp")

    def test_ignores_other_files_and_directories(self, handler, received):
        handler.on_modified(FileModifiedEvent("/s/README.md"))
        handler.on_modified(DirModifiedEvent("/s"))

        assert handler.flush() == 0
        assert received == []

    def test_burst_collapses_to_one_event(self, handler, received):
        for _ in range(5):
            handler.on_modified(FileModifiedEvent("/s/1-capability.md"))

        assert received == []
        assert handler.flush() == 1
        assert received[0].change_type is ChangeType.MODIFIED
        assert received[0].source is ChangeSource.WATCHER

    def test_create_then_modify_is_create(self, handler, received):
        handler.on_created(FileCreatedEvent("/s/1-enabler.md"))
        handler.on_modified(FileModifiedEvent("/s/1-enabler.md"))
        handler.flush()

        assert [e.change_type for e in received] == [ChangeType.CREATED]

    def test_delete(self, handler, received):
        handler.on_deleted(FileDeletedEvent("/s/1-enabler.md"))
        handler.flush()
        assert received[0].change_type is ChangeType.DELETED

    def test_move_reports_destination(self, handler, received):
        """Editors that save via rename still produce an event for the spec file."""
        handler.on_moved(FileMovedEvent("/s/.1-capability.md.tmp", "/s/1-capability.md"))
        handler.flush()

        assert received[0].path == Path("/s/1-capability.md")
        assert received[0].change_type is ChangeType.MOVED

    def test_timer_publishes_after_quiet_period(self):
        bus = ChangeBus()
        published = threading.Event()
        bus.subscribe(lambda e: published.set())
        handler = SpecFileEventHandler(bus, debounce_seconds=0.05)

        handler.on_modified(FileModifiedEvent("/s/1-capability.md"))

        assert published.wait(timeout=5)

    def test_cancel_drops_pending(self, handler, received):
        handler.on_modified(FileModifiedEvent("/s/1-capability.md"))
        handler.cancel()

        assert handler.flush() == 0


class TestDocumentWatcher:
    def test_observes_real_edit(self, tmp_path):
        bus = ChangeBus()
        seen = threading.Event()
        paths = []

        def on_change(event):
            paths.append(event.path)
            seen.set()

        bus.subscribe(on_change)
        watcher = DocumentWatcher(
            StoreContext(roots=(tmp_path, tmp_path / "missing")), bus, debounce_seconds=0.05
        )
        stop = threading.Event()
        thread = threading.Thread(target=watcher.run_until, args=(stop,), daemon=True)
        thread.start()
        try:
            # Give the observer time to schedule its watches
            for _ in range(50):
                if watcher._observer is not None and watcher._observer.is_alive():
                    break
                time.sleep(0.05)
            (tmp_path / "1-capability.md").write_text("# Edited outside\n")
            assert seen.wait(timeout=10)
        finally:
            stop.set()
            thread.join(timeout=10)

        assert Path(paths[0]).name == "1-capability.md"
