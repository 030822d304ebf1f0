"""
File change notifications.

The store publishes a FileChangeEvent after each write has reached disk; the
external watcher publishes advisory events for edits made outside the
process. Delivery is synchronous and in-process: each subscriber callback is
invoked in subscription order and a failing subscriber is logged and skipped,
never surfaced to the writer. How events reach clients beyond that is the
subscriber's business.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kind of file change."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


class ChangeSource(str, Enum):
    """Who observed the change."""

    STORE = "store"  # Written by this process
    WATCHER = "watcher"  # Seen on disk; may race the write that caused it


@dataclass(frozen=True)
class FileChangeEvent:
    path: Path
    change_type: ChangeType = ChangeType.MODIFIED
    source: ChangeSource = ChangeSource.STORE
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "change_type": self.change_type.value,
            "source": self.source.value,
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[FileChangeEvent], None]


class ChangeBus:
    """Publish/subscribe channel for file change events."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: FileChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        logger.debug(
            f"File {event.change_type.value} ({event.source.value}): {event.path}"
        )
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Change subscriber failed for {event.path}: {e}", exc_info=True
                )

    def notify(
        self,
        path: Path,
        change_type: ChangeType = ChangeType.MODIFIED,
        source: ChangeSource = ChangeSource.STORE,
    ) -> None:
        self.publish(FileChangeEvent(Path(path), change_type, source))
