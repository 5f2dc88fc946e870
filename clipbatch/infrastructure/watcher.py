"""Filesystem event source backed by watchdog.

Only translates native notifications into raw ``add`` / ``change`` /
``unlink`` calls. Filtering, stability, dedup and ordering all happen
downstream in the pipeline and its queue.
"""
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

from clipbatch.domain.naming import is_hidden

EVENT_ADD = "add"
EVENT_CHANGE = "change"
EVENT_UNLINK = "unlink"
EVENT_SCAN = "scan"

FileEventCallback = Callable[[str, Path], None]


class _ForwardingHandler(FileSystemEventHandler):
    def __init__(self, root: Path, callback: FileEventCallback):
        super().__init__()
        self._root = root
        self._callback = callback

    def _forward(self, event_type: str, raw_path: Any) -> None:
        if not raw_path:
            return
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode(errors="replace")
        path = Path(raw_path)
        try:
            rel = path.relative_to(self._root)
        except ValueError:
            rel = path
        if is_hidden(rel):
            return
        self._callback(event_type, path)

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self._forward(EVENT_ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        # Needed for slow/network copies where creation precedes the content
        if not event.is_directory:
            self._forward(EVENT_CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        if not event.is_directory:
            self._forward(EVENT_UNLINK, event.src_path)

    def on_moved(self, event: FileSystemMovedEvent):
        if event.is_directory:
            return
        self._forward(EVENT_UNLINK, event.src_path)
        self._forward(EVENT_ADD, event.dest_path)


class DirectoryWatcher:
    """Recursive watchdog observer over the watched root."""

    def __init__(self, root: Path, callback: FileEventCallback):
        self.root = root
        self.callback = callback
        self.logger = logging.getLogger(__name__)
        self._observer: Optional[Any] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(_ForwardingHandler(self.root, self.callback), str(self.root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        self.logger.info(f"Watching {self.root}")

    def stop(self, timeout: float = 5.0) -> None:
        if self._observer is None:
            return
        observer = self._observer
        self._observer = None
        observer.stop()
        observer.join(timeout=timeout)
        self.logger.info(f"Stopped watching {self.root}")
