"""Filesystem watcher that turns disk changes into editor-style events."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from code_chronicle.capture.workspace import WorkspaceScanner
from code_chronicle.core.errors import InvalidArgument
from code_chronicle.core.logging import get_logger
from code_chronicle.models.events import FileCreateEvent, FileDeleteEvent, FileSaveEvent

logger = get_logger(__name__)

WorkspaceEvent = Union[FileCreateEvent, FileDeleteEvent, FileSaveEvent]
WorkspaceEventCallback = Callable[[WorkspaceEvent], None]


class WorkspaceEventHandler(FileSystemEventHandler):
    """Dispatch tracked file events to the callback."""

    def __init__(self, scanner: WorkspaceScanner, callback: WorkspaceEventCallback) -> None:
        super().__init__()
        self.scanner = scanner
        self.callback = callback

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit_with_content(Path(event.src_path), FileCreateEvent)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit_with_content(Path(event.src_path), FileSaveEvent)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        relative = self._relative(Path(event.src_path))
        if relative is not None:
            self.callback(FileDeleteEvent(path=relative))
        self._emit_with_content(Path(event.dest_path), FileCreateEvent)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        relative = self._relative(Path(event.src_path))
        if relative is not None:
            self.callback(FileDeleteEvent(path=relative))

    def _relative(self, path: Path) -> str | None:
        try:
            relative = self.scanner.relative_path(path)
        except InvalidArgument:
            return None
        return relative if self.scanner.should_track(relative) else None

    def _emit_with_content(self, path: Path, event_type: type[FileCreateEvent] | type[FileSaveEvent]) -> None:
        relative = self._relative(path)
        if relative is None:
            return
        content = self.scanner.read_text(path)
        if content is None:
            return
        self.callback(event_type(path=relative, content=content))


class Watcher:
    """High-level wrapper around a watchdog observer for one workspace."""

    def __init__(self, scanner: WorkspaceScanner, callback: WorkspaceEventCallback) -> None:
        self.scanner = scanner
        self._observer: BaseObserver = Observer()
        self._lock = threading.Lock()
        self._handler = WorkspaceEventHandler(scanner, callback)
        self._scheduled = False
        self._started = False

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            if not self._scheduled:
                self._observer.schedule(self._handler, str(self.scanner.root), recursive=True)
                self._scheduled = True
            self._observer.start()
            self._started = True
            logger.info("Watching %s", self.scanner.root)

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False

    def close(self) -> None:
        self.stop()
        with self._lock:
            self._observer.unschedule_all()
            self._scheduled = False


__all__ = ["Watcher", "WorkspaceEventHandler", "WorkspaceEventCallback"]
